"""
Definition

Data classes describing how to build one named component
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from .exceptions import DefinitionStoreError

SINGLETON = "singleton"
PROTOTYPE = "prototype"


class Role(Enum):
    """Classification of a component's purpose"""
    APPLICATION = "APPLICATION"
    SUPPORT = "SUPPORT"
    INFRASTRUCTURE = "INFRASTRUCTURE"


@dataclass(frozen=True)
class Ref:
    """Reference to another component, by name or by type.

    Example::

        ComponentDefinition("service", Service, properties={"repo": Ref("userRepository")})
        ComponentDefinition("service", Service, constructor_args=[Ref(type=Cache, optional=True)])
    """
    name: Optional[str] = None
    type: Optional[Type] = None
    optional: bool = False

    def __post_init__(self):
        if self.name is None and self.type is None:
            raise DefinitionStoreError("Ref requires a name or a type")

    def __repr__(self) -> str:
        target = self.name if self.name is not None else getattr(self.type, '__name__', self.type)
        return f"Ref({target!r})"


@dataclass(frozen=True)
class Value:
    """A raw string value passed through the value resolver (placeholders)."""
    raw: str


@dataclass
class ComponentDefinition:
    """Declarative metadata describing one component.

    Only ``name`` is required; everything else has a neutral default.
    ``None`` or empty values mean "inherit from the parent definition" when a
    ``parent`` is set.
    """
    name: str
    component_type: Optional[Type] = None
    factory: Optional[Callable] = None
    scope: str = ""
    lazy: Optional[bool] = None
    depends_on: Tuple[str, ...] = ()
    primary: bool = False
    autowire_candidate: bool = True
    autowire: bool = True
    abstract: bool = False
    constructor_args: List[Any] = field(default_factory=list)
    constructor_kwargs: Dict[str, Any] = field(default_factory=dict)
    properties: Dict[str, Any] = field(default_factory=dict)
    factory_component: Optional[str] = None
    factory_method: Optional[str] = None
    init_method: Optional[str] = None
    destroy_method: Optional[str] = None
    role: Role = Role.APPLICATION
    parent: Optional[str] = None
    originating: Optional['ComponentDefinition'] = None
    description: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    _frozen: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self):
        self.depends_on = tuple(self.depends_on)

    def __setattr__(self, key: str, value: Any) -> None:
        if getattr(self, '_frozen', False):
            raise DefinitionStoreError(
                f"Cannot modify definition '{self.name}': the registry is frozen"
            )
        object.__setattr__(self, key, value)

    @property
    def effective_scope(self) -> str:
        return self.scope or SINGLETON

    @property
    def is_singleton(self) -> bool:
        return self.effective_scope == SINGLETON

    @property
    def is_prototype(self) -> bool:
        return self.effective_scope == PROTOTYPE

    @property
    def is_lazy(self) -> bool:
        return bool(self.lazy)

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        object.__setattr__(self, '_frozen', True)

    def copy(self, **changes: Any) -> 'ComponentDefinition':
        """Return an unfrozen copy with the given field changes applied."""
        return dataclasses.replace(self, **changes)

    def merged_with(self, parent: 'ComponentDefinition') -> 'ComponentDefinition':
        """Fold this (child) definition over an already merged parent.

        Child values win; argument lists, property maps, attributes and
        ``depends_on`` are combined. ``abstract``, ``primary`` and the autowire
        flags are never inherited.
        """
        args = list(parent.constructor_args)
        for index, arg in enumerate(self.constructor_args):
            if index < len(args):
                args[index] = arg
            else:
                args.append(arg)
        depends_on = list(parent.depends_on)
        depends_on.extend(d for d in self.depends_on if d not in depends_on)
        return ComponentDefinition(
            name=self.name,
            component_type=self.component_type or parent.component_type,
            factory=self.factory or parent.factory,
            scope=self.scope or parent.scope,
            lazy=self.lazy if self.lazy is not None else parent.lazy,
            depends_on=tuple(depends_on),
            primary=self.primary,
            autowire_candidate=self.autowire_candidate,
            autowire=self.autowire,
            abstract=self.abstract,
            constructor_args=args,
            constructor_kwargs={**parent.constructor_kwargs, **self.constructor_kwargs},
            properties={**parent.properties, **self.properties},
            factory_component=self.factory_component or parent.factory_component,
            factory_method=self.factory_method or parent.factory_method,
            init_method=self.init_method or parent.init_method,
            destroy_method=self.destroy_method or parent.destroy_method,
            role=self.role,
            parent=None,
            originating=self.originating,
            description=self.description or parent.description,
            attributes={**parent.attributes, **self.attributes},
        )


def default_name_for(component_type: Type) -> str:
    """Derive a component name from a class name.

    ``UserRepository`` becomes ``userRepository``; names starting with two
    capitals (``URLParser``) are kept as they are.
    """
    name = component_type.__name__
    if len(name) > 1 and name[0].isupper() and name[1].isupper():
        return name
    return name[:1].lower() + name[1:]
