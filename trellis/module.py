"""
TrellisModule

This module provides the DSL class for defining components.
A TrellisModule holds component definitions and aliases, which are then
loaded into a container's definition registry.

Key features:
- Subscript syntax: module.single[Type](...), module.prototype[Type](...)
- Scoped definitions: with module.scope("request"): module.scoped[Type](...)
- Context manager support for cleaner definition blocks
- Acts as a definition source (get/names/contains)

Example::

    module = TrellisModule()
    with module:
        module.single[Database](Database, destroy_method="close")
        module.single[UserRepository](UserRepository)
        module.prototype[Command](Command)

        with module.scope("request"):
            module.scoped[RequestContext](RequestContext)

    context = TrellisContext(modules=[module])
"""

from typing import Dict, List, Optional, Tuple

from .definition import ComponentDefinition
from .definition_builder import DefinitionBuilder, PrototypeBuilder, SingletonBuilder
from .exceptions import DefinitionNotFoundError, DefinitionStoreError


class ScopeDefinitionContext:
    """Context manager for defining scoped components.

    Used with the ``with module.scope(...)`` syntax. Nested blocks restore
    the outer scope on exit.
    """

    def __init__(self, module: 'TrellisModule', scope_name: str):
        self.module = module
        self.scope_name = scope_name
        self._previous: Optional[DefinitionBuilder] = None

    def __enter__(self) -> 'ScopeDefinitionContext':
        self._previous = self.module._current_scoped_builder
        self.module._current_scoped_builder = DefinitionBuilder(self.module, self.scope_name)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.module._current_scoped_builder = self._previous
        return False


class TrellisModule:
    """Collection of component definitions.

    Attributes:
        single: Builder for singleton registrations
        prototype: Builder for prototype registrations
        scoped: Builder for custom-scope registrations (only valid within
            a ``with module.scope(name):`` block)

    Example::

        module = TrellisModule(lazy=True)
        with module:
            module.single[Database](Database)        # lazy singleton
            module.single[Cache](Cache, lazy=False)  # created at refresh
    """

    def __init__(self, lazy: bool = False):
        """Initialize a new module with empty definitions.

        Args:
            lazy: If True, singleton definitions in this module default to
                lazy initialization (created on first lookup instead of at
                refresh time). Defaults to False.
        """
        self._definitions: Dict[str, ComponentDefinition] = {}
        self._aliases: List[Tuple[str, str]] = []
        self._lazy: bool = lazy
        self.single = SingletonBuilder(self)
        self.prototype = PrototypeBuilder(self)
        self._current_scoped_builder: Optional[DefinitionBuilder] = None

    def __enter__(self) -> 'TrellisModule':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        return False

    def scope(self, scope_name: str) -> ScopeDefinitionContext:
        """Open a block whose ``scoped[...]`` registrations use ``scope_name``.

        Example::

            with module.scope("request"):
                module.scoped[RequestContext](RequestContext)
        """
        return ScopeDefinitionContext(self, scope_name)

    @property
    def scoped(self) -> DefinitionBuilder:
        """Builder for the innermost ``with module.scope(...)`` block.

        Raises:
            DefinitionStoreError: When used outside a scope block
        """
        if self._current_scoped_builder is None:
            raise DefinitionStoreError(
                "scoped[] must be used within a scope block. "
                "Use 'with module.scope(\"name\"):' first."
            )
        return self._current_scoped_builder

    def define(self, definition: ComponentDefinition) -> ComponentDefinition:
        """Add a fully specified definition."""
        self.add_definition(definition)
        return definition

    def add_definition(self, definition: ComponentDefinition) -> None:
        """Add a definition to the module.

        Raises:
            DefinitionStoreError: When the module already defines the name
        """
        if definition.name in self._definitions:
            raise DefinitionStoreError(
                f"Module already defines a component named '{definition.name}'"
            )
        self._definitions[definition.name] = definition

    def alias(self, name: str, alias: str) -> None:
        self._aliases.append((name, alias))

    @property
    def definitions(self) -> List[ComponentDefinition]:
        return list(self._definitions.values())

    @property
    def aliases(self) -> List[Tuple[str, str]]:
        return list(self._aliases)

    # Definition source protocol

    def get(self, name: str) -> ComponentDefinition:
        try:
            return self._definitions[name]
        except KeyError:
            raise DefinitionNotFoundError(
                f"Module does not define a component named '{name}'", name=name
            ) from None

    def names(self) -> List[str]:
        return list(self._definitions)

    def contains(self, name: str) -> bool:
        return name in self._definitions
