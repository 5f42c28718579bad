"""
DefinitionBuilder

This module provides the builders behind the module DSL
(``module.single[Type](...)``, ``module.prototype[Type](...)``,
``module.scoped[Type](...)``) and the constructor analysis used for
autowiring.

The builder performs:
- Type parameter extraction via __getitem__
- Definition creation and registration on the module

The analysis functions inspect ``__init__`` (for classes) or the callable
signature (for factories) and resolve annotations, including forward
references, so the container can resolve parameters by type.
"""

import ast
import inspect
import typing
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar, TYPE_CHECKING, Union

from .definition import ComponentDefinition, PROTOTYPE, Role, SINGLETON, default_name_for
from .exceptions import DefinitionStoreError

if TYPE_CHECKING:
    from .module import TrellisModule

T = TypeVar('T')

_EMPTY = inspect.Parameter.empty


@dataclass(frozen=True)
class ParameterSpec:
    """One injectable parameter of a constructor or factory.

    Attributes:
        name: Parameter name
        annotation: Resolved annotation, or None when missing
        default: Default value, or ``inspect.Parameter.empty``
        keyword_only: True for parameters after ``*``
    """
    name: str
    annotation: Any
    default: Any = _EMPTY
    keyword_only: bool = False

    @property
    def has_default(self) -> bool:
        return self.default is not _EMPTY


class DefinitionBuilder:
    """Builder supporting the subscript registration syntax.

    Attributes:
        module: The TrellisModule to register definitions to
        scope: The scope name given to created definitions

    Note:
        This class is not used directly. Use module.single, module.prototype
        or module.scoped instead.
    """

    def __init__(self, module: 'TrellisModule', scope: str):
        self.module = module
        self.scope = scope

    def __getitem__(self, interface: Union[Type[T], str]) -> Callable[..., ComponentDefinition]:
        """Enable subscript syntax: builder[Type](provider, **options).

        ``interface`` is either the type the component is registered for or
        an explicit component name. The provider may be a class (instantiated
        with autowired constructor arguments), any other callable (invoked
        the same way), or omitted when ``interface`` is itself the class.

        Example::

            module.single[Database](Database)
            module.single[Repository](PostgresRepository, primary=True)
            module.prototype["request"](lambda: Request())
            module.single[Service](properties={"repo": Ref("repository")})
        """

        def register(
            provider: Optional[Callable[..., T]] = None,
            *,
            name: Optional[str] = None,
            lazy: Optional[bool] = None,
            primary: bool = False,
            depends_on: tuple = (),
            args: Optional[list] = None,
            kwargs: Optional[dict] = None,
            properties: Optional[dict] = None,
            init_method: Optional[str] = None,
            destroy_method: Optional[str] = None,
            factory_component: Optional[str] = None,
            factory_method: Optional[str] = None,
            autowire: bool = True,
            autowire_candidate: bool = True,
            role: Role = Role.APPLICATION,
            parent: Optional[str] = None,
            abstract: bool = False,
            description: Optional[str] = None,
            aliases: tuple = (),
        ) -> ComponentDefinition:
            component_type, factory = self._split_provider(interface, provider)
            definition = ComponentDefinition(
                name=name or self._name_for(interface),
                component_type=component_type,
                factory=factory,
                scope=self.scope,
                lazy=self._effective_lazy(lazy),
                depends_on=tuple(depends_on),
                primary=primary,
                autowire_candidate=autowire_candidate,
                autowire=autowire,
                abstract=abstract,
                constructor_args=list(args or []),
                constructor_kwargs=dict(kwargs or {}),
                properties=dict(properties or {}),
                factory_component=factory_component,
                factory_method=factory_method,
                init_method=init_method,
                destroy_method=destroy_method,
                role=role,
                parent=parent,
                description=description,
            )
            self.module.add_definition(definition)
            for alias in aliases:
                self.module.alias(definition.name, alias)
            return definition

        return register

    def _effective_lazy(self, lazy: Optional[bool]) -> Optional[bool]:
        # Module-level default applies to singletons only
        if lazy is not None:
            return lazy
        if self.scope in ("", SINGLETON) and self.module._lazy:
            return True
        return None

    @staticmethod
    def _name_for(interface: Union[Type, str]) -> str:
        if isinstance(interface, str):
            return interface
        if isinstance(interface, type):
            return default_name_for(interface)
        raise DefinitionStoreError(
            f"Cannot derive a component name from {interface!r}. "
            f"Pass name= explicitly."
        )

    @staticmethod
    def _split_provider(interface: Union[Type, str], provider: Optional[Callable]):
        declared = interface if isinstance(interface, type) else None
        if provider is None:
            return declared, None
        if isinstance(provider, type):
            return provider, None
        if not callable(provider):
            raise DefinitionStoreError(
                f"Provider for {interface!r} must be a class or a callable, got {provider!r}"
            )
        return declared, provider


class PrototypeBuilder(DefinitionBuilder):
    """Builder for prototype definitions"""

    def __init__(self, module: 'TrellisModule'):
        super().__init__(module, PROTOTYPE)


class SingletonBuilder(DefinitionBuilder):
    """Builder for singleton definitions"""

    def __init__(self, module: 'TrellisModule'):
        super().__init__(module, SINGLETON)


# -- constructor analysis ------------------------------------------------------

_parameter_cache: Dict[Any, List[ParameterSpec]] = {}


def analyze_parameters(target: Callable) -> List[ParameterSpec]:
    """Extract injectable parameters from a class constructor or a callable.

    ``self``, ``*args`` and ``**kwargs`` are skipped. Results are cached per
    target.

    Raises:
        DefinitionStoreError: When the signature cannot be inspected
            (e.g. built-in types or C extension classes)
    """
    try:
        cached = _parameter_cache.get(target)
    except TypeError:
        cached = None
    if cached is not None:
        return cached

    is_class = isinstance(target, type)
    if is_class and target.__init__ is object.__init__:
        specs: List[ParameterSpec] = []
    else:
        inspected = target.__init__ if is_class else target
        try:
            sig = inspect.signature(inspected)
        except (ValueError, TypeError) as e:
            name = getattr(target, '__name__', repr(target))
            raise DefinitionStoreError(
                f"Cannot inspect the signature of {name}: {e}. "
                f"This may occur with built-in types or C extension classes."
            ) from e

        hints = _resolve_type_hints(inspected)
        specs = []
        params = list(sig.parameters.items())
        if is_class and params and params[0][0] == 'self':
            params = params[1:]
        for param_name, param in params:
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue
            annotation = hints.get(param_name, param.annotation)
            if annotation is _EMPTY:
                annotation = None
            elif isinstance(annotation, str):
                owner = target if is_class else inspect.getmodule(target)
                annotation = _resolve_string_annotation(owner, param_name, annotation)
            specs.append(ParameterSpec(
                name=param_name,
                annotation=annotation,
                default=param.default,
                keyword_only=param.kind == inspect.Parameter.KEYWORD_ONLY,
            ))

    try:
        _parameter_cache[target] = specs
    except TypeError:
        pass
    return specs


def return_type_of(factory: Callable) -> Optional[Type]:
    """Declared return class of a factory callable, if annotated with a class."""
    hints = _resolve_type_hints(factory)
    returned = hints.get('return')
    if returned is None:
        try:
            returned = inspect.signature(factory).return_annotation
        except (ValueError, TypeError):
            return None
    return returned if isinstance(returned, type) else None


def _resolve_type_hints(target: Callable) -> Dict[str, Any]:
    """Resolve type hints using typing.get_type_hints().

    Failures (undefined forward references, recursion, unsupported ``|``
    operands) return an empty dict so the caller can fall back to manual
    resolution of the raw annotations.
    """
    try:
        # include_extras=True preserves Annotated[] metadata
        return typing.get_type_hints(target, include_extras=True)
    except (NameError, AttributeError, SyntaxError, RecursionError, TypeError):
        # Undefined forward references are common with local classes
        return {}


def _resolve_string_annotation(owner: Any, param_name: str, annotation: str) -> Any:
    """Attempt to resolve a string annotation in the owner's module namespace.

    Unresolvable annotations are returned as None: the parameter then needs
    an explicit argument or a default value.
    """
    module = owner if inspect.ismodule(owner) else inspect.getmodule(owner)
    namespace: Dict[str, Any] = {}
    if module is not None and hasattr(module, '__dict__'):
        namespace.update(module.__dict__)
    if isinstance(owner, type):
        namespace.update(owner.__dict__)
    namespace.setdefault('Union', Union)
    namespace.setdefault('Optional', Optional)
    namespace.setdefault('List', List)

    try:
        return eval(_convert_union_syntax(annotation), namespace)
    except Exception:
        return None


def _convert_union_syntax(annotation: str) -> str:
    """Convert PEP 604 union syntax (X | Y) to Union[X, Y].

    Some types (like multiprocessing.Queue, which is a function) do not
    support the | operator, so the string is rewritten before evaluation.

    Example::

        >>> _convert_union_syntax('int | str')
        'Union[int, str]'
    """
    if '|' not in annotation:
        return annotation

    try:
        tree = ast.parse(annotation, mode='eval')
    except SyntaxError:
        return annotation

    class UnionTransformer(ast.NodeTransformer):
        """Transform BinOp(|) nodes to Subscript(Union[...]) nodes."""

        def visit_BinOp(self, node: ast.BinOp) -> ast.AST:
            if isinstance(node.op, ast.BitOr):
                # Collect the whole chain first: X | Y | Z becomes Union[X, Y, Z]
                types = _collect_union_types(node)
                transformed_types = [self.visit(t) for t in types]
                return ast.Subscript(
                    value=ast.Name(id='Union', ctx=ast.Load()),
                    slice=ast.Tuple(elts=transformed_types, ctx=ast.Load()),
                    ctx=ast.Load()
                )
            self.generic_visit(node)
            return node

    new_tree = UnionTransformer().visit(tree)
    ast.fix_missing_locations(new_tree)
    return ast.unparse(new_tree.body)


def _collect_union_types(node: ast.BinOp) -> List[ast.AST]:
    types: List[ast.AST] = []

    def collect(n: ast.AST) -> None:
        if isinstance(n, ast.BinOp) and isinstance(n.op, ast.BitOr):
            collect(n.left)
            collect(n.right)
        else:
            types.append(n)

    collect(node)
    return types
