"""
TrellisContainer

This module provides the core container implementation: definition lookup,
dependency resolution and the creation pipeline. It is the heart of the
Trellis framework, responsible for:

- Storing and merging component definitions (through DefinitionRegistry)
- Caching singletons and dispatching other scopes
- Creating components: instantiation, property population, aware
  callbacks, instance processors, init methods
- Exposing early references so property-level circular dependencies
  between singletons resolve
- Registering destruction callbacks and tearing singletons down in
  reverse dependency order

The container is typically not used directly. Instead, use TrellisContext,
which drives the container through refresh and close.
"""

import itertools
import logging
import threading
import typing
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar, TYPE_CHECKING

from .collaborators import PassThroughValueResolver, SimpleTypeConverter, TypeConverter, ValueResolver
from .definition import ComponentDefinition, PROTOTYPE, Ref, SINGLETON, Value
from .definition_builder import ParameterSpec, analyze_parameters, return_type_of
from .exceptions import (
    AmbiguousDependencyError,
    CircularDependencyError,
    CreationError,
    DefinitionNotFoundError,
    DefinitionStoreError,
    EarlyReferenceMismatchError,
    IllegalStateError,
    NoSuchDependencyError,
    ScopeNotActiveError,
    ScopeOperationNotSupportedError,
    TypeMismatchError,
)
from .instance_cache import InstanceCache
from .interfaces import ComponentLookup, DefinitionIntrospection, ScopeRegistration
from .lifecycle import ContainerAware, DisposableComponent, InitializingComponent, NameAware, SmartInitializingSingleton
from .processors import (
    DestructionAwareProcessor,
    EarlyReferenceProcessor,
    InstanceProcessor,
    InstantiationAwareProcessor,
    MergedDefinitionProcessor,
)
from .registry import DefinitionRegistry
from .resolution_context import CreationState, creating, current_path
from .resolver import DependencyDescriptor, DependencyResolver, ObjectProvider
from .scope import Scope
from .settings import ContainerSettings

if TYPE_CHECKING:
    from .module import TrellisModule

logger = logging.getLogger(__name__)

T = TypeVar('T')

_MISSING = object()
_SKIP = object()

INFER_DESTROY_METHOD = "(inferred)"
_INFERRED_DESTROY_NAMES = ("close", "shutdown")

# Errors raised by nested lookups that already describe the problem; they
# propagate unchanged instead of being wrapped again.
_PASS_THROUGH = (
    CreationError,
    CircularDependencyError,
    NoSuchDependencyError,
    AmbiguousDependencyError,
    DefinitionNotFoundError,
    ScopeNotActiveError,
    IllegalStateError,
    TypeMismatchError,
)


class TrellisContainer(ComponentLookup, DefinitionIntrospection, ScopeRegistration):
    """Component container with dependency resolution and scope management.

    This class is the internal engine of Trellis. It resolves components
    with support for:

    - Constructor autowiring by parameter annotation, with name fallback
    - Explicit constructor arguments, properties and references (Ref)
    - Singleton, prototype and custom scopes
    - Early references for property-level circular dependencies
    - Instance processors around initialization
    - Subscript syntax: container[Type]()

    Attributes:
        registry: Definition registry (aliases, merged views, freezing)
        cache: Singleton instance cache and dependency graph
        resolver: Candidate lookup and tie-breaking by type
        settings: Behavioural switches
        parent: Optional parent container consulted for unknown names

    Note:
        This class is typically not instantiated directly. Use TrellisContext
        instead.
    """

    def __init__(
        self,
        settings: Optional[ContainerSettings] = None,
        parent: Optional['TrellisContainer'] = None,
        value_resolver: Optional[ValueResolver] = None,
        type_converter: Optional[TypeConverter] = None,
    ):
        """Initialize an empty container.

        Args:
            settings: Behavioural switches, defaults to ContainerSettings()
            parent: Parent container for hierarchical lookup
            value_resolver: Resolves raw definition values (placeholders)
            type_converter: Converts resolved values to target types
        """
        self.settings = settings or ContainerSettings()
        self.parent = parent
        self.registry = DefinitionRegistry(
            parent.registry if parent is not None else None,
            allow_overriding=self.settings.allow_definition_overriding,
        )
        self.cache = InstanceCache()
        self.resolver = DependencyResolver(self)
        self.value_resolver = value_resolver or PassThroughValueResolver()
        self.type_converter = type_converter or SimpleTypeConverter()
        self._scopes: Dict[str, Scope] = {}
        self._instance_processors: List[InstanceProcessor] = []
        self._processor_lock = threading.Lock()
        self._type_cache: Dict[str, Optional[type]] = {}
        self._inner_counter = itertools.count(1)
        self.resolver.register_resolvable_dependency(TrellisContainer, self)

    # -- configuration --------------------------------------------------------

    def load_modules(self, modules: List['TrellisModule']) -> None:
        """Load modules and register their definitions and aliases.

        Raises:
            DuplicateDefinitionError: When a name is already registered and
                overriding is not allowed

        Example::

            module = TrellisModule()
            with module:
                module.single[Database](Database)

            container = TrellisContainer()
            container.load_modules([module])
        """
        for module in modules:
            self.registry.import_from(module)
            for name, alias in module.aliases:
                self.registry.alias(name, alias)
        self._type_cache.clear()

    def register_definition(self, definition: ComponentDefinition) -> None:
        self.registry.register(definition)
        self._type_cache.pop(definition.name, None)

    def remove_definition(self, name: str) -> ComponentDefinition:
        definition = self.registry.remove(name)
        self._type_cache.pop(definition.name, None)
        return definition

    def register_alias(self, name: str, alias: str) -> None:
        self.registry.alias(name, alias)

    def freeze(self) -> None:
        """Freeze definitions; merged views are cached from now on."""
        self.registry.freeze()

    def is_frozen(self) -> bool:
        return self.registry.is_frozen()

    def clear_metadata_cache(self) -> None:
        """Drop merged definitions and predicted types after definitions changed."""
        self.registry.clear_merged_cache()
        self._type_cache.clear()

    def register_singleton(self, name: str, obj: Any) -> None:
        """Register an already created object as a singleton.

        The object receives no processing and no destruction callbacks.

        Raises:
            IllegalStateError: When an object is already bound to ``name``
        """
        self.cache.register_singleton(name, obj)

    def register_scope(self, name: str, scope: Scope) -> None:
        """Register a custom scope under ``name``.

        Raises:
            DefinitionStoreError: When ``name`` is one of the built-in scopes
        """
        if name in (SINGLETON, PROTOTYPE):
            raise DefinitionStoreError(f"Cannot replace the built-in '{name}' scope")
        previous = self._scopes.get(name)
        if previous is not None and previous is not scope:
            logger.debug("Replacing scope '%s': %r -> %r", name, previous, scope)
        self._scopes[name] = scope

    def get_registered_scope(self, name: str) -> Optional[Scope]:
        return self._scopes.get(name)

    def registered_scope_names(self) -> List[str]:
        return list(self._scopes)

    def add_instance_processor(self, processor: InstanceProcessor) -> None:
        """Append a processor; re-adding an existing one moves it to the end."""
        with self._processor_lock:
            if processor in self._instance_processors:
                self._instance_processors.remove(processor)
            self._instance_processors.append(processor)
            self._type_cache.clear()

    @property
    def instance_processors(self) -> List[InstanceProcessor]:
        return list(self._instance_processors)

    def ignore_dependency_type(self, ignored: type) -> None:
        self.resolver.ignore_dependency_type(ignored)

    def register_resolvable_dependency(self, dependency_type: type, value: Any) -> None:
        self.resolver.register_resolvable_dependency(dependency_type, value)

    # -- introspection --------------------------------------------------------

    def definition_names(self) -> List[str]:
        return self.registry.names()

    def contains_definition(self, name: str) -> bool:
        return self.registry.contains_local(name)

    def get_definition(self, name: str) -> ComponentDefinition:
        return self.registry.get(name)

    def get_merged_definition(self, name: str) -> ComponentDefinition:
        return self.registry.merge(name)

    def contains(self, name: str) -> bool:
        canonical = self.registry.canonical_name(name)
        if self.cache.contains_singleton(canonical) or self.registry.contains_local(canonical):
            return True
        return self.parent is not None and self.parent.contains(canonical)

    def aliases_of(self, name: str) -> List[str]:
        return self.registry.aliases_of(name)

    def is_singleton(self, name: str) -> bool:
        canonical = self.registry.canonical_name(name)
        if self.registry.contains_local(canonical):
            return self.get_merged_definition(canonical).is_singleton
        if self.cache.contains_singleton(canonical):
            return True
        if self.parent is not None:
            return self.parent.is_singleton(canonical)
        raise self.registry.not_found(name)

    def is_prototype(self, name: str) -> bool:
        canonical = self.registry.canonical_name(name)
        if self.registry.contains_local(canonical):
            return self.get_merged_definition(canonical).is_prototype
        if self.cache.contains_singleton(canonical):
            return False
        if self.parent is not None:
            return self.parent.is_prototype(canonical)
        raise self.registry.not_found(name)

    def is_currently_in_creation(self, name: str) -> bool:
        canonical = self.registry.canonical_name(name)
        return self.cache.is_in_creation(canonical) or canonical in current_path()

    def type_of(self, name: str) -> Optional[Type]:
        """Type of the component, predicted without creating it when possible.

        Returns None when the type cannot be determined before creation
        (a factory without a return annotation).

        Raises:
            DefinitionNotFoundError: When ``name`` is unknown
        """
        canonical = self.registry.canonical_name(name)
        obj = self.cache.get_final(canonical, _MISSING)
        if obj is not _MISSING:
            return type(obj)
        if self.registry.contains_local(canonical):
            return self._predict_type(canonical, self.get_merged_definition(canonical))
        if self.parent is not None:
            return self.parent.type_of(canonical)
        raise self.registry.not_found(name)

    def is_type_match(self, name: str, required_type: Any) -> bool:
        required = typing.get_origin(required_type) or required_type
        if required is Any:
            return True
        if not isinstance(required, type):
            return False
        canonical = self.registry.canonical_name(name)
        obj = self.cache.get_final(canonical, _MISSING)
        if obj is not _MISSING:
            return _safe_isinstance(obj, required)
        if not self.registry.contains_local(canonical):
            return self.parent is not None and self.parent.is_type_match(canonical, required)
        predicted = self._predict_type(canonical, self.get_merged_definition(canonical))
        return predicted is not None and _safe_issubclass(predicted, required)

    def names_for_type(
        self,
        required_type: Any,
        include_non_singletons: bool = True,
        autowire_only: bool = False
    ) -> List[str]:
        """Names of components matching ``required_type``, in registration order.

        Abstract definitions never match. Manually registered singletons are
        listed after the definitions, parent container matches last.
        """
        result: List[str] = []
        for name in self.registry.names():
            definition = self.get_merged_definition(name)
            if definition.abstract:
                continue
            if autowire_only and not definition.autowire_candidate:
                continue
            if not include_non_singletons and not definition.is_singleton:
                continue
            if self.is_type_match(name, required_type):
                result.append(name)
        for name in self.cache.singleton_names():
            if name not in result and not self.registry.contains_local(name) and self.is_type_match(name, required_type):
                result.append(name)
        if self.parent is not None:
            for name in self.parent.names_for_type(required_type, include_non_singletons, autowire_only):
                if name not in result and not self.registry.contains_local(name):
                    result.append(name)
        return result

    def get_instances_of_type(
        self,
        required_type: Type[T],
        include_non_singletons: bool = True
    ) -> Dict[str, T]:
        """Every matching component by name, creating them as needed."""
        return {
            name: self.get_instance(name)
            for name in self.names_for_type(required_type, include_non_singletons)
        }

    def get_provider(self, required_type: Type[T]) -> ObjectProvider[T]:
        """Lazy handle resolving ``required_type`` on each ``get()``."""
        return ObjectProvider(self.resolver, DependencyDescriptor(required_type))

    def register_dependent(self, name: str, dependent: str) -> None:
        """Record that component ``dependent`` depends on component ``name``."""
        self.cache.register_dependent(
            self.registry.canonical_name(name),
            self.registry.canonical_name(dependent),
        )

    def dependents_of(self, name: str) -> List[str]:
        return self.cache.dependents_of(self.registry.canonical_name(name))

    def dependencies_of(self, name: str) -> List[str]:
        return self.cache.dependencies_of(self.registry.canonical_name(name))

    # -- lookup ---------------------------------------------------------------

    def get_instance(self, name_or_type: Any, required_type: Optional[Type[T]] = None) -> Any:
        """Get a component by name or by type.

        Args:
            name_or_type: Component name/alias, or the type to resolve
            required_type: When looking up by name, the type the component
                must be an instance of

        Returns:
            The component instance

        Raises:
            DefinitionNotFoundError: When the name is unknown
            NoSuchDependencyError: When no component matches the type
            AmbiguousDependencyError: When several components match the type
            TypeMismatchError: When the named component is not a
                ``required_type``
            CircularDependencyError: When an unresolvable cycle is detected
            CreationError: When creating the component fails

        Example::

            db = container.get_instance("database")
            db = container.get_instance("database", Database)
            db = container.get_instance(Database)
        """
        if not isinstance(name_or_type, str):
            return self._get_by_type(name_or_type)
        obj = self._do_get(name_or_type)
        if required_type is not None and not _safe_isinstance(obj, required_type):
            raise TypeMismatchError(
                f"Component named '{name_or_type}' is expected to be of type "
                f"'{getattr(required_type, '__name__', required_type)}' but was actually of type "
                f"'{type(obj).__name__}'"
            )
        return obj

    def __getitem__(self, interface: Any) -> Callable[[], Any]:
        """Support subscript syntax: container[Type]() or container["name"]().

        Example::

            # These are equivalent:
            service = container[MyService]()
            service = container.get_instance(MyService)
        """

        def getter() -> Any:
            return self.get_instance(interface)

        return getter

    def _get_by_type(self, required_type: Any) -> Any:
        try:
            return self.resolver.resolve(DependencyDescriptor(required_type))
        except NoSuchDependencyError:
            if self.parent is not None:
                return self.parent.get_instance(required_type)
            raise

    def _do_get(self, name: str, depends_chain: Tuple[str, ...] = ()) -> Any:
        canonical = self.registry.canonical_name(name)
        path = current_path()
        holder = path[-1] if path else "<caller>"

        obj = self.cache.get_singleton(canonical, holder=holder)
        if obj is not None:
            return obj

        if not self.registry.contains_local(canonical):
            if self.parent is not None and self.parent.contains(canonical):
                return self.parent.get_instance(canonical)
            raise self.registry.not_found(name)

        definition = self.get_merged_definition(canonical)
        if definition.abstract:
            raise CreationError(canonical, "Definition is abstract and cannot be instantiated", path)

        if canonical in path:
            raise CircularDependencyError(
                f"Requested component '{canonical}' is currently in creation: "
                f"is there an unresolvable circular reference?\n"
                f"Path: {' -> '.join(path + (canonical,))}",
                path=path + (canonical,),
            )

        for dependency in definition.depends_on:
            dependency = self.registry.canonical_name(dependency)
            if self.cache.is_dependent(canonical, dependency):
                raise CircularDependencyError(
                    f"Circular depends-on relationship between '{canonical}' and '{dependency}'\n"
                    f"Path: {' -> '.join(path + depends_chain + (canonical, dependency))}",
                    path=path + depends_chain + (canonical, dependency),
                )
            if not self.contains(dependency):
                raise CreationError(
                    canonical, f"'{canonical}' depends on missing component '{dependency}'",
                    path + (canonical,),
                )
            self.register_dependent(dependency, canonical)
            self._do_get(dependency, depends_chain + (canonical,))

        if definition.is_singleton:
            return self.cache.get_or_create(canonical, lambda: self._create(canonical, definition), holder)
        if definition.is_prototype:
            return self._create(canonical, definition)

        scope = self._scopes.get(definition.effective_scope)
        if scope is None:
            raise DefinitionStoreError(
                f"No scope registered for scope name '{definition.effective_scope}' "
                f"(component '{canonical}')"
            )
        return scope.get(canonical, lambda: self._create(canonical, definition))

    # -- creation pipeline ----------------------------------------------------

    def _create(self, name: str, definition: ComponentDefinition, register_destruction: bool = True) -> Any:
        logger.debug("Creating instance of component '%s'", name)
        with creating(name, self) as ctx:
            try:
                return self._do_create(name, definition, ctx, register_destruction)
            except _PASS_THROUGH:
                ctx.state = CreationState.FAILED
                raise
            except Exception as e:
                ctx.state = CreationState.FAILED
                raise CreationError(name, f"{type(e).__name__}: {e}", ctx.path) from e

    def _do_create(self, name: str, definition: ComponentDefinition, ctx, register_destruction: bool) -> Any:
        component_type = self._predict_type(name, definition)

        substitute = self._apply_before_instantiation(component_type, name)
        if substitute is not None:
            substitute = self._apply_after_initialization(substitute, name)
            ctx.state = CreationState.FINALIZED
            return substitute

        ctx.state = CreationState.INSTANTIATING
        instance = self._instantiate(name, definition, component_type)

        for processor in self._processors_of(MergedDefinitionProcessor):
            processor.post_process_merged_definition(definition, type(instance), name)

        early = None
        if (definition.is_singleton and self.settings.allow_circular_references
                and self.cache.is_created_by_current_thread(name)):
            logger.debug("Eagerly caching component '%s' to allow resolving potential circular references", name)
            early = self.cache.add_early(name, instance, lambda raw: self._apply_early_reference(raw, name))
            ctx.state = CreationState.EARLY_EXPOSED

        ctx.state = CreationState.POPULATING
        self._populate(name, definition, instance)

        ctx.state = CreationState.INITIALIZING
        exposed = self._initialize(name, definition, instance)

        if early is not None and early.is_resolved:
            early_value = early.value
            if exposed is instance:
                exposed = early_value
            elif exposed is not early_value and early.holders:
                if not self.settings.allow_early_reference_divergence:
                    raise EarlyReferenceMismatchError(name, early.holders, ctx.path)
                logger.warning(
                    "Component '%s' was replaced after its raw early reference was injected into %s",
                    name, early.holders,
                )

        if register_destruction:
            self._register_disposable_if_necessary(name, definition, exposed)
        ctx.state = CreationState.FINALIZED
        return exposed

    def _instantiate(self, name: str, definition: ComponentDefinition, component_type: Optional[type]) -> Any:
        if definition.factory_method:
            if definition.factory_component:
                factory_name = self.registry.canonical_name(definition.factory_component)
                if factory_name == name:
                    raise CreationError(name, "factory_component reference points back to the same definition")
                self.register_dependent(factory_name, name)
                owner = self.get_instance(factory_name)
            elif definition.component_type is not None:
                owner = definition.component_type
            else:
                raise CreationError(name, f"No owner for factory method '{definition.factory_method}'")
            target = getattr(owner, definition.factory_method, None)
            if target is None:
                raise CreationError(
                    name, f"No factory method '{definition.factory_method}' found on {owner!r}"
                )
        elif definition.factory is not None:
            target = definition.factory
        elif definition.component_type is not None:
            target = definition.component_type
        else:
            raise CreationError(name, "Definition declares neither a component type nor a factory")

        args, kwargs = self._resolve_arguments(name, definition, target)
        instance = target(*args, **kwargs)
        if instance is None:
            raise CreationError(name, f"Factory {target!r} returned None")

        # With a factory method the declared type is the method's owner
        declared = None if definition.factory_method else definition.component_type
        if (__debug__ and declared is not None and target is not declared
                and not _safe_isinstance(instance, declared, default=True)):
            raise TypeMismatchError(
                f"Factory for '{name}' returned {type(instance).__name__}, "
                f"expected {declared.__name__}. "
                f"Ensure the factory returns the correct type."
            )
        return instance

    def _resolve_arguments(self, name: str, definition: ComponentDefinition, target: Callable) -> Tuple[list, dict]:
        explicit_args = list(definition.constructor_args)
        explicit_kwargs = dict(definition.constructor_kwargs)
        try:
            params = analyze_parameters(target)
        except DefinitionStoreError:
            params = []
            if not explicit_args and not explicit_kwargs:
                return [], {}

        args: list = []
        kwargs: dict = {}
        positional = True
        consumed = 0
        for index, param in enumerate(params):
            if not param.keyword_only and index < len(explicit_args):
                args.append(self._resolve_value(name, explicit_args[index], param.annotation))
                consumed += 1
                continue
            if param.name in explicit_kwargs:
                value = self._resolve_value(name, explicit_kwargs.pop(param.name), param.annotation)
            elif definition.autowire:
                value = self._autowire_parameter(name, param)
            else:
                value = _SKIP
            if value is _SKIP:
                positional = False
                continue
            if positional and not param.keyword_only:
                args.append(value)
            else:
                kwargs[param.name] = value

        # Arguments beyond the inspected signature go to *args / **kwargs
        if positional:
            args.extend(self._resolve_value(name, arg, None) for arg in explicit_args[consumed:])
        for key, raw in explicit_kwargs.items():
            kwargs[key] = self._resolve_value(name, raw, None)
        return args, kwargs

    def _autowire_parameter(self, name: str, param: ParameterSpec) -> Any:
        annotation = param.annotation
        if annotation is None or annotation is Any:
            if self.contains(param.name):
                self.register_dependent(param.name, name)
                return self.get_instance(param.name)
            if param.has_default:
                return _SKIP
            raise NoSuchDependencyError(
                f"Cannot autowire parameter '{param.name}' of '{name}': it has no type "
                f"annotation and no component named '{param.name}' exists.\n"
                f"Hint: annotate the parameter or pass it explicitly",
            )
        resolved = self.resolver.resolve(DependencyDescriptor(
            annotation, name_hint=param.name, optional=param.has_default, requester=name
        ))
        if resolved is None and param.has_default:
            return _SKIP
        return resolved

    def _resolve_value(self, requester: str, spec: Any, target_type: Any) -> Any:
        if isinstance(spec, Ref):
            if spec.name is not None:
                if spec.optional and not self.contains(spec.name):
                    return None
                self.register_dependent(spec.name, requester)
                return self.get_instance(spec.name)
            return self.resolver.resolve(DependencyDescriptor(
                spec.type, optional=spec.optional, requester=requester
            ))
        if isinstance(spec, ComponentDefinition):
            return self._create_inner(requester, spec)
        if isinstance(spec, Value):
            return self.type_converter.convert(self.value_resolver.resolve(spec.raw), target_type)
        if isinstance(spec, (list, tuple)):
            items = [self._resolve_value(requester, item, None) for item in spec]
            if all(new is old for new, old in zip(items, spec)):
                return spec
            return type(spec)(items)
        if isinstance(spec, dict):
            resolved = {key: self._resolve_value(requester, item, None) for key, item in spec.items()}
            if all(resolved[key] is item for key, item in spec.items()):
                return spec
            return resolved
        if isinstance(spec, str):
            spec = self.value_resolver.resolve(spec)
        return self.type_converter.convert(spec, target_type)

    def _create_inner(self, outer: str, spec: ComponentDefinition) -> Any:
        """Create an anonymous inner component owned by ``outer``."""
        definition = spec
        if spec.parent is not None:
            definition = spec.merged_with(self.get_merged_definition(spec.parent))
        inner_name = f"{outer}#{spec.name or 'inner'}#{next(self._inner_counter)}"
        outer_is_singleton = self.cache.is_in_creation(outer)
        instance = self._create(inner_name, definition, register_destruction=False)
        if definition.is_singleton and outer_is_singleton and self._requires_destruction(definition, instance):
            self.cache.register_disposable(inner_name, self._destruction_callback(inner_name, definition, instance))
            self.cache.register_contained(outer, inner_name)
        return instance

    def _populate(self, name: str, definition: ComponentDefinition, instance: Any) -> None:
        for processor in self._processors_of(InstantiationAwareProcessor):
            if not processor.after_instantiation(instance, name):
                return

        properties: Optional[Dict[str, Any]] = dict(definition.properties)
        for processor in self._processors_of(InstantiationAwareProcessor):
            properties = processor.process_properties(properties, instance, name)
            if properties is None:
                return
        if not properties:
            return

        hints = _class_hints(type(instance))
        for prop, spec in properties.items():
            value = self._resolve_value(name, spec, hints.get(prop))
            setattr(instance, prop, value)

    def _initialize(self, name: str, definition: ComponentDefinition, instance: Any) -> Any:
        if isinstance(instance, NameAware):
            instance.set_component_name(name)
        if isinstance(instance, ContainerAware):
            instance.set_container(self)

        result = instance
        for processor in self._processors_of(InstanceProcessor):
            current = processor.before_initialization(result, name)
            if current is None:
                break
            result = current

        self._invoke_init_methods(name, definition, result)
        return self._apply_after_initialization(result, name)

    def _invoke_init_methods(self, name: str, definition: ComponentDefinition, instance: Any) -> None:
        is_initializing = isinstance(instance, InitializingComponent)
        if is_initializing:
            logger.debug("Invoking after_properties_set() on component '%s'", name)
            instance.after_properties_set()
        init = definition.init_method
        if init and not (is_initializing and init == "after_properties_set"):
            method = getattr(instance, init, None)
            if method is None:
                raise CreationError(name, f"Could not find an init method named '{init}'")
            logger.debug("Invoking init method '%s' on component '%s'", init, name)
            method()

    def _apply_before_instantiation(self, component_type: Optional[type], name: str) -> Any:
        for processor in self._processors_of(InstantiationAwareProcessor):
            result = processor.before_instantiation(component_type, name)
            if result is not None:
                return result
        return None

    def _apply_after_initialization(self, instance: Any, name: str) -> Any:
        result = instance
        for processor in self._processors_of(InstanceProcessor):
            current = processor.after_initialization(result, name)
            if current is None:
                return result
            result = current
        return result

    def _apply_early_reference(self, raw: Any, name: str) -> Any:
        exposed = raw
        for processor in self._processors_of(EarlyReferenceProcessor):
            exposed = processor.get_early_reference(exposed, name)
        return exposed

    def _processors_of(self, kind: type) -> List[Any]:
        return [p for p in self._instance_processors if isinstance(p, kind)]

    def _predict_type(self, name: str, definition: ComponentDefinition) -> Optional[type]:
        if name in self._type_cache:
            return self._type_cache[name]
        predicted: Optional[type] = None
        if definition.factory_method:
            owner_type = definition.component_type
            if definition.factory_component:
                owner_type = self.type_of(definition.factory_component)
            method = getattr(owner_type, definition.factory_method, None) if owner_type else None
            predicted = return_type_of(method) if method is not None else None
            if predicted is None and not definition.factory_component:
                predicted = definition.component_type
        elif definition.component_type is not None:
            predicted = definition.component_type
        elif definition.factory is not None:
            predicted = return_type_of(definition.factory)

        for processor in self._processors_of(EarlyReferenceProcessor):
            better = processor.predict_type(predicted, name)
            if better is not None:
                predicted = better
                break
        self._type_cache[name] = predicted
        return predicted

    # -- destruction ----------------------------------------------------------

    def _requires_destruction(self, definition: ComponentDefinition, instance: Any) -> bool:
        if isinstance(instance, DisposableComponent) or self._destroy_method_name(definition, instance):
            return True
        return any(
            processor.requires_destruction(instance)
            for processor in self._processors_of(DestructionAwareProcessor)
        )

    @staticmethod
    def _destroy_method_name(definition: ComponentDefinition, instance: Any) -> Optional[str]:
        method = definition.destroy_method
        if method == INFER_DESTROY_METHOD:
            for candidate in _INFERRED_DESTROY_NAMES:
                if callable(getattr(instance, candidate, None)):
                    return candidate
            return None
        return method

    def _destruction_callback(self, name: str, definition: ComponentDefinition, instance: Any) -> Callable[[], None]:
        processors = self._processors_of(DestructionAwareProcessor)
        method_name = self._destroy_method_name(definition, instance)

        def destroy() -> None:
            for processor in processors:
                processor.before_destruction(instance, name)
            is_disposable = isinstance(instance, DisposableComponent)
            if is_disposable:
                logger.debug("Invoking destroy() on component '%s'", name)
                try:
                    instance.destroy()
                except Exception:
                    logger.warning("Invocation of destroy() on component '%s' failed", name, exc_info=True)
            if method_name and not (is_disposable and method_name == "destroy"):
                method = getattr(instance, method_name, None)
                if method is None:
                    logger.warning("Could not find a destroy method named '%s' on component '%s'",
                                   method_name, name)
                    return
                logger.debug("Invoking destroy method '%s' on component '%s'", method_name, name)
                method()

        return destroy

    def _register_disposable_if_necessary(self, name: str, definition: ComponentDefinition, instance: Any) -> None:
        if definition.is_prototype or not self._requires_destruction(definition, instance):
            return
        callback = self._destruction_callback(name, definition, instance)
        if definition.is_singleton:
            self.cache.register_disposable(name, callback)
            return
        scope = self._scopes.get(definition.effective_scope)
        if scope is None:
            return
        try:
            scope.register_destruction_callback(name, callback)
        except ScopeOperationNotSupportedError:
            logger.warning(
                "Scope '%s' does not support destruction callbacks: component '%s' will not be destroyed",
                definition.effective_scope, name,
            )

    def destroy_instance(self, name: str, instance: Any) -> None:
        """Run the destruction callbacks for an instance the caller owns (a prototype)."""
        canonical = self.registry.canonical_name(name)
        definition = self.get_merged_definition(canonical)
        if self._requires_destruction(definition, instance):
            self._destruction_callback(canonical, definition, instance)()

    def destroy_scoped_instance(self, name: str) -> None:
        """Remove a scoped component from its active scope and destroy it."""
        canonical = self.registry.canonical_name(name)
        definition = self.get_merged_definition(canonical)
        if definition.is_singleton or definition.is_prototype:
            raise IllegalStateError(f"Component '{canonical}' is not a custom-scoped component")
        scope = self._scopes.get(definition.effective_scope)
        if scope is None:
            raise DefinitionStoreError(f"No scope registered for scope name '{definition.effective_scope}'")
        instance = scope.remove(canonical)
        if instance is not None:
            self.destroy_instance(canonical, instance)

    def destroy_singletons(self) -> None:
        """Destroy all singletons, dependents first, and clear the cache."""
        self.cache.destroy_singletons()
        self._type_cache.clear()

    # -- bulk creation --------------------------------------------------------

    def preinstantiate_singletons(self) -> None:
        """Create every non-lazy, non-abstract singleton in registration order.

        Afterwards, every SmartInitializingSingleton is notified once.
        """
        names = self.registry.names()
        logger.debug("Pre-instantiating singletons in %r", names)
        for name in names:
            definition = self.get_merged_definition(name)
            if definition.abstract or not definition.is_singleton or definition.is_lazy:
                continue
            self.get_instance(name)

        for name in names:
            obj = self.cache.get_final(name)
            if isinstance(obj, SmartInitializingSingleton):
                obj.after_singletons_instantiated()


def _safe_isinstance(obj: Any, required: Any, default: bool = False) -> bool:
    try:
        return isinstance(obj, required)
    except TypeError:
        # Non-runtime protocols and subscripted generics
        return default


def _safe_issubclass(cls: type, required: type) -> bool:
    try:
        return issubclass(cls, required)
    except TypeError:
        return False


def _class_hints(cls: type) -> Dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except Exception:
        return {}
