"""
TrellisContext

This module provides the application-facing container: a TrellisContainer
driven through a refresh/close state machine.

States::

    NEW --refresh()--> REFRESHING --> ACTIVE --close()--> CLOSED
                           |
                           +--(failure)--> INACTIVE --refresh()--> ...

``refresh()`` builds a fresh container from the loaded modules and the
registrations made so far, runs the post-processors, creates every non-lazy
singleton and starts auto-startup lifecycle components. When any step
fails, the singletons created so far are destroyed and the context becomes
INACTIVE; it may be refreshed again.

Example::

    module = TrellisModule()
    with module:
        module.single[Database](Database, destroy_method="close")
        module.single[UserService](UserService)

    with TrellisContext(modules=[module]) as context:
        service = context.get_instance(UserService)
    # close() is called automatically
"""

import atexit
import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar, TYPE_CHECKING

from .collaborators import TypeConverter, ValueResolver
from .container import TrellisContainer
from .definition import ComponentDefinition, PROTOTYPE, SINGLETON
from .events import (
    ContextClosedEvent,
    ContextRefreshedEvent,
    ContextStartedEvent,
    ContextStoppedEvent,
    ErrorHandler,
    EventListener,
    SimpleEventMulticaster,
)
from .exceptions import ContextClosedError, DefinitionStoreError, IllegalStateError
from .interfaces import ComponentLookup, DefinitionIntrospection, LifecycleControl, ScopeRegistration
from .lifecycle import ContextAware
from .lifecycle_processor import DefaultLifecycleProcessor
from .post_processing import PostProcessorChain
from .processors import ContainerPostProcessor, DestructionAwareProcessor, InstanceProcessor
from .resolver import ObjectProvider
from .scope import Scope
from .settings import ContainerSettings

if TYPE_CHECKING:
    from .module import TrellisModule

logger = logging.getLogger(__name__)

T = TypeVar('T')

CONTEXT_NAME = "trellis_context"
SETTINGS_NAME = "trellis_settings"
EVENT_MULTICASTER_NAME = "event_multicaster"
LIFECYCLE_PROCESSOR_NAME = "lifecycle_processor"


class ContextState(Enum):
    """States of a TrellisContext"""
    NEW = "NEW"
    REFRESHING = "REFRESHING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    CLOSED = "CLOSED"


class _ContextAwareProcessor(InstanceProcessor):
    """Hands the owning context to ContextAware components."""

    def __init__(self, context: 'TrellisContext'):
        self.context = context

    def before_initialization(self, instance: Any, name: str) -> Any:
        if isinstance(instance, ContextAware):
            instance.set_context(self.context)
        return instance


class _ListenerDetector(DestructionAwareProcessor):
    """Registers singleton EventListener components with the context."""

    def __init__(self, context: 'TrellisContext', container: TrellisContainer):
        self.context = context
        self.container = container

    def after_initialization(self, instance: Any, name: str) -> Any:
        if (isinstance(instance, EventListener) and self.container.contains_definition(name)
                and self.container.is_singleton(name)):
            self.context.add_listener(instance)
        return instance

    def before_destruction(self, instance: Any, name: str) -> None:
        if isinstance(instance, EventListener):
            self.context.remove_listener(instance)

    def requires_destruction(self, instance: Any) -> bool:
        return isinstance(instance, EventListener)


class TrellisContext(ComponentLookup, DefinitionIntrospection, ScopeRegistration, LifecycleControl):
    """Application context: a container with refresh/close orchestration.

    Registrations made before ``refresh()`` are recorded and applied to
    the container when refresh builds it, so a failed refresh can be
    retried with the same configuration.

    Attributes:
        settings: Behavioural switches shared with the container
        parent: Optional parent context; unknown names are looked up there
            and events are propagated to it
        display_name: Name used in log messages

    Example::

        context = TrellisContext(modules=[module], settings=ContainerSettings(
            allow_definition_overriding=True,
        ))
        context.register_scope("thread", SimpleThreadScope())
        context.refresh()
        try:
            service = context.get_instance("userService")
        finally:
            context.close()
    """

    def __init__(
        self,
        modules: Optional[List['TrellisModule']] = None,
        settings: Optional[ContainerSettings] = None,
        parent: Optional['TrellisContext'] = None,
        value_resolver: Optional[ValueResolver] = None,
        type_converter: Optional[TypeConverter] = None,
        event_error_handler: Optional[ErrorHandler] = None,
        name: Optional[str] = None,
    ):
        """Create a context in state NEW.

        Args:
            modules: Modules whose definitions are loaded on refresh
            settings: Behavioural switches, defaults to ContainerSettings()
            parent: Parent context, must be active before this one refreshes
            value_resolver: Resolver for raw definition values
            type_converter: Converter for resolved values
            event_error_handler: Receives listener errors; by default they
                propagate to the publisher
            name: Display name for log messages
        """
        self.settings = settings or ContainerSettings()
        self.parent = parent
        self.display_name = name or f"{type(self).__name__}@{id(self):x}"
        self.value_resolver = value_resolver
        self.type_converter = type_converter
        self.event_error_handler = event_error_handler

        self._modules: List['TrellisModule'] = list(modules or [])
        self._pending: List[Callable[[TrellisContainer], None]] = []
        self._post_processors: List[ContainerPostProcessor] = []
        self._listeners: List[EventListener] = []

        self._container: Optional[TrellisContainer] = None
        self._multicaster: Optional[SimpleEventMulticaster] = None
        self._lifecycle_processor: Optional[DefaultLifecycleProcessor] = None
        self._early_events: Optional[List[Any]] = None

        self._state = ContextState.NEW
        self._monitor = threading.RLock()
        self._startup_date: Optional[float] = None
        self._shutdown_hook: Optional[Callable[[], None]] = None

    # -- state ----------------------------------------------------------------

    @property
    def state(self) -> ContextState:
        return self._state

    @property
    def startup_date(self) -> Optional[float]:
        """Time of the last refresh attempt, seconds since the epoch."""
        return self._startup_date

    def is_active(self) -> bool:
        return self._state is ContextState.ACTIVE

    @property
    def is_closed(self) -> bool:
        return self._state is ContextState.CLOSED

    @property
    def container(self) -> TrellisContainer:
        """The underlying container.

        Raises:
            ContextClosedError: When the context has been closed
            IllegalStateError: When the context has not been refreshed
        """
        return self._require_container()

    def _require_container(self) -> TrellisContainer:
        if self._state is ContextState.CLOSED:
            raise ContextClosedError(f"{self.display_name} has been closed already")
        if self._container is None or self._state not in (ContextState.REFRESHING, ContextState.ACTIVE):
            raise IllegalStateError(
                f"{self.display_name} has not been refreshed yet - "
                f"call 'refresh' before accessing components"
            )
        return self._container

    def _ensure_not_closed(self) -> None:
        if self._state is ContextState.CLOSED:
            raise ContextClosedError(f"{self.display_name} has been closed already")

    # -- configuration --------------------------------------------------------

    def _configure(self, action: Callable[[TrellisContainer], None]) -> None:
        """Apply ``action`` now when the container exists, else record it for refresh."""
        self._ensure_not_closed()
        if self._state in (ContextState.REFRESHING, ContextState.ACTIVE):
            action(self._container)
        else:
            self._pending.append(action)

    def load_modules(self, modules: List['TrellisModule']) -> None:
        """Add modules; after refresh they are loaded into the frozen registry (and rejected)."""
        self._ensure_not_closed()
        if self._state in (ContextState.REFRESHING, ContextState.ACTIVE):
            self._container.load_modules(modules)
        else:
            self._modules.extend(modules)

    def register_definition(self, definition: ComponentDefinition) -> None:
        self._configure(lambda container: container.register_definition(definition))

    def register_alias(self, name: str, alias: str) -> None:
        self._configure(lambda container: container.register_alias(name, alias))

    def register_singleton(self, name: str, obj: Any) -> None:
        self._configure(lambda container: container.register_singleton(name, obj))

    def register_scope(self, name: str, scope: Scope) -> None:
        """Register a custom scope.

        Raises:
            DefinitionStoreError: When ``name`` is ``singleton`` or ``prototype``
        """
        if name in (SINGLETON, PROTOTYPE):
            raise DefinitionStoreError(f"Cannot replace the built-in '{name}' scope")
        self._configure(lambda container: container.register_scope(name, scope))

    def get_registered_scope(self, name: str) -> Optional[Scope]:
        return self._require_container().get_registered_scope(name)

    def ignore_dependency_type(self, ignored: type) -> None:
        self._configure(lambda container: container.ignore_dependency_type(ignored))

    def register_post_processor(self, processor: ContainerPostProcessor) -> None:
        """Add a registry/container post-processor invoked on the next refresh."""
        self._ensure_not_closed()
        self._post_processors.append(processor)

    @property
    def post_processors(self) -> List[ContainerPostProcessor]:
        return list(self._post_processors)

    def freeze(self) -> None:
        self._require_container().freeze()

    def is_frozen(self) -> bool:
        return self._container is not None and self._container.is_frozen()

    # -- events ---------------------------------------------------------------

    def add_listener(self, listener: EventListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)
        if self._multicaster is not None:
            self._multicaster.add_listener(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
        if self._multicaster is not None:
            self._multicaster.remove_listener(listener)

    @property
    def listeners(self) -> List[EventListener]:
        return list(self._listeners)

    def publish_event(self, event: Any) -> None:
        """Publish ``event`` to all matching listeners and to the parent context.

        Events published during refresh before the multicaster exists are
        buffered and delivered once listeners are registered.

        Raises:
            IllegalStateError: When the context has never been refreshed
        """
        if self._early_events is not None:
            self._early_events.append(event)
        elif self._multicaster is not None:
            self._multicaster.multicast_event(event)
        else:
            raise IllegalStateError(
                f"Event multicaster not initialized - call 'refresh' before publishing events via "
                f"{self.display_name}"
            )
        if self.parent is not None:
            self.parent.publish_event(event)

    # -- refresh --------------------------------------------------------------

    def refresh(self) -> None:
        """Build the container and create every non-lazy singleton.

        Raises:
            ContextClosedError: When the context has been closed
            IllegalStateError: When the context is already active or refreshing
            TrellisError: Any failure during refresh, after rolling back
        """
        with self._monitor:
            if self._state is ContextState.CLOSED:
                raise ContextClosedError(f"Cannot refresh {self.display_name}: it has been closed already")
            if self._state in (ContextState.ACTIVE, ContextState.REFRESHING):
                raise IllegalStateError(
                    f"{self.display_name} does not support multiple refresh attempts: "
                    f"it is already {self._state.value.lower()}"
                )
            self._prepare_refresh()
            try:
                container = self._obtain_container()
                self._prepare_container(container)
                self.post_process_container(container)
                self._invoke_container_post_processors(container)
                self._register_instance_processors(container)
                self._init_event_multicaster(container)
                self.on_refresh()
                self._register_listeners(container)
                self._finish_container_initialization(container)
                self._finish_refresh(container)
            except Exception as e:
                logger.warning(
                    "Exception encountered during context initialization - cancelling refresh attempt: %s", e
                )
                self._destroy_singletons()
                self._cancel_refresh()
                raise

    def _prepare_refresh(self) -> None:
        self._startup_date = time.time()
        self._state = ContextState.REFRESHING
        self._early_events = []
        logger.info("Refreshing %s", self.display_name)

    def _obtain_container(self) -> TrellisContainer:
        parent_container = self.parent.container if self.parent is not None else None
        container = TrellisContainer(
            settings=self.settings,
            parent=parent_container,
            value_resolver=self.value_resolver,
            type_converter=self.type_converter,
        )
        self._container = container
        container.load_modules(self._modules)
        for action in self._pending:
            action(container)
        logger.debug("Loaded %d component definition(s) for %s",
                     len(container.definition_names()), self.display_name)
        return container

    def _prepare_container(self, container: TrellisContainer) -> None:
        container.add_instance_processor(_ContextAwareProcessor(self))
        container.add_instance_processor(_ListenerDetector(self, container))
        container.register_resolvable_dependency(TrellisContext, self)
        if not container.contains(CONTEXT_NAME):
            container.register_singleton(CONTEXT_NAME, self)
        if not container.contains(SETTINGS_NAME):
            container.register_singleton(SETTINGS_NAME, self.settings)

    def post_process_container(self, container: TrellisContainer) -> None:
        """Hook for subclasses, called before any post-processor runs."""

    def _invoke_container_post_processors(self, container: TrellisContainer) -> None:
        chain = PostProcessorChain(self.settings.max_registry_passes)
        chain.invoke_container_post_processors(container, self._post_processors)

    def _register_instance_processors(self, container: TrellisContainer) -> None:
        PostProcessorChain(self.settings.max_registry_passes).register_instance_processors(container)
        # Listener detection runs last so it sees the fully processed object
        for processor in container.instance_processors:
            if isinstance(processor, _ListenerDetector):
                container.add_instance_processor(processor)

    def _init_event_multicaster(self, container: TrellisContainer) -> None:
        if container.contains(EVENT_MULTICASTER_NAME):
            self._multicaster = container.get_instance(EVENT_MULTICASTER_NAME, SimpleEventMulticaster)
            logger.debug("Using event multicaster '%s'", EVENT_MULTICASTER_NAME)
        else:
            self._multicaster = SimpleEventMulticaster(container, error_handler=self.event_error_handler)
            container.register_singleton(EVENT_MULTICASTER_NAME, self._multicaster)

    def on_refresh(self) -> None:
        """Hook for subclasses: initialize special components before singletons are created."""

    def _register_listeners(self, container: TrellisContainer) -> None:
        for listener in self._listeners:
            self._multicaster.add_listener(listener)
        for name in container.names_for_type(EventListener):
            if container.contains_definition(name):
                self._multicaster.add_listener_name(name)

        early_events, self._early_events = self._early_events, None
        for event in early_events or ():
            self._multicaster.multicast_event(event)

    def _finish_container_initialization(self, container: TrellisContainer) -> None:
        container.freeze()
        container.preinstantiate_singletons()

    def _finish_refresh(self, container: TrellisContainer) -> None:
        if container.contains(LIFECYCLE_PROCESSOR_NAME):
            self._lifecycle_processor = container.get_instance(LIFECYCLE_PROCESSOR_NAME)
        else:
            self._lifecycle_processor = DefaultLifecycleProcessor(container, self.settings.shutdown_phase_timeout)
            container.register_singleton(LIFECYCLE_PROCESSOR_NAME, self._lifecycle_processor)
        self._lifecycle_processor.on_refresh()

        self._state = ContextState.ACTIVE
        self.publish_event(ContextRefreshedEvent(self))
        logger.info("%s refreshed with %d singleton(s)",
                    self.display_name, container.cache.singleton_count())

    def _cancel_refresh(self) -> None:
        self._state = ContextState.INACTIVE
        self._early_events = None
        self._multicaster = None
        self._lifecycle_processor = None

    def _destroy_singletons(self) -> None:
        if self._container is None:
            return
        try:
            self._container.destroy_singletons()
        except Exception:
            logger.warning("Exception thrown while destroying singletons of %s", self.display_name, exc_info=True)

    # -- close ----------------------------------------------------------------

    def close(self) -> None:
        """Stop lifecycle components, destroy singletons and mark the context CLOSED.

        Calling close() more than once has no further effect.
        """
        with self._monitor:
            if self._state is ContextState.CLOSED:
                return
            logger.info("Closing %s", self.display_name)
            if self._state is ContextState.ACTIVE:
                try:
                    self.publish_event(ContextClosedEvent(self))
                except Exception:
                    logger.warning("Exception thrown from listener while handling ContextClosedEvent",
                                   exc_info=True)
                if self._lifecycle_processor is not None:
                    try:
                        self._lifecycle_processor.on_close()
                    except Exception:
                        logger.warning("Exception thrown from lifecycle processor on context close",
                                       exc_info=True)
            self._destroy_singletons()
            self.on_close()
            self._state = ContextState.CLOSED
            self._listeners.clear()
            if self._multicaster is not None:
                self._multicaster.remove_all_listeners()
            if self._shutdown_hook is not None:
                atexit.unregister(self._shutdown_hook)
                self._shutdown_hook = None

    def on_close(self) -> None:
        """Hook for subclasses, called after singletons are destroyed."""

    def register_shutdown_hook(self) -> None:
        """Close this context when the interpreter exits, unless closed earlier."""
        if self._shutdown_hook is None:
            self._shutdown_hook = self.close
            atexit.register(self._shutdown_hook)

    def __enter__(self) -> 'TrellisContext':
        if self._state is ContextState.NEW:
            self.refresh()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    # -- lifecycle ------------------------------------------------------------

    def _require_lifecycle_processor(self) -> DefaultLifecycleProcessor:
        self._require_container()
        if self._lifecycle_processor is None:
            raise IllegalStateError(f"LifecycleProcessor not initialized - call 'refresh' first: {self.display_name}")
        return self._lifecycle_processor

    def start(self) -> None:
        self._require_lifecycle_processor().start()
        self.publish_event(ContextStartedEvent(self))

    def stop(self) -> None:
        self._require_lifecycle_processor().stop()
        self.publish_event(ContextStoppedEvent(self))

    def is_running(self) -> bool:
        return self._lifecycle_processor is not None and self._lifecycle_processor.is_running()

    # -- lookup ---------------------------------------------------------------

    def get_instance(self, name_or_type: Any, required_type: Optional[Type[T]] = None) -> Any:
        """Get a component by name or by type.

        Example::

            db = context.get_instance("database")
            db = context.get_instance("database", Database)
            db = context.get_instance(Database)
        """
        return self._require_container().get_instance(name_or_type, required_type)

    def __getitem__(self, interface: Any) -> Callable[[], Any]:
        return self._require_container()[interface]

    def contains(self, name: str) -> bool:
        return self._require_container().contains(name)

    def is_singleton(self, name: str) -> bool:
        return self._require_container().is_singleton(name)

    def is_prototype(self, name: str) -> bool:
        return self._require_container().is_prototype(name)

    def type_of(self, name: str) -> Optional[Type]:
        return self._require_container().type_of(name)

    def aliases_of(self, name: str) -> List[str]:
        return self._require_container().aliases_of(name)

    def get_instances_of_type(self, required_type: Type[T], include_non_singletons: bool = True) -> Dict[str, T]:
        return self._require_container().get_instances_of_type(required_type, include_non_singletons)

    def names_for_type(self, required_type: Any, include_non_singletons: bool = True,
                       autowire_only: bool = False) -> List[str]:
        return self._require_container().names_for_type(required_type, include_non_singletons, autowire_only)

    def get_provider(self, required_type: Type[T]) -> ObjectProvider[T]:
        return self._require_container().get_provider(required_type)

    def definition_names(self) -> List[str]:
        return self._require_container().definition_names()

    def contains_definition(self, name: str) -> bool:
        return self._require_container().contains_definition(name)

    def get_definition(self, name: str) -> ComponentDefinition:
        return self._require_container().get_definition(name)

    def get_merged_definition(self, name: str) -> ComponentDefinition:
        return self._require_container().get_merged_definition(name)

    def __repr__(self) -> str:
        return f"<{self.display_name} state={self._state.value}>"
