# Public API
from .collaborators import (
    PassThroughValueResolver,
    PlaceholderValueResolver,
    SimpleTypeConverter,
    TypeConverter,
    ValueResolver,
)
from .container import INFER_DESTROY_METHOD, TrellisContainer
from .context import ContextState, TrellisContext
from .definition import ComponentDefinition, PROTOTYPE, Ref, Role, SINGLETON, Value
from .events import (
    ContextClosedEvent,
    ContextEvent,
    ContextRefreshedEvent,
    ContextStartedEvent,
    ContextStoppedEvent,
    EventListener,
    SimpleEventMulticaster,
    event_listener,
    logging_error_handler,
)
from .exceptions import (
    AmbiguousDependencyError,
    CircularDependencyError,
    ContextClosedError,
    CreationError,
    DefinitionNotFoundError,
    DefinitionStoreError,
    DuplicateDefinitionError,
    EarlyReferenceMismatchError,
    IllegalStateError,
    LifecycleError,
    NoSuchDependencyError,
    PostProcessorError,
    ScopeNotActiveError,
    ScopeOperationNotSupportedError,
    TrellisError,
    TypeMismatchError,
)
from .instance_cache import EarlyReference, InstanceCache
from .interfaces import ComponentLookup, DefinitionIntrospection, LifecycleControl, ScopeRegistration
from .lifecycle import (
    ContainerAware,
    ContextAware,
    DisposableComponent,
    InitializingComponent,
    Lifecycle,
    NameAware,
    SmartInitializingSingleton,
    SmartLifecycle,
)
from .lifecycle_processor import DefaultLifecycleProcessor
from .module import TrellisModule
from .order import HIGHEST_PRECEDENCE, LOWEST_PRECEDENCE, Ordered, PriorityOrdered, order
from .post_processing import PostProcessorChain
from .processors import (
    ContainerPostProcessor,
    DestructionAwareProcessor,
    EarlyReferenceProcessor,
    InstanceProcessor,
    InstantiationAwareProcessor,
    MergedDefinitionProcessor,
    RegistryPostProcessor,
)
from .registry import DefinitionRegistry
from .resolution_context import CreationState
from .resolver import DependencyDescriptor, DependencyResolver, ObjectProvider
from .scope import RequestScope, Scope, ScopeInstance, SimpleThreadScope
from .settings import ContainerSettings

__all__ = [
    "TrellisContext",
    "TrellisContainer",
    "TrellisModule",
    "ContextState",
    "ContainerSettings",
    # Definitions
    "ComponentDefinition",
    "DefinitionRegistry",
    "Ref",
    "Value",
    "Role",
    "SINGLETON",
    "PROTOTYPE",
    "INFER_DESTROY_METHOD",
    # Resolution
    "DependencyDescriptor",
    "DependencyResolver",
    "ObjectProvider",
    "InstanceCache",
    "EarlyReference",
    "CreationState",
    # Scopes
    "Scope",
    "SimpleThreadScope",
    "RequestScope",
    "ScopeInstance",
    # Processors
    "ContainerPostProcessor",
    "RegistryPostProcessor",
    "InstanceProcessor",
    "InstantiationAwareProcessor",
    "EarlyReferenceProcessor",
    "DestructionAwareProcessor",
    "MergedDefinitionProcessor",
    "PostProcessorChain",
    # Ordering
    "Ordered",
    "PriorityOrdered",
    "order",
    "HIGHEST_PRECEDENCE",
    "LOWEST_PRECEDENCE",
    # Lifecycle
    "InitializingComponent",
    "DisposableComponent",
    "SmartInitializingSingleton",
    "NameAware",
    "ContainerAware",
    "ContextAware",
    "Lifecycle",
    "SmartLifecycle",
    "DefaultLifecycleProcessor",
    # Events
    "ContextEvent",
    "ContextRefreshedEvent",
    "ContextStartedEvent",
    "ContextStoppedEvent",
    "ContextClosedEvent",
    "EventListener",
    "SimpleEventMulticaster",
    "event_listener",
    "logging_error_handler",
    # Interfaces
    "ComponentLookup",
    "DefinitionIntrospection",
    "ScopeRegistration",
    "LifecycleControl",
    # Collaborators
    "ValueResolver",
    "TypeConverter",
    "PassThroughValueResolver",
    "PlaceholderValueResolver",
    "SimpleTypeConverter",
    # Exceptions
    "TrellisError",
    "DefinitionNotFoundError",
    "NoSuchDependencyError",
    "AmbiguousDependencyError",
    "CircularDependencyError",
    "TypeMismatchError",
    "DefinitionStoreError",
    "DuplicateDefinitionError",
    "CreationError",
    "EarlyReferenceMismatchError",
    "ScopeNotActiveError",
    "ScopeOperationNotSupportedError",
    "PostProcessorError",
    "LifecycleError",
    "IllegalStateError",
    "ContextClosedError",
]

__version__ = '0.1.0'
