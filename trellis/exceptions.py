"""
Trellis Exceptions

Custom exception hierarchy for the Trellis component container
"""

from typing import Optional, Sequence


class TrellisError(Exception):
    """
    Base exception for all Trellis errors.

    All Trellis-specific exceptions inherit from this class.
    You can catch this to handle any container error generically.

    Example:
        >>> try:
        ...     service = context.get_instance("myService")
        ... except TrellisError as e:
        ...     print(f"Container error: {e}")
    """

    pass


class DefinitionNotFoundError(TrellisError):
    """
    Raised when no definition or instance exists for a requested name.

    Common causes:
        - Forgetting to register the component in a module
        - Typo in the component name
        - Module containing the component not loaded
        - Asking for an alias that was never bound

    Solution:
        Register the component before looking it up::

            module = TrellisModule()
            with module:
                module.single[Database](Database)

            context = TrellisContext(modules=[module])
            context.refresh()
            db = context.get_instance("database")

    Note:
        The error message lists registered names to help identify
        available components.
    """

    def __init__(self, message: str, name: Optional[str] = None):
        super().__init__(message)
        self.name = name


class NoSuchDependencyError(DefinitionNotFoundError):
    """
    Raised when a required dependency has no matching candidate.

    This error occurs when resolving a constructor parameter, property
    reference or ``get_instance(SomeType)`` call for which no autowire
    candidate exists.

    Solution:
        Register a component of the required type, or mark the dependency
        as optional::

            Ref(type=Cache, optional=True)
    """

    def __init__(self, message: str, required_type: Optional[type] = None):
        super().__init__(message)
        self.required_type = required_type


class AmbiguousDependencyError(TrellisError):
    """
    Raised when two or more equally-ranked candidates match a dependency.

    Common causes:
        - Several components implement the same interface
        - Two candidates are both marked ``primary``

    Solution:
        Mark exactly one candidate as primary, or request it by name::

            module.single[PostgresRepository](PostgresRepository, primary=True)
    """

    def __init__(self, message: str, candidates: Sequence[str] = ()):
        super().__init__(message)
        self.candidates = list(candidates)


class CircularDependencyError(TrellisError):
    """
    Raised when an unresolvable circular dependency is detected.

    Constructor-level cycles cannot be resolved because no object exists
    yet to hand back to the other side of the cycle::

        class ServiceA:
            def __init__(self, b: ServiceB): ...

        class ServiceB:
            def __init__(self, a: ServiceA): ...  # Circular!

    Solution:
        1. Move one side of the cycle to a property reference
        2. Inject an ``ObjectProvider`` and resolve lazily
        3. Extract common functionality to a third component
    """

    def __init__(self, message: str, path: Sequence[str] = ()):
        super().__init__(message)
        self.path = list(path)


class TypeMismatchError(TrellisError):
    """
    Raised when a resolved instance is incompatible with the requested type.

    Common causes:
        - ``get_instance(name, SomeType)`` where the component is another type
        - A property value that cannot be converted to its target type
    """

    pass


class DefinitionStoreError(TrellisError):
    """
    Raised when the definition registry rejects an operation.

    Common causes:
        - Registering after ``freeze()``
        - Binding an alias that already points at another component
        - Referencing an unknown scope or a cyclic parent chain
    """

    pass


class DuplicateDefinitionError(DefinitionStoreError):
    """
    Raised when the same name is registered multiple times.

    Common causes:
        - Registering the same type in multiple modules
        - Loading the same module twice

    Solution:
        Register each component once, or enable overriding explicitly::

            TrellisContext(settings=ContainerSettings(allow_definition_overriding=True))
    """

    pass


class CreationError(TrellisError):
    """
    Raised when instantiating, populating or initializing a component fails.

    The message carries the creation path, the chain of components that were
    being created when the failure happened, so nested failures can be
    traced back to the top-level request.

    Attributes:
        name: Name of the component whose creation failed
        path: Creation path from the outermost request to ``name``
    """

    def __init__(self, name: str, message: str, path: Sequence[str] = ()):
        self.name = name
        self.path = list(path) or [name]
        chain = " -> ".join(self.path)
        super().__init__(f"Error creating component '{name}': {message}\nCreation path: {chain}")


class EarlyReferenceMismatchError(CreationError):
    """
    Raised when a component was replaced after its early reference leaked.

    Another component captured the early reference during a circular
    dependency, but a post-processor returned a different object for the
    final instance. The holders of the early reference would otherwise see
    the raw object instead of the final one.

    Solution:
        Implement ``get_early_reference`` on the wrapping processor so the
        early reference is wrapped as well, or break the cycle.
    """

    def __init__(self, name: str, holders: Sequence[str], path: Sequence[str] = ()):
        self.holders = list(holders)
        super().__init__(
            name,
            f"Component has been injected into other components {self.holders} in its raw "
            f"version as part of a circular reference, but has eventually been wrapped.\n"
            f"Hint: implement get_early_reference() on the wrapping processor.",
            path,
        )


class ScopeNotActiveError(TrellisError):
    """
    Raised when a scoped component is requested outside of its active scope.

    Solution:
        Enter the scope before resolving::

            with request_scope.enter("req-123"):
                ctx = context.get_instance("requestContext")
    """

    pass


class ScopeOperationNotSupportedError(TrellisError):
    """
    Raised by a scope that cannot honour ``remove`` or destruction callbacks.
    """

    pass


class PostProcessorError(TrellisError):
    """
    Raised when the post-processor chain cannot complete.

    Common causes:
        - Registry post-processors that keep registering new processors
          beyond ``ContainerSettings.max_registry_passes``
    """

    pass


class LifecycleError(TrellisError):
    """
    Raised when a lifecycle component fails to start.
    """

    pass


class IllegalStateError(TrellisError):
    """
    Raised when an operation does not fit the current container state.

    Common causes:
        - Calling ``refresh()`` on an already active context
        - Looking up components before ``refresh()``
    """

    pass


class ContextClosedError(IllegalStateError):
    """
    Raised when attempting to use a closed context.

    Solution:
        Create a new ``TrellisContext`` instead of reusing a closed one::

            with TrellisContext(modules=[module]) as context:
                service = context.get_instance("service")  # OK
            # Context is now closed

            context2 = TrellisContext(modules=[module])
    """

    pass
