"""
Scope

Pluggable instance policies for non-singleton, non-prototype components.
A Scope decides whether an existing instance can be handed out for a name,
and when scoped instances are destroyed.

Shipped scopes:

- SimpleThreadScope: one instance per thread, no destruction support
- RequestScope: instances live inside an explicitly entered block
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .exceptions import ScopeNotActiveError, ScopeOperationNotSupportedError

logger = logging.getLogger(__name__)


class Scope(ABC):
    """Strategy interface for a custom scope.

    Implementations must be thread-safe. ``remove`` and
    ``register_destruction_callback`` may raise
    ScopeOperationNotSupportedError instead of silently ignoring the call.
    """

    @abstractmethod
    def get(self, name: str, factory: Callable[[], Any]) -> Any:
        """Return the instance for ``name``, creating it with ``factory`` if needed."""
        pass

    @abstractmethod
    def remove(self, name: str) -> Optional[Any]:
        """Remove and return the instance for ``name``, or None if absent."""
        pass

    @abstractmethod
    def register_destruction_callback(self, name: str, callback: Callable[[], None]) -> None:
        """Run ``callback`` when the scoped instance for ``name`` is destroyed."""
        pass

    def resolve_contextual_object(self, key: str) -> Optional[Any]:
        """Contextual object for ``key`` (e.g. the current request id), if any."""
        return None

    def conversation_id(self) -> Optional[str]:
        """Identifier of the currently active scope instance, if any."""
        return None


class SimpleThreadScope(Scope):
    """One instance per name and thread.

    Destruction callbacks are not supported: instances are released when
    their thread ends.
    """

    def __init__(self):
        self._local = threading.local()

    def _instances(self) -> Dict[str, Any]:
        instances = getattr(self._local, 'instances', None)
        if instances is None:
            instances = {}
            self._local.instances = instances
        return instances

    def get(self, name: str, factory: Callable[[], Any]) -> Any:
        instances = self._instances()
        if name not in instances:
            instances[name] = factory()
        return instances[name]

    def remove(self, name: str) -> Optional[Any]:
        return self._instances().pop(name, None)

    def register_destruction_callback(self, name: str, callback: Callable[[], None]) -> None:
        raise ScopeOperationNotSupportedError(
            f"SimpleThreadScope does not support destruction callbacks (component '{name}'). "
            f"Release thread-scoped resources explicitly."
        )

    def conversation_id(self) -> Optional[str]:
        return threading.current_thread().name


class ScopeInstance:
    """One active block of a RequestScope (e.g. one HTTP request).

    Attributes:
        scope_id: Unique identifier for this scope instance
    """

    def __init__(self, scope_id: str):
        self.scope_id = scope_id
        self._instances: Dict[str, Any] = {}
        self._callbacks: List[Tuple[str, Callable[[], None]]] = []
        self._lock = threading.RLock()
        self._closed = False

    def get_cached_instance(self, name: str) -> Optional[Any]:
        return self._instances.get(name)

    def close(self) -> None:
        """Run destruction callbacks in reverse registration order and release instances.

        Callback errors are logged and do not stop the remaining callbacks.
        This method is idempotent.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            callbacks = list(reversed(self._callbacks))
            self._callbacks.clear()
        for name, callback in callbacks:
            try:
                callback()
            except Exception:
                logger.warning("Destruction callback for scoped component '%s' in scope '%s' failed",
                               name, self.scope_id, exc_info=True)
        self._instances.clear()

    @property
    def is_closed(self) -> bool:
        return self._closed


class RequestScope(Scope):
    """Scope bound to explicitly entered blocks.

    The active block is tracked in a ContextVar, so threads and asyncio tasks
    each see their own block.

    Example::

        request_scope = RequestScope()
        context.register_scope("request", request_scope)

        with request_scope.enter("req-123"):
            ctx1 = context.get_instance("requestContext")
            ctx2 = context.get_instance("requestContext")  # Same instance
        # Block closed, destruction callbacks run
    """

    def __init__(self, name: str = "request"):
        self.name = name
        self._current: ContextVar[Optional[ScopeInstance]] = ContextVar(
            f'_TRELLIS_SCOPE_{name}', default=None
        )

    @contextmanager
    def enter(self, scope_id: str) -> Iterator[ScopeInstance]:
        instance = ScopeInstance(scope_id)
        token = self._current.set(instance)
        try:
            yield instance
        finally:
            self._current.reset(token)
            instance.close()

    def _active(self) -> ScopeInstance:
        instance = self._current.get()
        if instance is None or instance.is_closed:
            raise ScopeNotActiveError(
                f"Scope '{self.name}' is not active in the current context.\n"
                f"Hint: wrap the lookup in 'with scope.enter(scope_id):'"
            )
        return instance

    def get(self, name: str, factory: Callable[[], Any]) -> Any:
        instance = self._active()
        with instance._lock:
            if name not in instance._instances:
                instance._instances[name] = factory()
            return instance._instances[name]

    def remove(self, name: str) -> Optional[Any]:
        instance = self._active()
        with instance._lock:
            instance._callbacks = [(n, cb) for n, cb in instance._callbacks if n != name]
            return instance._instances.pop(name, None)

    def register_destruction_callback(self, name: str, callback: Callable[[], None]) -> None:
        instance = self._active()
        with instance._lock:
            instance._callbacks.append((name, callback))

    def resolve_contextual_object(self, key: str) -> Optional[Any]:
        if key == self.name:
            return self._current.get()
        return None

    def conversation_id(self) -> Optional[str]:
        instance = self._current.get()
        return instance.scope_id if instance is not None else None

    @property
    def is_active(self) -> bool:
        instance = self._current.get()
        return instance is not None and not instance.is_closed
