"""
Events

Context events and the multicaster delivering them to listeners.

Listeners are either EventListener instances or plain functions wrapped
with ``@event_listener(EventType)``. Listener components registered with
the context are detected automatically; listeners can also be registered
by component name, in which case they are looked up on each delivery.

Example::

    @event_listener(ContextRefreshedEvent)
    def on_refreshed(event):
        print("context ready:", event.source)

    context.add_listener(on_refreshed)
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Type, TYPE_CHECKING

from .order import get_order, order as set_order, sort_by_order

if TYPE_CHECKING:
    from .container import TrellisContainer

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[BaseException], None]


class ContextEvent:
    """Base class of all events published by a context.

    Attributes:
        source: The object the event originated from (usually the context)
        timestamp: Creation time, seconds since the epoch
    """

    def __init__(self, source: Any):
        self.source = source
        self.timestamp = time.time()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(source={self.source!r})"


class ContextRefreshedEvent(ContextEvent):
    """Published once a refresh completed and the context is active."""


class ContextStartedEvent(ContextEvent):
    """Published by an explicit ``context.start()``."""


class ContextStoppedEvent(ContextEvent):
    """Published by an explicit ``context.stop()``."""


class ContextClosedEvent(ContextEvent):
    """Published at the start of ``context.close()``, before singletons are destroyed."""


class EventListener(ABC):
    """Receives events of the types it supports."""

    @abstractmethod
    def on_event(self, event: Any) -> None:
        pass

    def supports_event_type(self, event_type: type) -> bool:
        return True


class _FunctionListener(EventListener):
    """Adapter turning a plain function into an EventListener."""

    def __init__(self, function: Callable[[Any], None], event_type: type):
        self.function = function
        self.event_type = event_type
        rank = get_order(function, default=None)
        if rank is not None:
            set_order(rank)(self)

    def on_event(self, event: Any) -> None:
        self.function(event)

    def supports_event_type(self, event_type: type) -> bool:
        return issubclass(event_type, self.event_type)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, _FunctionListener) and other.function is self.function

    def __hash__(self) -> int:
        return hash(self.function)

    def __repr__(self) -> str:
        return f"event_listener({self.event_type.__name__})({getattr(self.function, '__qualname__', self.function)!r})"


def event_listener(event_type: Type = object) -> Callable[[Callable[[Any], None]], EventListener]:
    """Decorator wrapping a function into a listener for ``event_type``.

    Example::

        @event_listener(ContextClosedEvent)
        def on_closed(event):
            ...
    """

    def decorate(function: Callable[[Any], None]) -> EventListener:
        return _FunctionListener(function, event_type)

    return decorate


def logging_error_handler(error: BaseException) -> None:
    """Error handler that logs listener failures instead of propagating them."""
    logger.error("Error calling event listener", exc_info=error)


class SimpleEventMulticaster:
    """Delivers events synchronously to all supporting listeners, by rank.

    Attributes:
        container: Used to look up listeners registered by name
        error_handler: Called with listener errors; when None, errors propagate
    """

    def __init__(self, container: Optional['TrellisContainer'] = None,
                 error_handler: Optional[ErrorHandler] = None):
        self.container = container
        self.error_handler = error_handler
        self._listeners: List[EventListener] = []
        self._listener_names: List[str] = []
        self._lock = threading.RLock()

    def add_listener(self, listener: EventListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def add_listener_name(self, name: str) -> None:
        with self._lock:
            if name not in self._listener_names:
                self._listener_names.append(name)

    def remove_listener(self, listener: EventListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def remove_all_listeners(self) -> None:
        with self._lock:
            self._listeners.clear()
            self._listener_names.clear()

    def listeners_for(self, event: Any) -> List[EventListener]:
        """Supporting listeners for ``event``, sorted by rank."""
        with self._lock:
            listeners = list(self._listeners)
            names = list(self._listener_names)
        if self.container is not None:
            for name in names:
                listener = self.container.get_instance(name)
                if listener not in listeners:
                    listeners.append(listener)
        event_type = type(event)
        return sort_by_order(
            listener for listener in listeners if listener.supports_event_type(event_type)
        )

    def multicast_event(self, event: Any) -> None:
        for listener in self.listeners_for(event):
            try:
                listener.on_event(event)
            except Exception as error:
                if self.error_handler is None:
                    raise
                self.error_handler(error)
