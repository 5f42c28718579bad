"""
InstanceCache

Shared store of singleton instances and of the bookkeeping needed to create
and destroy them:

- Final references, read without locking once published
- Early references (EarlyReference handles) for components under construction
- Per-name creation locks, with wait-for cycle detection across threads
- The dependency graph and the destruction callbacks, used to tear down
  singletons in reverse dependency order
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Set

from .exceptions import CircularDependencyError, IllegalStateError

logger = logging.getLogger(__name__)

_MISSING = object()


class EarlyReference:
    """Deferred cell handed out for a singleton that is still being created.

    The raw object is passed through ``early_factory`` (the
    ``get_early_reference`` hooks) on first resolution only, so every holder
    observes the same object. The handle records who resolved it, so the
    container can tell whether a later replacement of the final object
    would leave holders with a stale reference.

    Attributes:
        name: Component name
        holders: Names of components (or ``"<caller>"``) that captured the
            early reference
    """

    def __init__(self, name: str, raw: Any, early_factory: Optional[Callable[[Any], Any]] = None):
        self.name = name
        self.raw = raw
        self._early_factory = early_factory
        self._value: Any = _MISSING
        self._lock = threading.Lock()
        self.holders: List[str] = []
        self.sealed = False

    def resolve(self, holder: Optional[str] = None) -> Any:
        with self._lock:
            if self._value is _MISSING:
                factory = self._early_factory
                self._value = factory(self.raw) if factory is not None else self.raw
            if holder is not None and holder not in self.holders:
                self.holders.append(holder)
            return self._value

    @property
    def is_resolved(self) -> bool:
        return self._value is not _MISSING

    @property
    def value(self) -> Any:
        """The early object, or the raw object when the handle was never resolved."""
        return self.raw if self._value is _MISSING else self._value

    def seal(self) -> None:
        self.sealed = True

    def __repr__(self) -> str:
        return f"EarlyReference({self.name!r}, resolved={self.is_resolved}, holders={self.holders})"


class InstanceCache:
    """Singleton registry with per-name creation locking.

    Reads of final references are lock-free. Writes (publishing early or
    final references) and all graph bookkeeping happen under ``_mutex``.
    Creation of a given name is serialized by a per-name lock, so concurrent
    callers for the same name block while one of them creates it.
    """

    def __init__(self):
        self._finals: Dict[str, Any] = {}
        self._early: Dict[str, EarlyReference] = {}
        self._in_creation: Set[str] = set()
        self._mutex = threading.RLock()

        self._locks: Dict[str, threading.RLock] = {}
        self._owners: Dict[str, int] = {}
        self._hold_counts: Dict[str, int] = {}
        self._waiting: Dict[int, str] = {}

        self._disposables: Dict[str, Callable[[], None]] = {}
        self._dependent_map: Dict[str, Dict[str, None]] = {}
        self._dependencies_map: Dict[str, Dict[str, None]] = {}
        self._contained: Dict[str, Dict[str, None]] = {}
        self._destroying = False

    # -- lookup -------------------------------------------------------------

    def get_singleton(self, name: str, allow_early: bool = True, holder: Optional[str] = None) -> Any:
        """Final reference for ``name``, or the early one for the creating thread.

        Returns ``None`` when no reference is visible to the caller.
        """
        obj = self._finals.get(name, _MISSING)
        if obj is not _MISSING:
            return obj
        if allow_early and name in self._in_creation and self._owners.get(name) == threading.get_ident():
            handle = self._early.get(name)
            if handle is not None:
                return handle.resolve(holder)
        return None

    def get_final(self, name: str, default: Any = None) -> Any:
        return self._finals.get(name, default)

    def get_early_reference(self, name: str) -> Optional[EarlyReference]:
        return self._early.get(name)

    def contains_singleton(self, name: str) -> bool:
        return name in self._finals

    def singleton_names(self) -> List[str]:
        with self._mutex:
            return list(self._finals)

    def singleton_count(self) -> int:
        return len(self._finals)

    def is_in_creation(self, name: str) -> bool:
        return name in self._in_creation

    def is_created_by_current_thread(self, name: str) -> bool:
        return name in self._in_creation and self._owners.get(name) == threading.get_ident()

    # -- creation -----------------------------------------------------------

    def get_or_create(self, name: str, factory: Callable[[], Any], holder: Optional[str] = None) -> Any:
        """Singleton scope: return the cached instance or create it exactly once.

        Concurrent callers for the same name block until the creating caller
        finishes. A caller whose wait would deadlock (the owner of ``name`` is
        transitively waiting on this thread) receives the early reference if
        one is published, otherwise CircularDependencyError is raised.

        Raises:
            IllegalStateError: When called while singletons are being destroyed
            CircularDependencyError: When waiting would deadlock and no early
                reference exists
        """
        obj = self._finals.get(name, _MISSING)
        if obj is not _MISSING:
            return obj

        early = self._acquire(name)
        if early is not None:
            return early.resolve(holder)
        try:
            obj = self._finals.get(name, _MISSING)
            if obj is not _MISSING:
                return obj
            if self._destroying:
                raise IllegalStateError(
                    f"Singleton creation of '{name}' is not allowed while singletons "
                    f"of this container are being destroyed"
                )
            with self._mutex:
                self._in_creation.add(name)
            try:
                obj = factory()
            except BaseException:
                with self._mutex:
                    self._early.pop(name, None)
                raise
            finally:
                with self._mutex:
                    self._in_creation.discard(name)
            self.add_singleton(name, obj)
            return obj
        finally:
            self._release(name)

    def _lock_for(self, name: str) -> threading.RLock:
        with self._mutex:
            lock = self._locks.get(name)
            if lock is None:
                lock = threading.RLock()
                self._locks[name] = lock
            return lock

    def _acquire(self, name: str) -> Optional[EarlyReference]:
        lock = self._lock_for(name)
        me = threading.get_ident()
        if not lock.acquire(blocking=False):
            with self._mutex:
                if self._would_deadlock(me, name):
                    handle = self._early.get(name)
                    if handle is not None:
                        logger.debug("Cross-thread cycle on '%s' resolved with its early reference", name)
                        return handle
                    raise CircularDependencyError(
                        f"Component '{name}' is being created by another thread that is "
                        f"waiting on this thread; the cycle cannot be resolved",
                        path=[name],
                    )
                self._waiting[me] = name
            try:
                lock.acquire()
            finally:
                with self._mutex:
                    self._waiting.pop(me, None)
        with self._mutex:
            self._owners[name] = me
            self._hold_counts[name] = self._hold_counts.get(name, 0) + 1
        return None

    def _release(self, name: str) -> None:
        with self._mutex:
            count = self._hold_counts.get(name, 1) - 1
            if count <= 0:
                self._hold_counts.pop(name, None)
                self._owners.pop(name, None)
            else:
                self._hold_counts[name] = count
            lock = self._locks[name]
        lock.release()

    def _would_deadlock(self, me: int, name: str) -> bool:
        seen: Set[int] = set()
        current: Optional[str] = name
        while current is not None:
            owner = self._owners.get(current)
            if owner is None:
                return False
            if owner == me:
                return True
            if owner in seen:
                return False
            seen.add(owner)
            current = self._waiting.get(owner)
        return False

    def add_early(self, name: str, raw: Any, early_factory: Optional[Callable[[Any], Any]] = None) -> EarlyReference:
        """Publish an early reference for a singleton under construction."""
        handle = EarlyReference(name, raw, early_factory)
        with self._mutex:
            if name not in self._finals:
                self._early[name] = handle
        return handle

    def add_singleton(self, name: str, obj: Any) -> None:
        """Publish the final reference, replacing any early reference."""
        with self._mutex:
            self._finals[name] = obj
            handle = self._early.pop(name, None)
        if handle is not None:
            handle.seal()

    def register_singleton(self, name: str, obj: Any) -> None:
        """Register an externally created object as a final singleton.

        Raises:
            IllegalStateError: When an object is already bound to ``name``
        """
        with self._mutex:
            existing = self._finals.get(name, _MISSING)
            if existing is not _MISSING:
                raise IllegalStateError(
                    f"Could not register object [{obj!r}] under name '{name}': "
                    f"there is already object [{existing!r}] bound"
                )
            self._finals[name] = obj

    def remove_singleton(self, name: str) -> None:
        with self._mutex:
            self._finals.pop(name, None)
            self._early.pop(name, None)

    # -- dependency graph ---------------------------------------------------

    def register_dependent(self, name: str, dependent: str) -> None:
        """Record that ``dependent`` depends on ``name``."""
        if name == dependent:
            return
        with self._mutex:
            self._dependent_map.setdefault(name, {})[dependent] = None
            self._dependencies_map.setdefault(dependent, {})[name] = None

    def register_contained(self, containing: str, contained: str) -> None:
        """Record an inner component, destroyed together with its container component."""
        with self._mutex:
            self._contained.setdefault(containing, {})[contained] = None
        self.register_dependent(contained, containing)

    def dependents_of(self, name: str) -> List[str]:
        with self._mutex:
            return list(self._dependent_map.get(name, ()))

    def dependencies_of(self, name: str) -> List[str]:
        with self._mutex:
            return list(self._dependencies_map.get(name, ()))

    def is_dependent(self, name: str, dependent: str) -> bool:
        """True if ``dependent`` depends on ``name``, directly or transitively."""
        return self._is_dependent(name, dependent, set())

    def _is_dependent(self, name: str, dependent: str, seen: Set[str]) -> bool:
        if name in seen:
            return False
        seen.add(name)
        direct = self._dependent_map.get(name, {})
        if dependent in direct:
            return True
        return any(self._is_dependent(d, dependent, seen) for d in list(direct))

    # -- destruction --------------------------------------------------------

    def register_disposable(self, name: str, callback: Callable[[], None]) -> None:
        with self._mutex:
            self._disposables[name] = callback

    def has_disposable(self, name: str) -> bool:
        return name in self._disposables

    @property
    def is_destroying(self) -> bool:
        return self._destroying

    def destroy_singletons(self) -> None:
        """Destroy every singleton, dependents before their dependencies.

        Disposable singletons are visited in reverse registration order.
        Failures are logged and never stop the remaining destruction.
        """
        logger.debug("Destroying singletons: %s", self.singleton_names())
        with self._mutex:
            self._destroying = True
            names = list(reversed(list(self._disposables)))
        try:
            for name in names:
                self.destroy_singleton(name)
        finally:
            with self._mutex:
                self._finals.clear()
                self._early.clear()
                self._disposables.clear()
                self._dependent_map.clear()
                self._dependencies_map.clear()
                self._contained.clear()
                self._destroying = False

    def destroy_singleton(self, name: str) -> None:
        """Destroy one singleton after destroying everything depending on it."""
        self.remove_singleton(name)
        with self._mutex:
            callback = self._disposables.pop(name, None)
        self._destroy(name, callback)

    def _destroy(self, name: str, callback: Optional[Callable[[], None]]) -> None:
        with self._mutex:
            dependents = list(self._dependent_map.pop(name, ()))
        for dependent in dependents:
            self.destroy_singleton(dependent)

        if callback is not None:
            try:
                callback()
            except Exception:
                logger.warning("Destruction of component '%s' threw an exception", name, exc_info=True)

        with self._mutex:
            contained = list(self._contained.pop(name, ()))
        for inner in contained:
            self.destroy_singleton(inner)

        with self._mutex:
            for others in self._dependent_map.values():
                others.pop(name, None)
            self._dependencies_map.pop(name, None)
