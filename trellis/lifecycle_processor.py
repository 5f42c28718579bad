"""
DefaultLifecycleProcessor

Starts and stops the Lifecycle singletons of a container in phases.

- Start: phases ascending. Before a component starts, the components it
  depends on are started, whatever their phase.
- Stop: phases descending. Before a component stops, the components
  depending on it are stopped. SmartLifecycle components stop
  asynchronously; each phase waits for them up to a timeout.

Example::

    processor = DefaultLifecycleProcessor(container, timeout=10.0)
    processor.on_refresh()   # auto-startup SmartLifecycle components
    ...
    processor.on_close()
"""

import logging
import threading
from typing import Dict, List, Optional, Set, TYPE_CHECKING

from .exceptions import LifecycleError
from .lifecycle import Lifecycle, SmartLifecycle, get_phase

if TYPE_CHECKING:
    from .container import TrellisContainer

logger = logging.getLogger(__name__)


class _CountDownLatch:
    """Waits until every expected member has reported completion."""

    def __init__(self, members: Set[str]):
        self._pending = set(members)
        self._condition = threading.Condition()

    def count_down(self, name: str) -> None:
        with self._condition:
            self._pending.discard(name)
            if not self._pending:
                self._condition.notify_all()

    def wait(self, timeout: Optional[float]) -> bool:
        with self._condition:
            return self._condition.wait_for(lambda: not self._pending, timeout=timeout)

    @property
    def pending(self) -> List[str]:
        with self._condition:
            return sorted(self._pending)


class DefaultLifecycleProcessor(Lifecycle):
    """Phase-ordered start/stop of Lifecycle singletons.

    Attributes:
        container: Container whose singletons are managed
        timeout: Seconds each shutdown phase waits for SmartLifecycle
            components to report completion
    """

    def __init__(self, container: 'TrellisContainer', timeout: float = 30.0):
        self.container = container
        self.timeout = timeout
        self._running = False

    # -- Lifecycle ------------------------------------------------------------

    def start(self) -> None:
        """Start every Lifecycle component, including non auto-startup ones."""
        self._start_components(auto_startup_only=False)
        self._running = True

    def stop(self) -> None:
        self._stop_components()
        self._running = False

    def is_running(self) -> bool:
        return self._running

    def on_refresh(self) -> None:
        """Start auto-startup SmartLifecycle components (and what they depend on)."""
        self._start_components(auto_startup_only=True)
        self._running = True

    def on_close(self) -> None:
        self._stop_components()
        self._running = False

    # -- start ----------------------------------------------------------------

    def _start_components(self, auto_startup_only: bool) -> None:
        components = self._lifecycle_components()
        phases: Dict[int, List[str]] = {}
        for name, component in components.items():
            if not auto_startup_only or (isinstance(component, SmartLifecycle) and component.is_auto_startup()):
                phases.setdefault(get_phase(component), []).append(name)

        for phase in sorted(phases):
            logger.debug("Starting components in phase %d", phase)
            for name in phases[phase]:
                self._do_start(components, name, auto_startup_only)

    def _do_start(self, components: Dict[str, Lifecycle], name: str, auto_startup_only: bool) -> None:
        component = components.pop(name, None)
        if component is None:
            return
        for dependency in self.container.dependencies_of(name):
            self._do_start(components, dependency, auto_startup_only)
        if component.is_running():
            return
        if auto_startup_only and isinstance(component, SmartLifecycle) and not component.is_auto_startup():
            return
        logger.debug("Starting component '%s' of type [%s]", name, type(component).__name__)
        try:
            component.start()
        except Exception as e:
            raise LifecycleError(f"Failed to start component '{name}': {e}") from e
        logger.debug("Successfully started component '%s'", name)

    # -- stop -----------------------------------------------------------------

    def _stop_components(self) -> None:
        components = self._lifecycle_components()
        phases: Dict[int, List[str]] = {}
        for name, component in components.items():
            phases.setdefault(get_phase(component), []).append(name)

        for phase in sorted(phases, reverse=True):
            members = [name for name in phases[phase] if name in components]
            smart = {name for name in members if isinstance(components[name], SmartLifecycle)}
            latch = _CountDownLatch(smart)
            logger.debug("Stopping components in phase %d", phase)
            for name in members:
                self._do_stop(components, name, latch)
            if not latch.wait(self.timeout):
                logger.warning(
                    "Shutdown phase %d ends with %d component(s) still running after timeout of %ss: %s",
                    phase, len(latch.pending), self.timeout, latch.pending,
                )

    def _do_stop(self, components: Dict[str, Lifecycle], name: str, latch: _CountDownLatch) -> None:
        component = components.pop(name, None)
        if component is None:
            return
        for dependent in self.container.dependents_of(name):
            self._do_stop(components, dependent, latch)
        try:
            if not component.is_running():
                latch.count_down(name)
                return
            if isinstance(component, SmartLifecycle):
                logger.debug("Asking component '%s' of type [%s] to stop", name, type(component).__name__)

                def done(finished: str = name) -> None:
                    latch.count_down(finished)
                    logger.debug("Component '%s' completed its stop procedure", finished)

                component.stop_async(done)
            else:
                component.stop()
                logger.debug("Successfully stopped component '%s'", name)
        except Exception:
            latch.count_down(name)
            logger.warning("Failed to stop component '%s'", name, exc_info=True)

    # -- lookup ---------------------------------------------------------------

    def _lifecycle_components(self) -> Dict[str, Lifecycle]:
        components: Dict[str, Lifecycle] = {}
        for name in self.container.names_for_type(Lifecycle, include_non_singletons=False):
            # Plain Lifecycle components are only managed once created
            if not (self.container.cache.contains_singleton(name) or self._is_smart(name)):
                continue
            component = self.container.get_instance(name)
            if component is not self:
                components[name] = component
        return components

    def _is_smart(self, name: str) -> bool:
        predicted = self.container.type_of(name)
        return isinstance(predicted, type) and issubclass(predicted, SmartLifecycle)
