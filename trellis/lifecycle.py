"""
Lifecycle

Interfaces a component can implement to take part in its own lifecycle:
initialization, destruction, container callbacks, and start/stop for
long-running components.
"""

from abc import ABC, abstractmethod
from typing import Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from .container import TrellisContainer
    from .context import TrellisContext

DEFAULT_PHASE = 0


class InitializingComponent(ABC):
    """Component that wants a callback once all properties are set."""

    @abstractmethod
    def after_properties_set(self) -> None:
        pass


class DisposableComponent(ABC):
    """Component that releases resources when its container is closed."""

    @abstractmethod
    def destroy(self) -> None:
        pass


class SmartInitializingSingleton(ABC):
    """Singleton notified once all eager singletons have been created."""

    @abstractmethod
    def after_singletons_instantiated(self) -> None:
        pass


class NameAware(ABC):
    """Component that wants to know the name it is registered under."""

    @abstractmethod
    def set_component_name(self, name: str) -> None:
        pass


class ContainerAware(ABC):
    """Component that wants a handle on the container that created it."""

    @abstractmethod
    def set_container(self, container: 'TrellisContainer') -> None:
        pass


class ContextAware(ABC):
    """Component that wants a handle on the owning context."""

    @abstractmethod
    def set_context(self, context: 'TrellisContext') -> None:
        pass


class Lifecycle(ABC):
    """Long-running component with explicit start and stop.

    Plain Lifecycle components run in phase 0 and are only started by an
    explicit ``context.start()``; see SmartLifecycle for automatic startup.
    """

    @abstractmethod
    def start(self) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass

    @abstractmethod
    def is_running(self) -> bool:
        pass


class SmartLifecycle(Lifecycle):
    """Lifecycle component with a phase, auto-startup and asynchronous stop.

    Components in lower phases start earlier and stop later.
    """

    phase: int = DEFAULT_PHASE

    def get_phase(self) -> int:
        return self.phase

    def is_auto_startup(self) -> bool:
        return True

    def stop_async(self, callback: Callable[[], None]) -> None:
        """Stop and invoke ``callback`` once done, possibly from another thread.

        The default implementation stops synchronously.
        """
        self.stop()
        callback()


def get_phase(component: object) -> int:
    if isinstance(component, SmartLifecycle):
        return component.get_phase()
    return DEFAULT_PHASE
