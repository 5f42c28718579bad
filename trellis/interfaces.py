"""
Capability interfaces

Small, independently composable views of a container. Code that needs a
capability checks for it with ``isinstance`` instead of depending on a
concrete class:

- ComponentLookup: look components up by name or type
- DefinitionIntrospection: inspect registered definitions
- ScopeRegistration: plug in custom scopes
- LifecycleControl: start/stop long-running components and refresh/close
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Type, TYPE_CHECKING

if TYPE_CHECKING:
    from .definition import ComponentDefinition
    from .scope import Scope


class ComponentLookup(ABC):
    """Core lookup interface."""

    @abstractmethod
    def get_instance(self, name_or_type: Any, required_type: Optional[Type] = None) -> Any:
        pass

    @abstractmethod
    def contains(self, name: str) -> bool:
        pass

    @abstractmethod
    def is_singleton(self, name: str) -> bool:
        pass

    @abstractmethod
    def is_prototype(self, name: str) -> bool:
        pass

    @abstractmethod
    def type_of(self, name: str) -> Optional[Type]:
        pass

    @abstractmethod
    def aliases_of(self, name: str) -> List[str]:
        pass


class DefinitionIntrospection(ABC):
    """Read access to component definitions."""

    @abstractmethod
    def definition_names(self) -> List[str]:
        pass

    @abstractmethod
    def contains_definition(self, name: str) -> bool:
        pass

    @abstractmethod
    def get_definition(self, name: str) -> 'ComponentDefinition':
        pass

    @abstractmethod
    def get_merged_definition(self, name: str) -> 'ComponentDefinition':
        pass

    @abstractmethod
    def names_for_type(self, required_type: Any, include_non_singletons: bool = True,
                       autowire_only: bool = False) -> List[str]:
        pass


class ScopeRegistration(ABC):
    """Registration of custom scopes."""

    @abstractmethod
    def register_scope(self, name: str, scope: 'Scope') -> None:
        pass

    @abstractmethod
    def get_registered_scope(self, name: str) -> Optional['Scope']:
        pass


class LifecycleControl(ABC):
    """Start/stop control and the refresh/close state machine."""

    @abstractmethod
    def start(self) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass

    @abstractmethod
    def is_running(self) -> bool:
        pass

    @abstractmethod
    def refresh(self) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @abstractmethod
    def is_active(self) -> bool:
        pass
