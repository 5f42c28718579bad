"""
Processors

Hook interfaces invoked by the container at defined pipeline stages.

Two disjoint families exist:

- Registry-mutating hooks (ContainerPostProcessor, RegistryPostProcessor)
  run once during refresh, before any regular component is created, and
  may add or alter definitions.
- Instance hooks (InstanceProcessor and its refinements) are registered once
  and applied to every component created afterwards.

Implement Ordered / PriorityOrdered (see trellis.order) to control the
position of a processor within its family.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type, TYPE_CHECKING

if TYPE_CHECKING:
    from .container import TrellisContainer
    from .definition import ComponentDefinition
    from .registry import DefinitionRegistry


class ContainerPostProcessor(ABC):
    """Hook running after all definitions are loaded, before any regular component exists."""

    @abstractmethod
    def post_process_container(self, container: 'TrellisContainer') -> None:
        pass


class RegistryPostProcessor(ContainerPostProcessor):
    """Hook allowed to register further definitions, including further processors.

    ``post_process_registry`` runs in repeated passes until no new
    RegistryPostProcessor definitions appear; ``post_process_container``
    runs afterwards, like for a plain ContainerPostProcessor.
    """

    @abstractmethod
    def post_process_registry(self, registry: 'DefinitionRegistry') -> None:
        pass

    def post_process_container(self, container: 'TrellisContainer') -> None:
        pass


class InstanceProcessor(ABC):
    """Per-instance hooks around the component's own init routine.

    Returning a different object replaces the working instance for all later
    hooks and for the cache. Returning None from ``before_initialization``
    or ``after_initialization`` stops the chain and keeps the current object.
    """

    def before_initialization(self, instance: Any, name: str) -> Any:
        return instance

    def after_initialization(self, instance: Any, name: str) -> Any:
        return instance


class InstantiationAwareProcessor(InstanceProcessor):
    """Hooks around instantiation and property population."""

    def before_instantiation(self, component_type: Optional[Type], name: str) -> Any:
        """Return a substitute object to skip regular creation, or None."""
        return None

    def after_instantiation(self, instance: Any, name: str) -> bool:
        """Return False to skip property population for this instance."""
        return True

    def process_properties(self, properties: Dict[str, Any], instance: Any, name: str) -> Optional[Dict[str, Any]]:
        """Inspect or replace the property values; None skips population."""
        return properties


class EarlyReferenceProcessor(InstantiationAwareProcessor):
    """Hooks for processors that wrap components (e.g. proxies).

    ``get_early_reference`` is applied to the raw object when another
    component captures it during a circular dependency; a wrapping processor
    should return its wrapper here and skip wrapping again in
    ``after_initialization``.
    """

    def predict_type(self, component_type: Optional[Type], name: str) -> Optional[Type]:
        return None

    def get_early_reference(self, instance: Any, name: str) -> Any:
        return instance


class DestructionAwareProcessor(InstanceProcessor):
    """Hook running before a component is destroyed."""

    def before_destruction(self, instance: Any, name: str) -> None:
        pass

    def requires_destruction(self, instance: Any) -> bool:
        return True


class MergedDefinitionProcessor(InstanceProcessor):
    """Hook receiving the merged definition before the instance is populated."""

    @abstractmethod
    def post_process_merged_definition(
        self,
        definition: 'ComponentDefinition',
        component_type: Optional[Type],
        name: str
    ) -> None:
        pass
