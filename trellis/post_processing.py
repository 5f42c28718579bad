"""
PostProcessorChain

Drives the two processor families through a refresh:

1. Registry-mutating processors (RegistryPostProcessor, then
   ContainerPostProcessor) run before any regular component is created.
   Processors registered as definitions are instantiated on demand, tier
   by tier, and discovery repeats until no new RegistryPostProcessor
   definition shows up.
2. Instance processors defined as components are instantiated and
   registered with the container, tier by tier.

Tiers: PriorityOrdered first, then Ordered / ``@order``, then the rest in
registration order. Each tier drains before the next one is instantiated,
so higher tiers can influence the definitions of lower ones.
"""

import logging
from typing import Any, List, Optional, Sequence, Set, TYPE_CHECKING

from .definition import Role
from .exceptions import PostProcessorError
from .order import Ordered, PriorityOrdered, get_order, is_ordered, sort_by_order
from .processors import ContainerPostProcessor, InstanceProcessor, MergedDefinitionProcessor, RegistryPostProcessor

if TYPE_CHECKING:
    from .container import TrellisContainer

logger = logging.getLogger(__name__)


class PostProcessorChain:
    """Invocation and registration of post-processors for one container.

    Attributes:
        max_registry_passes: Upper bound on discovery passes for
            RegistryPostProcessor definitions
    """

    def __init__(self, max_registry_passes: int = 100):
        self.max_registry_passes = max_registry_passes

    # -- registry-mutating processors ---------------------------------------

    def invoke_container_post_processors(
        self,
        container: 'TrellisContainer',
        given: Sequence[ContainerPostProcessor] = ()
    ) -> None:
        """Run explicitly given processors, then processors defined as components.

        Raises:
            PostProcessorError: When registry processors keep registering new
                registry processors beyond ``max_registry_passes`` passes
        """
        processed: Set[str] = set()
        registry_processors: List[RegistryPostProcessor] = []
        regular_processors: List[ContainerPostProcessor] = []

        for processor in given:
            if isinstance(processor, RegistryPostProcessor):
                processor.post_process_registry(container.registry)
                registry_processors.append(processor)
            else:
                regular_processors.append(processor)

        # PriorityOrdered, then Ordered, then the rest until nothing new appears
        for tier in (self._is_priority, self._is_ordered):
            current = self._instantiate(container, [
                name for name in self._names(container, RegistryPostProcessor)
                if name not in processed and tier(container, name)
            ])
            processed.update(name for name, _ in current)
            self._invoke_registry([p for _, p in current], container)
            registry_processors.extend(p for _, p in current)

        passes = 0
        while True:
            pending = [
                name for name in self._names(container, RegistryPostProcessor)
                if name not in processed
            ]
            if not pending:
                break
            passes += 1
            if passes > self.max_registry_passes:
                raise PostProcessorError(
                    f"Registry post-processors still registered new registry post-processors "
                    f"after {self.max_registry_passes} passes: {pending}\n"
                    f"Hint: raise ContainerSettings.max_registry_passes or break the registration chain"
                )
            current = self._instantiate(container, pending)
            processed.update(pending)
            self._invoke_registry([p for _, p in current], container)
            registry_processors.extend(p for _, p in current)

        container.clear_metadata_cache()
        self._invoke_container(registry_processors, container)
        self._invoke_container(regular_processors, container)

        # Plain container post-processors defined as components
        names = [
            name for name in self._names(container, ContainerPostProcessor)
            if name not in processed
        ]
        priority = [n for n in names if self._is_priority(container, n)]
        ordered = [n for n in names if n not in priority and self._is_ordered(container, n)]
        rest = [n for n in names if n not in priority and n not in ordered]

        self._invoke_container([p for _, p in self._instantiate(container, priority)], container)
        self._invoke_container([p for _, p in self._instantiate(container, ordered)], container)
        self._invoke_container([p for _, p in self._instantiate(container, rest, sort=False)], container)

        # Processors may have modified definitions
        container.clear_metadata_cache()

    def _invoke_registry(self, processors: List[RegistryPostProcessor], container: 'TrellisContainer') -> None:
        for processor in processors:
            logger.debug("Invoking registry post-processor %r", processor)
            processor.post_process_registry(container.registry)
        container.clear_metadata_cache()

    @staticmethod
    def _invoke_container(processors: List[ContainerPostProcessor], container: 'TrellisContainer') -> None:
        for processor in processors:
            logger.debug("Invoking container post-processor %r", processor)
            processor.post_process_container(container)

    # -- instance processors --------------------------------------------------

    def register_instance_processors(self, container: 'TrellisContainer') -> None:
        """Instantiate instance processors defined as components and register them.

        MergedDefinitionProcessors are moved to the end of the chain once all
        tiers are registered.
        """
        names = self._names(container, InstanceProcessor)
        expected = len(container.instance_processors) + 1 + len(names)
        container.add_instance_processor(_EligibilityChecker(container, expected))

        priority = [n for n in names if self._is_priority(container, n)]
        ordered = [n for n in names if n not in priority and self._is_ordered(container, n)]
        rest = [n for n in names if n not in priority and n not in ordered]

        internal: List[InstanceProcessor] = []
        for group, sort in ((priority, True), (ordered, True), (rest, False)):
            for name, processor in self._instantiate(container, group, sort=sort):
                logger.debug("Registering instance processor '%s'", name)
                container.add_instance_processor(processor)
                if isinstance(processor, MergedDefinitionProcessor):
                    internal.append(processor)

        for processor in sort_by_order(internal):
            container.add_instance_processor(processor)

    # -- helpers --------------------------------------------------------------

    @staticmethod
    def _names(container: 'TrellisContainer', kind: type) -> List[str]:
        return [
            name for name in container.names_for_type(kind)
            if container.contains_definition(name)
        ]

    @staticmethod
    def _type(container: 'TrellisContainer', name: str) -> Optional[type]:
        return container.type_of(name)

    def _is_priority(self, container: 'TrellisContainer', name: str) -> bool:
        component_type = self._type(container, name)
        return component_type is not None and issubclass(component_type, PriorityOrdered)

    def _is_ordered(self, container: 'TrellisContainer', name: str) -> bool:
        component_type = self._type(container, name)
        if component_type is None:
            return False
        return issubclass(component_type, Ordered) or is_ordered(component_type)

    @staticmethod
    def _instantiate(container: 'TrellisContainer', names: List[str], sort: bool = True) -> List[Any]:
        pairs = [(name, container.get_instance(name)) for name in names]
        if sort:
            pairs = sorted(pairs, key=lambda pair: get_order(pair[1]))
        return pairs


class _EligibilityChecker(InstanceProcessor):
    """Logs components created while instance processors are still being registered."""

    def __init__(self, container: 'TrellisContainer', expected: int):
        self.container = container
        self.expected = expected

    def after_initialization(self, instance: Any, name: str) -> Any:
        if (not isinstance(instance, InstanceProcessor) and not self._is_infrastructure(name)
                and len(self.container.instance_processors) < self.expected):
            logger.info(
                "Component '%s' of type %s is not eligible for getting processed by all "
                "instance processors (for example: not eligible for auto-proxying)",
                name, type(instance).__name__,
            )
        return instance

    def _is_infrastructure(self, name: str) -> bool:
        return (self.container.contains_definition(name)
                and self.container.get_merged_definition(name).role == Role.INFRASTRUCTURE)
