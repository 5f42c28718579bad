"""
DependencyResolver

Resolves a requested dependency (a type, optionally with a name hint) to a
component from the container.

Tie-break order for several candidates:

1. A candidate whose name (or alias) equals the name hint wins outright
2. Exactly one candidate marked ``primary`` wins
3. Otherwise AmbiguousDependencyError lists all candidates

Beyond plain types the resolver understands ``Optional[T]`` (optional
dependency), ``List[T]`` / ``Sequence[T]`` (all candidates, by rank),
``Dict[str, T]`` (name -> instance) and ``ObjectProvider[T]`` (lazy lookup).
"""

import collections.abc
import logging
import types
import typing
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Set, TypeVar, TYPE_CHECKING

from .exceptions import AmbiguousDependencyError, NoSuchDependencyError
from .order import sort_by_order

if TYPE_CHECKING:
    from .container import TrellisContainer

logger = logging.getLogger(__name__)

T = TypeVar('T')

_SEQUENCE_ORIGINS = (list, collections.abc.Sequence, collections.abc.Iterable,
                     collections.abc.Collection, tuple, set, frozenset)


@dataclass(frozen=True)
class DependencyDescriptor:
    """A dependency to resolve.

    Attributes:
        required_type: Requested type or typing construct
        name_hint: Preferred candidate name (parameter or property name)
        optional: Resolve to None instead of failing when nothing matches
        requester: Name of the component asking, excluded from candidates
    """
    required_type: Any
    name_hint: Optional[str] = None
    optional: bool = False
    requester: Optional[str] = None


class ObjectProvider(Generic[T]):
    """Lazy handle on a dependency, resolved on each call.

    Inject it by annotating a parameter with ``ObjectProvider[SomeType]``;
    useful to break constructor cycles or to fetch prototypes repeatedly.
    """

    def __init__(self, resolver: 'DependencyResolver', descriptor: DependencyDescriptor):
        self._resolver = resolver
        self._descriptor = descriptor

    def get(self) -> T:
        """Resolve the dependency; fails like a regular injection point."""
        return self._resolver.resolve(self._descriptor)

    def get_if_available(self) -> Optional[T]:
        """Resolve the dependency, or None when no candidate exists."""
        try:
            return self._resolver.resolve(self._descriptor)
        except NoSuchDependencyError:
            return None

    def get_if_unique(self) -> Optional[T]:
        """Resolve the dependency, or None when zero or several candidates match."""
        try:
            return self._resolver.resolve(self._descriptor)
        except (NoSuchDependencyError, AmbiguousDependencyError):
            return None

    def __iter__(self):
        return iter(self._resolver.resolve_all(self._descriptor.required_type, self._descriptor.requester))

    def __repr__(self) -> str:
        required = getattr(self._descriptor.required_type, '__name__', self._descriptor.required_type)
        return f"ObjectProvider[{required}]"


class DependencyResolver:
    """Candidate lookup and tie-breaking over a container's definitions.

    Attributes:
        container: The container whose definitions and singletons are searched
    """

    def __init__(self, container: 'TrellisContainer'):
        self.container = container
        self._ignored_types: Set[type] = set()
        self._resolvable: Dict[type, Any] = {}

    def ignore_dependency_type(self, ignored: type) -> None:
        """Never autowire dependencies of this type (or its subclasses)."""
        self._ignored_types.add(ignored)

    def register_resolvable_dependency(self, dependency_type: type, value: Any) -> None:
        """Inject ``value`` for ``dependency_type`` without it being a component."""
        self._resolvable[dependency_type] = value

    def is_ignored(self, required_type: Any) -> bool:
        return isinstance(required_type, type) and any(
            issubclass(required_type, ignored) for ignored in self._ignored_types
        )

    # -- resolution ---------------------------------------------------------

    def resolve(self, descriptor: DependencyDescriptor) -> Any:
        """Resolve a descriptor to an object, creating components on demand.

        Raises:
            NoSuchDependencyError: When nothing matches a required dependency
            AmbiguousDependencyError: When several candidates tie
        """
        required = descriptor.required_type
        origin = typing.get_origin(required)
        type_args = typing.get_args(required)

        if origin in (typing.Union, types.UnionType) and type(None) in type_args:
            remaining = [a for a in type_args if a is not type(None)]
            inner = remaining[0] if len(remaining) == 1 else typing.Union[tuple(remaining)]
            return self.resolve(DependencyDescriptor(inner, descriptor.name_hint, True, descriptor.requester))

        if origin is ObjectProvider:
            target = type_args[0] if type_args else Any
            return ObjectProvider(self, DependencyDescriptor(
                target, descriptor.name_hint, descriptor.optional, descriptor.requester
            ))

        if origin in _SEQUENCE_ORIGINS and type_args:
            items = self.resolve_all(type_args[0], descriptor.requester)
            if not items and not descriptor.optional:
                raise self._no_such(descriptor, type_args[0])
            return origin(items) if origin in (list, tuple, set, frozenset) else items

        if origin in (dict, collections.abc.Mapping) and len(type_args) == 2 and type_args[0] is str:
            mapping = {
                name: self._fetch(name, descriptor.requester)
                for name in self.candidate_names(type_args[1], descriptor.requester)
            }
            if not mapping and not descriptor.optional:
                raise self._no_such(descriptor, type_args[1])
            return mapping

        for dependency_type, value in self._resolvable.items():
            if isinstance(required, type) and issubclass(dependency_type, required) and isinstance(value, required):
                return value

        name = self.determine_candidate(descriptor)
        if name is None:
            return None
        return self._fetch(name, descriptor.requester)

    def _fetch(self, name: str, requester: Optional[str]) -> Any:
        if requester is not None:
            self.container.register_dependent(name, requester)
        return self.container.get_instance(name)

    def resolve_all(self, required_type: Any, requester: Optional[str] = None) -> List[Any]:
        """Every candidate instance for ``required_type``, ordered by rank."""
        instances = [
            self._fetch(name, requester)
            for name in self.candidate_names(required_type, requester)
        ]
        return sort_by_order(instances)

    def determine_candidate(self, descriptor: DependencyDescriptor) -> Optional[str]:
        """Pick one candidate name for ``descriptor`` applying the tie-break rules.

        Returns None for an optional dependency without candidates.
        """
        candidates = self.candidate_names(descriptor.required_type, descriptor.requester)
        if not candidates:
            if descriptor.optional:
                return None
            raise self._no_such(descriptor, descriptor.required_type)
        if len(candidates) == 1:
            return candidates[0]

        hint = descriptor.name_hint
        if hint is not None:
            for name in candidates:
                if name == hint or hint in self.container.aliases_of(name):
                    return name

        primaries = [name for name in candidates if self._is_primary(name)]
        if len(primaries) == 1:
            return primaries[0]

        required = getattr(descriptor.required_type, '__name__', str(descriptor.required_type))
        reason = (
            f"more than one 'primary' component found among candidates {primaries}"
            if len(primaries) > 1
            else f"expected a single matching component but found {len(candidates)}: {', '.join(candidates)}"
        )
        raise AmbiguousDependencyError(
            f"No unique component of type '{required}' available: {reason}\n"
            f"Hint: mark one candidate primary=True or request it by name",
            candidates=candidates,
        )

    def candidate_names(self, required_type: Any, requester: Optional[str] = None) -> List[str]:
        """Names of autowire candidates matching ``required_type``.

        The requesting component is excluded unless it is the only match.
        """
        if self.is_ignored(required_type):
            return []
        matches = self.container.names_for_type(required_type, autowire_only=True)
        if requester is not None and len(matches) > 1:
            others = [name for name in matches if name != requester]
            if others:
                matches = others
        return matches

    def _is_primary(self, name: str) -> bool:
        if not self.container.contains_definition(name):
            return False
        return self.container.get_merged_definition(name).primary

    @staticmethod
    def _no_such(descriptor: DependencyDescriptor, required_type: Any) -> NoSuchDependencyError:
        required = getattr(required_type, '__name__', str(required_type))
        target = f" for '{descriptor.requester}'" if descriptor.requester else ""
        hint_line = f" (parameter/property '{descriptor.name_hint}')" if descriptor.name_hint else ""
        return NoSuchDependencyError(
            f"No qualifying component of type '{required}' available{target}{hint_line}.\n"
            f"Hint: register a component of this type or mark the dependency optional",
            required_type=required_type,
        )
