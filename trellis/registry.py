"""
DefinitionRegistry

Stores component definitions and aliases, and computes merged views of
child definitions over their parent chains.

The registry is mutable until ``freeze()`` is called. After that, every
structural change raises DefinitionStoreError and merged views are cached
without further invalidation.
"""

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .definition import ComponentDefinition
from .exceptions import (
    DefinitionNotFoundError,
    DefinitionStoreError,
    DuplicateDefinitionError,
)

logger = logging.getLogger(__name__)


class DefinitionSource(Protocol):
    """Anything that can hand definitions to a registry."""

    def get(self, name: str) -> ComponentDefinition: ...

    def names(self) -> Iterable[str]: ...

    def contains(self, name: str) -> bool: ...


class DefinitionRegistry:
    """Name-keyed store of ComponentDefinition objects.

    Attributes:
        parent: Optional parent registry consulted for missing names and
            parent definitions

    Example::

        registry = DefinitionRegistry()
        registry.register(ComponentDefinition("database", Database))
        registry.alias("database", "db")
        registry.get("db").component_type  # Database
    """

    def __init__(
        self,
        parent: Optional['DefinitionRegistry'] = None,
        allow_overriding: bool = False
    ):
        self.parent = parent
        self.allow_overriding = allow_overriding
        self._definitions: Dict[str, ComponentDefinition] = {}
        self._aliases: Dict[str, str] = {}
        self._merged: Dict[str, ComponentDefinition] = {}
        self._frozen = False
        self._lock = threading.RLock()

    # -- registration -----------------------------------------------------

    def register(self, definition: ComponentDefinition) -> None:
        """Register a definition under its name.

        Raises:
            DefinitionStoreError: When frozen, when the name is empty or is
                already used as an alias
            DuplicateDefinitionError: When the name is taken and overriding
                is not allowed
        """
        name = definition.name
        with self._lock:
            self._ensure_not_frozen(f"register '{name}'")
            if not name:
                raise DefinitionStoreError("Component definitions require a non-empty name")
            if name in self._aliases:
                raise DefinitionStoreError(
                    f"Cannot register '{name}': the name is already an alias "
                    f"for '{self._aliases[name]}'"
                )
            existing = self._definitions.get(name)
            if existing is not None:
                if not self.allow_overriding:
                    raise DuplicateDefinitionError(
                        f"'{name}' is already registered "
                        f"(existing type: {_type_label(existing)}, new type: {_type_label(definition)})\n"
                        f"Hint: enable ContainerSettings.allow_definition_overriding to replace it"
                    )
                logger.info("Overriding definition for '%s': %r replaces %r",
                            name, _type_label(definition), _type_label(existing))
            self._definitions[name] = definition
            self._merged.clear()

    def remove(self, name: str) -> ComponentDefinition:
        with self._lock:
            self._ensure_not_frozen(f"remove '{name}'")
            canonical = self.canonical_name(name)
            definition = self._definitions.pop(canonical, None)
            if definition is None:
                raise self.not_found(name)
            self._merged.clear()
            return definition

    def alias(self, name: str, alias: str) -> None:
        """Bind ``alias`` to the canonical name ``name``.

        Raises:
            DefinitionStoreError: When the alias is bound to a different
                name, collides with a definition name, or closes an alias cycle
        """
        with self._lock:
            self._ensure_not_frozen(f"alias '{alias}'")
            if alias == name:
                self._aliases.pop(alias, None)
                return
            existing = self._aliases.get(alias)
            if existing is not None:
                if existing == name:
                    return
                raise DefinitionStoreError(
                    f"Cannot bind alias '{alias}' to '{name}': it is already bound to '{existing}'"
                )
            if alias in self._definitions:
                raise DefinitionStoreError(
                    f"Cannot bind alias '{alias}' to '{name}': a definition with that name exists"
                )
            if self._resolves_to(name, alias):
                raise DefinitionStoreError(
                    f"Cannot bind alias '{alias}' to '{name}': circular alias reference"
                )
            self._aliases[alias] = name

    def import_from(self, source: DefinitionSource) -> None:
        """Register every definition offered by an external definition source."""
        for name in source.names():
            self.register(source.get(name))

    def _resolves_to(self, name: str, target: str) -> bool:
        current = name
        seen = set()
        while current in self._aliases and current not in seen:
            seen.add(current)
            current = self._aliases[current]
            if current == target:
                return True
        return current == target

    # -- lookup -------------------------------------------------------------

    def canonical_name(self, name: str) -> str:
        current = name
        while current in self._aliases:
            current = self._aliases[current]
        return current

    def get(self, name: str) -> ComponentDefinition:
        """Raw (unmerged) definition for a name or alias.

        Raises:
            DefinitionNotFoundError: When neither this registry nor a parent
                knows the name
        """
        canonical = self.canonical_name(name)
        definition = self._definitions.get(canonical)
        if definition is not None:
            return definition
        if self.parent is not None and self.parent.contains(canonical):
            return self.parent.get(canonical)
        raise self.not_found(name)

    def contains(self, name: str) -> bool:
        return self.contains_local(name) or (
            self.parent is not None and self.parent.contains(self.canonical_name(name))
        )

    def contains_local(self, name: str) -> bool:
        return self.canonical_name(name) in self._definitions

    def names(self) -> List[str]:
        return list(self._definitions)

    def count(self) -> int:
        return len(self._definitions)

    def aliases_of(self, name: str) -> List[str]:
        """All aliases resolving (directly or transitively) to ``name``."""
        canonical = self.canonical_name(name)
        return [
            alias for alias in self._aliases
            if alias != name and self.canonical_name(alias) == canonical
        ]

    def is_alias(self, name: str) -> bool:
        return name in self._aliases

    # -- merging ------------------------------------------------------------

    def merge(self, name: str) -> ComponentDefinition:
        """Effective definition after folding the parent chain.

        Merged views are cached; the cache is dropped on every structural
        change while the registry is not frozen.

        Raises:
            DefinitionNotFoundError: When the name or a parent is unknown
            DefinitionStoreError: When the parent chain is cyclic
        """
        canonical = self.canonical_name(name)
        cached = self._merged.get(canonical)
        if cached is not None:
            return cached
        if canonical not in self._definitions and self.parent is not None:
            return self.parent.merge(canonical)
        with self._lock:
            merged = self._merge(canonical, [])
            if self._frozen:
                merged.freeze()
            self._merged[canonical] = merged
            return merged

    def _merge(self, name: str, chain: List[str]) -> ComponentDefinition:
        if name in chain:
            raise DefinitionStoreError(
                f"Circular parent chain for definition '{chain[0]}': "
                + " -> ".join(chain + [name])
            )
        definition = self.get(name)
        if definition.parent is None:
            return definition.copy(parent=None)
        parent_name = self.canonical_name(definition.parent)
        chain = chain + [name]
        if parent_name == name:
            # Child overriding a definition of the same name in the parent registry
            if self.parent is None:
                raise DefinitionStoreError(
                    f"Definition '{name}' names itself as parent but there is no parent registry"
                )
            parent = self.parent.merge(parent_name)
        elif parent_name in self._definitions:
            parent = self._merge(parent_name, chain)
        elif self.parent is not None and self.parent.contains(parent_name):
            parent = self.parent.merge(parent_name)
        else:
            raise DefinitionNotFoundError(
                f"Parent definition '{definition.parent}' of '{name}' is not registered",
                name=definition.parent,
            )
        return definition.merged_with(parent)

    def clear_merged_cache(self) -> None:
        with self._lock:
            self._merged.clear()

    # -- freezing -----------------------------------------------------------

    def freeze(self) -> None:
        """Make the registry read-only.

        Merged views computed from now on are frozen themselves.
        """
        with self._lock:
            self._frozen = True
            self._merged.clear()
            for definition in self._definitions.values():
                definition.freeze()

    def is_frozen(self) -> bool:
        return self._frozen

    def _ensure_not_frozen(self, action: str) -> None:
        if self._frozen:
            raise DefinitionStoreError(
                f"Cannot {action}: the definition registry is frozen"
            )

    def not_found(self, name: str) -> DefinitionNotFoundError:
        registered = ", ".join(sorted(self._definitions)) or "None"
        return DefinitionNotFoundError(
            f"No component named '{name}' is defined.\n"
            f"Registered names: {registered}",
            name=name,
        )


def _type_label(definition: ComponentDefinition) -> Any:
    if definition.component_type is not None:
        return definition.component_type.__name__
    if definition.factory is not None:
        return getattr(definition.factory, '__qualname__', repr(definition.factory))
    return None
