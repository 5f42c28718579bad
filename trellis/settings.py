"""
ContainerSettings

Configuration values shared by the container and the context.
Settings are immutable and passed explicitly; there is no global state.

Example::

    settings = ContainerSettings(shutdown_phase_timeout=5.0)
    context = TrellisContext(modules=[module], settings=settings)

    # Or from the environment
    settings = ContainerSettings.from_mapping(os.environ)
"""

from dataclasses import dataclass, fields
from typing import Any, Mapping

ENV_PREFIX = "TRELLIS_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ContainerSettings:
    """Container behaviour switches.

    Attributes:
        allow_definition_overriding: Replace a definition registered under an
            existing name instead of raising DuplicateDefinitionError
        allow_circular_references: Publish early references so property
            cycles between singletons can be resolved
        allow_early_reference_divergence: Log a warning instead of failing when
            a post-processor replaces a component whose early reference was
            already handed out
        max_registry_passes: Upper bound for the registry post-processor
            discovery loop
        shutdown_phase_timeout: Seconds to wait for asynchronous stops per
            lifecycle phase
    """

    allow_definition_overriding: bool = False
    allow_circular_references: bool = True
    allow_early_reference_divergence: bool = False
    max_registry_passes: int = 100
    shutdown_phase_timeout: float = 30.0

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> 'ContainerSettings':
        """Build settings from ``TRELLIS_*`` keys, e.g. ``os.environ``.

        Unknown keys are ignored. String values are converted to the type of
        the field default.

        Raises:
            ValueError: When a value cannot be converted
        """
        kwargs = {}
        for f in fields(cls):
            key = ENV_PREFIX + f.name.upper()
            if key not in values:
                continue
            kwargs[f.name] = _coerce(key, values[key], type(f.default))
        return cls(**kwargs)


def _coerce(key: str, raw: Any, target: type) -> Any:
    if not isinstance(raw, str):
        return target(raw)
    if target is bool:
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"{key}: expected a boolean, got {raw!r}")
    try:
        return target(raw.strip())
    except ValueError as e:
        raise ValueError(f"{key}: expected {target.__name__}, got {raw!r}") from e
