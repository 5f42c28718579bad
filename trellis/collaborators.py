"""
Collaborators

Interfaces for the services the container consumes but does not own:
resolving raw definition values (placeholders, expressions) and converting
resolved values to a target type. Simple default implementations are
provided; richer ones can be plugged in through the context.
"""

import os
import re
import typing
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from .exceptions import TypeMismatchError

_PLACEHOLDER = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")


class ValueResolver(ABC):
    """Resolves a raw definition value to its final value."""

    @abstractmethod
    def resolve(self, raw: Any) -> Any:
        pass


class TypeConverter(ABC):
    """Coerces a resolved value to the type of its target property or parameter."""

    @abstractmethod
    def convert(self, value: Any, target_type: Any) -> Any:
        pass


class PassThroughValueResolver(ValueResolver):
    def resolve(self, raw: Any) -> Any:
        return raw


class PlaceholderValueResolver(ValueResolver):
    """Replaces ``${key}`` and ``${key:default}`` in strings from a mapping.

    Unresolvable placeholders without a default raise KeyError.

    Example::

        resolver = PlaceholderValueResolver({"db.url": "sqlite://"})
        resolver.resolve("${db.url}")          # 'sqlite://'
        resolver.resolve("${db.pool:5}")       # '5'
    """

    def __init__(self, values: Optional[Mapping[str, str]] = None):
        self.values = values if values is not None else os.environ

    def resolve(self, raw: Any) -> Any:
        if not isinstance(raw, str) or "${" not in raw:
            return raw

        def replace(match: 're.Match[str]') -> str:
            key, default = match.group(1), match.group(2)
            if key in self.values:
                return str(self.values[key])
            if default is not None:
                return default
            raise KeyError(f"Could not resolve placeholder '{key}' in value {raw!r}")

        return _PLACEHOLDER.sub(replace, raw)


class SimpleTypeConverter(TypeConverter):
    """Minimal conversion: pass matching values through, parse scalar strings.

    Targets that are not plain classes (generics, unions, ``Any``) are
    passed through unchanged.
    """

    _BOOLEANS = {"true": True, "yes": True, "on": True, "1": True,
                 "false": False, "no": False, "off": False, "0": False}

    def convert(self, value: Any, target_type: Any) -> Any:
        if value is None or target_type is None or target_type is Any:
            return value
        origin = typing.get_origin(target_type)
        if origin is not None or not isinstance(target_type, type):
            return value
        try:
            if isinstance(value, target_type):
                return value
        except TypeError:
            # Protocols without runtime_checkable
            return value
        if isinstance(value, str):
            if target_type is bool:
                lowered = value.strip().lower()
                if lowered in self._BOOLEANS:
                    return self._BOOLEANS[lowered]
            elif target_type in (int, float):
                try:
                    return target_type(value.strip())
                except ValueError:
                    pass
        if target_type is float and isinstance(value, int):
            return float(value)
        raise TypeMismatchError(
            f"Cannot convert value {value!r} of type {type(value).__name__} "
            f"to required type {target_type.__name__}"
        )
