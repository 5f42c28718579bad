"""
Ordering

Ranking support for post-processors, lifecycle listeners and collection
injection. Lower values come first.

Three tiers exist:

- PriorityOrdered: always processed before everything else
- Ordered (or objects decorated with @order): sorted by rank
- Everything else, in registration order
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, Optional, TypeVar

HIGHEST_PRECEDENCE = -(2 ** 31)
LOWEST_PRECEDENCE = 2 ** 31 - 1

_ORDER_ATTRIBUTE = "__trellis_order__"

T = TypeVar('T')


class Ordered(ABC):
    """An object with an explicit rank."""

    @abstractmethod
    def get_order(self) -> int:
        pass


class PriorityOrdered(Ordered):
    """Marker for objects that must run before all plain Ordered objects."""

    pass


def order(value: int) -> Callable[[T], T]:
    """Decorator assigning a rank to a class or function.

    Example::

        @order(10)
        class AuditProcessor(InstanceProcessor):
            ...
    """

    def decorate(target: T) -> T:
        setattr(target, _ORDER_ATTRIBUTE, value)
        return target

    return decorate


def get_order(obj: Any, default: Optional[int] = LOWEST_PRECEDENCE) -> Optional[int]:
    """Return the rank of ``obj`` or ``default`` when it has none."""
    if isinstance(obj, Ordered):
        return obj.get_order()
    value = getattr(obj, _ORDER_ATTRIBUTE, None)
    if value is None and not isinstance(obj, type):
        value = getattr(type(obj), _ORDER_ATTRIBUTE, None)
    return default if value is None else value


def is_ordered(obj: Any) -> bool:
    return get_order(obj, default=None) is not None


def sort_by_order(items: Iterable[T]) -> List[T]:
    """Stable sort by rank; unranked items keep their relative order at the end."""
    return sorted(items, key=lambda item: get_order(item))

