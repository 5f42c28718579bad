"""
ResolutionContext

This module provides the per-thread context for component creation.
The ResolutionContext tracks:

- The creation path (components currently being created by this thread,
  outermost first) for constructor-cycle detection and diagnostics
- The creation state of the innermost component
- The container performing the creation

The context is stored in a ContextVar, so every thread (and asyncio task)
has its own creation path. Each nested creation gets a fresh context whose
path extends the parent's; the previous context is restored on exit.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from enum import Enum
from typing import Iterator, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .container import TrellisContainer


class CreationState(Enum):
    """States of one component-creation attempt"""
    REQUESTED = "REQUESTED"
    INSTANTIATING = "INSTANTIATING"
    EARLY_EXPOSED = "EARLY_EXPOSED"
    POPULATING = "POPULATING"
    INITIALIZING = "INITIALIZING"
    FINALIZED = "FINALIZED"
    FAILED = "FAILED"


class ResolutionContext:
    """Creation bookkeeping for the current thread.

    Attributes:
        path: Names being created, outermost first; the last entry is the
            component this context belongs to
        state: Creation state of the innermost component
        container: Container performing the creation

    Note:
        This class is used internally by TrellisContainer.
    """

    def __init__(
        self,
        path: Tuple[str, ...] = (),
        container: Optional['TrellisContainer'] = None
    ):
        self.path = path
        self.state = CreationState.REQUESTED
        self.container = container


# Creation context of the current thread; None outside of any creation
_resolution_context: ContextVar[Optional[ResolutionContext]] = ContextVar(
    '_TRELLIS_RESOLUTION_CONTEXT',
    default=None
)


def current_path() -> Tuple[str, ...]:
    ctx = _resolution_context.get()
    return ctx.path if ctx is not None else ()


@contextmanager
def creating(name: str, container: 'TrellisContainer') -> Iterator[ResolutionContext]:
    """Push ``name`` onto this thread's creation path for the duration of the block."""
    parent = _resolution_context.get()
    ctx = ResolutionContext(
        path=(parent.path if parent is not None else ()) + (name,),
        container=container,
    )
    token = _resolution_context.set(ctx)
    try:
        yield ctx
    finally:
        _resolution_context.reset(token)
