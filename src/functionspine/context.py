"""
Invocation context using contextvars.

While a handler runs, the dispatcher installs an :class:`InvocationContext`
so user code can reach the frozen globals and the server logger without
having them passed in:

    >>> from functionspine import get_global, current_logger
    >>> def hello(request):
    ...     current_logger().info("greeting")
    ...     return get_global("greeting")

contextvars keep concurrent invocations apart, whether they run on the
event loop or in worker threads.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

from functionspine.errors import LifecycleError
from functionspine.models import FunctionDefinition
from functionspine.shared import Globals


@dataclass(frozen=True)
class InvocationContext:
    """What a running handler can see.

    Attributes:
        function: The definition being invoked
        globals: Frozen shared globals
        logger: The server logger, bound to this request
        request_id: Correlation ID of the current request, if any
    """

    function: FunctionDefinition
    globals: Globals
    logger: Any
    request_id: str | None = None


_invocation: ContextVar[InvocationContext | None] = ContextVar("functionspine_invocation", default=None)


def current_context() -> InvocationContext:
    """Get the active invocation context.

    Raises:
        LifecycleError: If called outside a function invocation
    """
    context = _invocation.get()
    if context is None:
        raise LifecycleError("No function invocation is active")
    return context


def get_global(key: str) -> Any:
    """Read a shared global. Raises ``KeyError`` if it was never set."""
    return current_context().globals[key]


def current_logger() -> Any:
    """The server logger for the active invocation."""
    return current_context().logger


@contextmanager
def invocation_scope(context: InvocationContext) -> Iterator[InvocationContext]:
    """Install ``context`` for the duration of the block."""
    token = _invocation.set(context)
    try:
        yield context
    finally:
        _invocation.reset(token)


__all__ = [
    "InvocationContext",
    "current_context",
    "get_global",
    "current_logger",
    "invocation_scope",
]
