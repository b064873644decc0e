"""Function runtime domain models.

Defines the core data structures shared by the registry, the lifecycle
host and the dispatcher:

- FunctionKind: how a function is invoked (http, typed, cloudevent)
- FunctionDefinition: an immutable registered function
- LifecycleState: the host/server state machine
- FunctionRequest: the request snapshot handed to HTTP functions
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from starlette.datastructures import Headers, QueryParams
from starlette.requests import Request


class FunctionKind(str, Enum):
    """Invocation kind of a registered function."""

    HTTP = "http"
    TYPED = "typed"
    EVENT = "cloudevent"


class LifecycleState(str, Enum):
    """Lifecycle of a function host.

    LOADED → STARTUP_RUNNING → READY → SERVING → DRAINING → STOPPED
    """

    LOADED = "loaded"
    STARTUP_RUNNING = "startup_running"
    READY = "ready"
    SERVING = "serving"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass(frozen=True, slots=True)
class FunctionDefinition:
    """A named function and how to invoke it.

    Attributes:
        name: Registry key. Must be non-empty.
        kind: Invocation kind.
        handler: The user callable. Receives a :class:`FunctionRequest`
            (HTTP), the decoded JSON value (TYPED) or a ``CanonicalEvent``
            (EVENT).
        request_decoder: TYPED only. Converts the decoded JSON value into
            the handler's input type, e.g. ``MyModel.model_validate``.
    """

    name: str
    kind: FunctionKind
    handler: Callable[..., Any]
    request_decoder: Callable[[Any], Any] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ValueError("Function name must be a non-empty string")
        if not callable(self.handler):
            raise TypeError(f"Handler for function {self.name!r} is not callable")
        if self.request_decoder is not None:
            if self.kind is not FunctionKind.TYPED:
                raise ValueError(f"request_decoder is only supported for typed functions, not {self.kind.value}")
            if not callable(self.request_decoder):
                raise TypeError(f"request_decoder for function {self.name!r} is not callable")

    @classmethod
    def http(cls, name: str, handler: Callable[..., Any]) -> FunctionDefinition:
        return cls(name=name, kind=FunctionKind.HTTP, handler=handler)

    @classmethod
    def typed(
        cls,
        name: str,
        handler: Callable[..., Any],
        request_decoder: Callable[[Any], Any] | None = None,
    ) -> FunctionDefinition:
        return cls(name=name, kind=FunctionKind.TYPED, handler=handler, request_decoder=request_decoder)

    @classmethod
    def cloud_event(cls, name: str, handler: Callable[..., Any]) -> FunctionDefinition:
        return cls(name=name, kind=FunctionKind.EVENT, handler=handler)


@dataclass(frozen=True, slots=True)
class FunctionRequest:
    """Read-only snapshot of an HTTP request.

    The body is read before the handler runs, so synchronous handlers can
    use it from a worker thread.
    """

    method: str
    url: str
    path: str
    headers: Headers
    query_params: QueryParams
    body: bytes = b""
    client: str | None = None

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON. Raises ``ValueError`` on bad input."""
        return json.loads(self.body)

    @classmethod
    async def from_starlette(cls, request: Request) -> FunctionRequest:
        body = await request.body()
        return cls(
            method=request.method,
            url=str(request.url),
            path=request.url.path,
            headers=request.headers,
            query_params=request.query_params,
            body=body,
            client=request.client.host if request.client else None,
        )


__all__ = [
    "FunctionKind",
    "LifecycleState",
    "FunctionDefinition",
    "FunctionRequest",
]
