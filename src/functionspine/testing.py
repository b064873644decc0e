"""
Helpers for testing functions without starting a server.

    >>> from functionspine import testing
    >>> response = testing.call_http("hello", testing.make_request("/"))
    >>> response.status_code
    200

Handlers run through the same dispatcher code paths as in production,
inside an invocation scope, so ``get_global`` and ``current_logger``
behave as they do when serving. Exceptions raised by the handler
propagate unchanged.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import anyio
from fastapi.testclient import TestClient
from starlette.datastructures import Headers, QueryParams
from starlette.responses import Response

from functionspine.app import create_app
from functionspine.dispatcher import Dispatcher, to_response
from functionspine.errors import HandlerError
from functionspine.events import CanonicalEvent
from functionspine.lifecycle import FunctionHost
from functionspine.logging import get_logger
from functionspine.models import FunctionDefinition, FunctionKind, FunctionRequest
from functionspine.registry import FunctionRegistry
from functionspine.settings import ServerConfig
from functionspine.shared import Globals

Target = FunctionDefinition | str


def make_request(
    path: str = "/",
    *,
    method: str = "GET",
    body: bytes | str = b"",
    headers: Mapping[str, str] | None = None,
    query: Mapping[str, str] | None = None,
    host: str = "localhost:8080",
) -> FunctionRequest:
    """Build a :class:`FunctionRequest` for an HTTP function."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    query_string = urlencode(dict(query or {}))
    url = f"http://{host}{path}" + (f"?{query_string}" if query_string else "")
    return FunctionRequest(
        method=method.upper(),
        url=url,
        path=path,
        headers=Headers(headers=dict(headers or {})),
        query_params=QueryParams(query_string),
        body=body,
        client="127.0.0.1",
    )


def make_cloud_event(
    data: Any = None,
    *,
    id: str | None = None,
    source: str = "functionspine://testing",
    type: str = "com.example.test",
    spec_version: str = "1.0",
    data_content_type: str | None = "application/json",
    subject: str | None = None,
    time: str | None = None,
    **extensions: Any,
) -> CanonicalEvent:
    """Build a :class:`CanonicalEvent` with sensible defaults."""
    return CanonicalEvent(
        id=id or str(uuid.uuid4()),
        source=source,
        type=type,
        spec_version=spec_version,
        data_content_type=data_content_type,
        data=data,
        subject=subject,
        time=time,
        extensions=extensions,
    )


def run_startup_tasks(
    target: Target,
    *,
    registry: FunctionRegistry | None = None,
    logger: Any = None,
) -> Globals:
    """Run the registry's startup tasks for ``target`` and return the frozen globals."""
    _, globals = FunctionHost(registry, logger=logger).prepare(target)
    return globals


def _dispatcher(
    target: Target,
    kind: FunctionKind,
    globals: Globals | None,
    registry: FunctionRegistry | None,
    logger: Any,
) -> Dispatcher:
    host = FunctionHost(registry, logger=logger)
    function = host.resolve(target)
    if function.kind is not kind:
        raise TypeError(f"Function {function.name!r} is a {function.kind.value} function, not {kind.value}")
    if globals is None:
        globals = run_startup_tasks(function, registry=host.registry, logger=logger)
    return Dispatcher(function, globals, logger=logger or get_logger("functionspine.testing"))


def _invoke(dispatcher: Dispatcher, argument: Any) -> Any:
    try:
        return anyio.run(dispatcher.invoke, argument)
    except HandlerError as exc:
        if exc.cause is not None:
            raise exc.cause from None
        raise


def call_http(
    target: Target,
    request: FunctionRequest | None = None,
    *,
    globals: Globals | None = None,
    registry: FunctionRegistry | None = None,
    logger: Any = None,
) -> Response:
    """Call an HTTP function and return the normalized response."""
    dispatcher = _dispatcher(target, FunctionKind.HTTP, globals, registry, logger)
    return to_response(_invoke(dispatcher, request or make_request()))


def call_typed(
    target: Target,
    value: Any = None,
    *,
    globals: Globals | None = None,
    registry: FunctionRegistry | None = None,
    logger: Any = None,
) -> Any:
    """Call a typed function with an already-decoded JSON value.

    The function's request decoder, if any, is applied first.
    """
    dispatcher = _dispatcher(target, FunctionKind.TYPED, globals, registry, logger)
    decoder = dispatcher.function.request_decoder
    return _invoke(dispatcher, decoder(value) if decoder else value)


def call_event(
    target: Target,
    event: CanonicalEvent,
    *,
    globals: Globals | None = None,
    registry: FunctionRegistry | None = None,
    logger: Any = None,
) -> Any:
    """Call an event function with ``event``."""
    dispatcher = _dispatcher(target, FunctionKind.EVENT, globals, registry, logger)
    return _invoke(dispatcher, event)


def make_client(
    target: Target,
    *,
    registry: FunctionRegistry | None = None,
    config: ServerConfig | None = None,
    raise_server_exceptions: bool = True,
) -> TestClient:
    """A FastAPI ``TestClient`` serving ``target`` after running its startup tasks."""
    host = FunctionHost(registry)
    function, globals = host.prepare(target)
    app = create_app(function, globals, config or ServerConfig(), logger=host.logger)
    return TestClient(app, raise_server_exceptions=raise_server_exceptions)


__all__ = [
    "make_request",
    "make_cloud_event",
    "run_startup_tasks",
    "call_http",
    "call_typed",
    "call_event",
    "make_client",
]
