"""
Dispatcher - per-request routing by function kind.

One :class:`Dispatcher` serves one function. It picks a strategy from the
function's :class:`~functionspine.models.FunctionKind`, decodes the request
for that kind, invokes the handler inside an invocation scope and turns
the result (or the failure) into a response.

Manifesto:
    A broken request or a crashing handler costs one response, never the
    process. Client mistakes answer 400 without touching user code;
    handler failures answer 500 and are logged with the request ID.

Architecture:
    ::

        Request ──► Dispatcher
                      │
                      ├─ HTTP   → FunctionRequest → handler → to_response()
                      ├─ TYPED  → JSON → request_decoder → handler → jsonable_encoder
                      └─ EVENT  → decode_event() → CanonicalEvent → handler → "ok"
                      │
                      ├─ RequestError  → 400 <message>
                      └─ anything else → 500 "Unexpected internal error"

    Synchronous handlers run in the anyio worker thread pool, coroutine
    handlers are awaited on the event loop.

Tags:
    dispatcher, http, cloudevents, error-containment, function-spine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import dataclasses
import inspect
import json
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from fastapi.encoders import ENCODERS_BY_TYPE, jsonable_encoder
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response

from functionspine.context import InvocationContext, invocation_scope
from functionspine.errors import DecodeError, FunctionSpineError, HandlerError, RequestError
from functionspine.events import decode_event
from functionspine.legacy import EventNormalizer
from functionspine.logging import get_logger
from functionspine.models import FunctionDefinition, FunctionKind, FunctionRequest
from functionspine.settings import ServerConfig
from functionspine.shared import Globals

INTERNAL_ERROR_MESSAGE = "Unexpected internal error"


def to_response(result: Any) -> Response:
    """Convert an HTTP handler's return value into a response.

    Accepted shapes:
        - a starlette ``Response`` (returned as-is)
        - a ``(status, headers, body)`` triple
        - a ``str`` → 200 ``text/plain``
        - a mapping → 200 ``application/json``

    Raises:
        HandlerError: For any other shape
    """
    if isinstance(result, Response):
        return result
    if isinstance(result, str):
        return PlainTextResponse(result)
    if isinstance(result, Mapping):
        return JSONResponse(dict(result))
    if isinstance(result, tuple) and len(result) == 3:
        status, headers, body = result
        if not isinstance(status, int) or isinstance(status, bool):
            raise HandlerError(f"Invalid status in response triple: {status!r}")
        if body is not None and not isinstance(body, (str, bytes)):
            raise HandlerError(f"Invalid body in response triple: {type(body).__name__}")
        return Response(content=body, status_code=status, headers=dict(headers or {}))
    raise HandlerError(f"Unsupported return type from function: {type(result).__name__}")


JSON_NATIVE_TYPES = (str, int, float, bool, type(None))


def to_json_value(value: Any) -> Any:
    """Reduce a typed function's result to something JSON can encode.

    Accepts JSON-native values and containers of them, pydantic models,
    dataclasses, the scalar types pydantic knows how to encode (datetime,
    UUID, Decimal, Enum...), and objects exposing ``to_json()`` or
    ``to_dict()``.

    Raises:
        HandlerError: For any other object
    """
    if isinstance(value, JSON_NATIVE_TYPES):
        return value
    if isinstance(value, Mapping):
        return {key: to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_value(item) for item in value]
    if isinstance(value, BaseModel) or isinstance(value, tuple(ENCODERS_BY_TYPE)):
        return value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return value

    to_json = getattr(value, "to_json", None)
    if callable(to_json):
        encoded = to_json()
        return json.loads(encoded) if isinstance(encoded, (str, bytes)) else to_json_value(encoded)
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_json_value(to_dict())

    raise HandlerError(f"Typed function returned a value with no JSON form: {type(value).__name__}")


def error_text(exc: BaseException) -> str:
    """``<ExceptionType>: <message>`` for the underlying failure."""
    if isinstance(exc, HandlerError) and exc.cause is not None:
        exc = exc.cause
    return f"{type(exc).__name__}: {exc}"


class Dispatcher:
    """Routes requests for one function by its kind."""

    def __init__(
        self,
        function: FunctionDefinition,
        globals: Globals,
        config: ServerConfig | None = None,
        *,
        logger: Any = None,
        normalizer: EventNormalizer | None = None,
    ):
        self.function = function
        self.globals = globals
        self.config = config or ServerConfig()
        self.logger = logger or get_logger("functionspine.server")
        self.normalizer = normalizer or EventNormalizer()
        self._strategies: dict[FunctionKind, Callable[[Request, str | None], Awaitable[Response]]] = {
            FunctionKind.HTTP: self._dispatch_http,
            FunctionKind.TYPED: self._dispatch_typed,
            FunctionKind.EVENT: self._dispatch_event,
        }

    async def __call__(self, request: Request) -> Response:
        request_id = getattr(request.state, "request_id", None)
        strategy = self._strategies[self.function.kind]
        try:
            return await strategy(request, request_id)
        except RequestError as exc:
            exc.with_context(function=self.function.name, kind=self.function.kind.value, request_id=request_id)
            self.logger.warning("request_rejected", **exc.to_dict())
            return PlainTextResponse(exc.message, status_code=exc.status_code)
        except Exception as exc:
            self.logger.error(
                "function_failed",
                function=self.function.name,
                error=error_text(exc),
                exc_info=exc.cause if isinstance(exc, FunctionSpineError) and exc.cause else exc,
            )
            return self.error_response(exc)

    def error_response(self, exc: BaseException) -> Response:
        """The 500 response for ``exc``."""
        body = error_text(exc) if self.config.show_error_details else INTERNAL_ERROR_MESSAGE
        return PlainTextResponse(body, status_code=500)

    # -------------------------------------------------------------------------
    # Invocation
    # -------------------------------------------------------------------------

    async def invoke(self, argument: Any, request_id: str | None = None) -> Any:
        """Call the handler with ``argument`` inside an invocation scope.

        Raises:
            HandlerError: Wrapping whatever the handler raised
        """
        context = InvocationContext(
            function=self.function,
            globals=self.globals,
            logger=self.logger.bind(function=self.function.name),
            request_id=request_id,
        )
        handler = self.function.handler
        try:
            if inspect.iscoroutinefunction(handler):
                with invocation_scope(context):
                    return await handler(argument)

            def call() -> Any:
                with invocation_scope(context):
                    return handler(argument)

            return await run_in_threadpool(call)
        except Exception as exc:
            raise HandlerError(str(exc), cause=exc).with_context(
                function=self.function.name, request_id=request_id
            ) from exc

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    async def _dispatch_http(self, request: Request, request_id: str | None) -> Response:
        function_request = await FunctionRequest.from_starlette(request)
        result = await self.invoke(function_request, request_id)
        return to_response(result)

    async def _dispatch_typed(self, request: Request, request_id: str | None) -> Response:
        value = self.decode_typed(await request.body())
        result = to_json_value(await self.invoke(value, request_id))
        try:
            return JSONResponse(jsonable_encoder(result))
        except Exception as exc:
            raise HandlerError(f"Failed to encode response: {exc}", cause=exc) from exc

    async def _dispatch_event(self, request: Request, request_id: str | None) -> Response:
        body = await request.body()
        event = decode_event(request.headers, body, path=request.url.path, normalizer=self.normalizer)
        self.logger.debug("event_received", event_id=event.id, event_type=event.type)
        await self.invoke(event, request_id)
        return PlainTextResponse("ok")

    def decode_typed(self, body: bytes) -> Any:
        """Decode a typed function's request body.

        Raises:
            DecodeError: On malformed JSON or a failing request decoder
        """
        try:
            value = json.loads(body) if body else None
        except ValueError as exc:
            raise DecodeError(f"Malformed JSON in request body: {exc}", cause=exc) from exc

        decoder = self.function.request_decoder
        if decoder is None:
            return value
        try:
            return decoder(value)
        except Exception as exc:
            raise DecodeError(f"Failed to decode request: {exc}", cause=exc) from exc


__all__ = ["Dispatcher", "to_response", "to_json_value", "error_text", "INTERNAL_ERROR_MESSAGE"]
