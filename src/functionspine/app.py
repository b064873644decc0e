"""
FastAPI application factory.

``create_app()`` wires the request-ID middleware, the crawler-noise
routes, the catch-all function route and the lifespan hook into a single
``FastAPI`` instance serving exactly one function.

Manifesto:
    The app factory is the single composition root of the transport:
    the dispatcher never touches ``FastAPI`` directly, and the server
    never touches routes.

Tags:
    function-spine, app-factory, composition-root, FastAPI

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import anyio.to_thread
from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from functionspine import __version__
from functionspine.dispatcher import Dispatcher
from functionspine.logging import get_logger
from functionspine.middleware import RequestIDMiddleware, unhandled_exception_handler
from functionspine.models import FunctionDefinition
from functionspine.settings import ServerConfig
from functionspine.shared import Globals

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

# Crawler noise; never routed to the function.
IGNORED_PATHS = ("/favicon.ico", "/robots.txt")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Size the worker pool and log the serving function."""
    config: ServerConfig = app.state.config
    dispatcher: Dispatcher = app.state.dispatcher

    anyio.to_thread.current_default_thread_limiter().total_tokens = config.max_threads

    log = get_logger("functionspine.server")
    log.info(
        "function_serving",
        function=dispatcher.function.name,
        kind=dispatcher.function.kind.value,
        max_threads=config.max_threads,
    )
    yield
    log.info("function_stopped", function=dispatcher.function.name)


async def not_found(request: Request) -> Response:
    return PlainTextResponse("Not found", status_code=404)


def create_app(
    function: FunctionDefinition,
    globals: Globals,
    config: ServerConfig | None = None,
    *,
    logger: Any = None,
) -> FastAPI:
    """Build the application serving ``function``.

    Parameters
    ----------
    function : FunctionDefinition
        The resolved target
    globals : Globals
        Frozen shared globals
    config : ServerConfig | None
        Server settings; ``None`` reads them from the environment
    logger : Any
        Logger handed to handlers through ``current_logger()``
    """
    config = config or ServerConfig()
    dispatcher = Dispatcher(function, globals, config, logger=logger)

    app = FastAPI(
        title=f"function-spine: {function.name}",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.config = config
    app.state.dispatcher = dispatcher

    # ── Middleware ───────────────────────────────────────────────────
    app.add_middleware(RequestIDMiddleware)

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routes ───────────────────────────────────────────────────────
    for path in IGNORED_PATHS:
        app.add_api_route(path, not_found, methods=ALL_METHODS, include_in_schema=False, response_model=None)

    async def handle(request: Request) -> Response:
        return await dispatcher(request)

    app.add_api_route("/{path:path}", handle, methods=ALL_METHODS, include_in_schema=False, response_model=None)

    return app


__all__ = ["create_app", "lifespan", "ALL_METHODS", "IGNORED_PATHS"]
