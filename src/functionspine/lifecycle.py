"""
FunctionHost - lifecycle orchestration for one served function.

The host owns the path from "functions are registered" to "the server is
draining":

    LOADED ──prepare()──► STARTUP_RUNNING ──tasks done, globals frozen──► READY
      READY ──start()──► SERVING ──signal──► DRAINING ──► STOPPED

Startup tasks run strictly in registration order before the listener is
bound. A failing task stops everything: the host moves to STOPPED and the
error propagates, so a half-initialized function never serves traffic.

Example:
    >>> from functionspine import FunctionHost, FunctionRegistry
    >>> registry = FunctionRegistry().register_http("hello", lambda request: "Hello")
    >>> host = FunctionHost(registry)
    >>> function, globals = host.prepare("hello")
    >>> host.state
    <LifecycleState.READY: 'ready'>
"""

from __future__ import annotations

from typing import Any

from functionspine.app import create_app
from functionspine.errors import LifecycleError, StartupTaskError
from functionspine.logging import get_logger
from functionspine.models import FunctionDefinition, LifecycleState
from functionspine.registry import FunctionRegistry, get_default_registry
from functionspine.server import FunctionServer
from functionspine.settings import ServerConfig
from functionspine.shared import Globals, GlobalsBuilder


class FunctionHost:
    """Resolves a target, runs startup tasks and starts the server."""

    def __init__(self, registry: FunctionRegistry | None = None, *, logger: Any = None):
        self.registry = registry if registry is not None else get_default_registry()
        self.logger = logger or get_logger("functionspine.server")
        self.function: FunctionDefinition | None = None
        self.globals: Globals | None = None
        self.server: FunctionServer | None = None
        self._state = LifecycleState.LOADED

    @property
    def state(self) -> LifecycleState:
        if self.server is not None:
            return self.server.state
        return self._state

    def resolve(self, target: FunctionDefinition | str) -> FunctionDefinition:
        """Look up ``target`` unless it already is a definition.

        Raises:
            UndefinedFunctionError: If no function has that name
        """
        if isinstance(target, FunctionDefinition):
            return target
        return self.registry.get(target)

    def prepare(self, target: FunctionDefinition | str) -> tuple[FunctionDefinition, Globals]:
        """Run every startup task, then freeze the globals.

        Raises:
            LifecycleError: If this host was already prepared
            UndefinedFunctionError: If the target is not registered
            StartupTaskError: If a startup task raised
        """
        if self._state is not LifecycleState.LOADED:
            raise LifecycleError(f"Host already prepared (state={self._state.value})")

        try:
            function = self.resolve(target)
        except Exception:
            self._state = LifecycleState.STOPPED
            raise

        self._state = LifecycleState.STARTUP_RUNNING
        builder = GlobalsBuilder()
        tasks = self.registry.startup_tasks

        log = self.logger.bind(function=function.name)
        log.info("startup_begin", kind=function.kind.value, tasks=len(tasks))

        for index, task in enumerate(tasks):
            task_name = getattr(task, "__qualname__", repr(task))
            try:
                task(function, globals=builder, logger=self.logger)
            except Exception as exc:
                self._state = LifecycleState.STOPPED
                log.error("startup_task_failed", task=task_name, index=index, error=repr(exc))
                raise StartupTaskError(
                    f"Startup task {task_name} failed: {exc}",
                    cause=exc,
                ).with_context(function=function.name, task=task_name) from exc
            log.debug("startup_task_done", task=task_name, index=index)

        self.function = function
        self.globals = builder.freeze()
        self._state = LifecycleState.READY
        log.info("startup_complete", globals=sorted(self.globals))
        return function, self.globals

    def start(self, target: FunctionDefinition | str, config: ServerConfig | None = None) -> FunctionServer:
        """Prepare, then serve ``target`` in the background.

        Signal handlers are installed when called from the main thread.
        """
        config = config or ServerConfig()
        function, globals = self.prepare(target)

        app = create_app(function, globals, config, logger=self.logger)
        self.server = FunctionServer(app, config, logger=self.logger)
        self.server.respond_to_signals()
        self.server.start()
        return self.server

    def run(self, target: FunctionDefinition | str, config: ServerConfig | None = None) -> None:
        """Start serving and block until the server has stopped."""
        server = self.start(target, config)
        server.wait_until_stopped()


def start(
    target: FunctionDefinition | str,
    config: ServerConfig | None = None,
    *,
    registry: FunctionRegistry | None = None,
) -> FunctionServer:
    """Start serving ``target`` from ``registry`` (default registry if None)."""
    return FunctionHost(registry).start(target, config)


def run(
    target: FunctionDefinition | str,
    config: ServerConfig | None = None,
    *,
    registry: FunctionRegistry | None = None,
) -> None:
    """Serve ``target`` until a shutdown signal stops the server."""
    FunctionHost(registry).run(target, config)


__all__ = ["FunctionHost", "start", "run"]
