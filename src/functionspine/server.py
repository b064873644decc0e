"""
FunctionServer - the running server session.

Wraps a ``uvicorn.Server`` running in a background thread. The main
thread keeps control of signals: SIGINT/SIGTERM/SIGHUP start a drain
(stop accepting, let in-flight requests finish for at most
``graceful_shutdown_timeout`` seconds), and a second signal while
draining forces the exit.

States::

    SERVING ──signal/stop()──► DRAINING ──in-flight done──► STOPPED
                                   │
                                   └──second signal──► forced exit ──► STOPPED
"""

from __future__ import annotations

import os
import signal
import threading
import time
from typing import Any

import uvicorn
from fastapi import FastAPI

from functionspine.errors import LifecycleError
from functionspine.logging import get_logger
from functionspine.models import LifecycleState
from functionspine.settings import ServerConfig

SHUTDOWN_SIGNALS = tuple(
    sig for sig in (getattr(signal, name, None) for name in ("SIGINT", "SIGTERM", "SIGHUP")) if sig is not None
)


class FunctionServer:
    """A uvicorn server serving one function app in a background thread."""

    def __init__(self, app: FastAPI, config: ServerConfig | None = None, *, logger: Any = None):
        self.app = app
        self.config = config or ServerConfig()
        self.logger = logger or get_logger("functionspine.server")
        self.shutdown_timeout = self.config.graceful_shutdown_timeout

        self._uvicorn = uvicorn.Server(
            uvicorn.Config(
                app,
                host=self.config.bind_addr,
                port=self.config.port,
                log_config=None,
                log_level=self.config.log_level.lower(),
                lifespan="on",
                timeout_graceful_shutdown=self.shutdown_timeout,
            )
        )
        self._state = LifecycleState.READY
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None
        self.error: BaseException | None = None

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state in (LifecycleState.SERVING, LifecycleState.DRAINING)

    @property
    def port(self) -> int:
        """The bound port; differs from the configured one when that was 0."""
        for server in getattr(self._uvicorn, "servers", None) or []:
            for sock in server.sockets:
                return sock.getsockname()[1]
        return self.config.port

    @property
    def address(self) -> str:
        return f"{self.config.bind_addr}:{self.port}"

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self, timeout: float | None = 30.0) -> FunctionServer:
        """Start serving in a background thread.

        Returns once the listener is bound.

        Raises:
            LifecycleError: If already started, or if uvicorn failed to
                come up within ``timeout`` seconds
        """
        with self._lock:
            if self._state is not LifecycleState.READY:
                raise LifecycleError(f"Cannot start server in state {self._state.value}")
            self._state = LifecycleState.SERVING
            self._thread = threading.Thread(target=self._serve, name="functionspine-server", daemon=True)
            self._thread.start()

        if not self.wait_until_serving(timeout):
            self.stop(force=True)
            raise LifecycleError(f"Server failed to start on {self.config.address}", cause=self.error)

        self.logger.info("server_started", address=self.address, pid=os.getpid())
        return self

    def _serve(self) -> None:
        try:
            self._uvicorn.run()
        except BaseException as exc:
            # uvicorn exits via sys.exit() when it cannot bind
            self.error = exc
            self.logger.error("server_crashed", error=repr(exc))
        finally:
            with self._lock:
                self._state = LifecycleState.STOPPED
            self._stopped.set()
            self.logger.info("server_stopped", address=self.config.address)

    def stop(self, force: bool = False, wait: bool = False, timeout: float | None = None) -> None:
        """Begin draining, or force the exit with ``force=True``."""
        with self._lock:
            if self._state is LifecycleState.SERVING:
                self._state = LifecycleState.DRAINING
                self.logger.info("server_draining", timeout=self.shutdown_timeout)
            self._uvicorn.should_exit = True
            if force:
                self._uvicorn.force_exit = True
        if wait:
            self.wait_until_stopped(timeout)

    def wait_until_stopped(self, timeout: float | None = None) -> bool:
        """Block until the server thread has finished."""
        return self._stopped.wait(timeout)

    def wait_until_serving(self, timeout: float | None = None) -> bool:
        """Block until uvicorn has bound its listener.

        Returns False if the server stopped first or the timeout elapsed.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._uvicorn.started:
            if self._stopped.is_set():
                return False
            if deadline is not None and time.monotonic() >= deadline:
                return False
            self._stopped.wait(0.01)
        return True

    # ------------------------------------------------------------------ #
    # Signals
    # ------------------------------------------------------------------ #

    def respond_to_signals(self) -> None:
        """Install shutdown signal handlers (main thread only)."""
        try:
            for sig in SHUTDOWN_SIGNALS:
                signal.signal(sig, self._handle_signal)
        except (ValueError, OSError):
            self.logger.debug("signal_handlers_skipped", reason="not in main thread")

    def _handle_signal(self, signum: int, frame: Any = None) -> None:
        name = signal.Signals(signum).name
        if self._state is LifecycleState.DRAINING:
            self.logger.warning("forced_shutdown", signal=name)
            self.stop(force=True)
        else:
            self.logger.info("shutdown_signal", signal=name)
            self.stop()

    def __repr__(self) -> str:
        return f"FunctionServer({self.address!r}, state={self._state.value})"


__all__ = ["FunctionServer", "SHUTDOWN_SIGNALS"]
