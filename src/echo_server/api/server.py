"""FastAPI application setup and server lifecycle for the echo server."""

import asyncio
import contextlib
import logging
import signal
import socket
from enum import Enum
from typing import Any, Iterator, Optional

import uvicorn
from fastapi import FastAPI

from . import __version__, handlers
from .auth import APIKeyMiddleware
from .config import Config
from .errors import ServerStartError, ServerStateError, ShutdownTimeoutError
from .keystore import KeyStore
from .metrics import MetricsMiddleware, RequestMetrics

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def create_app(
    config: Config,
    key_store: Optional[KeyStore] = None,
    metrics: Optional[RequestMetrics] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Requests pass through the metrics middleware first, then the API key
    middleware (only when auth is enabled), then the route handlers.
    """
    app = FastAPI(
        title="Echo Server",
        description="Echo endpoint with health check and Prometheus metrics",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    if key_store is None:
        key_store = KeyStore.from_keys(config.api_keys)
    if metrics is None:
        metrics = RequestMetrics()

    app.state.config = config
    app.state.key_store = key_store
    app.state.metrics = metrics

    protected_prefixes = config.effective_protected_prefixes()
    if protected_prefixes:
        if not key_store.has_keys():
            logger.warning("Auth is enabled but no API keys are configured")
        logger.info(
            f"API key auth enabled for {', '.join(protected_prefixes)} "
            f"with {key_store.count()} key(s)"
        )
        app.add_middleware(
            APIKeyMiddleware, key_store=key_store, protected_prefixes=protected_prefixes
        )

    # Added last so it wraps everything, including auth rejections.
    app.add_middleware(MetricsMiddleware, metrics=metrics)

    app.include_router(handlers.router)

    return app


class LifecycleState(str, Enum):
    """Server lifecycle states."""

    IDLE = "idle"
    STARTING = "starting"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class _ManagedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to EchoServer."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class EchoServer:
    """Owns the listening socket and drives start, termination and drain.

    Idle -> Starting -> Listening on start(), back to Idle if starting
    fails. Listening -> ShuttingDown when shutdown() begins, ShuttingDown ->
    Stopped once in-flight requests drain or the deadline passes. An instance is
    started successfully at most once.
    """

    STARTUP_POLL_INTERVAL = 0.01
    ABANDON_GRACE_SECONDS = 1.0

    def __init__(self, config: Config, app: Optional[Any] = None):
        self.config = config
        self.app = app if app is not None else create_app(config)
        self.shutdown_timeout = config.shutdown_timeout
        self.state = LifecycleState.IDLE
        self.received_signal: Optional[signal.Signals] = None
        self._server: Optional[_ManagedServer] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._port: Optional[int] = None
        self._stop_event = asyncio.Event()

    @property
    def port(self) -> Optional[int]:
        """Port the listener is bound to, once started."""
        return self._port

    def _bind_socket(self) -> socket.socket:
        host, port = self.config.host, self.config.port
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
        except OSError as e:
            sock.close()
            raise ServerStartError(f"failed to bind {host}:{port}: {e}", host, port) from e
        sock.set_inheritable(True)
        return sock

    async def start(self) -> None:
        """Bind the listener and serve in the background.

        Returns once the server accepts connections. The instance is claimed
        before the first await, so an overlapping call is rejected. If
        starting fails, at bind time or while uvicorn starts up, the listener
        is released and the state goes back to Idle.

        Raises:
            ServerStateError: If the server is starting or was already started
            ServerStartError: If binding or starting the listener fails
        """
        if self.state != LifecycleState.IDLE:
            raise ServerStateError(f"cannot start server in state {self.state.value}")
        self.state = LifecycleState.STARTING

        sock = None
        try:
            sock = self._bind_socket()
            self._port = sock.getsockname()[1]
            await self._serve_in_background(sock)
        except BaseException:
            self._release_listener(sock)
            raise

        self.state = LifecycleState.LISTENING

    async def _serve_in_background(self, sock: socket.socket) -> None:
        uv_config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self._port,
            log_config=None,
            lifespan="off",
            access_log=False,
        )
        self._server = _ManagedServer(uv_config)

        logger.info(f"starting server on {self.config.host}:{self._port}")
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[sock]))

        while not self._server.started:
            if self._serve_task.done():
                error = None if self._serve_task.cancelled() else self._serve_task.exception()
                logger.error(f"server failed to start: {error}")
                raise ServerStartError(
                    f"server failed to start: {error}", self.config.host, self._port
                ) from error
            await asyncio.sleep(self.STARTUP_POLL_INTERVAL)

    def _release_listener(self, sock: Optional[socket.socket]) -> None:
        if self._serve_task is not None and not self._serve_task.done():
            self._serve_task.cancel()
        if sock is not None:
            sock.close()
        self._server = None
        self._serve_task = None
        self._port = None
        self.state = LifecycleState.IDLE

    def request_shutdown(self) -> None:
        """Notify the server that it should terminate."""
        self._stop_event.set()

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info(f"received {sig.name}")
        self.received_signal = sig
        self._stop_event.set()

    async def wait_for_termination(self) -> Optional[signal.Signals]:
        """Block until SIGINT/SIGTERM arrives or request_shutdown() is called.

        Returns:
            The signal received, or None for a programmatic request
        """
        loop = asyncio.get_running_loop()
        installed = []
        for sig in TERMINATION_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
                installed.append(sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                # Not on the main thread or not supported by the platform
                logger.debug(f"could not install handler for {sig.name}: {e}")

        try:
            await self._stop_event.wait()
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

        return self.received_signal

    async def shutdown(self) -> None:
        """Stop accepting connections and drain in-flight requests.

        Raises:
            ServerStateError: If the server is not listening
            ShutdownTimeoutError: If requests were still running at the deadline
        """
        if self.state != LifecycleState.LISTENING:
            raise ServerStateError(f"cannot shut down server in state {self.state.value}")

        self.state = LifecycleState.SHUTTING_DOWN
        logger.info("shutting down server")
        self._server.should_exit = True

        try:
            await asyncio.wait_for(asyncio.shield(self._serve_task), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            abandoned = await self._abandon_requests()
            error = ShutdownTimeoutError(self.shutdown_timeout, abandoned)
            logger.error(f"server shutdown failed: {error}")
            raise error
        finally:
            self.state = LifecycleState.STOPPED

        logger.info("server exited properly")

    async def _abandon_requests(self) -> int:
        """Cancel outstanding request tasks and close their connections."""
        server_state = self._server.server_state
        tasks = [task for task in server_state.tasks if not task.done()]

        self._server.force_exit = True
        for task in tasks:
            task.cancel()
        for connection in list(server_state.connections):
            transport = getattr(connection, "transport", None)
            if transport is not None:
                transport.close()

        done, _ = await asyncio.wait({self._serve_task}, timeout=self.ABANDON_GRACE_SECONDS)
        if not done:
            self._serve_task.cancel()
        return len(tasks)

    async def run(self) -> None:
        """Start, wait for a termination signal, then shut down."""
        await self.start()
        await self.wait_for_termination()
        await self.shutdown()
