"""
=============================================================================
SERVER LIFECYCLE
=============================================================================

Ties the pieces together: router with the built-in routes, middleware
chain around it, and the transport underneath.

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                           Server                                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   TransportServer (sockets, one thread per connection)              │
    │          │                                                           │
    │          ▼                                                           │
    │   ┌──────────────────────────────────────────────────────────┐      │
    │   │  middleware[0] → middleware[1] → ... → Router            │      │
    │   └──────────────────────────────────────────────────────────┘      │
    │                                               │                      │
    │                        ┌──────────────────────┼──────────────┐      │
    │                        ▼                      ▼              ▼      │
    │                   GET /health        caller routes      "/" → 404   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STATES
=============================================================================

    CONSTRUCTED ──start()/run()──► RUNNING ──shutdown()──► SHUTTING_DOWN
         │                                                      │
         └──────────────shutdown()──────────────┐               ▼
                                                └──────────► STOPPED

Construction does no network I/O. STOPPED is terminal: starting a
stopped server raises ServerClosedError.

=============================================================================
USAGE
=============================================================================

    stop = signal_event()                      # set on SIGINT / SIGTERM
    server = new(
        Options(address=":8080", middlewares=[recover_middleware, logging_middleware]),
        Route("GET /ping", ping),
    )
    server.run(stop)                           # blocks, then drains

=============================================================================
"""

from enum import Enum
from typing import Optional, Tuple, Union
import logging
import signal
import threading
import time

from .config import Options
from .core.transport import TransportServer
from .errors import ServerClosedError, ServerError, ServerStartError, ShutdownTimeoutError
from .handlers import HEALTH_PATTERN, NOT_FOUND_PATTERN, health_check, not_found_handler
from .http.addr import join_host_port
from .http.router import Handler, Route, Router
from .middleware.base import chain


logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_TIMEOUT = 10.0

RouteLike = Union[Route, Tuple[str, Handler]]


class ServerState(Enum):
    CONSTRUCTED = "constructed"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class Server:
    """
    An HTTP server with built-in health and not-found routes.

    Routes are registered in this order, later registrations replacing
    earlier ones with the same pattern:

        1. GET /health   health_check
        2. /             not_found_handler
        3. caller routes, in the order given

    Args:
        options: Server options. Copied; later changes are not seen.
        *routes: Route objects or (pattern, handler) tuples.

    Raises:
        ConfigError: If the options are invalid.
    """

    def __init__(self, options: Optional[Options] = None, *routes: RouteLike):
        self.options = (options or Options()).copy()
        self.options.validate()

        self.router = Router()
        self.router.add_route(HEALTH_PATTERN, health_check)
        self.router.add_route(NOT_FOUND_PATTERN, not_found_handler)
        for route in routes:
            if not isinstance(route, Route):
                route = Route(*route)
            self.router.add_route(route.pattern, route.handler)

        self._handler = chain(self.options.middlewares, self.router.handle)

        self._state = ServerState.CONSTRUCTED
        self._lock = threading.Lock()
        self._transport: Optional[TransportServer] = None
        self._serve_thread: Optional[threading.Thread] = None
        self._serve_done = threading.Event()
        self._serve_error: Optional[BaseException] = None
        self._stopped = threading.Event()
        self._drain_error: Optional[ShutdownTimeoutError] = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def handler(self) -> Handler:
        """The composed handler: middleware chain around the router."""
        return self._handler

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ServerState.RUNNING

    @property
    def address(self) -> str:
        """Bound "host:port" once started (real port for ":0"), else as configured."""
        if self._transport is not None:
            host, port = self._transport.server_address[:2]
            return join_host_port(host, port)
        return self.options.address

    # =========================================================================
    # STARTUP
    # =========================================================================

    def _bind(self) -> None:
        with self._lock:
            if self._state is ServerState.RUNNING:
                raise ServerError("Server is already running")
            if self._state is not ServerState.CONSTRUCTED:
                raise ServerClosedError("Server is closed")

            host, port = self.options.host_port()
            try:
                self._transport = TransportServer((host, port), self._handler, self.options)
            except OSError as e:
                self._state = ServerState.STOPPED
                self._stopped.set()
                logger.error(f"Failed to bind to {self.options.address}: {e}")
                raise ServerStartError(f"Failed to bind to {self.options.address}: {e}") from e

            self._state = ServerState.RUNNING

        logger.info(f"Server listening on {self.address}")

    def start(self) -> None:
        """
        Bind the listener and serve on a background thread.

        Returns once the socket is listening.

        Raises:
            ServerStartError: If the address cannot be bound.
            ServerClosedError: If the server was already shut down.
            ServerError: If the server is already running.
        """
        self._bind()
        self._serve_thread = threading.Thread(
            target=self._serve,
            name="httpscaffold-serve",
            daemon=True,
        )
        self._serve_thread.start()

    def _serve(self) -> None:
        try:
            self._transport.serve_forever(poll_interval=0.1)
        except Exception as e:
            self._serve_error = e
            logger.exception(f"Accept loop failed: {e}")
        finally:
            self._serve_done.set()

    def run(self, stop: threading.Event) -> None:
        """
        Serve until stop is set, then shut down gracefully.

        The drain is bounded by options.shutdown_timeout.

        Raises:
            ServerStartError: If binding fails or the accept loop dies.
            ShutdownTimeoutError: If in-flight requests outlive the drain.
        """
        self.start()

        while not stop.wait(0.1):
            if self._serve_done.is_set():
                break

        error = self._serve_error
        self.shutdown(timeout=self.options.shutdown_timeout)

        if error is not None:
            raise ServerStartError(f"Server stopped unexpectedly: {error}") from error

    def listen_and_serve(self) -> None:
        """
        Serve on the calling thread until shutdown() is called elsewhere.

        Returns after the drain started by shutdown() has finished.

        Raises:
            ServerStartError: If binding fails or the accept loop dies.
            ServerClosedError: If the server was already shut down.
        """
        self._bind()
        self._serve()

        error = self._serve_error
        if error is not None:
            self.shutdown(timeout=self.options.shutdown_timeout)
            raise ServerStartError(f"Server stopped unexpectedly: {error}") from error

        self._stopped.wait()

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self, stop: Optional[threading.Event] = None, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> None:
        """
        Stop accepting connections and wait for in-flight requests.

        Args:
            stop: If given, block until it is set before shutting down.
            timeout: Seconds to wait for in-flight requests.

        Raises:
            ShutdownTimeoutError: If requests were still running at the
                deadline. The server is stopped regardless.

        Calling this on a server that was never started, or that has
        already stopped, returns promptly.
        """
        if stop is not None:
            stop.wait()

        with self._lock:
            state = self._state
            if state is ServerState.CONSTRUCTED:
                self._state = ServerState.STOPPED
                self._stopped.set()
                return
            if state is ServerState.RUNNING:
                self._state = ServerState.SHUTTING_DOWN

        if state is ServerState.STOPPED:
            return
        if state is ServerState.SHUTTING_DOWN:
            # Another caller is draining; report the same outcome
            if not self._stopped.wait(timeout):
                raise ShutdownTimeoutError(timeout, self._transport.tracker.active_count())
            if self._drain_error is not None:
                raise ShutdownTimeoutError(self._drain_error.timeout, self._drain_error.pending)
            return

        try:
            self._drain(timeout)
        except ShutdownTimeoutError as e:
            self._drain_error = e
            raise
        finally:
            with self._lock:
                self._state = ServerState.STOPPED
            self._stopped.set()

    def _drain(self, timeout: float) -> None:
        logger.info("Shutting down server...")
        deadline = time.monotonic() + timeout
        transport = self._transport

        # 1. Stop accepting
        if not self._serve_done.is_set():
            transport.shutdown()
        transport.server_close()

        # 2. Close idle keep-alive connections, let busy ones finish
        tracker = transport.tracker
        tracker.start_draining()

        remaining = max(0.0, deadline - time.monotonic())
        if not tracker.wait_idle(remaining):
            pending = tracker.active_count()
            tracker.close_all()
            logger.warning(f"Shutdown timed out with {pending} request(s) in flight")
            raise ShutdownTimeoutError(timeout, pending)

        tracker.close_all()
        logger.info("Server stopped")


def new(options: Optional[Options] = None, *routes: RouteLike) -> Server:
    """Build a Server. Same as Server(options, *routes)."""
    return Server(options, *routes)


def signal_event(*signals: signal.Signals) -> threading.Event:
    """
    An Event that is set when the process receives a stop signal.

    Defaults to SIGINT (Ctrl+C) and SIGTERM (docker stop, systemd).
    Must be called from the main thread.

        stop = signal_event()
        server.run(stop)
    """
    stop = threading.Event()

    def handler(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
        stop.set()

    for sig in signals or (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, handler)

    return stop
