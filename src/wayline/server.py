"""
=============================================================================
HTTP SERVER
=============================================================================

HTTPServer ties the pieces together and owns their lifecycle.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    HTTP SERVER ARCHITECTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   HTTPServer    │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐        │
    │    │ SocketServer │    │  ThreadPool  │    │    Router    │        │
    │    │  (listener)  │    │  (workers)   │    │ (route table)│        │
    │    └──────┬───────┘    └──────┬───────┘    └──────────────┘        │
    │           ▼                   ▼                                     │
    │    ┌──────────────┐    ┌──────────────────────────────────┐        │
    │    │  Connection  │    │ Logging → Recovery → ... → route │        │
    │    └──────────────┘    └──────────────────────────────────┘        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. SocketServer accepts a connection          (accept thread)
    2. Connection queued on the ThreadPool        503 if the queue is full
    3. Worker reads and parses one request        400 / 408 / 413 / 505
    4. Route lookup by exact (method, path)       404, middleware skipped
    5. Fresh Context through the composed chain
    6. Response serialized with Connection: close, socket closed

=============================================================================
SERVER STATES
=============================================================================

    CREATED ──start()──► RUNNING ──shutdown()──► SHUTTING_DOWN ──► STOPPED

Routes and middleware can only be registered while CREATED. start()
freezes both and composes every route's chain exactly once, so the
request path reads immutable tables without locking.

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

    1. Stop the accept loop and close the listener
    2. Close idle connections (no request bytes yet, older than
       new_connection_grace), re-checking while draining
    3. Wait up to the grace period for in-flight requests
    4. Still busy? Sever their connections, raise ShutdownTimeoutError

=============================================================================
"""

import logging
import signal
import threading
import time
from enum import Enum
from http import HTTPStatus
from typing import Dict, Optional, Union

from .config import Address, ServerConfig
from .core.connection import Connection, ConnectionState
from .core.socket_server import SocketServer
from .core.thread_pool import ThreadPool
from .exceptions import LifecycleError, ShutdownTimeoutError
from .http.context import Context
from .http.request import HTTPParseError, HTTPRequest, RequestParser
from .http.response import HTTPResponse, error_response, not_found
from .http.router import Handler, RouteKey, Router
from .middleware.base import Middleware, MiddlewareFunc, MiddlewarePipeline
from .middleware.logging import LoggingMiddleware
from .middleware.recovery import RecoveryMiddleware


logger = logging.getLogger(__name__)

# How often shutdown re-checks for idle connections while draining
IDLE_SWEEP_INTERVAL = 0.05


class ServerState(Enum):
    CREATED = "created"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class HTTPServer:
    """
    Multi-threaded HTTP/1.1 server with exact-match routing and onion
    middleware.

    Example:
        server = HTTPServer(ServerConfig(port=8080))

        @server.get("/health")
        def health(ctx):
            ctx.write_json(200, {"status": "ok"})

        @server.post("/items")
        def create_item(ctx):
            item = ctx.decode_body(dict)
            ctx.write_json(201, item)

        server.run()    # blocks until SIGINT/SIGTERM or server.stop()
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        # ─────────────────────────────────────────────────────────────────
        # CORE COMPONENTS
        # ─────────────────────────────────────────────────────────────────

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        # ─────────────────────────────────────────────────────────────────
        # APPLICATION COMPONENTS
        # ─────────────────────────────────────────────────────────────────

        self._router = Router()
        self._middleware = MiddlewarePipeline()
        self._middleware.use(
            LoggingMiddleware(log_format=self.config.log_format),
            RecoveryMiddleware(),
        )

        # Composed chain per route key; filled by start()
        self._chains: Dict[RouteKey, Handler] = {}

        # ─────────────────────────────────────────────────────────────────
        # RUNTIME STATE
        # ─────────────────────────────────────────────────────────────────

        self._state = ServerState.CREATED
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()

        self._connections: set[Connection] = set()
        self._connections_lock = threading.Lock()

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def use(self, *middleware: Union[Middleware, MiddlewareFunc]) -> "HTTPServer":
        """
        Append middleware inside the built-in logging and error boundary.

            server.use(AuthMiddleware()).use(add_cache_headers)

        Raises:
            LifecycleError: If the server has started.
        """
        self._middleware.use(*middleware)
        self._chains.clear()
        return self

    def handle(self, method: str, pattern: str, handler: Optional[Handler] = None):
        """
        Register a handler for an exact (method, pattern) pair.

        Works directly or as a decorator. Registering the same pair twice
        replaces the earlier handler.

        Raises:
            LifecycleError: If the server has started.
        """
        if handler is not None:
            self._register(method, pattern, handler)
            return handler

        def decorator(func: Handler) -> Handler:
            self._register(method, pattern, func)
            return func
        return decorator

    def get(self, pattern: str, handler: Optional[Handler] = None):
        """Register a GET route."""
        return self.handle("GET", pattern, handler)

    def post(self, pattern: str, handler: Optional[Handler] = None):
        """Register a POST route."""
        return self.handle("POST", pattern, handler)

    def _register(self, method: str, pattern: str, handler: Handler):
        self._router.add_route(method, pattern, handler)
        self._chains.pop((method, pattern), None)
        logger.debug(f"Added route: {method} {pattern} -> {getattr(handler, '__name__', handler)}")

    @property
    def router(self) -> Router:
        return self._router

    @property
    def middleware(self) -> MiddlewarePipeline:
        return self._middleware

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """
        Route ``request`` and run it through the middleware chain.

        Needs no sockets, so it is also the way to exercise an app in
        tests. A route that is not registered gets 404 without running
        any middleware. A handler that writes nothing gets an empty 200.

        Exceptions that escape the error boundary propagate.
        """
        handler = self._router.lookup(request.method, request.path)
        if handler is None:
            logger.debug(f"No route for {request.method} {request.path}")
            return not_found()

        key = (request.method, request.path)
        chain = self._chains.get(key)
        if chain is None:
            chain = self._compose(handler)
            self._chains[key] = chain

        ctx = Context(request)
        chain(ctx)

        if ctx.response is None:
            return HTTPResponse(status=HTTPStatus.OK)
        return ctx.response

    def _compose(self, handler: Handler) -> Handler:
        def endpoint(ctx: Context) -> None:
            handler(ctx)
            if not ctx.written:
                ctx.write(HTTPStatus.OK)

        return self._middleware.wrap(endpoint)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def address(self) -> tuple[str, int]:
        """The bound (host, port); only valid once started."""
        return self._socket_server.address

    def start(self, address: Optional[Address] = None) -> tuple[str, int]:
        """
        Bind, freeze registration and start serving in the background.

        Returns:
            The bound (host, port).

        Raises:
            BindError: The address could not be bound. The server stays
                       CREATED and may be started again.
            LifecycleError: The server was already started.
        """
        with self._state_lock:
            if self._state is not ServerState.CREATED:
                raise LifecycleError(f"Cannot start a server that is {self._state.value}")

            bind_address = self.config.parse_address(address)
            self._socket_server.bind(bind_address)

            self._router.freeze()
            self._middleware.freeze()
            self._chains = {key: self._compose(handler) for key, handler in self._router.items()}
            for method, pattern in self._router.routes():
                logger.info(f"Registered route: {method} {pattern}")

            self._thread_pool.start()
            self._socket_server.start(self._handle_connection)
            self._state = ServerState.RUNNING

        host, port = self.address
        logger.info(
            f"{self.config.server_name} serving on http://{host}:{port} "
            f"({self.config.min_workers}-{self.config.max_workers} workers)"
        )
        return (host, port)

    def shutdown(self, timeout: Optional[float] = None):
        """
        Stop the server, letting in-flight requests finish.

        Args:
            timeout: Grace period in seconds (default: config.shutdown_timeout).

        Raises:
            ShutdownTimeoutError: Requests were still running when the grace
                                  period ended; their connections were severed.
            LifecycleError: The server is not running.
        """
        with self._state_lock:
            if self._state is not ServerState.RUNNING:
                raise LifecycleError(f"Cannot shut down a server that is {self._state.value}")
            self._state = ServerState.SHUTTING_DOWN

        grace = self.config.shutdown_timeout if timeout is None else timeout
        deadline = time.monotonic() + grace
        logger.info(f"Shutting down server (grace period {grace:.1f}s)...")

        self._socket_server.shutdown()

        # Sweep idle connections until drained or out of time; connections
        # younger than new_connection_grace are left for a later sweep
        while True:
            idle = self._close_idle_connections()
            if idle:
                logger.info(f"Closed {idle} idle connection(s)")

            left = deadline - time.monotonic()
            drained = self._thread_pool.wait_for_idle(max(0.0, min(left, IDLE_SWEEP_INTERVAL)))
            if drained or left <= IDLE_SWEEP_INTERVAL:
                break

        remaining = 0
        if not drained:
            remaining = self._thread_pool.in_flight
            logger.warning(
                f"Grace period of {grace:.1f}s exceeded, "
                f"aborting {remaining} in-flight request(s)"
            )
            self._abort_connections()

        self._thread_pool.shutdown(wait=False)

        with self._state_lock:
            self._state = ServerState.STOPPED

        if not drained:
            raise ShutdownTimeoutError(grace, remaining)
        logger.info("Server stopped")

    def run(
        self,
        address: Optional[Address] = None,
        cancel: Optional[threading.Event] = None,
    ):
        """
        Start, block until cancelled, then shut down gracefully.

        Cancellation is ``cancel`` being set, stop() being called, or (when
        no ``cancel`` is given and this is the main thread) SIGINT/SIGTERM.

        Raises:
            BindError: From start().
            ShutdownTimeoutError: From shutdown().
        """
        self._setup_logging()
        self.start(address)

        original_handlers = {}
        if cancel is None and threading.current_thread() is threading.main_thread():
            original_handlers = self._setup_signals()

        try:
            while not self._stop_event.is_set():
                if cancel is not None and cancel.is_set():
                    break
                self._stop_event.wait(0.1)
        finally:
            self._restore_signals(original_handlers)
            self.shutdown()

    def stop(self):
        """Ask a blocking run() to shut down. Safe from any thread."""
        self._stop_event.set()

    def _setup_signals(self) -> dict:
        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.stop()

        return {
            sig: signal.signal(sig, shutdown_handler)
            for sig in (signal.SIGTERM, signal.SIGINT)
        }

    def _restore_signals(self, handlers: dict):
        for sig, handler in handlers.items():
            signal.signal(sig, handler)

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("wayline").setLevel(level)

    @property
    def stats(self) -> dict:
        """Server state, open connections and pool counters."""
        with self._connections_lock:
            open_connections = len(self._connections)
        return {
            "state": self._state.value,
            "connections": open_connections,
            "pool": self._thread_pool.stats,
        }

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Queue a freshly accepted connection (runs on the accept thread)."""
        self._track(conn)

        try:
            submitted = self._thread_pool.submit(self._process_connection, args=(conn,))
        except RuntimeError:
            submitted = False  # pool already stopping

        if not submitted:
            self._untrack(conn)
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    def _process_connection(self, conn: Connection):
        """
        Serve one request on ``conn`` (runs on a worker thread).

        Faults that escape the error boundary are not caught here: the
        worker logs them and the connection is closed without a response.
        """
        try:
            with conn:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    return
                except ValueError as e:
                    self._send_error(conn, HTTPStatus.REQUEST_ENTITY_TOO_LARGE, str(e))
                    return

                if raw_request is None:
                    return

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.info(f"[{conn.id}] Rejected malformed request: {e}")
                    self._send_error(conn, e.status_code, str(e))
                    return

                conn.state = ConnectionState.PROCESSING
                response = self.dispatch(request)

                response.headers["Connection"] = "close"
                conn.send_response(response.to_bytes(self.config.server_name))
        finally:
            self._untrack(conn)

    def _send_error(self, conn: Connection, status: int, message: str):
        """Answer a request that never reached routing."""
        response = error_response(status, message)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))

    def _track(self, conn: Connection):
        with self._connections_lock:
            self._connections.add(conn)

    def _untrack(self, conn: Connection):
        with self._connections_lock:
            self._connections.discard(conn)

    def _close_idle_connections(self) -> int:
        with self._connections_lock:
            connections = list(self._connections)
        grace = self.config.new_connection_grace
        return sum(1 for conn in connections if conn.close_if_idle(min_age=grace))

    def _abort_connections(self):
        with self._connections_lock:
            connections = list(self._connections)
        for conn in connections:
            conn.abort()


def create_app(config: Optional[ServerConfig] = None) -> HTTPServer:
    """
    Factory for HTTPServer instances.

        app = create_app(ServerConfig(port=3000))

        @app.get("/")
        def index(ctx):
            ctx.write_json(200, {"hello": "world"})

        app.run()
    """
    return HTTPServer(config)
