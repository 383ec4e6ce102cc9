"""
=============================================================================
TCP LISTENER
=============================================================================

Owns the listening socket and the accept loop. Nothing else in wayline
touches the listener.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Lifecycle                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    bind(address)     socket() + setsockopt() + bind() + listen()     │
    │        │             an OSError here becomes BindError               │
    │        ▼                                                             │
    │    start(handler)    accept loop on a background thread              │
    │        │                                                             │
    │        └──► while running:                                           │
    │                accept()          wakes every accept_timeout seconds  │
    │                Connection(...)   wrap the client socket              │
    │                handler(conn)     HTTPServer queues it on the pool    │
    │                                                                      │
    │    shutdown()        stop the loop, join the thread, close listener  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Binding is separate from accepting so that an address problem surfaces
synchronously from HTTPServer.start(), before any thread is spawned.

=============================================================================
"""

import socket
import logging
import threading
from typing import Optional, Callable

from ..config import ServerConfig
from ..exceptions import BindError, LifecycleError
from .connection import Connection


logger = logging.getLogger(__name__)


ConnectionHandler = Callable[[Connection], None]


class SocketServer:
    """
    TCP listener with a background accept loop.

        server = SocketServer(config)
        server.bind(("127.0.0.1", 0))
        server.start(handle_connection)   # returns immediately
        ...
        server.shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def address(self) -> tuple[str, int]:
        """
        The bound (host, port).

        With port 0 this is the port the OS actually picked.
        """
        if self._socket is None:
            raise LifecycleError("Socket server is not bound")
        host, port = self._socket.getsockname()[:2]
        return (host, port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restarting right after a stop must not hit TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Responses are written in one sendall(); don't let Nagle hold them
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up periodically to check the running flag
        sock.settimeout(self.config.accept_timeout)
        return sock

    def bind(self, address: tuple[str, int]) -> tuple[str, int]:
        """
        Create the listening socket on ``address``.

        Returns:
            The address actually bound.

        Raises:
            BindError: If the address is unavailable. Not retried.
        """
        if self._socket is not None:
            raise LifecycleError("Socket server is already bound")

        sock = self._create_socket()
        try:
            sock.bind(address)
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {address[0]}:{address[1]}: {e}")
            raise BindError(address, e) from e

        self._socket = sock
        logger.info(f"Listening on {self.address[0]}:{self.address[1]}")
        return self.address

    def start(self, connection_handler: ConnectionHandler):
        """
        Run the accept loop on a background thread.

        Each accepted client is wrapped in a Connection and passed to
        ``connection_handler`` on the accept thread, so the handler must
        not block.
        """
        if self._socket is None:
            raise LifecycleError("bind() must be called before start()")
        if self._running:
            raise LifecycleError("Socket server is already running")

        self._running = True
        self._thread = threading.Thread(
            target=self._accept_loop,
            args=(connection_handler,),
            name="wayline-accept",
            daemon=True,
        )
        self._thread.start()

    def _accept_loop(self, connection_handler: ConnectionHandler):
        try:
            while self._running:
                try:
                    client_socket, client_address = self._socket.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    # Listener closed under us
                    if self._running:
                        logger.error(f"Accept error: {e}")
                    break

                logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    buffer_size=self.config.buffer_size,
                    timeout=self.config.timeout,
                    max_request_size=self.config.max_request_size,
                )
                try:
                    connection_handler(conn)
                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection handler failed: {e}")
                    conn.abort()
        finally:
            self._running = False

    def shutdown(self, timeout: Optional[float] = None):
        """
        Stop accepting and close the listener.

        Waits for the accept loop to notice, which takes at most
        ``accept_timeout`` seconds. Safe to call more than once.
        """
        logger.info("Stopping listener...")
        self._running = False

        if self._thread is not None:
            wait = timeout if timeout is not None else self.config.accept_timeout * 2 + 1.0
            self._thread.join(wait)
            self._thread = None

        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        logger.info("Listener closed")
