"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket. A connection carries exactly one
request: it is read, answered and closed.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONNECTION STATES                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   NEW ──► READING ──► PROCESSING ──► WRITING ──► CLOSING ──► CLOSED  │
    │    │         │                                                ▲      │
    │    └─────────┴──── abort() during shutdown ───────────────────┘      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

During shutdown the server closes connections that have not delivered a
single request byte yet (see close_if_idle). Anything further along is
in flight and gets the grace period.

=============================================================================
"""

import logging
import select
import socket
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"                # Accepted, waiting for a worker
    READING = "reading"        # Reading the request
    PROCESSING = "processing"  # Request handed to the middleware chain
    WRITING = "writing"        # Sending the response
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier for log lines.
        state: Current ConnectionState.
        created_at: Accept time.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)
    _request_started: bool = field(default=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request.

            1. recv() until the header terminator \\r\\n\\r\\n shows up
            2. pull Content-Length out of the raw header block
            3. recv() until the body is complete

        Returns:
            The request bytes, or None if the peer closed first.

        Raises:
            TimeoutError: The client went quiet for longer than ``timeout``.
            ValueError: The request exceeds ``max_request_size``.
        """
        self.state = ConnectionState.READING

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise ValueError(f"Request too large: {len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise ValueError(f"Request too large: {body_start + content_length} bytes")

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # peer closed mid-body; the parser reports it
                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]
            return request_data

        except socket.timeout:
            raise TimeoutError("Request read timeout") from None

    def _recv(self) -> bytes:
        """
        recv() one chunk, claiming the connection first.

        Once data is readable the connection is marked as started under
        the lock, so close_if_idle() either closes it before any byte is
        taken off the socket or leaves it alone.
        """
        try:
            readable, _, _ = select.select([self.socket], [], [], self.timeout)
        except (OSError, ValueError):
            return b""  # severed by abort() from another thread
        if not readable:
            raise socket.timeout("timed out")

        with self._lock:
            if self.state == ConnectionState.CLOSED:
                return b""
            self._request_started = True

        try:
            return self.socket.recv(self.buffer_size)
        except socket.timeout:
            raise
        except OSError:
            # Reset by the peer, or severed by abort() from another thread
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        header_str = headers.decode("iso-8859-1").lower()
        for line in header_str.split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(0, int(line.split(":", 1)[1].strip()))
                except ValueError:
                    return 0
        return 0

    @property
    def request_started(self) -> bool:
        """True once the first request byte has been taken off the socket."""
        return self._request_started

    def close_if_idle(self, min_age: float = 0.0) -> bool:
        """
        Abort the connection if no request has started arriving.

        A connection is idle when nothing has been read from it, nothing is
        waiting in the kernel, and it is at least ``min_age`` seconds old.
        The check and the abort happen under the same lock the reader takes
        before recv(), so a request that has begun is never cut off here.

        Returns:
            True if the connection was closed.
        """
        with self._lock:
            if self._request_started or self._buffer:
                return False
            if self.state not in (ConnectionState.NEW, ConnectionState.READING):
                return False
            if self.age < min_age:
                return False
            try:
                readable, _, _ = select.select([self.socket], [], [], 0)
            except (OSError, ValueError):
                readable = []  # socket already gone
            if readable:
                return False

            self.abort()
            return True

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send the response bytes with sendall().

        Returns:
            True on success, False if the connection was lost.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close gracefully: send FIN, drain what the client still sends,
        release the descriptor.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def abort(self):
        """
        Sever the connection immediately, from any thread.

        A worker blocked in recv()/sendall() on this socket wakes up with
        an error and unwinds.
        """
        with self._lock:
            if self.state == ConnectionState.CLOSED:
                return

            try:
                self.socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            try:
                self.socket.close()
            except OSError:
                pass

            self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection aborted")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
