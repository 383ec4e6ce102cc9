"""
pytest configuration and fixtures.
"""

import contextlib
import json
import socket
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Generator, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from wayline import HTTPServer, ServerConfig, ShutdownTimeoutError
from wayline.server import ServerState


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "John", "email": "john@example.com"}'
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"\r\n"
        + body
    )


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration: OS-assigned port, small pool, short timers."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        accept_timeout=0.1,
        shutdown_timeout=2.0,
        new_connection_grace=0.2,
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def make_server(config: ServerConfig) -> Generator[Callable[..., HTTPServer], None, None]:
    """
    Factory for HTTPServer instances built from the ``config`` fixture.

    Servers are returned unstarted so tests can register routes first.
    Any server still running at teardown is shut down.
    """
    servers = []

    def factory(**overrides) -> HTTPServer:
        cfg = replace(config, **overrides)
        server = HTTPServer(cfg)
        servers.append(server)
        return server

    yield factory

    for server in servers:
        if server.state is ServerState.RUNNING:
            with contextlib.suppress(ShutdownTimeoutError):
                server.shutdown(timeout=5.0)


@dataclass
class RawResponse:
    """A response as read off the wire."""

    status: int
    headers: dict = field(default_factory=dict)
    body: bytes = b""

    def json(self):
        return json.loads(self.body)


class RawClient:
    """
    Minimal HTTP/1.1 client on plain sockets.

    Every call opens a new connection and reads until the server closes it,
    which is how wayline answers every request.
    """

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    def send(self, address: tuple, data: bytes) -> bytes:
        with socket.create_connection(address, timeout=self.timeout) as sock:
            sock.sendall(data)
            return self.read_all(sock)

    def read_all(self, sock: socket.socket) -> bytes:
        chunks = []
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)

    def build(
        self,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[dict] = None,
    ) -> bytes:
        lines = [f"{method} {path} HTTP/1.1", "Host: localhost"]
        for name, value in (headers or {}).items():
            lines.append(f"{name}: {value}")
        if body is not None:
            lines.append(f"Content-Length: {len(body)}")
        head = ("\r\n".join(lines) + "\r\n\r\n").encode("iso-8859-1")
        return head + (body or b"")

    def request(
        self,
        address: tuple,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[dict] = None,
    ) -> RawResponse:
        return parse_response(self.send(address, self.build(method, path, body, headers)))


def parse_response(raw: bytes) -> RawResponse:
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("iso-8859-1").split("\r\n")
    status = int(lines[0].split(" ")[1])

    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()

    return RawResponse(status=status, headers=headers, body=body)


@pytest.fixture
def client() -> RawClient:
    return RawClient()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    def waiter(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return waiter
