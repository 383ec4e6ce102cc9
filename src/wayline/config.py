"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All tunables live in one dataclass. The dispatch core only ever needs the
listen address and the shutdown grace period; everything else shapes the
socket layer, the worker pool and logging.

    NETWORK        host, port, backlog, buffer_size, timeout,
                   max_request_size, accept_timeout
    CONCURRENCY    min_workers, max_workers, queue_size
    LIFECYCLE      shutdown_timeout, new_connection_grace
    LOGGING        log_level, log_format
    IDENTITY       server_name

=============================================================================
ADDRESSES
=============================================================================

Callers may hand an address to HTTPServer.run()/start() in any of these
forms; parse_address() normalizes them to a (host, port) tuple:

    None                → (config.host, config.port)
    ("127.0.0.1", 8080) → ("127.0.0.1", 8080)
    "127.0.0.1:8080"    → ("127.0.0.1", 8080)
    ":8080"             → ("0.0.0.0", 8080)     all interfaces

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional, Union


Address = Union[str, tuple[str, int]]


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    Development:
        ServerConfig(host="127.0.0.1", port=8080, log_level="DEBUG")

    Production:
        ServerConfig(host="0.0.0.0", port=80, max_workers=32)
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """IP address to bind to. "0.0.0.0" listens on every interface."""

    port: int = 8080
    """Port to listen on. 0 lets the OS pick a free one."""

    backlog: int = 128
    """Maximum number of queued connections before the OS refuses more."""

    buffer_size: int = 8192
    """Receive buffer size in bytes."""

    timeout: Optional[float] = 30.0
    """Per-connection socket timeout in seconds (None blocks forever)."""

    max_request_size: int = 10 * 1024 * 1024  # 10 MB
    """Requests larger than this are rejected with 413."""

    accept_timeout: float = 0.5
    """
    How often the accept loop wakes up to check whether it should stop.
    Bounds how long shutdown waits for the listener to close.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16
    queue_size: int = 100
    """Connections waiting for a worker. A full queue answers 503."""

    # ─────────────────────────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────────────────────────

    shutdown_timeout: float = 5.0
    """
    Grace period in seconds. After cancellation, in-flight requests get
    this long to finish before their connections are severed.
    """

    new_connection_grace: float = 1.0
    """
    During shutdown, a connection that has sent nothing yet is closed as
    idle only once it is at least this many seconds old. Younger ones may
    still be about to send their request.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"
    """Access log format: "text" or "json"."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "Wayline/1.0"
    """Value of the Server response header."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        WAYLINE_HOST              Server host (default: 127.0.0.1)
        WAYLINE_PORT              Server port (default: 8080)
        WAYLINE_WORKERS           Max worker threads (default: 16)
        WAYLINE_TIMEOUT           Socket timeout in seconds (default: 30)
        WAYLINE_SHUTDOWN_TIMEOUT  Grace period in seconds (default: 5)
        WAYLINE_LOG_LEVEL         Logging level (default: INFO)
        WAYLINE_LOG_FORMAT        "text" or "json" (default: text)

        Only the CLI reads the environment; library users build
        ServerConfig directly.
        """
        return cls(
            host=os.getenv("WAYLINE_HOST", "127.0.0.1"),
            port=int(os.getenv("WAYLINE_PORT", "8080")),
            max_workers=int(os.getenv("WAYLINE_WORKERS", "16")),
            timeout=float(os.getenv("WAYLINE_TIMEOUT", "30")),
            shutdown_timeout=float(os.getenv("WAYLINE_SHUTDOWN_TIMEOUT", "5")),
            log_level=os.getenv("WAYLINE_LOG_LEVEL", "INFO"),
            log_format=os.getenv("WAYLINE_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called from HTTPServer.__init__ so a bad value fails at startup,
        not on the first request.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.accept_timeout <= 0:
            raise ValueError("accept_timeout must be > 0")

        if self.shutdown_timeout < 0:
            raise ValueError("shutdown_timeout must be >= 0")

        if self.new_connection_grace < 0:
            raise ValueError("new_connection_grace must be >= 0")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"Unknown log_format: {self.log_format!r}")

    def parse_address(self, address: Optional[Address] = None) -> tuple[str, int]:
        """
        Normalize an address argument to a (host, port) tuple.

        Falls back to this config's host/port when ``address`` is None.
        An empty host means every interface.

        Raises:
            ValueError: If the address cannot be parsed.
        """
        if address is None:
            return (self.host, self.port)

        if isinstance(address, tuple):
            host, port = address
        else:
            host, sep, port_text = address.rpartition(":")
            if not sep:
                raise ValueError(f"Address must be 'host:port', got {address!r}")
            try:
                port = int(port_text)
            except ValueError:
                raise ValueError(f"Invalid port in address {address!r}") from None

        if not 0 <= int(port) < 65536:
            raise ValueError(f"Invalid port: {port}. Must be 0-65535.")

        return (host or "0.0.0.0", int(port))
