"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the dispatch layer can produce has a home here. They fall
into two families:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        WAYLINE ERRORS                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   REQUEST-SCOPED (contained by the error boundary)                   │
    │   ├── HTTPError               → status + message sent to client      │
    │   │   └── DecodeError         → 400, bad or empty request body       │
    │   └── ResponseAlreadyWritten  → handler wrote twice                  │
    │                                                                      │
    │   LIFECYCLE-SCOPED (propagate to whoever started the server)         │
    │   ├── LifecycleError          → operation not valid in this state    │
    │   ├── BindError               → listener could not take the address  │
    │   └── ShutdownTimeoutError    → grace period ran out                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A request-scoped error never leaves its request: RecoveryMiddleware turns
it into a response. A lifecycle-scoped error is raised from start(),
shutdown() or run() and is the caller's problem.

=============================================================================
"""

from typing import Optional


class WaylineError(Exception):
    """Base class for every error raised by wayline."""


class HTTPError(WaylineError):
    """
    A deliberate request fault carrying the response to send.

    Raise it from a handler or middleware when the client should see a
    specific status and message:

        @server.get("/users")
        def list_users(ctx):
            if not ctx.query_param("team"):
                raise HTTPError("team is required", 400)
            ...

    The error boundary sends ``{"error": message}`` with ``status_code``.
    Any other exception becomes a generic 500.

    Attributes:
        message: Client-facing description (sent verbatim).
        status_code: HTTP status code (100-599).
    """

    def __init__(self, message: str, status_code: int = 500):
        if not 100 <= int(status_code) <= 599:
            raise ValueError(f"Invalid HTTP status code: {status_code}")
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, {self.status_code})"


class DecodeError(HTTPError):
    """
    The request body could not be read or parsed into the requested shape.

    Handlers usually catch this and answer themselves. If they don't, the
    error boundary still reports it as a 400 instead of a 500.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message, status_code)


class ResponseAlreadyWritten(WaylineError, RuntimeError):
    """Raised when a second response is written through the same Context."""


class LifecycleError(WaylineError, RuntimeError):
    """
    The server (or one of its tables) is in the wrong state for the call.

    Registering routes or middleware after start(), starting twice, or
    shutting down a server that never started all raise this.
    """


class BindError(WaylineError, OSError):
    """The listening socket could not be bound. Not retried."""

    def __init__(self, address: tuple[str, int], cause: Optional[OSError] = None):
        host, port = address
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to bind to {host}:{port}{detail}")
        self.address = address
        self.cause = cause


class ShutdownTimeoutError(WaylineError, TimeoutError):
    """
    In-flight requests did not finish within the grace period.

    By the time this is raised the remaining connections have already been
    severed.
    """

    def __init__(self, timeout: float, remaining: int):
        super().__init__(
            f"Shutdown deadline of {timeout:.1f}s exceeded "
            f"with {remaining} request(s) still in flight"
        )
        self.timeout = timeout
        self.remaining = remaining
