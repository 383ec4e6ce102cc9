"""
=============================================================================
WAYLINE - Exact-Match HTTP Dispatch With Onion Middleware
=============================================================================

A small multi-threaded HTTP/1.1 server built on raw sockets. Requests are
routed by exact (method, path), run through a middleware chain, and
handled by functions that write their response through a Context.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    wayline/
    ├── __init__.py          # Package exports
    ├── __main__.py          # Demo CLI (python -m wayline)
    ├── server.py            # HTTPServer: lifecycle + dispatch
    ├── config.py            # ServerConfig dataclass
    ├── exceptions.py        # Error taxonomy
    ├── core/
    │   ├── socket_server.py # Listener and accept loop
    │   ├── connection.py    # One client socket, one request
    │   └── thread_pool.py   # Workers with in-flight tracking
    ├── http/
    │   ├── request.py       # Request parsing
    │   ├── response.py      # Response serialization
    │   ├── router.py        # Exact-match route table
    │   └── context.py       # Per-request handler facade
    └── middleware/
        ├── base.py          # Middleware protocol and pipeline
        ├── logging.py       # Access logging (installed first)
        └── recovery.py      # Error boundary (installed second)

=============================================================================
QUICK START
=============================================================================

    from wayline import HTTPServer, HTTPError

    server = HTTPServer()

    @server.get("/hello")
    def hello(ctx):
        name = ctx.query_param("name") or "world"
        ctx.write_json(200, {"message": f"hello, {name}"})

    @server.post("/items")
    def create_item(ctx):
        item = ctx.decode_body(dict)
        if "name" not in item:
            raise HTTPError("name is required", 400)
        ctx.write_json(201, item)

    server.run(":8080")

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .exceptions import (
    WaylineError,
    HTTPError,
    DecodeError,
    ResponseAlreadyWritten,
    LifecycleError,
    BindError,
    ShutdownTimeoutError,
)
from .http import Context, HTTPRequest, HTTPResponse, Router
from .middleware import Middleware, LoggingMiddleware, RecoveryMiddleware, function_middleware
from .server import HTTPServer, ServerState, create_app

__all__ = [
    "HTTPServer",
    "ServerState",
    "ServerConfig",
    "create_app",
    "Context",
    "HTTPRequest",
    "HTTPResponse",
    "Router",
    "Middleware",
    "LoggingMiddleware",
    "RecoveryMiddleware",
    "function_middleware",
    "WaylineError",
    "HTTPError",
    "DecodeError",
    "ResponseAlreadyWritten",
    "LifecycleError",
    "BindError",
    "ShutdownTimeoutError",
    "__version__",
]
