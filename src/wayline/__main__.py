"""
=============================================================================
WAYLINE CLI ENTRY POINT
=============================================================================

Runs a small demo application:

    GET  /health          server state and worker pool counters
    GET  /hello?name=ada  {"message": "hello, ada"}
    POST /echo            echoes a JSON object back

=============================================================================
USAGE
=============================================================================

    python -m wayline                         # 127.0.0.1:8080
    python -m wayline --port 3000
    python -m wayline --host 0.0.0.0          # containers
    python -m wayline --log-format json       # for log shippers
    python -m wayline --shutdown-timeout 10

Defaults come from WAYLINE_* environment variables (see
ServerConfig.from_env), flags override them.

Exit status is 1 if the address can't be bound or in-flight requests
outlive the shutdown grace period.

=============================================================================
"""

import argparse
import logging
import sys

from . import __version__
from .config import ServerConfig
from .exceptions import BindError, DecodeError, HTTPError, ShutdownTimeoutError
from .http.context import Context
from .server import HTTPServer


logger = logging.getLogger("wayline.cli")


def build_app(config: ServerConfig) -> HTTPServer:
    """Create the demo server with its three routes."""
    server = HTTPServer(config)

    @server.get("/health")
    def health(ctx: Context):
        ctx.write_json(200, {"status": "ok", **server.stats})

    @server.get("/hello")
    def hello(ctx: Context):
        name = ctx.query_param("name") or "world"
        ctx.write_json(200, {"message": f"hello, {name}"})

    @server.post("/echo")
    def echo(ctx: Context):
        try:
            payload = ctx.decode_body(dict)
        except DecodeError as e:
            raise HTTPError(f"expected a JSON object: {e.message}", 400) from e
        ctx.write_json(200, payload)

    return server


def main(argv=None) -> int:
    env = ServerConfig.from_env()

    parser = argparse.ArgumentParser(
        prog="wayline",
        description="Exact-match HTTP server with onion middleware (demo app)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m wayline                          # Run with defaults
  python -m wayline --port 3000              # Custom port
  python -m wayline --host 0.0.0.0           # Listen on all interfaces
  python -m wayline --log-format json        # JSON access log
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=env.host,
        help=f"Host to bind to (default: {env.host})"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=env.port,
        help=f"Port to listen on (default: {env.port})"
    )

    # ─────────────────────────────────────────────────────────────────────
    # RUNTIME ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=env.max_workers,
        help=f"Maximum worker threads (default: {env.max_workers})"
    )
    parser.add_argument(
        "--shutdown-timeout",
        type=float,
        default=env.shutdown_timeout,
        help=f"Grace period for in-flight requests, seconds (default: {env.shutdown_timeout:g})"
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=env.log_level.upper(),
        help=f"Logging level (default: {env.log_level.upper()})"
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=env.log_format,
        help=f"Access log format (default: {env.log_format})"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"wayline {__version__}"
    )

    args = parser.parse_args(argv)

    config = ServerConfig(
        host=args.host,
        port=args.port,
        min_workers=min(env.min_workers, args.workers),
        max_workers=args.workers,
        timeout=env.timeout,
        shutdown_timeout=args.shutdown_timeout,
        log_level=args.log_level,
        log_format=args.log_format,
    )

    try:
        server = build_app(config)
    except ValueError as e:
        parser.error(str(e))

    try:
        server.run()
    except BindError as e:
        logger.error(str(e))
        return 1
    except ShutdownTimeoutError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
