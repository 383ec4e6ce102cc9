"""
=============================================================================
LOGGING MIDDLEWARE
=============================================================================

Installed first (outermost) on every server. For each request it writes
two lines to the "wayline.access" logger:

    Received request: GET /users                      ← on entry
    127.0.0.1 - - [...] "GET /users" 200 17 0.84ms    ← on exit

The exit line sits in a finally block, so it is written whatever happens
further in:

    handler succeeds              → status from the handler
    handler raises, boundary      → status from the boundary (e.g. 500)
      converts it
    fault escapes the boundary    → status "-" and the fault is re-raised

That only works because the error boundary is registered AFTER this
middleware, i.e. inside it.

=============================================================================
LOG FORMATS
=============================================================================

    text:  127.0.0.1 - - [19/Oct/2026:10:55:36 +0000] "GET /api" 200 1234 5.00ms
    json:  {"request_id": "a1b2c3d4", "method": "GET", "path": "/api", ...}

=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Optional
from dataclasses import dataclass, asdict

from .base import Middleware, NextHandler
from ..http.context import Context


# Namespaced so access logs can be routed separately:
#   logging.getLogger("wayline.access").addHandler(file_handler)
logger = logging.getLogger("wayline.access")


@dataclass
class RequestLog:
    """One access-log entry."""

    request_id: str
    method: str
    path: str
    client_ip: str
    user_agent: str
    status_code: Optional[int]
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        status = self.status_code if self.status_code is not None else "-"
        return (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {status} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging with timing and request IDs.

        LoggingMiddleware()                             # text, X-Request-ID
        LoggingMiddleware(log_format="json")            # for log shippers
        LoggingMiddleware(skip_paths=["/health"])       # no exit line for probes
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, ctx: Context, next: NextHandler) -> None:
        request_id = str(uuid.uuid4())[:8]
        skipped = ctx.path in self.skip_paths

        if not skipped:
            logger.log(self.log_level, f"Received request: {ctx.method} {ctx.path}")

        start_time = time.perf_counter()
        try:
            next(ctx)
        except Exception as e:
            logger.error(
                f"Request failed: {ctx.method} {ctx.path} "
                f"- {type(e).__name__}: {e}"
            )
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            response = ctx.response

            if response is not None and self.include_request_id:
                response.set_header("X-Request-ID", request_id)

            if not skipped:
                self._emit(RequestLog(
                    request_id=request_id,
                    method=ctx.method,
                    path=ctx.path,
                    client_ip=ctx.request.client_address[0],
                    user_agent=ctx.request.user_agent or "-",
                    status_code=int(response.status) if response is not None else None,
                    content_length=len(response.body) if response is not None else 0,
                    duration_ms=duration_ms,
                    timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
                ))

    def _emit(self, entry: RequestLog) -> None:
        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())
