"""
=============================================================================
ERROR BOUNDARY
=============================================================================

RecoveryMiddleware catches any exception raised further down the chain
and turns it into a response, so one bad request can't take a worker
thread (or the process) down with it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    FAULT TRANSLATION                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   raise HTTPError("bad input", 400)                                  │
    │        └──► 400  {"error": "bad input"}                             │
    │                                                                      │
    │   raise DecodeError("empty request body")                            │
    │        └──► 400  {"error": "empty request body"}                    │
    │                                                                      │
    │   raise KeyError("secret_column")        (anything else)             │
    │        └──► 500  {"error": "Internal Server Error"}                 │
    │             details go to the log, never to the client               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

It is installed second, right inside LoggingMiddleware. Middleware added
with server.use() lands inside it, so their faults are caught too.

=============================================================================
"""

import logging
from http import HTTPStatus

from .base import Middleware, NextHandler
from ..exceptions import HTTPError
from ..http.context import Context


logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal Server Error"


class RecoveryMiddleware(Middleware):
    """Converts downstream exceptions into JSON error responses."""

    def __call__(self, ctx: Context, next: NextHandler) -> None:
        try:
            next(ctx)
        except HTTPError as e:
            logger.warning(
                f"{ctx.method} {ctx.path} raised {type(e).__name__} "
                f"({e.status_code}): {e.message}"
            )
            self._write_error(ctx, e.status_code, e.message)
        except Exception:
            logger.exception(f"Unhandled error while serving {ctx.method} {ctx.path}")
            self._write_error(ctx, HTTPStatus.INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)

    def _write_error(self, ctx: Context, status: int, message: str) -> None:
        if ctx.written:
            # The client gets whatever was written first
            logger.error(
                f"Response for {ctx.method} {ctx.path} already written; "
                f"dropping error response {int(status)}"
            )
            return
        ctx.write_json(status, {"error": message})
