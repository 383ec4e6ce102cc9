"""
=============================================================================
MIDDLEWARE
=============================================================================

Cross-cutting behaviour wrapped around every route handler.

Every HTTPServer starts with two middleware, in this order:

    1. LoggingMiddleware   request line on entry, duration on exit
    2. RecoveryMiddleware  exceptions → JSON error responses

server.use() appends after them, so user middleware always runs inside
the error boundary.

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, FunctionMiddleware, function_middleware
from .logging import LoggingMiddleware, RequestLog
from .recovery import RecoveryMiddleware

__all__ = [
    # Base classes
    "Middleware",
    "MiddlewarePipeline",
    "FunctionMiddleware",
    "function_middleware",

    # Built-in middleware
    "LoggingMiddleware",
    "RequestLog",
    "RecoveryMiddleware",
]
