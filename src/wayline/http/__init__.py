"""
=============================================================================
HTTP LAYER
=============================================================================

    request.py   raw bytes → HTTPRequest
    response.py  HTTPResponse → raw bytes, JSON/error helpers
    router.py    exact (method, path) → handler table
    context.py   per-request facade handed to handlers

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    json_response,
    error_response,
    not_found,
)
from .router import Router, Handler, RouteKey
from .context import Context

__all__ = [
    # Requests
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Responses
    "HTTPResponse",
    "json_response",
    "error_response",
    "not_found",

    # Routing
    "Router",
    "Handler",
    "RouteKey",

    # Handler facade
    "Context",
]
