"""
=============================================================================
HTTP RESPONSE
=============================================================================

HTTPResponse is the buffered outcome of one request. Handlers never build
it directly: they write through the Context, which fills in exactly one
HTTPResponse. Middleware may still adjust headers on the way back out
(for example the X-Request-ID set by LoggingMiddleware), and the server
serializes it once the whole chain has returned.

    Context.write_json()      chain unwinds         to_bytes()
    ───────────────────►  HTTPResponse  ──────────►  b"HTTP/1.1 200 OK\\r\\n..."

Status codes and reason phrases come from the standard library's
http.HTTPStatus; codes it does not know are sent without a phrase.

=============================================================================
"""

from dataclasses import dataclass, field
from email.utils import formatdate
from http import HTTPStatus
from typing import Any, Dict, Optional
import json


JSON_CONTENT_TYPE = "application/json"


def reason_phrase(status: int) -> str:
    """Reason phrase for ``status``, or "" for unregistered codes."""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


def format_http_date(timestamp: Optional[float] = None) -> str:
    """RFC 7231 HTTP-date, e.g. "Wed, 01 Jan 2026 12:00:00 GMT"."""
    return formatdate(timestamp, usegmt=True)


@dataclass
class HTTPResponse:
    """
    An HTTP response waiting to be sent.

    Attributes:
        status:  Status code (an int or http.HTTPStatus member).
        headers: Header name → value, names sent as given.
        body:    Body bytes.
    """

    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {reason_phrase(self.status)}".rstrip()

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header; returns self for chaining."""
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = "Wayline/1.0") -> bytes:
        """
        Serialize for the socket.

        Content-Length, Date and Server are filled in unless already set.
        """
        response_headers = dict(self.headers)
        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date())
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("iso-8859-1") + b"\r\n"
        return header_bytes + self.body


def encode_json(payload: Any) -> bytes:
    """Serialize ``payload`` to UTF-8 JSON. Raises TypeError/ValueError."""
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def json_response(status: int, payload: Any) -> HTTPResponse:
    return HTTPResponse(
        status=status,
        headers={"Content-Type": JSON_CONTENT_TYPE},
        body=encode_json(payload),
    )


def error_response(status: int, message: str) -> HTTPResponse:
    """The ``{"error": message}`` body every error response uses."""
    return json_response(status, {"error": message})


def not_found(message: str = "Not Found") -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND, message)
