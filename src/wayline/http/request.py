"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the raw bytes of one HTTP/1.x request into an HTTPRequest.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   POST /echo?verbose=1 HTTP/1.1\r\n      ← request line             │
    │   Host: localhost:8080\r\n               ← headers                  │
    │   Content-Type: application/json\r\n                                 │
    │   Content-Length: 15\r\n                                             │
    │   \r\n                                   ← blank line                │
    │   {"name": "ada"}                        ← body (Content-Length)     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The parser does not care which methods exist. Any upper-case token is a
method, so a route registered for "PURGE" is reachable. Whether a route
exists for it is the router's business.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict
from urllib.parse import parse_qs, urlparse, unquote
import io
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status the client should receive:

        400 Bad Request                - Malformed request syntax
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         Request method exactly as sent ("GET", "POST", ...)
        path:           URL-decoded path without the query string
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Header values keyed by LOWERCASE name
        query_params:   Parsed query string, each name maps to all its values
        body:           Raw body bytes (Content-Length bytes)
        client_address: (ip, port) of the peer
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    client_address: tuple[str, int] = ("", 0)

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters, lower-cased."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter, or ``default``."""
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def open_body(self) -> io.BufferedIOBase:
        """
        Open the body as a readable stream.

        Use it as a context manager so the stream is released however the
        read ends:

            with request.open_body() as stream:
                data = stream.read()
        """
        return io.BytesIO(self.body)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

        1. Size check                       → 413 if too large
        2. Split head/body at \\r\\n\\r\\n    → 400 if no terminator
        3. Request line                     → 400 / 505
        4. Headers (names lower-cased, repeats joined with ", ")
        5. Body sliced to Content-Length    → 400 if short
    """

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: Raw request bytes read from the connection.
            client_address: Peer (ip, port), kept for logging.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("iso-8859-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header") from None

        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, list[str]], str]:
        """
        Parse "METHOD SP REQUEST-URI SP HTTP-VERSION".

        The path is URL-decoded; the query string is split into a dict of
        lists with blank values kept (``?flag=`` → ``{"flag": [""]}``).
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        return method, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            # obs-fold: continuation of the previous header
            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """Parse ``data`` with a one-off RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
