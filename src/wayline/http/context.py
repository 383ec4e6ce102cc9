"""
=============================================================================
REQUEST CONTEXT
=============================================================================

A Context is what a handler sees. It wraps the inbound HTTPRequest and a
write-once slot for the outbound response:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONTEXT                                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   READ (request)                    WRITE (response, once)           │
    │   ─────────────                     ──────────────────────           │
    │   query_param("page")  → "2"        write_json(200, {...})           │
    │   header_value("X-Id") → "abc"      write(204)                       │
    │   decode_body(Item)    → Item(...)                                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

One Context is created per matched request, right before the middleware
chain runs, and dropped after the response is sent. Don't keep a reference
to it past the handler's return.

=============================================================================
"""

from dataclasses import fields, is_dataclass
from typing import Any, Optional
import json

from ..exceptions import DecodeError, ResponseAlreadyWritten
from .request import HTTPRequest
from .response import HTTPResponse, JSON_CONTENT_TYPE, encode_json


# Shapes decode_body() checks with isinstance() instead of calling.
_JSON_TYPES = (dict, list, str, int, float, bool)


class Context:
    """
    Per-request facade over the request and its response.

    Attributes:
        request: The inbound request (treat as read-only).
    """

    def __init__(self, request: HTTPRequest):
        self.request = request
        self._response: Optional[HTTPResponse] = None
        self._body_consumed = False

    # =========================================================================
    # REQUEST ACCESSORS
    # =========================================================================

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def path(self) -> str:
        return self.request.path

    def query_param(self, key: str) -> str:
        """First decoded value of query parameter ``key``, or ""."""
        return self.request.get_query(key, "")

    def header_value(self, name: str) -> str:
        """Value of request header ``name`` (any case), or ""."""
        return self.request.get_header(name)

    def decode_body(self, shape: Any = None) -> Any:
        """
        Read the whole request body as JSON and convert it to ``shape``.

        =====================================================================
        SHAPES
        =====================================================================

            None                 the decoded JSON value as-is
            dict, list, str, ... the decoded value, type-checked
            a dataclass          shape(**obj), keys must match the fields
            any other callable   shape(value)

        =====================================================================

        The body is a one-shot stream: it is closed however decoding ends
        and a second call fails.

        Raises:
            DecodeError: Body already consumed, empty, not UTF-8 JSON, or
                         not convertible to ``shape``.
        """
        if self._body_consumed:
            raise DecodeError("request body already consumed")
        self._body_consumed = True

        with self.request.open_body() as stream:
            try:
                raw = stream.read()
            except OSError as e:
                raise DecodeError(f"failed to read request body: {e}") from e

        if not raw.strip():
            raise DecodeError("empty request body")

        try:
            value = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"invalid JSON body: {e}") from e

        return _convert(value, shape)

    # =========================================================================
    # RESPONSE WRITERS
    # =========================================================================

    @property
    def written(self) -> bool:
        return self._response is not None

    @property
    def response(self) -> Optional[HTTPResponse]:
        """The response written so far, or None."""
        return self._response

    def write(self, status: int, body: bytes = b"", content_type: Optional[str] = None) -> None:
        """
        Commit the response. May be called once per Context.

        Raises:
            ResponseAlreadyWritten: If a response was already written.
        """
        if self._response is not None:
            raise ResponseAlreadyWritten(
                f"Response for {self.method} {self.path} was already written "
                f"with status {int(self._response.status)}"
            )

        headers = {"Content-Type": content_type} if content_type else {}
        self._response = HTTPResponse(status=status, headers=headers, body=body)

    def write_json(self, status: int, payload: Any) -> None:
        """
        Serialize ``payload`` as JSON and commit it with ``status``.

        Serialization happens before anything is committed, so a payload
        that can't be encoded raises TypeError and leaves the response
        unwritten for the error boundary to fill.
        """
        body = encode_json(payload)
        self.write(status, body, JSON_CONTENT_TYPE)


def _convert(value: Any, shape: Any) -> Any:
    if shape is None:
        return value

    if shape in _JSON_TYPES:
        # bool is an int subclass; don't let True pass as a number
        if isinstance(value, shape) and not (shape in (int, float) and isinstance(value, bool)):
            return value
        if shape is float and isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        raise DecodeError(
            f"expected JSON {shape.__name__}, got {type(value).__name__}"
        )

    if is_dataclass(shape) and isinstance(shape, type):
        if not isinstance(value, dict):
            raise DecodeError(
                f"expected JSON object for {shape.__name__}, got {type(value).__name__}"
            )
        known = {f.name for f in fields(shape) if f.init}
        unknown = sorted(set(value) - known)
        if unknown:
            raise DecodeError(f"unknown field(s) for {shape.__name__}: {', '.join(unknown)}")
        try:
            return shape(**value)
        except TypeError as e:
            raise DecodeError(f"cannot build {shape.__name__}: {e}") from e

    try:
        return shape(value)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"cannot convert body: {e}") from e
