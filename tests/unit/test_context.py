"""
Unit tests for the per-request Context.
"""

import json
import uuid
from dataclasses import dataclass, field

import pytest

from wayline.exceptions import DecodeError, ResponseAlreadyWritten
from wayline.http.context import Context
from wayline.http.request import HTTPRequest


def make_context(
    body: bytes = b"",
    method: str = "POST",
    path: str = "/items",
    headers: dict = None,
    query: dict = None,
) -> Context:
    """Helper to build a Context around an in-memory request."""
    return Context(HTTPRequest(
        method=method,
        path=path,
        headers=headers or {},
        query_params=query or {},
        body=body,
    ))


@dataclass
class Item:
    name: str
    price: float = 0.0
    tags: list = field(default_factory=list)


class TestRequestAccessors:
    """Read side of the Context."""

    def test_method_and_path(self):
        ctx = make_context(method="GET", path="/health")

        assert ctx.method == "GET"
        assert ctx.path == "/health"

    def test_query_param(self):
        ctx = make_context(query={"page": ["2", "3"], "empty": [""]})

        assert ctx.query_param("page") == "2"
        assert ctx.query_param("empty") == ""
        assert ctx.query_param("missing") == ""

    def test_header_value_is_case_insensitive(self):
        ctx = make_context(headers={"x-request-id": "abc"})

        assert ctx.header_value("X-Request-ID") == "abc"
        assert ctx.header_value("x-request-id") == "abc"
        assert ctx.header_value("X-Missing") == ""


class TestDecodeBody:
    """JSON body decoding into shapes."""

    def test_no_shape_returns_decoded_value(self):
        ctx = make_context(b'{"a": [1, 2]}')
        assert ctx.decode_body() == {"a": [1, 2]}

    def test_builtin_shape(self):
        assert make_context(b'[1, 2, 3]').decode_body(list) == [1, 2, 3]
        assert make_context(b'"hi"').decode_body(str) == "hi"
        assert make_context(b'true').decode_body(bool) is True

    def test_builtin_shape_mismatch(self):
        ctx = make_context(b'[1, 2, 3]')

        with pytest.raises(DecodeError) as exc_info:
            ctx.decode_body(dict)

        assert exc_info.value.status_code == 400
        assert "expected JSON dict" in exc_info.value.message

    def test_bool_is_not_a_number(self):
        with pytest.raises(DecodeError):
            make_context(b'true').decode_body(int)

    def test_int_promotes_to_float(self):
        value = make_context(b'3').decode_body(float)

        assert value == 3.0
        assert isinstance(value, float)

    def test_dataclass_shape(self):
        ctx = make_context(b'{"name": "lamp", "price": 12.5, "tags": ["home"]}')
        item = ctx.decode_body(Item)

        assert item == Item(name="lamp", price=12.5, tags=["home"])

    def test_dataclass_unknown_field(self):
        ctx = make_context(b'{"name": "lamp", "colour": "red"}')

        with pytest.raises(DecodeError) as exc_info:
            ctx.decode_body(Item)

        assert "colour" in exc_info.value.message

    def test_dataclass_missing_field(self):
        with pytest.raises(DecodeError):
            make_context(b'{"price": 1}').decode_body(Item)

    def test_dataclass_needs_an_object(self):
        with pytest.raises(DecodeError) as exc_info:
            make_context(b'["lamp"]').decode_body(Item)

        assert "expected JSON object" in exc_info.value.message

    def test_callable_shape(self):
        value = str(uuid.uuid4())
        ctx = make_context(json.dumps(value).encode())

        assert ctx.decode_body(uuid.UUID) == uuid.UUID(value)

    def test_callable_shape_failure(self):
        with pytest.raises(DecodeError):
            make_context(b'"not-a-uuid"').decode_body(uuid.UUID)

    @pytest.mark.parametrize("body", [b"", b"   \r\n"])
    def test_empty_body(self, body):
        with pytest.raises(DecodeError) as exc_info:
            make_context(body).decode_body(dict)

        assert exc_info.value.message == "empty request body"
        assert exc_info.value.status_code == 400

    def test_invalid_json(self):
        with pytest.raises(DecodeError) as exc_info:
            make_context(b'{"name": ').decode_body()

        assert exc_info.value.message.startswith("invalid JSON body")

    def test_invalid_utf8(self):
        with pytest.raises(DecodeError):
            make_context(b'"\xff\xfe"').decode_body()

    def test_body_can_only_be_consumed_once(self):
        ctx = make_context(b'{"a": 1}')
        ctx.decode_body()

        with pytest.raises(DecodeError) as exc_info:
            ctx.decode_body()

        assert "already consumed" in exc_info.value.message

    def test_failed_decode_still_consumes(self):
        ctx = make_context(b'not json')

        with pytest.raises(DecodeError):
            ctx.decode_body()
        with pytest.raises(DecodeError) as exc_info:
            ctx.decode_body()

        assert "already consumed" in exc_info.value.message


class TestResponseWriters:
    """Write side of the Context."""

    def test_nothing_written_initially(self):
        ctx = make_context()

        assert not ctx.written
        assert ctx.response is None

    def test_write_json(self):
        ctx = make_context()
        ctx.write_json(201, {"id": 7})

        assert ctx.written
        assert ctx.response.status == 201
        assert ctx.response.headers["Content-Type"] == "application/json"
        assert json.loads(ctx.response.body) == {"id": 7}

    def test_raw_write(self):
        ctx = make_context()
        ctx.write(200, b"plain", "text/plain")

        assert ctx.response.body == b"plain"
        assert ctx.response.headers == {"Content-Type": "text/plain"}

    def test_write_without_body(self):
        ctx = make_context()
        ctx.write(204)

        assert ctx.response.status == 204
        assert ctx.response.body == b""
        assert "Content-Type" not in ctx.response.headers

    def test_second_write_raises_and_first_wins(self):
        ctx = make_context()
        ctx.write_json(200, {"first": True})

        with pytest.raises(ResponseAlreadyWritten):
            ctx.write_json(500, {"second": True})

        assert ctx.response.status == 200
        assert json.loads(ctx.response.body) == {"first": True}

    def test_unserializable_payload_leaves_response_unwritten(self):
        ctx = make_context()

        with pytest.raises(TypeError):
            ctx.write_json(200, {"when": object()})

        assert not ctx.written
