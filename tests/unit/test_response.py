"""
Unit tests for HTTP response serialization.
"""

import json
from http import HTTPStatus

from wayline.http.response import (
    HTTPResponse,
    error_response,
    format_http_date,
    json_response,
    not_found,
    reason_phrase,
)


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        response = HTTPResponse(status=HTTPStatus.OK)
        assert response.status_line == "HTTP/1.1 200 OK"

        response = HTTPResponse(status=404)
        assert response.status_line == "HTTP/1.1 404 Not Found"

    def test_unregistered_status_has_no_phrase(self):
        assert HTTPResponse(status=299).status_line == "HTTP/1.1 299"
        assert reason_phrase(299) == ""

    def test_to_bytes_includes_headers(self):
        """Test that to_bytes includes all headers."""
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={"X-Custom": "value"},
            body=b"test",
        )

        data = response.to_bytes()
        head, _, body = data.partition(b"\r\n\r\n")

        assert head.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"X-Custom: value" in head
        assert b"Content-Length: 4" in head
        assert b"Server: Wayline/1.0" in head
        assert b"Date: " in head
        assert body == b"test"

    def test_to_bytes_custom_server_name(self):
        data = HTTPResponse().to_bytes(server_name="Test/2.0")
        assert b"Server: Test/2.0" in data

    def test_explicit_headers_are_not_overridden(self):
        response = HTTPResponse(headers={"Content-Length": "0", "Server": "custom"})
        data = response.to_bytes()

        assert b"Server: custom" in data
        assert b"Wayline" not in data

    def test_to_bytes_leaves_headers_untouched(self):
        response = HTTPResponse(body=b"abc")
        response.to_bytes()
        assert response.headers == {}

    def test_set_header_chains(self):
        response = HTTPResponse().set_header("X-A", "1").set_header("X-B", "2")
        assert response.headers == {"X-A": "1", "X-B": "2"}


class TestResponseHelpers:
    """Tests for the JSON helpers."""

    def test_json_response(self):
        response = json_response(201, {"id": 1, "name": "ada"})

        assert response.status == 201
        assert response.headers["Content-Type"] == "application/json"
        assert json.loads(response.body) == {"id": 1, "name": "ada"}

    def test_json_response_keeps_unicode(self):
        response = json_response(200, {"name": "Zoë"})
        assert "Zoë".encode("utf-8") in response.body

    def test_error_response_shape(self):
        response = error_response(400, "bad input")

        assert response.status == 400
        assert json.loads(response.body) == {"error": "bad input"}

    def test_not_found(self):
        response = not_found()

        assert response.status == HTTPStatus.NOT_FOUND
        assert json.loads(response.body) == {"error": "Not Found"}


def test_format_http_date():
    assert format_http_date(0) == "Thu, 01 Jan 1970 00:00:00 GMT"
