"""
Unit tests for HTTP request parsing.
"""

import pytest

from wayline.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    parse_request,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Test parsing a simple GET request."""
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/api/users"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)

    def test_parse_headers(self, sample_get_request: bytes):
        """Header names are lower-cased."""
        request = parse_request(sample_get_request)

        assert request.headers["host"] == "localhost:8080"
        assert request.user_agent == "pytest"
        assert request.get_header("Accept") == "application/json"
        assert request.get_header("X-Missing") == ""

    def test_parse_query_params(self, sample_get_request: bytes):
        """Test query parameter parsing."""
        request = parse_request(sample_get_request)

        assert request.get_query("page") == "1"
        assert request.get_query("limit") == "10"
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"

    def test_parse_post_with_body(self, sample_post_request: bytes):
        """Test parsing POST request with JSON body."""
        request = parse_request(sample_post_request)

        assert request.method == "POST"
        assert request.path == "/api/users"
        assert request.content_type == "application/json"
        assert request.content_length == len(request.body)
        assert request.body == b'{"name": "John", "email": "john@example.com"}'

    def test_path_is_url_decoded(self):
        request = parse_request(b"GET /hello%20world?q=a%2Bb HTTP/1.1\r\n\r\n")

        assert request.path == "/hello world"
        assert request.get_query("q") == "a+b"

    def test_blank_query_values_kept(self):
        request = parse_request(b"GET /search?flag=&q=x HTTP/1.1\r\n\r\n")

        assert request.get_query("flag") == ""
        assert request.get_query("q") == "x"

    def test_repeated_headers_are_joined(self):
        request = parse_request(
            b"GET / HTTP/1.1\r\n"
            b"Accept: text/html\r\n"
            b"Accept: application/json\r\n"
            b"\r\n"
        )

        assert request.get_header("accept") == "text/html, application/json"

    def test_any_uppercase_method_is_accepted(self):
        request = parse_request(b"PURGE /cache HTTP/1.1\r\n\r\n")
        assert request.method == "PURGE"

    def test_http_10(self):
        request = parse_request(b"GET / HTTP/1.0\r\n\r\n")
        assert request.version == "HTTP/1.0"

    def test_body_is_sliced_to_content_length(self):
        request = parse_request(
            b"POST /echo HTTP/1.1\r\n"
            b"Content-Length: 2\r\n"
            b"\r\n"
            b"{}trailing"
        )

        assert request.body == b"{}"

    def test_open_body_stream(self, sample_post_request: bytes):
        request = parse_request(sample_post_request)

        with request.open_body() as stream:
            assert stream.read() == request.body
        assert stream.closed


class TestRequestParserErrors:
    """Malformed input maps to the status the client should see."""

    def test_invalid_request_line(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"INVALID\r\n\r\n")
        assert exc_info.value.status_code == 400

    def test_lowercase_method_rejected(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"get / HTTP/1.1\r\n\r\n")
        assert exc_info.value.status_code == 400

    def test_unsupported_version(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET / HTTP/2.0\r\n\r\n")
        assert exc_info.value.status_code == 505

    def test_missing_header_terminator(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET / HTTP/1.1\r\nHost: x\r\n")
        assert exc_info.value.status_code == 400

    def test_request_too_large(self):
        data = b"GET / HTTP/1.1\r\n\r\n" + b"x" * 100
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(data, max_size=50)
        assert exc_info.value.status_code == 413

    def test_invalid_content_length(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"POST / HTTP/1.1\r\nContent-Length: abc\r\n\r\n")
        assert exc_info.value.status_code == 400

    def test_negative_content_length(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"POST / HTTP/1.1\r\nContent-Length: -5\r\n\r\n")

    def test_short_body(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc")
        assert "Incomplete body" in str(exc_info.value)


class TestHTTPRequest:
    """Tests for HTTPRequest properties."""

    def test_content_type_strips_parameters(self):
        request = HTTPRequest(
            method="POST",
            path="/",
            headers={"content-type": "Application/JSON; charset=utf-8"},
        )
        assert request.content_type == "application/json"

    def test_content_type_missing(self):
        assert HTTPRequest(method="GET", path="/").content_type is None

    def test_bad_content_length_reads_as_zero(self):
        request = HTTPRequest(method="GET", path="/", headers={"content-length": "x"})
        assert request.content_length == 0
