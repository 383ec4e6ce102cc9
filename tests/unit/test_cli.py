"""
Unit tests for the demo CLI application.
"""

import json
import socket

import pytest

from wayline.__main__ import build_app, main
from wayline.config import ServerConfig
from wayline.http.request import HTTPRequest


@pytest.fixture
def app():
    return build_app(ServerConfig(port=0))


class TestDemoRoutes:
    """The demo routes, driven through dispatch()."""

    def test_hello_default(self, app):
        response = app.dispatch(HTTPRequest(method="GET", path="/hello"))
        assert json.loads(response.body) == {"message": "hello, world"}

    def test_hello_name(self, app):
        response = app.dispatch(
            HTTPRequest(method="GET", path="/hello", query_params={"name": ["ada"]})
        )
        assert json.loads(response.body) == {"message": "hello, ada"}

    def test_echo(self, app):
        response = app.dispatch(HTTPRequest(method="POST", path="/echo", body=b'{"x": 1}'))

        assert response.status == 200
        assert json.loads(response.body) == {"x": 1}

    def test_echo_rejects_non_objects(self, app):
        response = app.dispatch(HTTPRequest(method="POST", path="/echo", body=b"[1]"))

        assert response.status == 400
        assert json.loads(response.body)["error"].startswith("expected a JSON object")

    def test_health(self, app):
        response = app.dispatch(HTTPRequest(method="GET", path="/health"))
        payload = json.loads(response.body)

        assert payload["status"] == "ok"
        assert payload["state"] == "created"
        assert "pool" in payload


class TestMain:
    """Exit codes."""

    def test_bind_failure_exits_1(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        port = blocker.getsockname()[1]

        try:
            assert main(["--host", "127.0.0.1", "--port", str(port)]) == 1
        finally:
            blocker.close()

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert "wayline 1.0.0" in capsys.readouterr().out
