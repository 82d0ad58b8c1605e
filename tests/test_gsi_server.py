from __future__ import annotations

import http.client
import json
import threading

import pytest

from cs2_presence import gsi_server
from cs2_presence.gsi_server import GameStateServer


class _Recorder:
    def __init__(self, error: Exception | None = None) -> None:
        self.states = []
        self.error = error
        self.lock = threading.Lock()

    def __call__(self, state) -> None:
        if self.error is not None:
            raise self.error
        with self.lock:
            self.states.append(state)


@pytest.fixture
def running_server():
    servers = []

    def _start(handler):
        server = GameStateServer("127.0.0.1", 0, handler)
        assert server.start() is True
        servers.append(server)
        return server

    yield _start
    for server in servers:
        server.stop()


def _request(server: GameStateServer, method: str, path: str = "/", body: bytes | None = None):
    conn = http.client.HTTPConnection("127.0.0.1", server.port, timeout=5)
    try:
        headers = {"Content-Type": "application/json"} if body is not None else {}
        conn.request(method, path, body=body, headers=headers)
        response = conn.getresponse()
        payload = response.read()
        return response.status, dict(response.getheaders()), payload
    finally:
        conn.close()


def test_valid_push_reaches_handler(running_server):
    recorder = _Recorder()
    server = running_server(recorder)
    body = json.dumps({"map": {"name": "de_dust2", "mode": "casual"}, "player": {"activity": "playing"}})

    status, headers, payload = _request(server, "POST", "/", body.encode("utf-8"))

    assert status == 200
    assert json.loads(payload) == {"success": True}
    assert headers["Access-Control-Allow-Origin"] == "*"
    assert len(recorder.states) == 1
    assert recorder.states[0].current_map == "de_dust2"
    assert recorder.states[0].current_activity == "playing"


def test_malformed_json_is_rejected_without_handler(running_server):
    recorder = _Recorder()
    server = running_server(recorder)

    status, headers, payload = _request(server, "POST", "/", b"{not json")

    assert status == 400
    assert "error" in json.loads(payload)
    assert headers["Access-Control-Allow-Origin"] == "*"
    assert recorder.states == []


def test_deeply_nested_json_is_rejected_not_crashed(running_server):
    recorder = _Recorder()
    server = running_server(recorder)

    status, _headers, payload = _request(server, "POST", "/", b'{"map":' + b"[" * 100000)

    assert status == 400
    assert "nesting too deep" in json.loads(payload)["error"]
    assert recorder.states == []

    status, _headers, _payload = _request(server, "POST", "/", b"{}")
    assert status == 200


@pytest.mark.parametrize("method, path", [("GET", "/"), ("PUT", "/"), ("POST", "/state"), ("DELETE", "/x")])
def test_other_routes_return_not_found(running_server, method, path):
    recorder = _Recorder()
    server = running_server(recorder)

    status, headers, payload = _request(server, method, path, b"{}" if method != "GET" else None)

    assert status == 404
    assert json.loads(payload) == {"error": "Not found"}
    assert headers["Access-Control-Allow-Origin"] == "*"
    assert recorder.states == []


def test_oversized_body_is_rejected(running_server):
    recorder = _Recorder()
    server = running_server(recorder)
    conn = http.client.HTTPConnection("127.0.0.1", server.port, timeout=5)
    try:
        conn.putrequest("POST", "/")
        conn.putheader("Content-Length", str(gsi_server.MAX_BODY_BYTES + 1))
        conn.endheaders()
        response = conn.getresponse()
        response.read()
    finally:
        conn.close()

    assert response.status == 413
    assert recorder.states == []


def test_handler_failure_returns_500_and_server_keeps_serving(running_server):
    recorder = _Recorder(error=RuntimeError("boom"))
    server = running_server(recorder)

    status, _headers, payload = _request(server, "POST", "/", b"{}")
    assert status == 500
    assert json.loads(payload) == {"error": "Internal server error"}

    recorder.error = None
    status, _headers, _payload = _request(server, "POST", "/", b"{}")
    assert status == 200
    assert len(recorder.states) == 1


def test_stop_and_restart_rebinds(running_server):
    recorder = _Recorder()
    server = running_server(recorder)
    assert server.is_running is True

    server.stop()
    assert server.is_running is False

    assert server.start() is True
    status, _headers, _payload = _request(server, "POST", "/", b'{"map": {"name": "de_nuke"}}')
    assert status == 200
    assert recorder.states[-1].current_map == "de_nuke"


def test_bind_failure_reports_false():
    first = GameStateServer("127.0.0.1", 0, lambda state: None)
    assert first.start() is True
    try:
        second = GameStateServer("127.0.0.1", first.port, lambda state: None)
        # SO_REUSEADDR does not allow two listeners on the same port on Linux.
        assert second.start() is False
        assert second.is_running is False
    finally:
        first.stop()


def test_finished_handler_threads_are_reaped(running_server):
    recorder = _Recorder()
    server = running_server(recorder)

    for _ in range(30):
        status, _headers, _payload = _request(server, "POST", "/", b"{}")
        assert status == 200

    assert len(recorder.states) == 30
    assert len(server._server._threads) < 10
