"""Local HTTP listener that ingests Game State Integration pushes."""
from __future__ import annotations

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, Optional

from . import LOGGER_NAME
from .game_state import NormalizedState, SnapshotParseError, normalize, parse_snapshot

_LOGGER = logging.getLogger(f"{LOGGER_NAME}.GSIServer")

MAX_BODY_BYTES = 1024 * 1024
REQUEST_TIMEOUT = 5.0
StateHandler = Callable[[NormalizedState], Any]


class _GSIHTTPServer(ThreadingHTTPServer):
    allow_reuse_address = True
    # Non-daemon handler threads let server_close() wait for in-flight requests.
    daemon_threads = False
    block_on_close = True

    def __init__(self, server_address, RequestHandlerClass) -> None:  # type: ignore[override]
        super().__init__(server_address, RequestHandlerClass)
        self.state_handler: Optional[StateHandler] = None
        self.max_body_bytes = MAX_BODY_BYTES


class _GSIRequestHandler(BaseHTTPRequestHandler):
    server_version = "CS2RichPresence"
    timeout = REQUEST_TIMEOUT

    def do_POST(self) -> None:  # noqa: N802 - http.server naming
        if self.path.split("?", 1)[0] != "/":
            self._send_json(404, {"error": "Not found"})
            return
        try:
            self._handle_push()
        except Exception:
            _LOGGER.exception("Error processing HTTP request")
            self._send_json(500, {"error": "Internal server error"})

    def do_GET(self) -> None:  # noqa: N802
        self._send_json(404, {"error": "Not found"})

    do_HEAD = do_GET
    do_PUT = do_GET
    do_DELETE = do_GET
    do_PATCH = do_GET
    do_OPTIONS = do_GET

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002 - http.server signature
        _LOGGER.debug("%s - %s", self.address_string(), format % args)

    def _handle_push(self) -> None:
        server: _GSIHTTPServer = self.server  # type: ignore[assignment]
        raw_length = self.headers.get("Content-Length")
        try:
            length = int(raw_length) if raw_length is not None else 0
        except ValueError:
            self._send_json(400, {"error": "Invalid Content-Length header"})
            return
        if length < 0:
            self._send_json(400, {"error": "Invalid Content-Length header"})
            return
        if length > server.max_body_bytes:
            _LOGGER.warning("Rejected game state push of %d bytes (limit %d)", length, server.max_body_bytes)
            self.close_connection = True
            self._send_json(413, {"error": "Request body too large"})
            return
        body = self.rfile.read(length) if length else b""
        if len(body) < length:
            self._send_json(400, {"error": "Incomplete request body"})
            return

        try:
            snapshot = parse_snapshot(body)
        except SnapshotParseError as exc:
            _LOGGER.warning("Error parsing game state JSON: %s", exc)
            self._send_json(400, {"error": str(exc)})
            return
        _LOGGER.debug("Received game state JSON: %s", body.decode("utf-8", errors="replace"))

        handler = server.state_handler
        if handler is not None:
            handler(normalize(snapshot))
        self._send_json(200, {"success": True})

    def _send_json(self, status: int, payload: Dict[str, Any]) -> None:
        data = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(data)


class GameStateServer:
    """HTTP server that feeds normalized snapshots to ``handler``.

    ``stop()`` stops accepting, waits for in-flight requests and releases the
    socket; calling ``start()`` again performs a fresh bind. A fault in the
    accept loop is logged and leaves the server stopped.
    """

    def __init__(self, host: str, port: int, handler: StateHandler) -> None:
        self._host = host
        self._port = port
        self._handler = handler
        self._server: Optional[_GSIHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def port(self) -> int:
        server = self._server
        if server is not None:
            return server.server_address[1]
        return self._port

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self.port}/"

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> bool:
        with self._lock:
            if self._server is not None:
                return True
            try:
                server = _GSIHTTPServer((self._host, self._port), _GSIRequestHandler)
            except OSError as exc:
                _LOGGER.error("Game state server unavailable on %s:%s (%s)", self._host, self._port, exc)
                return False
            server.state_handler = self._handler
            thread = threading.Thread(target=self._serve, args=(server,), name="CS2Presence-GSIServer", daemon=True)
            self._server = server
            self._thread = thread
            thread.start()
        _LOGGER.info("HTTP server started at %s", self.url)
        return True

    def stop(self) -> None:
        with self._lock:
            server = self._server
            thread = self._thread
            self._server = None
            self._thread = None
        if server is None:
            return
        if thread is not None and thread.is_alive():
            server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(timeout=2.0)
        _LOGGER.info("HTTP server stopped")

    def _serve(self, server: _GSIHTTPServer) -> None:
        try:
            server.serve_forever(poll_interval=0.25)
        except Exception:
            _LOGGER.exception("Game state server accept loop failed; server stopped")
            with self._lock:
                if self._server is server:
                    self._server = None
                    self._thread = None
            server.server_close()
