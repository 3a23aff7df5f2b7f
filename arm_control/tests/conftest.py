"""Shared fixtures: a mock Lebai JSON-RPC server and a fast config."""

from __future__ import annotations

import json
import socket
import threading
import time
from dataclasses import replace
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

import pytest

from arm_control.configs.loader import RobotConfig, load_config
from arm_control.hardware.lebai_client import Endpoint


# ---------------------------------------------------------------------------
# Mock HTTP server
# ---------------------------------------------------------------------------


class _Handler(BaseHTTPRequestHandler):
    server: "_Server"

    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(length).decode("utf-8")
        request = json.loads(body)
        status, payload = self.server.owner.handle(request)
        data = payload if isinstance(payload, bytes) else payload.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def log_message(self, format: str, *args: Any) -> None:
        pass


class _Server(ThreadingHTTPServer):
    daemon_threads = True
    owner: "MockLebaiServer"


class MockLebaiServer:
    """Minimal mock of the Lebai controller's JSON-RPC endpoint.

    ``responses`` maps method -> result (or a callable taking the
    request and returning the result).  ``errors`` makes a method
    answer with a JSON-RPC error, ``http_errors`` with an HTTP status,
    ``raw`` with a literal body.  ``delays`` sleeps before answering.
    """

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.responses: dict[str, Any] = {
            "get_robot_state": "IDLE",
            "get_kin_data": {"actual_joint_pose": [0.0] * 6},
        }
        self.errors: dict[str, str] = {}
        self.http_errors: dict[str, int] = {}
        self.raw: dict[str, str | bytes] = {}
        self.delays: dict[str, float] = {}
        self._lock = threading.Lock()

        self._httpd = _Server(("127.0.0.1", 0), _Handler)
        self._httpd.owner = self
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        return self._httpd.server_address[1]

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint("127.0.0.1", self.port)

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._httpd.serve_forever, kwargs={"poll_interval": 0.05},
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread:
            self._thread.join(timeout=3.0)

    def handle(self, request: dict[str, Any]) -> tuple[int, str | bytes]:
        method = request.get("method", "")
        with self._lock:
            self.requests.append(request)

        delay = self.delays.get(method)
        if delay:
            time.sleep(delay)

        if method in self.http_errors:
            return self.http_errors[method], ""
        if method in self.raw:
            return 200, self.raw[method]
        if method in self.errors:
            reply = {
                "jsonrpc": "2.0",
                "id": request.get("id"),
                "error": {"code": -32000, "message": self.errors[method]},
            }
            return 200, json.dumps(reply)

        result = self.responses.get(method, {})
        if callable(result):
            result = result(request)
        reply = {"jsonrpc": "2.0", "id": request.get("id"), "result": result}
        return 200, json.dumps(reply)

    # -- Inspection helpers -------------------------------------------------

    def methods(self, exclude: tuple[str, ...] = ()) -> list[str]:
        with self._lock:
            return [r["method"] for r in self.requests if r["method"] not in exclude]

    def params(self, method: str) -> list[dict[str, Any]]:
        with self._lock:
            return [r["params"][0] for r in self.requests if r["method"] == method]

    def reset(self) -> None:
        with self._lock:
            self.requests.clear()


class RawReplyServer:
    """TCP listener that answers every connection with fixed bytes.

    Used for replies no HTTP server would produce (bad status line).
    """

    def __init__(self, reply: bytes) -> None:
        self.reply = reply
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(5)
        self._sock.settimeout(0.1)
        self._running = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint("127.0.0.1", self._sock.getsockname()[1])

    def start(self) -> None:
        self._running.set()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._running.clear()
        if self._thread:
            self._thread.join(timeout=3.0)
        self._sock.close()

    def _serve(self) -> None:
        while self._running.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            with conn:
                conn.settimeout(1.0)
                try:
                    conn.recv(65536)
                    conn.sendall(self.reply)
                except OSError:
                    pass


@pytest.fixture()
def mock_server():
    """Provide a running mock Lebai controller."""
    server = MockLebaiServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture()
def garbage_server():
    """Listener that replies with bytes that are not HTTP."""
    server = RawReplyServer(b"garbage not http\r\n\r\n")
    server.start()
    yield server
    server.stop()


@pytest.fixture()
def config() -> RobotConfig:
    """Shipped ``robot.yaml`` with timings shortened for tests."""
    cfg = load_config()
    return replace(
        cfg,
        connection=replace(cfg.connection, timeout_s=2.0),
        idle_wait=replace(cfg.idle_wait, max_wait_ms=300, poll_interval_ms=10),
        home=replace(cfg.home, move_time_s=0.5),
        teaching=replace(cfg.teaching, completion_hold_s=0.0),
    )
