"""Shared fixtures for drawbot tests.

Provides a mock plotter speaking the line protocol over TCP on localhost,
a config pointing at it with short timeouts, and an observer that records
every event.
"""

from __future__ import annotations

import dataclasses
import socket
import threading
from typing import Any

import pytest

from drawbot.configs.loader import DrawbotConfig, load_config
from drawbot.hardware.events import Progress, SessionObserver


# ---------------------------------------------------------------------------
# Mock plotter
# ---------------------------------------------------------------------------


class MockRobotServer:
    """Minimal mock of the plotter's TCP command server.

    Accepts one connection at a time and answers each line:

        BATCH_START        -> BATCH_MODE_READY
        BATCH_COMMAND:...  -> CMD_ADDED
        BATCH_END          -> BATCH_PROCESSING
        BATCH_STATUS       -> STATUS: running  (``status_polls`` times)
                              then BATCH_COMPLETE
        anything else      -> OK

    ``silent`` lines get no reply, ``reject`` lines get ``ERROR: ...`` and
    ``replies`` overrides the reply for lines starting with a prefix.
    """

    def __init__(self) -> None:
        self._server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._server.bind(("127.0.0.1", 0))
        self._server.listen(1)
        self._server.settimeout(0.2)
        self.port: int = self._server.getsockname()[1]

        self._conn: socket.socket | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._lock = threading.Lock()

        self.lines: list[str] = []
        self.silent: set[str] = set()
        self.reject: set[str] = set()
        self.replies: dict[str, str] = {}
        self.status_polls = 0
        self.never_complete = False
        self.close_after: int | None = None
        self._polls_left = 0

    def start(self) -> None:
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._server.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            conn.settimeout(0.2)
            self._conn = conn
            self._handle_connection(conn)

    def _handle_connection(self, conn: socket.socket) -> None:
        buf = b""
        while not self._stop.is_set():
            try:
                data = conn.recv(4096)
            except socket.timeout:
                continue
            except OSError:
                break
            if not data:
                break
            buf += data
            while b"\n" in buf:
                raw, buf = buf.split(b"\n", 1)
                line = raw.decode("utf-8").strip()
                with self._lock:
                    self.lines.append(line)
                    count = len(self.lines)
                if self.close_after is not None and count >= self.close_after:
                    self.close_client_connection()
                    return
                reply = self._reply_for(line)
                if reply is not None:
                    try:
                        conn.sendall(f"{reply}\n".encode("utf-8"))
                    except OSError:
                        return

    def _reply_for(self, line: str) -> str | None:
        if line in self.silent:
            return None
        if line in self.reject:
            return f"ERROR: rejected {line}"
        for prefix, reply in self.replies.items():
            if line.startswith(prefix):
                return reply
        if line == "BATCH_START":
            return "BATCH_MODE_READY"
        if line.startswith("BATCH_COMMAND:"):
            return "CMD_ADDED"
        if line == "BATCH_END":
            self._polls_left = self.status_polls
            return "BATCH_PROCESSING"
        if line == "BATCH_STATUS":
            if self.never_complete or self._polls_left > 0:
                self._polls_left -= 1
                return "STATUS: running"
            return "BATCH_COMPLETE"
        return "OK"

    def send(self, line: str) -> None:
        """Push an unsolicited line to the connected client."""
        if self._conn is not None:
            self._conn.sendall(f"{line}\n".encode("utf-8"))

    def count(self, prefix: str) -> int:
        with self._lock:
            return sum(1 for line in self.lines if line.startswith(prefix))

    def close_client_connection(self) -> None:
        """Drop the client connection to simulate a device reset."""
        conn, self._conn = self._conn, None
        if conn is not None:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()

    def stop(self) -> None:
        self._stop.set()
        self.close_client_connection()
        self._server.close()
        if self._thread:
            self._thread.join(timeout=3.0)


# ---------------------------------------------------------------------------
# Recording observer
# ---------------------------------------------------------------------------


class RecordingObserver(SessionObserver):
    """Collects events as ``(name, *args)`` tuples."""

    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []
        self.finished = threading.Event()
        self._lock = threading.Lock()

    def _record(self, *event: Any) -> None:
        with self._lock:
            self.events.append(event)

    def names(self, *, include_responses: bool = False) -> list[str]:
        with self._lock:
            return [
                e[0] for e in self.events
                if include_responses or e[0] != "response"
            ]

    def of(self, name: str) -> list[tuple[Any, ...]]:
        with self._lock:
            return [e for e in self.events if e[0] == name]

    def on_connection_status(self, connected: bool) -> None:
        self._record("connection", connected)

    def on_progress(self, progress: Progress) -> None:
        self._record("progress", progress)

    def on_response(self, line: str) -> None:
        self._record("response", line)

    def on_status(self, message: str) -> None:
        self._record("status", message)

    def on_drawing_complete(self) -> None:
        self._record("complete")
        self.finished.set()

    def on_drawing_stopped(self) -> None:
        self._record("stopped")
        self.finished.set()

    def on_error(self, message: str) -> None:
        self._record("error", message)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_server():
    """Provide a running mock plotter."""
    server = MockRobotServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture()
def config(mock_server: MockRobotServer) -> DrawbotConfig:
    """Shipped config pointed at the mock plotter with short timeouts."""
    cfg = load_config()
    return dataclasses.replace(
        cfg,
        connection=dataclasses.replace(
            cfg.connection,
            host="127.0.0.1",
            port=mock_server.port,
            connect_timeout_s=1.0,
            command_timeout_s=0.5,
            connect_attempts=1,
            connect_interval_s=0.01,
        ),
        streaming=dataclasses.replace(
            cfg.streaming,
            batch_threshold=10,
            chunk_size=4,
            completion_timeout_s=2.0,
            poll_interval_s=0.02,
        ),
    )


@pytest.fixture()
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture()
def free_port() -> int:
    """A localhost port with nothing listening on it."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
