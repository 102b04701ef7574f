"""Shared fixtures for the listener tests.

Provides a session registry, settings, a gate, and a factory that spins
up a ConnectionListener in a background thread on an OS-assigned port.
"""
from __future__ import annotations

import socket
import threading

import pytest

from sitegate_lite.http.message import Response
from sitegate_lite.security.gate import AccessGate, hash_password
from sitegate_lite.server.listener import ConnectionListener
from sitegate_lite.session import SessionManager
from sitegate_lite.settings import SettingStore


class RecordingHandler:
    """Handler that records every request and answers with a fixed response."""

    def __init__(self, response: Response | None = None) -> None:
        self.response = response or Response.text("hello")
        self.requests = []
        self._lock = threading.Lock()

    def handle(self, request):
        with self._lock:
            self.requests.append(request)
        return self.response

    @property
    def calls(self) -> int:
        with self._lock:
            return len(self.requests)


@pytest.fixture()
def sessions() -> SessionManager:
    return SessionManager()


@pytest.fixture()
def settings() -> SettingStore:
    return SettingStore(password_digest=hash_password("pw"), allow_remote=False)


@pytest.fixture()
def gate(sessions, settings) -> AccessGate:
    return AccessGate(sessions, settings)


@pytest.fixture()
def session_id(sessions) -> str:
    return sessions.create("127.0.0.1").session_id


@pytest.fixture()
def listener_factory(gate):
    """Factory that starts a ConnectionListener in a background thread.

    Returns a callable taking (handler, read_timeout) and returning
    (listener, (host, port)). Listeners are stopped after the test.
    """
    started: list[tuple[ConnectionListener, threading.Thread]] = []

    def _create(handler, read_timeout: float = 2.0):
        listener = ConnectionListener(gate, host="127.0.0.1", read_timeout=read_timeout)
        t = threading.Thread(target=listener.start, args=(0, handler), daemon=True)
        t.start()
        assert listener.wait_ready(timeout=5.0)
        started.append((listener, t))
        return listener, listener.address

    yield _create

    for listener, t in started:
        listener.stop()
        t.join(timeout=5.0)


def send_raw(host: str, port: int, data: bytes, timeout: float = 5.0) -> bytes:
    """Send raw bytes on a fresh connection and read until the server closes."""
    sock = socket.create_connection((host, port), timeout=timeout)
    try:
        sock.sendall(data)
        chunks = []
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)
    finally:
        sock.close()


def get_request(path: str, session_id: str | None = None) -> bytes:
    lines = [f"GET {path} HTTP/1.1", "Host: localhost"]
    if session_id:
        lines.append(f"Cookie: sid={session_id}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")


def status_of(raw_response: bytes) -> int:
    return int(raw_response.split(b" ", 2)[1])


def body_of(raw_response: bytes) -> bytes:
    return raw_response.split(b"\r\n\r\n", 1)[1]
