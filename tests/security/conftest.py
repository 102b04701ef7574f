"""Shared fixtures for the security tests.

Requests are built directly (no socket) since every gate predicate is a
pure function of the Request and its collaborators.
"""
from __future__ import annotations

import pytest

from sitegate_lite.http.message import Headers, Request
from sitegate_lite.security.gate import AccessGate, hash_password
from sitegate_lite.session import SessionManager
from sitegate_lite.settings import SettingStore

PASSWORD = "s3cret-admin"


def make_request(
    target: str = "/",
    remote_addr: str = "127.0.0.1",
    method: str = "GET",
    headers: list[tuple[str, str]] | None = None,
    body: bytes = b"",
) -> Request:
    return Request(
        method=method,
        target=target,
        headers=Headers(headers or []),
        remote_addr=remote_addr,
        body=body,
    )


def form_request(fields: str, remote_addr: str = "127.0.0.1", target: str = "/chpasswd") -> Request:
    return make_request(
        target=target,
        remote_addr=remote_addr,
        method="POST",
        headers=[("Content-Type", "application/x-www-form-urlencoded")],
        body=fields.encode("utf-8"),
    )


@pytest.fixture()
def sessions() -> SessionManager:
    return SessionManager()


@pytest.fixture()
def settings() -> SettingStore:
    return SettingStore(password_digest=hash_password(PASSWORD), allow_remote=False)


@pytest.fixture()
def gate(sessions, settings) -> AccessGate:
    return AccessGate(sessions, settings)
