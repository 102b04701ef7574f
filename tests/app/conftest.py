"""Shared fixtures for the admin application tests.

Builds a small document root on disk and the collaborators the
application shares with the gate.
"""
from __future__ import annotations

import pytest

from sitegate_lite.app import AdminApplication
from sitegate_lite.http.message import Headers, Request
from sitegate_lite.session import SessionManager
from sitegate_lite.settings import SettingStore

ADMIN_PASSWORD = "letmein"


@pytest.fixture()
def docroot(tmp_path):
    root = tmp_path / "www"
    (root / "static").mkdir(parents=True)
    (root / "index.html").write_text("<h1>Sitemap admin</h1>")
    (root / "static" / "index.html").write_text("<p>static index</p>")
    (root / "static" / "style.css").write_text("body{}")
    (tmp_path / "secret.txt").write_text("top secret")
    return root


@pytest.fixture()
def sessions() -> SessionManager:
    return SessionManager()


@pytest.fixture()
def settings() -> SettingStore:
    store = SettingStore()
    store.set_password(ADMIN_PASSWORD)
    return store


@pytest.fixture()
def app(settings, sessions, docroot) -> AdminApplication:
    return AdminApplication(settings, sessions, docroot)


def build_request(
    target: str,
    method: str = "GET",
    cookie: str | None = None,
    form: str | None = None,
) -> Request:
    headers = []
    if cookie:
        headers.append(("Cookie", cookie))
    body = b""
    if form is not None:
        headers.append(("Content-Type", "application/x-www-form-urlencoded"))
        body = form.encode("utf-8")
    return Request(
        method=method,
        target=target,
        headers=Headers(headers),
        remote_addr="127.0.0.1",
        body=body,
    )
