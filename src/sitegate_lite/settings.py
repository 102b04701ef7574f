"""Settings the gate consults: the admin password digest and remote access.

Loading these from disk is the embedding application's job. SettingStore
is the in-memory holder the CLI and the admin application share; the
password can be changed at runtime, so reads and writes go through a lock.
"""
from __future__ import annotations

import threading
from typing import Protocol

from sitegate_lite.security.gate import hash_password


class SettingsStore(Protocol):
    @property
    def password_digest(self) -> str: ...

    @property
    def allow_remote(self) -> bool: ...


class SettingStore:
    """Thread-safe settings holder.

    Args:
        password_digest: hash_password() output, "" means no password set.
        allow_remote: Accept requests from non-loopback addresses.
    """

    def __init__(self, password_digest: str = "", allow_remote: bool = False) -> None:
        self._password_digest = password_digest
        self._allow_remote = allow_remote
        self._lock = threading.Lock()

    @property
    def password_digest(self) -> str:
        with self._lock:
            return self._password_digest

    @property
    def allow_remote(self) -> bool:
        with self._lock:
            return self._allow_remote

    def set_password(self, password: str) -> None:
        """Replace the stored password with a freshly salted hash of password."""
        digest = hash_password(password)
        with self._lock:
            self._password_digest = digest
