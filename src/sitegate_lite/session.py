"""Session registry: which session ids are live, and for which client.

The gate only ever asks one question of a registry: is this id valid
for this remote address? SessionRegistry captures that as a Protocol so
tests (and embedding applications) can plug in their own store.

SessionManager is the in-memory implementation the CLI uses. One
threading.Lock around the dict, same shape as a coarse-lock store:
sessions are few and lookups are short, so contention is not a concern.
Sessions are never mutated after creation; expiry and logout remove them.
"""
from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from sitegate_lite.security.random_id import generate_random_id

DEFAULT_TTL_SECONDS = 24 * 60 * 60  # one day, same as the admin page cookie


class SessionRegistry(Protocol):
    def is_valid(self, session_id: str, remote_addr: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class Session:
    session_id: str
    remote_addr: str
    created_at: float  # Unix epoch seconds


class SessionManager:
    """Thread-safe in-memory session registry.

    Args:
        ttl: Seconds a session stays valid after creation.
        clock: Time source, injectable for tests.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self, remote_addr: str) -> Session:
        """Mint a session bound to remote_addr with a strong random id."""
        session = Session(
            session_id=generate_random_id(remote_addr),
            remote_addr=remote_addr,
            created_at=self._clock(),
        )
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> Session | None:
        """Return the live session for session_id, dropping it if expired."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and self._expired(session):
                del self._sessions[session_id]
                return None
            return session

    def is_valid(self, session_id: str, remote_addr: str) -> bool:
        session = self.get(session_id)
        return session is not None and session.remote_addr == remote_addr

    def remove(self, session_id: str) -> bool:
        """Remove a session. Returns True if it existed."""
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def purge_expired(self) -> int:
        """Drop every expired session. Returns how many were removed."""
        with self._lock:
            stale = [sid for sid, s in self._sessions.items() if self._expired(s)]
            for sid in stale:
                del self._sessions[sid]
            return len(stale)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _expired(self, session: Session) -> bool:
        return self._clock() - session.created_at >= self._ttl
