"""Access gate: the security decisions made before a request is dispatched.

The module-level functions are pure predicates over a Request and the
collaborators passed in. They hold no state, so the listener can call
them from any thread.

AccessGate bundles a session registry and a settings store and turns
the predicates into a single per-request verdict for the listener:

  1. check_path    -- reject any '..' segment, after decoding
  2. security_check -- loopback (or remote allowed) AND a valid session
  3. On failure, re-run check_ip to tell 403 (address) from 401 (session)

Every denial is logged on the "sitegate_lite.audit" logger so an
operator can see who was turned away and why.
"""
from __future__ import annotations

import hashlib
import hmac
import ipaddress
import logging
import os
from dataclasses import dataclass
from enum import Enum, auto
from http import HTTPStatus
from typing import TYPE_CHECKING
from urllib.parse import unquote

if TYPE_CHECKING:
    from sitegate_lite.http.message import Request
    from sitegate_lite.session import SessionRegistry
    from sitegate_lite.settings import SettingsStore

audit_log = logging.getLogger("sitegate_lite.audit")

PASSWORD_PARAM = "password"
MAX_DECODE_ROUNDS = 8  # %252e%252e -> %2e%2e -> .. takes two
HASH_SCHEME = "pbkdf2_sha256"
PBKDF2_ITERATIONS = 200_000
MAX_PBKDF2_ITERATIONS = 10_000_000  # refuse stored values that would stall the loop
SALT_BYTES = 16


class GateDecision(Enum):
    ALLOW = auto()
    DENY_PATH = auto()
    DENY_ADDRESS = auto()
    DENY_SESSION = auto()

    @property
    def status(self) -> int:
        """HTTP status the listener answers with."""
        return _DECISION_STATUS[self]

    def is_permitted(self) -> bool:
        """Returns True only for ALLOW."""
        return self is GateDecision.ALLOW


_DECISION_STATUS: dict[GateDecision, int] = {
    GateDecision.ALLOW: HTTPStatus.OK,
    GateDecision.DENY_PATH: HTTPStatus.FORBIDDEN,
    GateDecision.DENY_ADDRESS: HTTPStatus.FORBIDDEN,
    GateDecision.DENY_SESSION: HTTPStatus.UNAUTHORIZED,
}


@dataclass(frozen=True, slots=True)
class GateResult:
    decision: GateDecision
    reason: str


def hash_password(password: str, salt: bytes | None = None, iterations: int = PBKDF2_ITERATIONS) -> str:
    """Stored form of the admin password.

    Salted PBKDF2-HMAC-SHA256, encoded as
    "pbkdf2_sha256$<iterations>$<salt hex>$<hash hex>". A fresh random
    salt is drawn unless one is given.
    """
    if salt is None:
        salt = os.urandom(SALT_BYTES)
    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return f"{HASH_SCHEME}${iterations}${salt.hex()}${derived.hex()}"


def check_password(password: str, stored: str) -> bool:
    """True iff password matches a value produced by hash_password.

    A malformed stored value never matches.
    """
    try:
        scheme, iterations, salt_hex, _ = stored.split("$")
        rounds = int(iterations)
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    if scheme != HASH_SCHEME or not 0 < rounds <= MAX_PBKDF2_ITERATIONS:
        return False
    candidate = hash_password(password, salt=salt, iterations=rounds)
    return hmac.compare_digest(candidate.encode(), stored.encode("utf-8"))


def is_loopback(addr: str) -> bool:
    """True for loopback addresses, IPv4-mapped IPv6 ones included."""
    try:
        ip = ipaddress.ip_address(addr.split("%", 1)[0])  # drop IPv6 zone id
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return ip.is_loopback


def check_ip(request: Request, allow_remote: bool) -> bool:
    """True if the request comes from loopback, or remote access is enabled."""
    return allow_remote or is_loopback(request.remote_addr)


def _normalize_path(path: str) -> str | None:
    """Percent-decode until stable. None if it never settles."""
    for _ in range(MAX_DECODE_ROUNDS):
        decoded = unquote(path)
        if decoded == path:
            return decoded.replace("\\", "/")
        path = decoded
    return None


def check_path(request: Request) -> bool:
    """True iff the decoded request path has no parent-directory segment.

    Catches '../', '/..', '..\\', '%2e%2e/', '%252e%252e%252f' and the
    like. A NUL byte anywhere in the path is also rejected.
    """
    path = _normalize_path(request.path)
    if path is None or "\x00" in path:
        return False
    return all(segment.strip() != ".." for segment in path.split("/"))


def verify_passwd(request: Request, settings: SettingsStore) -> bool:
    """Check the submitted password against the stored digest.

    The stored value is a salted PBKDF2 hash; the final comparison uses
    hmac.compare_digest so its time does not depend on matching prefixes.
    """
    expected = settings.password_digest
    submitted = request.params.get(PASSWORD_PARAM)
    if not expected or submitted is None:
        return False
    return check_password(submitted, expected)


def security_check(
    request: Request,
    sessions: SessionRegistry,
    allow_remote: bool,
) -> bool:
    """True iff check_ip passes and the request's session is valid for its address."""
    if not check_ip(request, allow_remote):
        return False
    session_id = request.session_id
    if not session_id:
        return False
    return sessions.is_valid(session_id, request.remote_addr)


class AccessGate:
    """Per-request verdict built from the predicates above.

    Stateless apart from the collaborators it is handed: the session
    registry and the settings store are only ever read here.

    Usage:
        gate = AccessGate(sessions, settings)
        result = gate.evaluate(request)
    """

    def __init__(self, sessions: SessionRegistry, settings: SettingsStore) -> None:
        self._sessions = sessions
        self._settings = settings

    @property
    def sessions(self) -> SessionRegistry:
        return self._sessions

    @property
    def settings(self) -> SettingsStore:
        return self._settings

    def evaluate(self, request: Request) -> GateResult:
        allow_remote = self._settings.allow_remote
        if not check_path(request):
            result = GateResult(GateDecision.DENY_PATH, f"Path traversal attempt: {request.path!r}")
        elif security_check(request, self._sessions, allow_remote):
            return GateResult(GateDecision.ALLOW, "ok")
        elif not check_ip(request, allow_remote):
            result = GateResult(GateDecision.DENY_ADDRESS, "Remote access is disabled")
        elif request.session_id is None:
            result = GateResult(GateDecision.DENY_SESSION, "Missing session id")
        else:
            result = GateResult(GateDecision.DENY_SESSION, "Invalid or expired session id")

        audit_log.warning(
            "Denied %s %s from %s: %s",
            request.method, request.path, request.remote_addr, result.reason,
        )
        return result
