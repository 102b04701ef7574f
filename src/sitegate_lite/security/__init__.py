"""Security layer: request gating and session-token generation.

Public API:
    Gate predicates: security_check, check_ip, check_path, verify_passwd
    Password storage: hash_password, check_password
    AccessGate: per-request verdict for the listener
    Token generation: generate_simple_random_id, generate_random_id
"""
from sitegate_lite.security.gate import (
    AccessGate,
    GateDecision,
    GateResult,
    check_ip,
    check_password,
    check_path,
    hash_password,
    security_check,
    verify_passwd,
)
from sitegate_lite.security.random_id import (
    generate_random_id,
    generate_simple_random_id,
)

__all__ = [
    "AccessGate",
    "GateDecision",
    "GateResult",
    "check_ip",
    "check_password",
    "check_path",
    "hash_password",
    "security_check",
    "verify_passwd",
    "generate_random_id",
    "generate_simple_random_id",
]
