"""HTTP message model and the wire codec that reads/writes it."""
from sitegate_lite.http.message import SESSION_COOKIE, Headers, Request, Response
from sitegate_lite.http.protocol import (
    MAX_BODY_BYTES,
    MAX_HEADER_BYTES,
    ProtocolError,
    read_request,
    write_response,
)

__all__ = [
    "SESSION_COOKIE",
    "Headers",
    "Request",
    "Response",
    "MAX_BODY_BYTES",
    "MAX_HEADER_BYTES",
    "ProtocolError",
    "read_request",
    "write_response",
]
