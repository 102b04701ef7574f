"""Minimal HTTP/1.x wire codec for the admin front end.

Request format:
    request line:  METHOD SP TARGET SP HTTP/x.y CRLF
    header lines:  Name: value CRLF   (repeated)
    blank line:    CRLF
    body:          exactly Content-Length bytes (absent -> empty)

Only what the admin pages need is supported. There is no keep-alive:
one request, one response, then the connection is closed. Chunked
transfer encoding is refused with 501.

Every parse failure raises ProtocolError carrying the status code the
listener should answer with, so the caller never has to guess.
"""
from __future__ import annotations

import socket
from http import HTTPStatus

from sitegate_lite.http.message import Headers, Request, Response

MAX_HEADER_BYTES = 64 * 1024         # request line + headers
MAX_BODY_BYTES = 1024 * 1024         # 1 MB safety limit
RECV_CHUNK = 4096
HEADER_TERMINATOR = b"\r\n\r\n"
ALLOWED_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "DELETE", "OPTIONS"})


class ProtocolError(Exception):
    """Malformed or unsupported request; status is the reply to send."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


def _recv_head(sock: socket.socket) -> tuple[bytes, bytes]:
    """Read until the blank line that ends the headers.

    Returns (head, leftover) where leftover is whatever body bytes
    arrived in the same recv() calls.

    Raises:
        ConnectionError: if the peer closes before sending anything
        ProtocolError: on a truncated or oversized head
    """
    buf = bytearray()
    while True:
        idx = buf.find(HEADER_TERMINATOR)
        if idx >= 0:
            return bytes(buf[:idx]), bytes(buf[idx + len(HEADER_TERMINATOR):])
        if len(buf) > MAX_HEADER_BYTES:
            raise ProtocolError(
                HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE,
                f"Request head exceeds {MAX_HEADER_BYTES} bytes",
            )
        chunk = sock.recv(RECV_CHUNK)
        if not chunk:
            if not buf:
                raise ConnectionError("Client closed without sending a request")
            raise ProtocolError(HTTPStatus.BAD_REQUEST, "Truncated request head")
        buf += chunk


def _recv_exactly(sock: socket.socket, n: int) -> bytes:
    """Read exactly n bytes from a socket, or raise ProtocolError."""
    chunks: list[bytes] = []
    remaining = n
    while remaining > 0:
        chunk = sock.recv(min(remaining, RECV_CHUNK))
        if not chunk:
            raise ProtocolError(
                HTTPStatus.BAD_REQUEST,
                f"Socket closed with {remaining} body bytes still expected",
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def parse_head(head: bytes) -> tuple[str, str, str, Headers]:
    """Split a raw request head into (method, target, version, headers)."""
    text = head.decode("latin-1")
    request_line, *header_lines = text.split("\r\n")
    parts = request_line.split(" ")
    if len(parts) != 3:
        raise ProtocolError(HTTPStatus.BAD_REQUEST, f"Bad request line: {request_line!r}")
    method, target, version = parts
    if method not in ALLOWED_METHODS:
        raise ProtocolError(HTTPStatus.NOT_IMPLEMENTED, f"Unsupported method {method!r}")
    if not version.startswith("HTTP/1."):
        raise ProtocolError(HTTPStatus.HTTP_VERSION_NOT_SUPPORTED, f"Unsupported version {version!r}")
    if not target.startswith("/"):
        raise ProtocolError(HTTPStatus.BAD_REQUEST, f"Bad request target {target!r}")

    pairs: list[tuple[str, str]] = []
    for line in header_lines:
        name, sep, value = line.partition(":")
        if not sep or not name or name != name.strip():
            raise ProtocolError(HTTPStatus.BAD_REQUEST, f"Bad header line: {line!r}")
        pairs.append((name, value.strip()))
    return method, target, version, Headers(pairs)


def _content_length(headers: Headers) -> int:
    raw = headers.get("Content-Length")
    if raw is None:
        return 0
    if not (raw.isascii() and raw.isdigit()):
        raise ProtocolError(HTTPStatus.BAD_REQUEST, f"Bad Content-Length {raw!r}")
    length = int(raw)
    if length > MAX_BODY_BYTES:
        raise ProtocolError(
            HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
            f"Body size {length} exceeds limit {MAX_BODY_BYTES}",
        )
    return length


def read_request(sock: socket.socket, remote_addr: str) -> Request:
    """Read and parse one HTTP request from a socket.

    Steps:
        1. Read up to the blank line -> request line + headers
        2. Validate the request line and each header line
        3. Read exactly Content-Length body bytes (some may already be buffered)

    Raises:
        ConnectionError: if the client disconnects before sending anything
        ProtocolError: on malformed, oversized or unsupported input
        socket.timeout: if the client stalls past the socket timeout
    """
    head, leftover = _recv_head(sock)
    method, target, version, headers = parse_head(head)

    if "chunked" in headers.get("Transfer-Encoding", "").lower():
        raise ProtocolError(HTTPStatus.NOT_IMPLEMENTED, "Chunked transfer encoding not supported")

    length = _content_length(headers)
    body = leftover[:length]
    if len(body) < length:
        body += _recv_exactly(sock, length - len(body))

    return Request(
        method=method,
        target=target,
        headers=headers,
        remote_addr=remote_addr,
        body=body,
        version=version,
    )


def write_response(sock: socket.socket, response: Response) -> None:
    """Serialize a response and send it in one sendall call.

    HEAD responses keep their headers (including Content-Length) but
    the caller is expected to have left the body empty.
    """
    sock.sendall(response.to_bytes())
