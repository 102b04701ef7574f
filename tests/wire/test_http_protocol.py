"""Tests for the HTTP wire codec and message model.

Requests are fed through a socketpair so read_request sees real
recv() behaviour, including EOF.
"""
from __future__ import annotations

import socket
import threading

import pytest

from sitegate_lite.http.message import Headers, Request, Response
from sitegate_lite.http.protocol import (
    MAX_BODY_BYTES,
    MAX_HEADER_BYTES,
    ProtocolError,
    read_request,
    write_response,
)


def _read(raw: bytes, remote: str = "127.0.0.1") -> Request:
    server, client = socket.socketpair()
    try:
        client.sendall(raw)
        client.shutdown(socket.SHUT_WR)
        return read_request(server, remote)
    finally:
        server.close()
        client.close()


def _status_of(raw: bytes) -> int:
    with pytest.raises(ProtocolError) as exc_info:
        _read(raw)
    return exc_info.value.status


def test_simple_get():
    req = _read(b"GET /index.html?x=1 HTTP/1.1\r\nHost: localhost\r\n\r\n", "127.0.0.1")
    assert req.method == "GET"
    assert req.target == "/index.html?x=1"
    assert req.path == "/index.html"
    assert req.query == {"x": "1"}
    assert req.headers["host"] == "localhost"
    assert req.remote_addr == "127.0.0.1"
    assert req.body == b""


def test_headers_case_insensitive_last_wins():
    req = _read(
        b"GET / HTTP/1.1\r\n"
        b"X-Token: first\r\n"
        b"x-token: second\r\n"
        b"\r\n"
    )
    assert req.headers["X-TOKEN"] == "second"
    assert list(req.headers) == ["x-token"]
    assert len(req.headers) == 1


def test_body_read_by_content_length():
    body = b"password=abc&new_password=def"
    raw = (
        b"POST /chpasswd HTTP/1.1\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
        b"Content-Length: " + str(len(body)).encode() + b"\r\n\r\n" + body + b"TRAILING"
    )
    req = _read(raw)
    assert req.body == body
    assert req.form == {"password": "abc", "new_password": "def"}


def test_large_body_spans_many_recvs():
    body = b"a" * 100_000
    raw = b"POST /x HTTP/1.1\r\nContent-Length: 100000\r\n\r\n" + body
    server, client = socket.socketpair()
    try:
        # Write from another thread so the socket buffer can't fill up
        t = threading.Thread(target=client.sendall, args=(raw,))
        t.start()
        req = read_request(server, "127.0.0.1")
        t.join()
    finally:
        server.close()
        client.close()
    assert req.body == body


def test_short_body_is_bad_request():
    assert _status_of(b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc") == 400


def test_truncated_head_is_bad_request():
    assert _status_of(b"GET / HTTP/1.1\r\nHost: x") == 400


@pytest.mark.parametrize(
    "raw",
    [
        b"GARBAGE\r\n\r\n",
        b"GET /\r\n\r\n",
        b"GET  / HTTP/1.1\r\n\r\n",
        b"GET relative HTTP/1.1\r\n\r\n",
        b"GET / HTTP/1.1\r\nNoColonHere\r\n\r\n",
        b"GET / HTTP/1.1\r\n Leading: space\r\n\r\n",
        b"POST / HTTP/1.1\r\nContent-Length: -5\r\n\r\n",
        b"POST / HTTP/1.1\r\nContent-Length: ten\r\n\r\n",
        b"POST / HTTP/1.1\r\nContent-Length: \xb2\r\n\r\n",
        b"POST / HTTP/1.1\r\nContent-Length: \xd9\xa3\r\n\r\n",
    ],
)
def test_malformed_is_bad_request(raw):
    assert _status_of(raw) == 400


def test_unknown_method():
    assert _status_of(b"BREW /pot HTTP/1.1\r\n\r\n") == 501


def test_unsupported_version():
    assert _status_of(b"GET / HTTP/2.0\r\n\r\n") == 505


def test_chunked_refused():
    assert _status_of(b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n") == 501


def test_oversized_body_refused():
    raw = f"POST / HTTP/1.1\r\nContent-Length: {MAX_BODY_BYTES + 1}\r\n\r\n".encode()
    assert _status_of(raw) == 413


def test_oversized_head_refused():
    big = b"X-Pad: " + b"a" * (MAX_HEADER_BYTES + 10) + b"\r\n"
    server, client = socket.socketpair()
    try:
        t = threading.Thread(target=lambda: _send_quietly(client, b"GET / HTTP/1.1\r\n" + big))
        t.start()
        with pytest.raises(ProtocolError) as exc_info:
            read_request(server, "127.0.0.1")
    finally:
        server.close()
        t.join()
        client.close()
    assert exc_info.value.status == 431


def _send_quietly(sock: socket.socket, data: bytes) -> None:
    try:
        sock.sendall(data)
    except OSError:
        pass  # reader gave up early, which is the point


def test_empty_connection_is_connection_error():
    with pytest.raises(ConnectionError):
        _read(b"")


# ---------------------------------------------------------------------------
# Message model
# ---------------------------------------------------------------------------

def test_params_form_overrides_query():
    req = Request(
        method="POST",
        target="/x?a=1&b=2",
        headers=Headers([("Content-Type", "application/x-www-form-urlencoded; charset=utf-8")]),
        remote_addr="127.0.0.1",
        body=b"b=3",
    )
    assert req.params == {"a": "1", "b": "3"}


def test_form_ignored_for_other_content_types():
    req = Request(
        method="POST",
        target="/x",
        headers=Headers([("Content-Type", "application/json")]),
        remote_addr="127.0.0.1",
        body=b'{"password": "x"}',
    )
    assert req.form == {}


def test_session_id_prefers_cookie():
    req = Request(
        method="GET",
        target="/?sid=fromquery",
        headers=Headers([("Cookie", "hl=en; sid=fromcookie")]),
        remote_addr="127.0.0.1",
    )
    assert req.cookies == {"hl": "en", "sid": "fromcookie"}
    assert req.session_id == "fromcookie"


def test_session_id_absent():
    req = Request(method="GET", target="/?sid=", headers=Headers(), remote_addr="127.0.0.1")
    assert req.session_id is None


def test_response_serialization():
    resp = Response(status=200, headers={"Content-Type": "text/plain"}, body=b"hi")
    assert resp.to_bytes() == (
        b"HTTP/1.1 200 OK\r\n"
        b"Content-Type: text/plain\r\n"
        b"Content-Length: 2\r\n"
        b"Connection: close\r\n"
        b"\r\n"
        b"hi"
    )


def test_response_keeps_explicit_length():
    resp = Response(status=200, headers={"Content-Length": "5", "connection": "close"})
    wire = resp.to_bytes()
    assert wire.count(b"Content-Length") == 1
    assert b"Connection: close" not in wire


def test_empty_rejection_response():
    assert Response.empty(401).to_bytes() == (
        b"HTTP/1.1 401 Unauthorized\r\nContent-Length: 0\r\nConnection: close\r\n\r\n"
    )


def test_write_response():
    server, client = socket.socketpair()
    try:
        write_response(server, Response.text("ok", status=404))
        server.close()
        data = client.recv(4096)
    finally:
        client.close()
    assert data.startswith(b"HTTP/1.1 404 Not Found\r\n")
    assert data.endswith(b"\r\n\r\nok")


def test_unparsable_cookie_does_not_hide_sid():
    req = Request(
        method="GET",
        target="/",
        headers=Headers([("Cookie", 'prefs={"a": 1}; sid=abc')]),
        remote_addr="127.0.0.1",
    )
    assert req.cookies["sid"] == "abc"
    assert req.session_id == "abc"


def test_cookie_quotes_stripped_and_first_wins():
    req = Request(
        method="GET",
        target="/",
        headers=Headers([("Cookie", 'sid="one"; junk; =x; sid=two')]),
        remote_addr="127.0.0.1",
    )
    assert req.cookies == {"sid": "one"}
