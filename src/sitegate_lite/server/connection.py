"""Owned client connection: one request/response exchange, then closed.

Wraps the socket returned by accept() so the listener can hold it in a
`with` block. Whatever happens inside (parse failure, handler crash,
client reset) the socket is closed on the way out.
"""
from __future__ import annotations

import socket
from types import TracebackType


class Connection:
    """Accepted client socket with a read timeout and guaranteed close.

    Args:
        sock: The socket returned by accept().
        addr: Peer address tuple from accept(); element 0 is the host.
        timeout: Seconds a recv()/send() may block before socket.timeout.
    """

    def __init__(
        self,
        sock: socket.socket,
        addr: tuple,
        timeout: float | None = None,
    ) -> None:
        self._sock = sock
        self._addr = addr
        self._closed = False
        if timeout is not None:
            sock.settimeout(timeout)

    @property
    def sock(self) -> socket.socket:
        return self._sock

    @property
    def remote_addr(self) -> str:
        return str(self._addr[0])

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._sock.close()
        except OSError:
            pass

    def __enter__(self) -> Connection:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Connection({self._addr!r}, closed={self._closed})"
