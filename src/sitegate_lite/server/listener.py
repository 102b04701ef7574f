"""Connection listener: accept, parse, gate, dispatch, respond, close.

Architecture:
    Calling thread: socket.accept() in a loop, one connection at a time
    Per-connection flow: read -> gate -> handler (or rejection) -> write -> close

The application handler is not safe to run concurrently with itself,
so there is no worker pool: connections are served in acceptance order
on the thread that called start(). The handler call is also wrapped in
a dispatch lock, which keeps process_request() serialized when it is
driven from other threads (tests do this).

A stalled client cannot hold the loop forever: every accepted socket
gets read_timeout, and a timeout is answered with 408.

One listener per process. create_listener() builds it,
get_listener() returns it, teardown_listener() stops and forgets it
(also registered with atexit).
"""
from __future__ import annotations

import atexit
import logging
import socket
import threading
import time
from collections.abc import Callable
from http import HTTPStatus

from sitegate_lite.http.message import Request, Response
from sitegate_lite.http.protocol import ProtocolError, read_request, write_response
from sitegate_lite.security.gate import AccessGate
from sitegate_lite.server.connection import Connection
from sitegate_lite.server.handler import RequestHandler, as_handler

log = logging.getLogger(__name__)

ACCEPT_POLL_SECONDS = 0.5      # how often the accept loop rechecks _running
ACCEPT_ERROR_BACKOFF = 0.1     # pause after a failed accept() so EMFILE can't spin
DEFAULT_READ_TIMEOUT = 10.0


class ListenerError(Exception):
    """Raised on listener lifecycle misuse."""


class ConnectionListener:
    """Single-threaded HTTP listener guarded by an AccessGate.

    Args:
        gate: Decides whether each parsed request may reach the handler.
        host: Bind address (default "127.0.0.1").
        read_timeout: Seconds a client may stall while sending its request.
        backlog: listen() backlog.
    """

    def __init__(
        self,
        gate: AccessGate,
        host: str = "127.0.0.1",
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        backlog: int = 128,
    ) -> None:
        self._gate = gate
        self._host = host
        self._read_timeout = read_timeout
        self._backlog = backlog
        self._handler: RequestHandler | None = None
        self._server_socket: socket.socket | None = None
        self._running = False
        self._dispatch_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._requests_processed = 0
        self._requests_rejected = 0
        self._ready = threading.Event()  # signals when accept loop is running

    @property
    def address(self) -> tuple[str, int]:
        """Return (host, port) the listener is bound to.

        Useful when port=0 (OS-assigned). Only valid while started.
        """
        if self._server_socket is None:
            raise ListenerError("Listener not started")
        return self._server_socket.getsockname()[:2]

    @property
    def running(self) -> bool:
        return self._running

    def start(
        self,
        port: int,
        handler: RequestHandler | Callable[[Request], Response],
        single_thread: bool = True,
    ) -> bool:
        """Bind port and run the accept loop until stop() is called.

        Returns False without serving anything if single_thread is False
        (the handler contract does not allow concurrent dispatch) or if
        the port cannot be bound. Returns True once the loop has been
        stopped.
        """
        if not single_thread:
            log.error("Refusing to start: multi-threaded dispatch is not supported")
            return False
        if self._running:
            log.error("Refusing to start: listener is already running")
            return False

        family = socket.AF_INET6 if ":" in self._host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self._host, port))
            sock.listen(self._backlog)
            sock.settimeout(ACCEPT_POLL_SECONDS)
        except OSError as exc:
            log.error("Cannot listen on %s:%d: %s", self._host, port, exc)
            sock.close()
            return False

        self._handler = as_handler(handler)
        self._server_socket = sock
        self._running = True
        log.info("Listening on %s:%d", *self.address)
        self._ready.set()
        try:
            self._accept_loop()
        finally:
            self._running = False
            self._ready.clear()
            sock.close()
            self._server_socket = None
            log.info("Listener on %s:%d stopped", self._host, port)
        return True

    def stop(self) -> None:
        """Stop accepting; the loop exits within ACCEPT_POLL_SECONDS."""
        self._running = False
        if self._server_socket is not None:
            try:
                self._server_socket.close()
            except OSError:
                pass

    def wait_ready(self, timeout: float = 5.0) -> bool:
        """Block until the accept loop is running. For test setup."""
        return self._ready.wait(timeout=timeout)

    def _accept_loop(self) -> None:
        """Accept connections and serve each one before the next accept.

        Uses socket timeout to periodically check self._running. Failed
        accepts are logged and skipped; only stop() ends the loop.
        """
        while self._running:
            try:
                client_sock, addr = self._server_socket.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if not self._running:
                    break  # socket closed by stop()
                log.warning("accept() failed: %s", exc)
                time.sleep(ACCEPT_ERROR_BACKOFF)
                continue
            self.process_request(Connection(client_sock, addr, timeout=self._read_timeout))

    def process_request(self, connection: Connection) -> None:
        """Serve one exchange on connection and close it.

        Steps:
        1. Parse the request (4xx on malformed input, 408 on timeout)
        2. Ask the gate; on denial answer 401/403 with no body
        3. Otherwise call the handler under the dispatch lock (500 if it raises)
        4. Write the response
        5. Close the connection, whatever happened above
        """
        with connection:
            try:
                response = self._respond(connection)
                if response is not None:
                    write_response(connection.sock, response)
            except OSError as exc:
                log.warning("Write to %s failed: %s", connection.remote_addr, exc)
            except Exception:
                log.exception("Error handling %s", connection.remote_addr)
            finally:
                with self._stats_lock:
                    self._requests_processed += 1

    def _respond(self, connection: Connection) -> Response | None:
        remote = connection.remote_addr
        try:
            request = read_request(connection.sock, remote)
        except ProtocolError as exc:
            log.info("Bad request from %s: %s", remote, exc)
            return Response.text(HTTPStatus(exc.status).phrase, status=exc.status)
        except socket.timeout:
            log.info("Timed out reading request from %s", remote)
            return Response.empty(HTTPStatus.REQUEST_TIMEOUT)
        except ConnectionError:
            log.debug("Client %s disconnected", remote)
            return None
        except OSError as exc:
            log.warning("Read from %s failed: %s", remote, exc)
            return None

        result = self._gate.evaluate(request)
        if not result.decision.is_permitted():
            with self._stats_lock:
                self._requests_rejected += 1
            return Response.empty(result.decision.status)

        return self._dispatch(request)

    def _dispatch(self, request: Request) -> Response:
        if self._handler is None:
            log.error("No handler registered; dropping %s %s", request.method, request.path)
            return Response.empty(HTTPStatus.SERVICE_UNAVAILABLE)
        with self._dispatch_lock:
            try:
                response = self._handler.handle(request)
            except Exception:
                log.exception("Handler failed on %s %s", request.method, request.path)
                return Response.empty(HTTPStatus.INTERNAL_SERVER_ERROR)
        if not isinstance(response, Response):
            log.error("Handler returned %r instead of a Response", type(response).__name__)
            return Response.empty(HTTPStatus.INTERNAL_SERVER_ERROR)
        return response

    def set_handler(self, handler: RequestHandler | Callable[[Request], Response]) -> None:
        """Register the handler without starting (process_request() callers)."""
        self._handler = as_handler(handler)

    @property
    def requests_processed(self) -> int:
        """Connections served, whatever the outcome (thread-safe read)."""
        with self._stats_lock:
            return self._requests_processed

    @property
    def requests_rejected(self) -> int:
        """Requests the gate turned away (thread-safe read)."""
        with self._stats_lock:
            return self._requests_rejected

    @property
    def gate(self) -> AccessGate:
        return self._gate


# --- process-wide instance ---

_instance: ConnectionListener | None = None
_instance_lock = threading.Lock()


def create_listener(gate: AccessGate, **kwargs) -> ConnectionListener:
    """Create the process's listener. Raises ListenerError if one exists."""
    global _instance
    with _instance_lock:
        if _instance is not None:
            raise ListenerError("A listener already exists in this process")
        _instance = ConnectionListener(gate, **kwargs)
        return _instance


def get_listener() -> ConnectionListener:
    """Return the process's listener. Raises ListenerError if none was created."""
    with _instance_lock:
        if _instance is None:
            raise ListenerError("No listener has been created")
        return _instance


def teardown_listener() -> None:
    """Stop and discard the process's listener, if any."""
    global _instance
    with _instance_lock:
        listener, _instance = _instance, None
    if listener is not None:
        listener.stop()


atexit.register(teardown_listener)
