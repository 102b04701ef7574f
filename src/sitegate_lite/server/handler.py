"""Application handler: the one thing the listener dispatches to.

Any object with handle(request) -> Response is a RequestHandler. Plain
functions are accepted too and wrapped in FunctionHandler, so tests can
pass a lambda and the CLI can pass a full application object.
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from sitegate_lite.http.message import Request, Response


@runtime_checkable
class RequestHandler(Protocol):
    def handle(self, request: Request) -> Response: ...


class FunctionHandler:
    """Adapts a plain callable to the RequestHandler protocol."""

    def __init__(self, func: Callable[[Request], Response]) -> None:
        self._func = func

    def handle(self, request: Request) -> Response:
        return self._func(request)


def as_handler(handler: RequestHandler | Callable[[Request], Response]) -> RequestHandler:
    if isinstance(handler, RequestHandler):
        return handler
    if callable(handler):
        return FunctionHandler(handler)
    raise TypeError(f"Not a request handler: {handler!r}")
