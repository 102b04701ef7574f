"""Connection listener: the accept/parse/gate/dispatch loop on one port."""
from sitegate_lite.server.connection import Connection
from sitegate_lite.server.handler import FunctionHandler, RequestHandler, as_handler
from sitegate_lite.server.listener import (
    ConnectionListener,
    ListenerError,
    create_listener,
    get_listener,
    teardown_listener,
)

__all__ = [
    "Connection",
    "FunctionHandler",
    "RequestHandler",
    "as_handler",
    "ConnectionListener",
    "ListenerError",
    "create_listener",
    "get_listener",
    "teardown_listener",
]
