"""HTTP request/response model.

A Request is parsed once by the wire codec and never mutated afterwards.
A Response is built by the application handler (or by the listener when
the gate rejects a request) and written back exactly as built, apart
from the Content-Length and Connection headers that the serializer
fills in when the handler left them out.
"""
from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from http import HTTPStatus
from urllib.parse import parse_qsl

SESSION_COOKIE = "sid"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class Headers(Mapping[str, str]):
    """Case-insensitive, immutable header mapping.

    Duplicate names collapse to the last value seen. The casing of that
    last write is what items() reports.
    """

    __slots__ = ("_items",)

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()) -> None:
        items: dict[str, tuple[str, str]] = {}
        for name, value in pairs:
            items[name.lower()] = (name, value)
        self._items = items

    def __getitem__(self, name: str) -> str:
        return self._items[name.lower()][1]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._items

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"Headers({list(self.items())!r})"


def _parse_pairs(text: str) -> dict[str, str]:
    # keep_blank_values so "password=" is seen as an empty submission
    return dict(parse_qsl(text, keep_blank_values=True))


@dataclass(frozen=True, slots=True)
class Request:
    """Parsed HTTP request."""
    method: str
    target: str
    headers: Headers
    remote_addr: str
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def path(self) -> str:
        """Request target without the query string (still percent-encoded)."""
        return self.target.split("?", 1)[0]

    @property
    def query(self) -> dict[str, str]:
        _, _, qs = self.target.partition("?")
        return _parse_pairs(qs)

    @property
    def form(self) -> dict[str, str]:
        ctype = self.headers.get("Content-Type", "")
        if not self.body or ctype.split(";", 1)[0].strip().lower() != FORM_CONTENT_TYPE:
            return {}
        return _parse_pairs(self.body.decode("utf-8", errors="replace"))

    @property
    def params(self) -> dict[str, str]:
        """Query parameters overlaid with url-encoded form fields."""
        merged = self.query
        merged.update(self.form)
        return merged

    @property
    def cookies(self) -> dict[str, str]:
        raw = self.headers.get("Cookie")
        if not raw:
            return {}
        # Parsed by hand: one unparsable cookie must not hide the ones after it
        jar: dict[str, str] = {}
        for pair in raw.split(";"):
            name, sep, value = pair.partition("=")
            name = name.strip()
            if not sep or not name:
                continue
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] == '"':
                value = value[1:-1]
            jar.setdefault(name, value)  # most specific path is sent first
        return jar

    @property
    def session_id(self) -> str | None:
        """Session id from the sid cookie, falling back to a sid parameter."""
        sid = self.cookies.get(SESSION_COOKIE) or self.params.get(SESSION_COOKIE)
        return sid or None


@dataclass(slots=True)
class Response:
    """HTTP response as produced by a handler."""
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @classmethod
    def text(
        cls,
        body: str,
        status: int = 200,
        content_type: str = "text/plain; charset=utf-8",
    ) -> Response:
        return cls(status=status, headers={"Content-Type": content_type},
                   body=body.encode("utf-8"))

    @classmethod
    def empty(cls, status: int, headers: dict[str, str] | None = None) -> Response:
        """Response with no body, used for rejections."""
        return cls(status=status, headers=dict(headers or {}))

    def to_bytes(self) -> bytes:
        """Serialize to wire format: status line, headers, blank line, body."""
        status = int(self.status)
        try:
            reason = HTTPStatus(status).phrase
        except ValueError:
            reason = "Unknown"
        lines = [f"HTTP/1.1 {status} {reason}"]
        present = {name.lower() for name in self.headers}
        for name, value in self.headers.items():
            lines.append(f"{name}: {value}")
        if "content-length" not in present:
            lines.append(f"Content-Length: {len(self.body)}")
        if "connection" not in present:
            lines.append("Connection: close")
        head = "\r\n".join(lines) + "\r\n\r\n"
        return head.encode("latin-1") + self.body
