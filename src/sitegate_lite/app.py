"""Admin application: the handler the CLI plugs into the listener.

Routes:
    GET/HEAD <path>   static page from document_root ("/" -> index.html)
    POST /chpasswd    verify "password", store "new_password"
    POST /logout      drop the caller's session, expire the cookie

Every request that reaches this handler has already passed the gate,
so it comes from an allowed address and carries a live session. File
lookups still re-run check_path and confirm the resolved file sits
under document_root before opening it.
"""
from __future__ import annotations

import logging
import mimetypes
from http import HTTPStatus
from pathlib import Path
from urllib.parse import unquote

from sitegate_lite.http.message import SESSION_COOKIE, Request, Response
from sitegate_lite.security.gate import check_path, verify_passwd
from sitegate_lite.session import DEFAULT_TTL_SECONDS, SessionManager
from sitegate_lite.settings import SettingStore

log = logging.getLogger(__name__)

NEW_PASSWORD_PARAM = "new_password"
INDEX_PAGE = "index.html"


def _session_cookie(session_id: str, max_age: int) -> str:
    return f"{SESSION_COOKIE}={session_id}; Path=/; Max-Age={max_age}; HttpOnly; SameSite=Strict"


class AdminApplication:
    """RequestHandler serving the admin pages.

    Args:
        settings: Shared settings; /chpasswd updates the password here.
        sessions: Session registry; /logout removes from it.
        document_root: Directory static pages are served from.
    """

    def __init__(
        self,
        settings: SettingStore,
        sessions: SessionManager,
        document_root: str | Path,
    ) -> None:
        self._settings = settings
        self._sessions = sessions
        self._root = Path(document_root).resolve()
        self._post_routes = {
            "/chpasswd": self._change_password,
            "/logout": self._logout,
        }

    def handle(self, request: Request) -> Response:
        if request.method in ("GET", "HEAD"):
            response = self._serve_file(request)
            if request.method == "HEAD":
                response.headers["Content-Length"] = str(len(response.body))
                response.body = b""
            return response
        if request.method == "POST":
            route = self._post_routes.get(request.path)
            if route is None:
                return Response.empty(HTTPStatus.NOT_FOUND)
            return route(request)
        return Response.empty(HTTPStatus.METHOD_NOT_ALLOWED, {"Allow": "GET, HEAD, POST"})

    def _resolve(self, request: Request) -> Path | None:
        if not check_path(request):
            return None
        relative = unquote(request.path).lstrip("/") or INDEX_PAGE
        target = self._root / relative
        if target.is_dir():
            target = target / INDEX_PAGE
        target = target.resolve()
        if self._root not in target.parents:
            return None
        return target

    def _serve_file(self, request: Request) -> Response:
        target = self._resolve(request)
        if target is None:
            log.warning("Refused file outside document root: %s", request.path)
            return Response.empty(HTTPStatus.FORBIDDEN)
        if not target.is_file():
            return Response.text("Not Found", status=HTTPStatus.NOT_FOUND)

        ctype, _ = mimetypes.guess_type(target.name)
        response = Response(
            status=HTTPStatus.OK,
            headers={"Content-Type": ctype or "application/octet-stream"},
            body=target.read_bytes(),
        )
        # Session arrived in the URL (bootstrap link): move it into a cookie
        sid = request.session_id
        if sid and SESSION_COOKIE not in request.cookies:
            response.headers["Set-Cookie"] = _session_cookie(sid, int(DEFAULT_TTL_SECONDS))
        return response

    def _change_password(self, request: Request) -> Response:
        if not verify_passwd(request, self._settings):
            log.warning("Password change refused for %s: wrong password", request.remote_addr)
            return Response.text("Wrong password", status=HTTPStatus.UNAUTHORIZED)
        new_password = request.params.get(NEW_PASSWORD_PARAM, "")
        if not new_password:
            return Response.text("New password must not be empty", status=HTTPStatus.BAD_REQUEST)
        self._settings.set_password(new_password)
        log.info("Admin password changed from %s", request.remote_addr)
        return Response.text("Password changed")

    def _logout(self, request: Request) -> Response:
        sid = request.session_id
        if sid:
            self._sessions.remove(sid)
        response = Response.text("Logged out")
        response.headers["Set-Cookie"] = _session_cookie("", 0)
        return response
