"""CSRF protection middleware.

Mutating requests (POST/PUT/DELETE/PATCH) on non-excluded paths must carry a
valid token, either in the parsed body field named by the config or in the
X-CSRF-TOKEN header. Otherwise the request is answered with a 403 and never
reaches the application.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Callable, List, Optional, Pattern

from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from windsurf.config import CsrfConfig
from windsurf.services.csrf_service import HEADER_NAME, CsrfTokenStore
from windsurf.services.session_service import InMemorySessionStore, SessionHandle, new_session_id
from windsurf.utils.asgi import read_body, replay_receive

logger = logging.getLogger(__name__)

MUTATING_METHODS = frozenset({"POST", "PUT", "DELETE", "PATCH"})

FAILURE_ERROR = "CSRF token validation failed"
FAILURE_MESSAGE = "The CSRF token is missing or invalid. Please refresh the page and try again."


def compile_excluded_path(pattern: str) -> Pattern[str]:
    """``*`` matches zero or more characters; everything else is literal; the whole path must match."""
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")))


def failure_response() -> JSONResponse:
    return JSONResponse(
        {"error": FAILURE_ERROR, "message": FAILURE_MESSAGE},
        status_code=403,
        media_type="application/json; charset=utf-8",
    )


async def _disconnected() -> Message:
    return {"type": "http.disconnect"}


class CsrfMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        config: Optional[CsrfConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.app = app
        self.config = config or CsrfConfig.from_env()
        self.clock = clock
        self._excluded: List[Pattern[str]] = [compile_excluded_path(p) for p in self.config.excluded_paths]
        self._ephemeral_store = InMemorySessionStore()

    def is_path_excluded(self, path: str) -> bool:
        return any(p.fullmatch(path) for p in self._excluded)

    def _session(self, scope: Scope) -> SessionHandle:
        session = scope.get("state", {}).get("session")
        if session is None:
            logger.warning("No session on request; CSRF tokens will not persist. Install SessionMiddleware.")
            session = SessionHandle(self._ephemeral_store, new_session_id())
        return session

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.config.enabled:
            await self.app(scope, receive, send)
            return

        csrf = CsrfTokenStore(self._session(scope), self.config.token_name, clock=self.clock)
        scope.setdefault("state", {})["csrf"] = csrf

        method = scope["method"].upper()
        path = scope.get("path", "")
        if method not in MUTATING_METHODS or self.is_path_excluded(path):
            await self.app(scope, receive, send)
            return

        body, _ = await read_body(receive)
        downstream = replay_receive(body, receive)

        token = await self.token_from_request(scope, body)
        if not csrf.validate(token):
            logger.warning("CSRF validation failed method=%s path=%s", method, path)
            await failure_response()(scope, downstream, send)
            return

        await self.app(scope, downstream, send)

    async def token_from_request(self, scope: Scope, body: bytes) -> Optional[str]:
        """Body field first, then the X-CSRF-TOKEN header."""
        headers = Headers(scope=scope)
        content_type = headers.get("content-type", "").lower()
        name = self.config.token_name

        if "application/json" in content_type:
            try:
                parsed = json.loads(body or b"null")
            except ValueError:
                parsed = None
            if isinstance(parsed, dict) and parsed.get(name) is not None:
                return str(parsed[name])

        elif "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
            try:
                form = await Request(scope, replay_receive(body, _disconnected)).form()
            except Exception as exc:
                logger.debug("Could not parse form body for CSRF token: %s", exc)
            else:
                try:
                    value = form.get(name)
                finally:
                    await form.close()
                if isinstance(value, str):
                    return value

        return headers.get(HEADER_NAME)
