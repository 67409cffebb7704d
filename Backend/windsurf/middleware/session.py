"""Session middleware: resolves the session id cookie and threads a SessionHandle into request.state."""

from __future__ import annotations

from typing import Optional

from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from windsurf.config import SessionConfig
from windsurf.services.session_service import InMemorySessionStore, SessionHandle, SessionStore, new_session_id


class SessionMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        store: Optional[SessionStore] = None,
        config: Optional[SessionConfig] = None,
    ):
        self.app = app
        self.config = config or SessionConfig.from_env()
        if store is None:
            store = InMemorySessionStore(idle_ttl=self.config.idle_ttl, max_sessions=self.config.max_sessions)
        self.store = store

    def _cookie(self, session_id: str) -> str:
        cookie = f"{self.config.cookie_name}={session_id}; Path=/; HttpOnly; SameSite=Lax"
        if self.config.secure:
            cookie += "; Secure"
        return cookie

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        session_id = HTTPConnection(scope).cookies.get(self.config.cookie_name)
        issued = False
        # ids the store has never seen are replaced, never adopted
        if not session_id or not self.store.exists(session_id):
            session_id = new_session_id()
            issued = True

        scope.setdefault("state", {})["session"] = SessionHandle(self.store, session_id)

        async def send_wrapper(message: Message) -> None:
            if issued and message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers.append("Set-Cookie", self._cookie(session_id))
            await send(message)

        await self.app(scope, receive, send_wrapper)
