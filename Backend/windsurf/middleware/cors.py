"""CORS headers and preflight short-circuit.

OPTIONS requests are answered here, before the audit middleware runs, so they
are audited through ``log_exchange``.
"""

from __future__ import annotations

from typing import Dict, Optional

from starlette.datastructures import Headers, MutableHeaders
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from windsurf.config import CorsConfig
from windsurf.middleware.centinela import log_exchange
from windsurf.services.centinela.dispatcher import CentinelaDispatcher


class CorsMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        config: Optional[CorsConfig] = None,
        dispatcher: Optional[CentinelaDispatcher] = None,
    ):
        self.app = app
        self.config = config or CorsConfig.from_env()
        self.dispatcher = dispatcher

    def allowed_origin(self, origin: str) -> str:
        origins = self.config.allowed_origins
        if "*" in origins:
            return "*"
        fallback = origins[0] if origins else "null"
        if not origin:
            return fallback

        for allowed in origins:
            if allowed == origin:
                return origin
            if allowed.startswith("*."):
                domain = allowed[2:]
                if origin.endswith("." + domain) or origin in (f"https://{domain}", f"http://{domain}"):
                    return origin
        return fallback

    def cors_headers(self, origin: str, requested_headers: str = "") -> Dict[str, str]:
        allowed = self.allowed_origin(origin)
        headers = {
            "Access-Control-Allow-Origin": allowed,
            "Access-Control-Allow-Methods": self.config.allowed_methods,
            "Access-Control-Allow-Headers": requested_headers or self.config.allowed_headers,
            "Access-Control-Max-Age": str(self.config.max_age),
            "Access-Control-Expose-Headers": "Content-Length, Content-Type",
        }
        if self.config.allow_credentials and allowed != "*":
            headers["Access-Control-Allow-Credentials"] = "true"
        return headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        origin = headers.get("origin", "")

        if scope["method"].upper() == "OPTIONS":
            request = Request(scope, receive)
            requested = headers.get("access-control-request-headers", "")
            response = Response(status_code=200, headers=self.cors_headers(origin, requested))
            if self.dispatcher is not None:
                await log_exchange(request, response, dispatcher=self.dispatcher)
            await response(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                outgoing = MutableHeaders(scope=message)
                for name, value in self.cors_headers(origin).items():
                    outgoing[name] = value
            await send(message)

        await self.app(scope, receive, send_wrapper)
