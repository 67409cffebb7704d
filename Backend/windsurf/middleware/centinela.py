"""
Centinela audit middleware (pure ASGI).

Per request: generate an id, buffer the body and replay it downstream, time the
handler, then build one audit record and hand it to the sinks. The response the
handler sends is forwarded untouched, and nothing raised while auditing ever
reaches the caller.
"""

from __future__ import annotations

import io
import logging
import time
from typing import Any, Dict, Optional

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import Headers, UploadFile
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from windsurf.config import CentinelaConfig
from windsurf.schemas.audit_record import AuditRecord
from windsurf.services.centinela.body_capture import is_omitted_content_type
from windsurf.services.centinela.dispatcher import CentinelaDispatcher
from windsurf.services.centinela.record_builder import (
    ResponseSnapshot,
    RouteResolver,
    build_record,
    generate_request_id,
    route_from_scope,
)
from windsurf.utils.asgi import read_body, replay_receive

logger = logging.getLogger(__name__)


async def _disconnected() -> Message:
    return {"type": "http.disconnect"}


async def collect_uploaded_files(scope: Scope, body: bytes) -> Dict[str, Any]:
    """
    Describe-ready view of the files in a buffered multipart body.

    Several files under one field name (``docs`` or ``docs[]``) become a list.
    Parse failures give an empty mapping.
    """
    content_type = Headers(scope=scope).get("content-type", "")
    if "multipart/form-data" not in content_type.lower():
        return {}

    files: Dict[str, Any] = {}
    try:
        form = await Request(scope, replay_receive(body, _disconnected)).form()
    except Exception as exc:
        logger.debug("Could not parse multipart body for audit: %s", exc)
        return {}

    try:
        for key, value in form.multi_items():
            if not isinstance(value, UploadFile):
                continue
            name = key[:-2] if key.endswith("[]") else key
            if name in files:
                existing = files[name]
                files[name] = existing + [value] if isinstance(existing, list) else [existing, value]
            elif key.endswith("[]"):
                files[name] = [value]
            else:
                files[name] = value
    finally:
        await form.close()
    return files


async def _body_stream(request: Request) -> Optional[io.BytesIO]:
    try:
        return io.BytesIO(await request.body())
    except Exception as exc:
        logger.debug("Request body unavailable for audit: %s", exc)
        return None


class CentinelaMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        config: Optional[CentinelaConfig] = None,
        dispatcher: Optional[CentinelaDispatcher] = None,
        route_resolver: RouteResolver = route_from_scope,
    ):
        self.app = app
        self.config = config or CentinelaConfig.from_env()
        self.dispatcher = dispatcher or CentinelaDispatcher(self.config)
        self.route_resolver = route_resolver

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.config.enabled:
            await self.app(scope, receive, send)
            return

        request_id = generate_request_id()
        body, _ = await read_body(receive)

        response_start: Dict[str, Any] = {}

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_start["status"] = message["status"]
                response_start["headers"] = message.get("headers", [])
            await send(message)

        start = time.perf_counter()
        try:
            await self.app(scope, replay_receive(body, receive), send_wrapper)
        except Exception:
            # the 500 is sent by ServerErrorMiddleware, outside this middleware
            response_start.setdefault("status", 500)
            response_start.setdefault("headers", [])
            await self._audit(scope, body, response_start, request_id, self._elapsed_ms(start))
            raise

        await self._audit(scope, body, response_start, request_id, self._elapsed_ms(start))

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int(round((time.perf_counter() - start) * 1000))

    async def _audit(
        self,
        scope: Scope,
        body: bytes,
        response_start: Dict[str, Any],
        request_id: str,
        duration_ms: int,
    ) -> None:
        try:
            response = None
            if "status" in response_start:
                response = ResponseSnapshot(
                    status_code=response_start["status"],
                    headers=tuple(
                        (k.decode("latin-1"), v.decode("latin-1")) for k, v in response_start["headers"]
                    ),
                )

            uploaded_files = await collect_uploaded_files(scope, body)
            record = build_record(
                Request(scope),
                response,
                self.config,
                request_id,
                duration_ms,
                body_stream=io.BytesIO(body),
                uploaded_files=uploaded_files,
                route_resolver=self.route_resolver,
            )
            await run_in_threadpool(self.dispatcher.dispatch, record)
        except Exception as exc:
            logger.warning("Centinela could not audit request id=%s", request_id, exc_info=True)
            self.dispatcher.diagnostics.record_failure("builder", exc)


async def log_exchange(
    request: Request,
    response: Optional[Response],
    config: Optional[CentinelaConfig] = None,
    dispatcher: Optional[CentinelaDispatcher] = None,
) -> Optional[AuditRecord]:
    """
    Audit one request/response outside the middleware pipeline (no timing).

    Used by code paths that answer before the audit middleware runs, such as
    the CORS preflight short-circuit. Returns the record, or None when
    auditing is disabled or failed.
    """
    config = config or (dispatcher.config if dispatcher else CentinelaConfig.from_env())
    if not config.enabled:
        return None
    dispatcher = dispatcher or CentinelaDispatcher(config)

    request_id = generate_request_id()
    try:
        body_stream = None
        if not is_omitted_content_type(request.headers.get("content-type")):
            body_stream = await _body_stream(request)

        record = build_record(
            request,
            response,
            config,
            request_id,
            body_stream=body_stream,
        )
        await run_in_threadpool(dispatcher.dispatch, record)
        return record
    except Exception as exc:
        logger.warning("Centinela could not audit request id=%s", request_id, exc_info=True)
        dispatcher.diagnostics.record_failure("builder", exc)
        return None
