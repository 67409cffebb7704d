"""
Audit record builder.

``build_record`` is a pure function of the request, an optional response, the
Centinela config, the request id and an optional duration. It reads metadata
only; the body comes from a separate stream handed in by the caller, so the
request and response objects are never mutated.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime
from typing import Any, BinaryIO, Callable, Iterable, Mapping, NamedTuple, Optional, Tuple

from starlette.datastructures import Headers
from starlette.requests import HTTPConnection

from windsurf.config import CentinelaConfig
from windsurf.schemas.audit_record import (
    AuditRecord,
    RecordMeta,
    RequestInfo,
    ResponseInfo,
    RouteInfo,
    UploadedFileInfo,
)
from windsurf.services.centinela.body_capture import capture_body, decode_body, pairs_to_map
from windsurf.services.centinela.redaction import RedactionPolicy

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

RouteResolver = Callable[[HTTPConnection], Optional[RouteInfo]]


class ResponseSnapshot(NamedTuple):
    """Status and raw header pairs of a response already sent downstream."""

    status_code: int
    headers: Tuple[Tuple[str, str], ...]


def generate_request_id() -> str:
    try:
        return secrets.token_hex(16)
    except (NotImplementedError, OSError):
        return f"centinela_{uuid.uuid1().hex}"


def route_from_scope(request: HTTPConnection) -> Optional[RouteInfo]:
    """Describe the route the router matched, or None if routing never happened."""
    route = request.scope.get("route")
    if route is None:
        return None
    methods = getattr(route, "methods", None) or []
    return RouteInfo(
        name=getattr(route, "name", None),
        pattern=getattr(route, "path", None),
        methods=sorted(methods),
        arguments=dict(request.scope.get("path_params") or {}),
    )


def build_record(
    request: HTTPConnection,
    response: Optional[Any],
    config: CentinelaConfig,
    request_id: str,
    duration_ms: Optional[int] = None,
    *,
    body_stream: Optional[BinaryIO] = None,
    uploaded_files: Optional[Mapping[str, Any]] = None,
    route_resolver: RouteResolver = route_from_scope,
) -> AuditRecord:
    headers = request.headers
    content_type = headers.get("content-type", "")

    raw_body = capture_body(content_type, body_stream, config.max_body_bytes)
    decoded_body = decode_body(content_type, raw_body)

    request_policy = RedactionPolicy(config.redact_headers)
    url = request.url

    request_info = RequestInfo(
        method=request.scope.get("method", ""),
        uri=str(url),
        path=url.path,
        query=url.query,
        query_params=pairs_to_map(request.query_params.multi_items()),
        ip=request.client.host if request.client else "",
        user_agent=headers.get("user-agent", ""),
        content_type=content_type,
        content_length=headers.get("content-length", ""),
        headers=request_policy.apply_items(headers.items()),
        body=raw_body,
        decoded_body=decoded_body,
        uploaded_files=normalize_uploaded_files(uploaded_files or {}),
        route=_resolve_route(request, route_resolver),
    )

    response_info = None
    if response is not None:
        response_policy = RedactionPolicy(config.redact_response_headers)
        response_info = ResponseInfo(
            status=response.status_code,
            headers=response_policy.apply_items(_header_items(response.headers)),
        )

    return AuditRecord(
        id=request_id,
        timestamp=datetime.now().strftime(TIMESTAMP_FORMAT),
        request=request_info,
        response=response_info,
        meta=RecordMeta(duration_ms=duration_ms),
    )


def _resolve_route(request: HTTPConnection, resolver: RouteResolver) -> Optional[RouteInfo]:
    try:
        return resolver(request)
    except Exception as exc:
        logger.debug("Route lookup unavailable: %s", exc)
        return None


def _header_items(headers: Any) -> Iterable[Tuple[str, str]]:
    # starlette Headers.items() yields every raw pair, repeated names included
    if isinstance(headers, (Headers, Mapping)):
        return headers.items()
    return headers


def normalize_uploaded_files(files: Mapping[str, Any]) -> dict:
    """
    Describe uploaded files without touching their content.

    A list under one field name (several files sent with the same name) and
    nested mappings are described recursively.
    """
    out = {}
    for key, value in files.items():
        out[str(key)] = _describe(value)
    return out


def _describe(value: Any) -> Any:
    if isinstance(value, Mapping):
        return normalize_uploaded_files(value)
    if isinstance(value, (list, tuple)):
        return [_describe(v) for v in value]
    return UploadedFileInfo(
        client_filename=getattr(value, "filename", None),
        client_media_type=getattr(value, "content_type", None),
        size=getattr(value, "size", None),
        error=getattr(value, "error", 0) or 0,
    ).model_dump()
