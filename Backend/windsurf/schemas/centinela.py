"""Schemas for the Centinela inspection endpoints."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class SinkStatus(BaseModel):
    successes: int = 0
    failures: int = 0
    last_error: Optional[str] = None


class CentinelaStatusResponse(BaseModel):
    config: Dict[str, Any]
    sinks: Dict[str, SinkStatus]


class CentinelaLogEntry(BaseModel):
    id: int
    request_id: str
    created_at: Optional[Any] = None
    method: Optional[str] = None
    uri: Optional[str] = None
    path: Optional[str] = None
    ip: Optional[str] = None
    status_code: Optional[int] = None
    duration_ms: Optional[int] = None
    headers: Optional[Any] = None
    decoded_body: Optional[Any] = None
    route: Optional[Any] = None
    response_headers: Optional[Any] = None


class CentinelaLogPage(BaseModel):
    items: List[CentinelaLogEntry]
    limit: int
    offset: int
