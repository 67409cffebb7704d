"""
Pydantic schemas for Centinela audit records.

One AuditRecord is built per request/response pair and is immutable once built.
Sinks serialise it with ``model_dump(mode="json")``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class UploadedFileInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_filename: Optional[str] = None
    client_media_type: Optional[str] = None
    size: Optional[int] = None
    error: int = 0


class RouteInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    pattern: Optional[str] = None
    methods: List[str] = []
    arguments: Dict[str, Any] = {}


class RequestInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: str
    uri: str
    path: str
    query: str = ""
    query_params: Dict[str, Any] = {}
    ip: str = ""
    user_agent: str = ""
    content_type: str = ""
    content_length: str = ""
    headers: Dict[str, List[str]] = {}

    # raw body text, a sentinel string, or None when unreadable
    body: Optional[str] = None
    decoded_body: Any = None

    # field name -> descriptor, list of descriptors, or nested mapping
    uploaded_files: Dict[str, Any] = {}
    route: Optional[RouteInfo] = None


class ResponseInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: int
    headers: Dict[str, List[str]] = {}


class RecordMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    duration_ms: Optional[int] = None


class AuditRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: str
    request: RequestInfo
    response: Optional[ResponseInfo] = None
    meta: RecordMeta = RecordMeta()

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
