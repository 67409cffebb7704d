"""
Centinela inspection routes.

Read-only views over the audit configuration, sink health and the database
sink's most recent rows.
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError

from windsurf.routes.dependencies import get_dispatcher, require_admin_token
from windsurf.schemas.centinela import CentinelaLogPage, CentinelaStatusResponse
from windsurf.services.centinela.dispatcher import CentinelaDispatcher
from windsurf.services.centinela.redaction import redact_fields

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/centinela", tags=["Centinela"])

_JSON_COLUMNS = {
    "headers_json": "headers",
    "decoded_body_json": "decoded_body",
    "route_json": "route",
    "response_headers_json": "response_headers",
}


def _entry(row: Dict[str, Any]) -> Dict[str, Any]:
    entry = {k: v for k, v in row.items() if k not in _JSON_COLUMNS}
    for column, key in _JSON_COLUMNS.items():
        raw = row.get(column)
        try:
            entry[key] = json.loads(raw) if raw else None
        except ValueError:
            entry[key] = raw
    entry["decoded_body"] = redact_fields(entry["decoded_body"])
    return entry


@router.get("/status", response_model=CentinelaStatusResponse)
def get_status(dispatcher: CentinelaDispatcher = Depends(get_dispatcher)):
    """Effective configuration and per-sink success/failure counters."""
    return {
        "config": dispatcher.config.to_dict(),
        "sinks": dispatcher.diagnostics.snapshot(),
    }


@router.get("/logs", response_model=CentinelaLogPage, dependencies=[Depends(require_admin_token)])
def get_logs(
    method: Optional[str] = None,
    status_code: Optional[int] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    dispatcher: CentinelaDispatcher = Depends(get_dispatcher),
):
    """Most recent rows written by the database sink, newest first. Body fields such as passwords come back redacted."""
    if not dispatcher.config.db_enabled:
        raise HTTPException(status_code=404, detail="Database output is not enabled")

    db_logger = dispatcher.db_logger
    if not hasattr(db_logger, "fetch_recent"):
        raise HTTPException(status_code=404, detail="Database output does not support queries")

    try:
        rows = db_logger.fetch_recent(method=method, status_code=status_code, limit=limit, offset=offset)
    except SQLAlchemyError:
        logger.warning("Could not read centinela table %s", dispatcher.config.db_table, exc_info=True)
        raise HTTPException(status_code=404, detail="Centinela table is not available")

    return {"items": [_entry(row) for row in rows], "limit": limit, "offset": offset}
