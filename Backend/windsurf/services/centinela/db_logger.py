"""Database sink (SQLAlchemy Core, sync).

One row per audit record; structured parts are stored as JSON text. With
auto-migrate on, the table is created on first use and columns introduced
later are added to existing tables without touching their data.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import Column, Table, desc, inspect, select, text
from sqlalchemy.engine import Engine

from windsurf.config import CentinelaConfig
from windsurf.database import get_engine
from windsurf.models.centinela_log import build_centinela_table
from windsurf.schemas.audit_record import AuditRecord
from windsurf.services.centinela.diagnostics import SinkDiagnostics

logger = logging.getLogger(__name__)

SINK_NAME = "db"


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def build_row(record: AuditRecord) -> Dict[str, Any]:
    payload = record.to_payload()
    req = payload["request"]
    resp = payload.get("response")
    meta = payload.get("meta") or {}

    return {
        "request_id": record.id,
        "created_at": datetime.now(),
        "method": req.get("method") or "",
        "uri": req.get("uri") or "",
        "path": req.get("path") or "",
        "query": req.get("query") or "",
        "query_params_json": _to_json(req.get("query_params")),
        "ip": req.get("ip") or "",
        "user_agent": req.get("user_agent") or "",
        "content_type": req.get("content_type") or "",
        "content_length": req.get("content_length") or "",
        "headers_json": _to_json(req.get("headers")),
        "body": req.get("body") if isinstance(req.get("body"), str) else None,
        "decoded_body_json": _to_json(req.get("decoded_body")),
        "uploaded_files_json": _to_json(req.get("uploaded_files")),
        "route_json": _to_json(req.get("route")),
        "response_headers_json": _to_json(resp.get("headers") if resp else None),
        "status_code": int(resp.get("status") or 0) if resp else None,
        "duration_ms": meta.get("duration_ms"),
    }


class CentinelaDatabaseLogger:
    def __init__(
        self,
        config: CentinelaConfig,
        engine: Optional[Engine] = None,
        diagnostics: Optional[SinkDiagnostics] = None,
    ):
        self.config = config
        self.diagnostics = diagnostics or SinkDiagnostics()
        self._engine = engine
        self._table = build_centinela_table(config.db_table)
        self._lock = threading.Lock()
        self._schema_ready = False
        self._columns: Optional[Set[str]] = None

    @property
    def table(self) -> Table:
        return self._table

    def _get_engine(self) -> Engine:
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    def log(self, record: AuditRecord) -> bool:
        """Insert the record. Returns False when disabled or on any failure; never raises."""
        if not self.config.db_enabled:
            return False

        try:
            engine = self._get_engine()
            if self.config.db_auto_migrate:
                self.ensure_table(engine)

            columns = self._existing_columns(engine)
            row = {k: v for k, v in build_row(record).items() if k in columns}

            with engine.begin() as conn:
                conn.execute(self._table.insert().values(**row))
        except Exception as exc:
            logger.warning(
                "Failed to store centinela record id=%s table=%s",
                record.id, self.config.db_table, exc_info=True,
            )
            self._columns = None
            self.diagnostics.record_failure(SINK_NAME, exc)
            return False

        self.diagnostics.record_success(SINK_NAME)
        return True

    def ensure_table(self, engine: Optional[Engine] = None) -> None:
        """
        Create the table if missing, else add any nullable column it lacks.

        Idempotent. Guarded by a lock so concurrent first requests of this
        process run it once; ``checkfirst`` covers other processes.
        """
        if self._schema_ready:
            return
        engine = engine or self._get_engine()

        with self._lock:
            if self._schema_ready:
                return

            name = self.config.db_table
            inspector = inspect(engine)
            if not inspector.has_table(name):
                self._table.create(engine, checkfirst=True)
                logger.info("Created centinela table %s", name)
            else:
                existing = {c["name"] for c in inspector.get_columns(name)}
                for column in self._table.columns:
                    if column.name not in existing and column.nullable:
                        self._add_column(engine, column)

            self._columns = None
            self._schema_ready = True

    def _add_column(self, engine: Engine, column: Column) -> None:
        preparer = engine.dialect.identifier_preparer
        ddl = "ALTER TABLE {table} ADD COLUMN {column} {type}".format(
            table=preparer.quote(self.config.db_table),
            column=preparer.quote(column.name),
            type=column.type.compile(dialect=engine.dialect),
        )
        with engine.begin() as conn:
            conn.execute(text(ddl))
        logger.info("Added column %s to centinela table %s", column.name, self.config.db_table)

    def _existing_columns(self, engine: Engine) -> Set[str]:
        if self._columns is None:
            self._columns = {c["name"] for c in inspect(engine).get_columns(self.config.db_table)}
        return self._columns

    def fetch_recent(
        self,
        method: Optional[str] = None,
        status_code: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Newest rows first. Raises if the table does not exist."""
        engine = self._get_engine()
        t = self._table
        columns = self._existing_columns(engine)

        stmt = select(*[c for c in t.columns if c.name in columns])
        if method:
            stmt = stmt.where(t.c.method == method.upper())
        if status_code is not None:
            stmt = stmt.where(t.c.status_code == status_code)
        stmt = stmt.order_by(desc(t.c.id)).offset(offset).limit(limit)

        with engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(stmt)]
