"""File sink: one pretty-printed JSON file per audit record."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

from windsurf.config import CentinelaConfig
from windsurf.schemas.audit_record import AuditRecord
from windsurf.services.centinela.diagnostics import SinkDiagnostics

logger = logging.getLogger(__name__)

SINK_NAME = "file"

_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9_\-]")


def sanitize_request_id(request_id: str) -> str:
    return _UNSAFE_ID_CHARS.sub("_", request_id or "unknown")


def make_file_name(request_id: str, now: Optional[datetime] = None) -> str:
    ts = (now or datetime.now()).strftime("%Y%m%d_%H%M%S_%f")
    return f"{ts}_{sanitize_request_id(request_id)}.json"


class CentinelaFileLogger:
    def __init__(self, config: CentinelaConfig, diagnostics: Optional[SinkDiagnostics] = None):
        self.config = config
        self.diagnostics = diagnostics or SinkDiagnostics()

    def log(self, record: AuditRecord) -> Optional[Path]:
        """
        Write the record to ``<dir>/<timestamp>_<request id>.json``.

        Returns the written path, or None when the sink is disabled or the write
        failed. Failures are logged and counted, never raised.
        """
        if not self.config.file_enabled:
            return None

        try:
            directory = Path(self.config.dir)
            directory.mkdir(parents=True, exist_ok=True)

            path = directory / make_file_name(record.id)
            content = json.dumps(record.to_payload(), indent=4, ensure_ascii=False)

            # "x" refuses to reuse an existing name, so concurrent writers never interleave
            with open(path, "x", encoding="utf-8") as fh:
                fh.write(content + "\n")
        except Exception as exc:
            logger.warning("Failed to write centinela file record id=%s", record.id, exc_info=True)
            self.diagnostics.record_failure(SINK_NAME, exc)
            return None

        self.diagnostics.record_success(SINK_NAME)
        return path
