"""Fan-out of audit records to the enabled sinks."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol, Tuple

from sqlalchemy.engine import Engine

from windsurf.config import CentinelaConfig
from windsurf.schemas.audit_record import AuditRecord
from windsurf.services.centinela.db_logger import CentinelaDatabaseLogger
from windsurf.services.centinela.diagnostics import SinkDiagnostics
from windsurf.services.centinela.file_logger import CentinelaFileLogger

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    def log(self, record: AuditRecord) -> Any: ...


class CentinelaDispatcher:
    """
    Sends each record to the file sink, then the database sink.

    Sinks are independent: an exception from one is recorded against it and
    the next sink still runs. Nothing is raised to the caller.
    """

    def __init__(
        self,
        config: CentinelaConfig,
        diagnostics: Optional[SinkDiagnostics] = None,
        file_logger: Optional[AuditSink] = None,
        db_logger: Optional[AuditSink] = None,
        engine: Optional[Engine] = None,
    ):
        self.config = config
        self.diagnostics = diagnostics or SinkDiagnostics()
        self.file_logger = file_logger or CentinelaFileLogger(config, self.diagnostics)
        self.db_logger = db_logger or CentinelaDatabaseLogger(config, engine=engine, diagnostics=self.diagnostics)

    @property
    def sinks(self) -> List[Tuple[str, AuditSink]]:
        return [("file", self.file_logger), ("db", self.db_logger)]

    def dispatch(self, record: AuditRecord) -> None:
        for name, sink in self.sinks:
            try:
                sink.log(record)
            except Exception as exc:
                logger.warning("Centinela sink %s raised for id=%s", name, record.id, exc_info=True)
                self.diagnostics.record_failure(name, exc)
