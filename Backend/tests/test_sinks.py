"""
Tests for the file and database sinks.
"""

import json
import re
from datetime import datetime

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, inspect, select

from windsurf.config import CentinelaConfig
from windsurf.services.centinela.db_logger import CentinelaDatabaseLogger, build_row
from windsurf.services.centinela.diagnostics import SinkDiagnostics
from windsurf.services.centinela.file_logger import CentinelaFileLogger, make_file_name, sanitize_request_id
from windsurf.models.centinela_log import build_centinela_table


class TestFileLogger:
    """Tests for the JSON file sink."""

    def test_writes_one_pretty_json_file(self, make_record, centinela_config, log_dir):
        """Should create the directory and write the record as indented JSON."""
        record = make_record("abc123", method="POST", path="/contact")

        path = CentinelaFileLogger(centinela_config).log(record)

        assert path.parent == log_dir
        assert re.fullmatch(r"\d{8}_\d{6}_\d{6}_abc123\.json", path.name)
        text = path.read_text(encoding="utf-8")
        assert text.startswith("{\n    ")
        assert json.loads(text) == record.to_payload()

    def test_distinct_files_per_record(self, make_record, centinela_config, log_dir):
        """Each record should get its own file."""
        logger = CentinelaFileLogger(centinela_config)

        for i in range(3):
            logger.log(make_record(f"id-{i}"))

        assert len(list(log_dir.glob("*.json"))) == 3

    def test_disabled_writes_nothing(self, make_record, log_dir):
        """Should do nothing when the file output is off."""
        config = CentinelaConfig(dir=log_dir, file_enabled=False)

        assert CentinelaFileLogger(config).log(make_record()) is None
        assert not log_dir.exists()

    def test_failure_is_swallowed_and_counted(self, make_record, tmp_path):
        """An unwritable directory should not raise and should be counted."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        diagnostics = SinkDiagnostics()
        config = CentinelaConfig(dir=blocker / "logs")

        result = CentinelaFileLogger(config, diagnostics).log(make_record())

        assert result is None
        assert diagnostics.failures("file") == 1

    def test_file_name_sanitizes_id(self):
        """Unsafe id characters should be replaced."""
        now = datetime(2024, 1, 2, 3, 4, 5, 678)

        assert make_file_name("../etc/passwd", now) == "20240102_030405_000678____etc_passwd.json"
        assert sanitize_request_id("") == "unknown"


class TestDatabaseLogger:
    """Tests for the SQLAlchemy database sink."""

    @staticmethod
    def _config(tmp_path, **overrides):
        values = {"dir": tmp_path, "file_enabled": False, "db_enabled": True, "db_auto_migrate": True}
        values.update(overrides)
        return CentinelaConfig(**values)

    def test_auto_migrate_creates_table_and_inserts(self, make_record, engine, tmp_path):
        """Should create the table on first use and insert one row."""
        sink = CentinelaDatabaseLogger(self._config(tmp_path), engine=engine)

        assert sink.log(make_record("row-1", method="POST", path="/contact")) is True

        rows = sink.fetch_recent()
        assert len(rows) == 1
        assert rows[0]["request_id"] == "row-1"
        assert rows[0]["method"] == "POST"
        assert rows[0]["duration_ms"] == 12
        assert rows[0]["status_code"] is None

    def test_custom_table_name(self, make_record, engine, tmp_path):
        """Should write to the configured table."""
        sink = CentinelaDatabaseLogger(self._config(tmp_path, db_table="audit_trail"), engine=engine)

        sink.log(make_record())

        assert inspect(engine).has_table("audit_trail")

    def test_adds_missing_columns_to_existing_table(self, make_record, engine, tmp_path):
        """An older table without response headers should gain the column and keep its rows."""
        metadata = MetaData()
        old = Table(
            "centinela_logs",
            metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("request_id", String(64), nullable=False),
            Column("method", String(16), nullable=False),
            Column("uri", Text, nullable=False),
            Column("path", Text, nullable=False),
            Column("status_code", Integer, nullable=True),
        )
        metadata.create_all(engine)
        with engine.begin() as conn:
            conn.execute(old.insert().values(request_id="old", method="GET", uri="/", path="/"))

        sink = CentinelaDatabaseLogger(self._config(tmp_path), engine=engine)
        assert sink.log(make_record("new")) is True

        columns = {c["name"] for c in inspect(engine).get_columns("centinela_logs")}
        assert "response_headers_json" in columns
        assert "duration_ms" in columns
        assert [r["request_id"] for r in sink.fetch_recent()] == ["new", "old"]

    def test_ensure_table_is_idempotent(self, engine, tmp_path):
        """Running the schema ensure twice should change nothing."""
        sink = CentinelaDatabaseLogger(self._config(tmp_path), engine=engine)

        sink.ensure_table()
        sink.ensure_table()

        assert inspect(engine).has_table("centinela_logs")

    def test_missing_table_without_migrate_fails_quietly(self, make_record, engine, tmp_path):
        """Without auto-migrate a missing table should be a counted failure, not an exception."""
        diagnostics = SinkDiagnostics()
        sink = CentinelaDatabaseLogger(self._config(tmp_path, db_auto_migrate=False), engine=engine, diagnostics=diagnostics)

        assert sink.log(make_record()) is False
        assert diagnostics.failures("db") == 1

    def test_existing_table_without_migrate(self, make_record, engine, tmp_path):
        """A table created ahead of time should accept rows without auto-migrate."""
        build_centinela_table("centinela_logs").create(engine)
        sink = CentinelaDatabaseLogger(self._config(tmp_path, db_auto_migrate=False), engine=engine)

        assert sink.log(make_record()) is True

    def test_disabled_does_nothing(self, make_record, engine, tmp_path):
        """Should not touch the database when db output is off."""
        sink = CentinelaDatabaseLogger(self._config(tmp_path, db_enabled=False), engine=engine)

        assert sink.log(make_record()) is False
        assert not inspect(engine).has_table("centinela_logs")

    def test_structured_fields_are_json_text(self, make_record, engine, tmp_path):
        """Headers and query parameters should be stored as JSON text."""
        sink = CentinelaDatabaseLogger(self._config(tmp_path), engine=engine)
        sink.log(make_record(query_string=b"a=1&a=2", headers=[("X-Trace", "t")]))

        with engine.connect() as conn:
            row = conn.execute(select(sink.table.c.query_params_json, sink.table.c.headers_json)).one()

        assert json.loads(row.query_params_json) == {"a": ["1", "2"]}
        assert json.loads(row.headers_json)["x-trace"] == ["t"]

    def test_build_row_uses_response_status(self, make_request, centinela_config):
        """Should copy the response status into status_code."""
        from windsurf.services.centinela.record_builder import ResponseSnapshot, build_record

        record = build_record(make_request(), ResponseSnapshot(404, ()), centinela_config, "id")

        row = build_row(record)
        assert row["status_code"] == 404
        assert json.loads(row["response_headers_json"]) == {}
