"""
Tests for sink fan-out and sink diagnostics.
"""

from windsurf.config import CentinelaConfig
from windsurf.services.centinela.diagnostics import SinkDiagnostics
from windsurf.services.centinela.dispatcher import CentinelaDispatcher


class _RecordingSink:
    def __init__(self, calls, name):
        self.calls = calls
        self.name = name

    def log(self, record):
        self.calls.append((self.name, record.id))


class _ExplodingSink:
    def log(self, record):
        raise RuntimeError("disk on fire")


class TestCentinelaDispatcher:
    """Tests for CentinelaDispatcher."""

    def test_runs_file_then_db(self, make_record, centinela_config):
        """Should call the file sink before the database sink."""
        calls = []
        dispatcher = CentinelaDispatcher(
            centinela_config,
            file_logger=_RecordingSink(calls, "file"),
            db_logger=_RecordingSink(calls, "db"),
        )

        dispatcher.dispatch(make_record("r1"))

        assert calls == [("file", "r1"), ("db", "r1")]

    def test_failing_sink_does_not_stop_the_next(self, make_record, centinela_config):
        """A raising file sink should not prevent the database sink from running."""
        calls = []
        diagnostics = SinkDiagnostics()
        dispatcher = CentinelaDispatcher(
            centinela_config,
            diagnostics=diagnostics,
            file_logger=_ExplodingSink(),
            db_logger=_RecordingSink(calls, "db"),
        )

        dispatcher.dispatch(make_record("r2"))

        assert calls == [("db", "r2")]
        assert diagnostics.failures("file") == 1
        assert "disk on fire" in diagnostics.snapshot()["file"]["last_error"]

    def test_real_sinks_share_diagnostics(self, make_record, tmp_path, engine):
        """File success and db failure should both be visible in one snapshot."""
        config = CentinelaConfig(dir=tmp_path / "logs", db_enabled=True, db_auto_migrate=False)
        dispatcher = CentinelaDispatcher(config, engine=engine)

        dispatcher.dispatch(make_record())

        snapshot = dispatcher.diagnostics.snapshot()
        assert snapshot["file"]["successes"] == 1
        assert snapshot["db"]["failures"] == 1
        assert len(list((tmp_path / "logs").glob("*.json"))) == 1


class TestSinkDiagnostics:
    """Tests for SinkDiagnostics."""

    def test_counts_and_reset(self):
        """Should count per sink and clear on reset."""
        diagnostics = SinkDiagnostics()
        diagnostics.record_success("file")
        diagnostics.record_success("file")
        diagnostics.record_failure("db", ValueError("bad"))

        assert diagnostics.successes("file") == 2
        assert diagnostics.failures("db") == 1
        assert diagnostics.snapshot()["db"] == {"successes": 0, "failures": 1, "last_error": "ValueError: bad"}

        diagnostics.reset()
        assert diagnostics.snapshot() == {}

    def test_failure_callback(self):
        """Should notify the callback with the sink name and exception."""
        seen = []
        diagnostics = SinkDiagnostics(on_failure=lambda sink, exc: seen.append((sink, str(exc))))

        diagnostics.record_failure("file", OSError("full"))

        assert seen == [("file", "full")]

    def test_raising_callback_is_contained(self):
        """A callback that raises should not escape record_failure."""

        def callback(sink, exc):
            raise RuntimeError("callback broke")

        diagnostics = SinkDiagnostics(on_failure=callback)
        diagnostics.record_failure("db", OSError("down"))

        assert diagnostics.failures("db") == 1
