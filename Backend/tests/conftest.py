"""
Shared fixtures for the windsurf test suite.
"""

import json
from pathlib import Path

import pytest
from starlette.requests import Request
from starlette.testclient import TestClient

from windsurf.config import CentinelaConfig, CsrfConfig, Settings
from windsurf.database import make_engine
from windsurf.main import create_app
from windsurf.services.centinela.record_builder import build_record


class FakeClock:
    """Manually advanced clock for CSRF expiry tests."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _scope(method="GET", path="/", query_string=b"", headers=None, client=("127.0.0.1", 50000)):
    raw_headers = [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in (headers or [])
    ]
    return {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": query_string,
        "headers": raw_headers,
        "client": client,
        "server": ("testserver", 80),
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def log_dir(tmp_path) -> Path:
    return tmp_path / "centinela"


@pytest.fixture
def centinela_config(log_dir) -> CentinelaConfig:
    return CentinelaConfig(dir=log_dir)


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'windsurf_test.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def read_records(log_dir):
    """Audit records written by the file sink, oldest first."""

    def _read():
        if not log_dir.exists():
            return []
        return [json.loads(p.read_text(encoding="utf-8")) for p in sorted(log_dir.glob("*.json"))]

    return _read


@pytest.fixture
def make_request():
    def _make(method="GET", path="/", query_string=b"", headers=None, client=("127.0.0.1", 50000)):
        return Request(_scope(method, path, query_string, headers, client))

    return _make


@pytest.fixture
def make_record(make_request, centinela_config):
    def _make(request_id="req-1", **request_kwargs):
        request = make_request(**request_kwargs)
        return build_record(request, None, centinela_config, request_id, 12)

    return _make


@pytest.fixture
def settings(tmp_path, log_dir) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'windsurf_test.db'}",
        centinela=CentinelaConfig(dir=log_dir),
        csrf=CsrfConfig(excluded_paths=("/api/webhooks/*",)),
    )


@pytest.fixture
def app(settings, engine, clock):
    return create_app(settings, engine=engine, csrf_clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client
