"""SQLAlchemy engine setup (sync)."""

from __future__ import annotations

import os
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

_engine: Optional[Engine] = None


def make_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # request handling and sink writes run on worker threads
        connect_args["check_same_thread"] = False
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


def init_engine(database_url: Optional[str] = None) -> Engine:
    """Create the process-wide engine."""
    global _engine
    url = database_url or os.environ.get("DATABASE_URL", "sqlite:///./windsurf.db")
    _engine = make_engine(url)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        return init_engine()
    return _engine


def db_healthcheck(engine: Engine) -> None:
    """Simple DB connectivity check."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
