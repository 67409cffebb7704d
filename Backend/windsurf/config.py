"""
Application configuration.

Values are read once from the environment (after loading Backend/.env) into
immutable pydantic models. Malformed values fall back to their defaults; a bad
setting never prevents the application from starting.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

ROOT_DIR = Path(__file__).resolve().parent.parent

DEFAULT_MAX_BODY_BYTES = 16384
DEFAULT_DB_TABLE = "centinela_logs"
DEFAULT_REDACT_HEADERS = ("authorization", "cookie", "set-cookie", "x-admin-token")
DEFAULT_REDACT_RESPONSE_HEADERS = ("set-cookie",)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def load_environment() -> None:
    """Load Backend/.env without overriding variables already exported."""
    load_dotenv(ROOT_DIR / ".env")


def env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    return default


def env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_str(env: Mapping[str, str], name: str, default: str) -> str:
    value = (env.get(name) or "").strip()
    return value or default


def split_csv(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def header_set(names: Iterable[str]) -> FrozenSet[str]:
    return frozenset(n.strip().lower() for n in names if n and n.strip())


def parse_outputs(raw: Optional[str]) -> FrozenSet[str]:
    """
    Resolve the active sinks from an output setting.

    Accepts "file", "db", "both"/"all", or a comma list such as "file,db".
    Unknown entries are ignored; an empty result falls back to the file sink.
    """
    outputs = set()
    for item in split_csv((raw or "").lower()):
        if item in ("both", "all"):
            outputs.update(("file", "db"))
        elif item in ("db", "database"):
            outputs.add("db")
        elif item == "file":
            outputs.add("file")
    return frozenset(outputs or {"file"})


class CentinelaConfig(BaseModel):
    """Audit logging configuration. Built once at startup, immutable thereafter."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    file_enabled: bool = True
    dir: Path = Field(default_factory=lambda: ROOT_DIR / "centinela")
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    db_enabled: bool = False
    db_table: str = DEFAULT_DB_TABLE
    db_auto_migrate: bool = False
    redact_headers: FrozenSet[str] = header_set(DEFAULT_REDACT_HEADERS)
    redact_response_headers: FrozenSet[str] = header_set(DEFAULT_REDACT_RESPONSE_HEADERS)
    # required to read stored records over HTTP; never part of to_dict
    admin_token: Optional[str] = Field(default=None, repr=False)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "CentinelaConfig":
        env = os.environ if env is None else env
        outputs = parse_outputs(env.get("CENTINELA_OUTPUT"))

        raw_dir = (env.get("CENTINELA_DIR") or "").strip()
        request_headers = env.get("CENTINELA_REDACT_HEADERS")
        response_headers = env.get("CENTINELA_REDACT_RESPONSE_HEADERS")

        return cls(
            enabled=env_bool(env, "CENTINELA_ENABLED", True),
            file_enabled="file" in outputs,
            dir=Path(raw_dir) if raw_dir else ROOT_DIR / "centinela",
            max_body_bytes=env_int(env, "CENTINELA_MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES),
            db_enabled="db" in outputs,
            db_table=env_str(env, "CENTINELA_DB_TABLE", DEFAULT_DB_TABLE),
            db_auto_migrate=env_bool(env, "CENTINELA_DB_AUTO_MIGRATE", False),
            redact_headers=header_set(
                split_csv(request_headers) if request_headers is not None else DEFAULT_REDACT_HEADERS
            ),
            redact_response_headers=header_set(
                split_csv(response_headers) if response_headers is not None else DEFAULT_REDACT_RESPONSE_HEADERS
            ),
            admin_token=(env.get("CENTINELA_ADMIN_TOKEN") or "").strip() or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "file_enabled": self.file_enabled,
            "dir": str(self.dir),
            "max_body_bytes": self.max_body_bytes,
            "redact_headers": sorted(self.redact_headers),
            "redact_response_headers": sorted(self.redact_response_headers),
            "db": {
                "enabled": self.db_enabled,
                "table": self.db_table,
                "auto_migrate": self.db_auto_migrate,
            },
        }


class CsrfConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    excluded_paths: Tuple[str, ...] = ()
    token_name: str = "csrf_token"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "CsrfConfig":
        env = os.environ if env is None else env
        return cls(
            enabled=env_bool(env, "CSRF_ENABLED", True),
            excluded_paths=tuple(split_csv(env.get("CSRF_EXCLUDED_PATHS"))),
            token_name=env_str(env, "CSRF_TOKEN_NAME", "csrf_token"),
        )


class SessionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    cookie_name: str = "windsurf_session"
    secure: bool = False
    idle_ttl: int = 1800
    max_sessions: int = 10000

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SessionConfig":
        env = os.environ if env is None else env
        return cls(
            cookie_name=env_str(env, "SESSION_COOKIE_NAME", "windsurf_session"),
            secure=env_bool(env, "SESSION_SECURE", False),
            idle_ttl=env_int(env, "SESSION_IDLE_TTL", 1800),
            max_sessions=env_int(env, "SESSION_MAX", 10000),
        )


class CorsConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed_origins: Tuple[str, ...] = ("*",)
    allowed_methods: str = "GET, POST, PUT, DELETE, PATCH, OPTIONS"
    allowed_headers: str = "X-Requested-With, Content-Type, Accept, Origin, Authorization, X-CSRF-TOKEN"
    max_age: int = 86400
    allow_credentials: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "CorsConfig":
        env = os.environ if env is None else env
        return cls(
            allowed_origins=tuple(split_csv(env.get("CORS_ORIGINS")) or ["*"]),
            max_age=env_int(env, "CORS_MAX_AGE", 86400),
            allow_credentials=env_bool(env, "CORS_ALLOW_CREDENTIALS", False),
        )


class Settings(BaseModel):
    """Everything the application reads from its environment."""

    model_config = ConfigDict(frozen=True)

    database_url: str = "sqlite:///./windsurf.db"
    centinela: CentinelaConfig = Field(default_factory=CentinelaConfig)
    csrf: CsrfConfig = Field(default_factory=CsrfConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    cors: CorsConfig = Field(default_factory=CorsConfig)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            database_url=env_str(env, "DATABASE_URL", "sqlite:///./windsurf.db"),
            centinela=CentinelaConfig.from_env(env),
            csrf=CsrfConfig.from_env(env),
            session=SessionConfig.from_env(env),
            cors=CorsConfig.from_env(env),
        )
