from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/todo_lists.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - JWT_SECRET: secret used to verify bearer tokens
    - JWT_ALGORITHM: signing algorithm of bearer tokens (default: HS256)
    - LOCK_TIMEOUT_SECONDS: how long an update waits for a row lock (default: 5)
    - REQUEST_TIMEOUT_SECONDS: deadline after which a request is cancelled (default: 30)
    - LOG_FORMAT: 'console' (default) or 'json'
    - LOG_LEVEL: standard logging level name (default: INFO)
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    jwt_secret: str
    jwt_algorithm: str
    lock_timeout_seconds: float
    request_timeout_seconds: float
    log_format: str
    log_level: str


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_float(name: str, value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e
    if parsed <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return parsed


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        raise ValueError(f"PERSISTENCE_BACKEND must be 'memory' or 'sqlite', got {backend!r}")

    log_format = _get_env("LOG_FORMAT", "console").strip().lower()
    if log_format not in {"console", "json"}:
        log_format = "console"

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=_get_env("SQLITE_DB_PATH", "./data/todo_lists.db").strip(),
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*")),
        jwt_secret=_get_env("JWT_SECRET", "change-me"),
        jwt_algorithm=_get_env("JWT_ALGORITHM", "HS256").strip(),
        lock_timeout_seconds=_parse_float(
            "LOCK_TIMEOUT_SECONDS", _get_env("LOCK_TIMEOUT_SECONDS", "5")
        ),
        request_timeout_seconds=_parse_float(
            "REQUEST_TIMEOUT_SECONDS", _get_env("REQUEST_TIMEOUT_SECONDS", "30")
        ),
        log_format=log_format,
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
    )
