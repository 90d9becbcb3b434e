from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple


_STORE_PATH_ENV = "TELEMETRY_STORE_PATH"
_RETENTION_DAYS_ENV = "TELEMETRY_RETENTION_DAYS"
_LATEST_LOOKBACK_ENV = "LATEST_LOOKBACK_HOURS"
_MAX_LIMIT_ENV = "QUERY_MAX_LIMIT"
_SWEEP_INTERVAL_ENV = "RETENTION_SWEEP_SECONDS"
_CORS_ORIGINS_ENV = "CORS_ALLOW_ORIGINS"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    store_path: Optional[str]
    retention_days: int
    latest_lookback_hours: int
    max_query_limit: int
    sweep_interval_seconds: int
    cors_allow_origins: Tuple[str, ...]
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_int_env(name: str, default: int, minimum: int = 1) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _read_origins(default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(_CORS_ORIGINS_ENV)
    if value is None:
        return default
    origins = tuple(part.strip() for part in value.split(",") if part.strip())
    return origins or default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/readings.jsonl"),
        retention_days=_read_int_env(_RETENTION_DAYS_ENV, 30),
        latest_lookback_hours=_read_int_env(_LATEST_LOOKBACK_ENV, 24, minimum=0),
        max_query_limit=_read_int_env(_MAX_LIMIT_ENV, 10000),
        sweep_interval_seconds=_read_int_env(_SWEEP_INTERVAL_ENV, 3600, minimum=0),
        cors_allow_origins=_read_origins(("*",)),
        log_level=_read_log_level("INFO"),
    )
