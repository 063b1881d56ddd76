# src/config.py
# -----------------------------------------------------------------------------
# НАСТРОЙКИ ПРИЛОЖЕНИЯ (из окружения / .env)
# -----------------------------------------------------------------------------
# Никаких глобальных движков/сессий здесь нет: Settings только читает ENV,
# а движок и фабрику сессий создаёт приложение на старте (см. src/main.py).
# -----------------------------------------------------------------------------

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
)


def _int_env(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _flag_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    database_url: str = "sqlite:///./ledger.db"

    pool_size: int = 20
    max_overflow: int = 20
    pool_timeout: int = 60
    pool_recycle: int = 1800

    # таймаут агрегирующих запросов по умолчанию (мс); None - без ограничения
    query_timeout_ms: Optional[int] = None

    audit_trail_default_limit: int = 50
    audit_trail_max_limit: int = 200

    # пересчитывать кэш settle-up после каждой мутации леджера
    recompute_on_change: bool = True

    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        cors_raw = os.getenv("CORS_ORIGINS")
        cors = [o.strip() for o in cors_raw.split(",") if o.strip()] if cors_raw else list(DEFAULT_CORS_ORIGINS)
        return cls(
            database_url=os.getenv("DATABASE_URL") or cls.database_url,
            pool_size=_int_env("DB_POOL_SIZE", 20),
            max_overflow=_int_env("DB_MAX_OVERFLOW", 20),
            pool_timeout=_int_env("DB_POOL_TIMEOUT", 60),
            pool_recycle=_int_env("DB_POOL_RECYCLE", 1800),
            query_timeout_ms=_int_env("LEDGER_QUERY_TIMEOUT_MS", None),
            audit_trail_default_limit=_int_env("AUDIT_TRAIL_DEFAULT_LIMIT", 50),
            audit_trail_max_limit=_int_env("AUDIT_TRAIL_MAX_LIMIT", 200),
            recompute_on_change=_flag_env("SETTLEMENT_RECOMPUTE_ON_CHANGE", True),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
            cors_origins=cors,
        )
