# src/db.py
# Инициализация SQLAlchemy: Base, фабрики движка/сессий и явные импорты моделей.
# Движок НЕ создаётся при импорте - его жизненным циклом управляет приложение.

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from src.config import Settings

Base = declarative_base()


def make_engine(settings: Settings) -> Engine:
    url = settings.database_url
    if url.startswith("sqlite"):
        # у sqlite нет пула в привычном смысле - параметры пула не передаём
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        pool_recycle=settings.pool_recycle,
        pool_pre_ping=True,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


from src.models import (  # noqa: E402,F401
    user,
    group,
    group_member,
    expense,
    expense_split,
    expense_history,
    settlement_cache,
)
