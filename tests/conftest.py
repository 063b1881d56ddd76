# tests/conftest.py
# Общие фикстуры: in-memory SQLite (одно соединение на тест, SAVEPOINT работает),
# засеянные пользователи/группы, ядро леджера и HTTP-клиент.

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from src.config import Settings
from src.db import Base, make_session_factory
from src.main import create_app
from src.models.group import Group
from src.models.group_member import GroupMember
from src.models.user import User
from src.services.ledger import Ledger
from src.services.ledger_store import LedgerStore

ALICE, BOB, CAROL, DAVE, EVE = 1, 2, 3, 4, 5
TRIP, FLAT = 1, 2


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite сам управляет BEGIN и ломает SAVEPOINT; отдаём транзакции SQLAlchemy
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = make_session_factory(engine)
    with factory() as db:
        db.add_all([
            User(id=ALICE, name="Alice"),
            User(id=BOB, name="Bob"),
            User(id=CAROL, name="Carol"),
            User(id=DAVE, name="Dave"),
            User(id=EVE, name="Eve"),
        ])
        db.flush()
        # TRIP: Alice (создатель) + Bob + Carol; FLAT: Dave (создатель) + Alice
        db.add_all([
            Group(id=TRIP, name="Trip", created_by=ALICE),
            Group(id=FLAT, name="Flat", created_by=DAVE),
        ])
        db.flush()
        db.add_all([
            GroupMember(group_id=TRIP, user_id=BOB),
            GroupMember(group_id=TRIP, user_id=CAROL),
            GroupMember(group_id=FLAT, user_id=ALICE),
        ])
        db.commit()
    return factory


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", audit_trail_default_limit=50, audit_trail_max_limit=200)


@pytest.fixture
def ledger(session_factory, settings):
    return Ledger(session_factory, settings)


@pytest.fixture
def client(session_factory, settings):
    app = create_app(settings, session_factory)
    return TestClient(app)


@pytest.fixture
def add_expense(session_factory):
    """Расход с заданным created_at напрямую через хранилище (для time travel)."""
    def _add(group_id, paid_by, amount, splits, created_at: datetime, description=None):
        with session_factory() as db:
            store = LedgerStore(db)
            with store.transaction():
                expense = store.insert_expense(
                    group_id=group_id,
                    paid_by=paid_by,
                    amount=amount,
                    description=description,
                    splits=[{"user_id": uid, "owed_amount": owed} for uid, owed in splits],
                    created_at=created_at,
                )
            return expense.id
    return _add
