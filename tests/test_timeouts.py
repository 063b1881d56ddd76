import pytest
from sqlalchemy.exc import DBAPIError

from src.errors import LedgerTimeoutError
from src.services.ledger_store import LedgerStore
from tests.conftest import TRIP


class _DriverError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


def _canceled():
    return DBAPIError("SELECT ...", {}, _DriverError("canceling statement due to statement timeout", "57014"))


def test_statement_timeout_becomes_retryable_error(session_factory):
    with session_factory() as db:
        store = LedgerStore(db)
        with pytest.raises(LedgerTimeoutError) as info:
            with store.bounded(50):
                raise _canceled()

    assert info.value.retryable is True
    assert info.value.code == "timeout"
    assert "50 ms" in info.value.message


def test_other_driver_errors_pass_through(session_factory):
    with session_factory() as db:
        store = LedgerStore(db)
        with pytest.raises(DBAPIError):
            with store.bounded(50):
                raise DBAPIError("SELECT ...", {}, _DriverError("deadlock detected", "40P01"))


def test_timed_out_balances_read(ledger, monkeypatch):
    def slow(self, group_id, cutoff=None):
        raise _canceled()

    monkeypatch.setattr(LedgerStore, "paid_totals", slow)

    with pytest.raises(LedgerTimeoutError):
        ledger.balances.balances(TRIP, timeout_ms=50)


def test_timeout_maps_to_503_with_retry_after(client, monkeypatch):
    def slow(self, group_id, cutoff=None):
        raise _canceled()

    monkeypatch.setattr(LedgerStore, "paid_totals", slow)

    r = client.get(f"/api/groups/{TRIP}/balances")
    assert r.status_code == 503
    assert r.headers["Retry-After"] == "1"
    assert r.json()["code"] == "timeout"
