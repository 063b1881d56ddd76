from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from src.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from src.models.expense import Expense
from src.models.expense_history import ExpenseHistory
from src.models.expense_split import ExpenseSplit
from src.models.group_member import GroupMember
from src.services import history as history_module
from src.services.history import read_snapshot
from src.services.ledger_store import LedgerStore
from tests.conftest import ALICE, BOB, CAROL, EVE, FLAT, TRIP


def _dinner(ledger, amount="90.00", payer=ALICE, participants=(ALICE, BOB, CAROL)):
    return ledger.expenses.create_expense(
        group_id=TRIP,
        payer_id=payer,
        amount=amount,
        participant_ids=participants,
        description="Dinner",
    )


def _balances(ledger, group_id=TRIP):
    return {b.id: b.balance for b in ledger.balances.balances(group_id)}


def _history_rows(session_factory, expense_id=None):
    with session_factory() as db:
        stmt = select(ExpenseHistory).order_by(ExpenseHistory.id.asc())
        if expense_id is not None:
            stmt = stmt.where(ExpenseHistory.expense_id == expense_id)
        return list(db.execute(stmt).unique().scalars().all())


# ---- создание ---------------------------------------------------------------

def test_create_expense_records_created_entry(ledger, session_factory):
    out = _dinner(ledger)

    assert [(s.user_id, s.owed_amount) for s in out.splits] == [
        (ALICE, Decimal("30.00")),
        (BOB, Decimal("30.00")),
        (CAROL, Decimal("30.00")),
    ]
    rows = _history_rows(session_factory, out.id)
    assert [r.action for r in rows] == ["created"]
    assert rows[0].snapshot["version"] == 1
    assert rows[0].snapshot["new"]["amount"] == "90.00"
    assert _balances(ledger) == {ALICE: 60.0, BOB: -30.0, CAROL: -30.0}


def test_create_expense_rejects_bad_input_before_writing(ledger, session_factory):
    with pytest.raises(ValidationError):
        _dinner(ledger, amount="0")
    with pytest.raises(ValidationError):
        _dinner(ledger, participants=(ALICE, EVE))
    with pytest.raises(ValidationError):
        _dinner(ledger, payer=EVE)
    with pytest.raises(NotFoundError):
        ledger.expenses.create_expense(group_id=999, payer_id=ALICE, amount="10", participant_ids=[ALICE])

    with session_factory() as db:
        assert db.scalar(select(Expense.id)) is None


def test_history_failure_does_not_fail_expense(ledger, session_factory, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("history table is gone")

    monkeypatch.setattr(history_module, "_write_history", broken)

    out = _dinner(ledger)

    assert ledger.expenses.get_expense(out.id).amount == Decimal("90.00")
    assert _history_rows(session_factory) == []


# ---- undo / redo ------------------------------------------------------------

def test_undo_then_redo_restores_as_new_expense(ledger, session_factory):
    original = _dinner(ledger)

    undone = ledger.history.undo(original.id, BOB)
    assert undone.expense_id == original.id
    with pytest.raises(NotFoundError):
        ledger.expenses.get_expense(original.id)
    assert set(_balances(ledger).values()) == {0.0}

    with session_factory() as db:
        assert db.scalar(select(ExpenseSplit.id).where(ExpenseSplit.expense_id == original.id)) is None

    redone = ledger.history.redo(undone.history_id, ALICE)
    assert redone.new_expense_id != original.id

    restored = ledger.expenses.get_expense(redone.new_expense_id)
    assert restored.amount == original.amount
    assert restored.paid_by == original.paid_by
    assert restored.description == original.description
    assert [(s.user_id, s.owed_amount) for s in restored.splits] == [
        (s.user_id, s.owed_amount) for s in original.splits
    ]
    assert _balances(ledger) == {ALICE: 60.0, BOB: -30.0, CAROL: -30.0}

    entry = [r for r in _history_rows(session_factory, redone.new_expense_id) if r.action == "restored"][0]
    assert entry.id == redone.restored_history_id
    assert entry.snapshot["restored_from"] == undone.history_id
    assert entry.changed_by == ALICE


def test_undo_missing_expense(ledger):
    with pytest.raises(NotFoundError):
        ledger.history.undo(12345, ALICE)


def test_redo_missing_entry(ledger):
    with pytest.raises(NotFoundError):
        ledger.history.redo(12345, ALICE)


def test_redo_of_non_deletion_is_invalid(ledger, session_factory):
    out = _dinner(ledger)
    created = _history_rows(session_factory, out.id)[0]

    with pytest.raises(InvalidStateError):
        ledger.history.redo(created.id, ALICE)


def test_redo_without_snapshot_is_invalid(ledger, session_factory):
    out = _dinner(ledger)
    undone = ledger.history.undo(out.id, ALICE)

    with session_factory() as db:
        db.get(ExpenseHistory, undone.history_id).snapshot = None
        db.commit()

    with pytest.raises(InvalidStateError):
        ledger.history.redo(undone.history_id, ALICE)


def test_redo_when_participant_left_group_is_invalid(ledger, session_factory):
    out = _dinner(ledger)
    undone = ledger.history.undo(out.id, ALICE)

    with session_factory() as db:
        member = db.scalar(select(GroupMember).where(GroupMember.group_id == TRIP, GroupMember.user_id == CAROL))
        member.deleted_at = datetime.utcnow()
        db.commit()
        assert not member.is_active

    with pytest.raises(InvalidStateError):
        ledger.history.redo(undone.history_id, ALICE)


def test_undo_is_atomic(ledger, session_factory, monkeypatch):
    out = _dinner(ledger)

    def failing_delete(self, expense):
        raise OperationalError("DELETE FROM expenses", {}, Exception("database is locked"))

    monkeypatch.setattr(LedgerStore, "delete_expense", failing_delete)

    with pytest.raises(ConflictError):
        ledger.history.undo(out.id, ALICE)

    assert ledger.expenses.get_expense(out.id).id == out.id
    assert [r.action for r in _history_rows(session_factory, out.id)] == ["created"]


# ---- снапшоты -----------------------------------------------------------------

def test_legacy_snapshot_without_version_is_read():
    snap = read_snapshot({
        "old": {
            "amount": "12.50",
            "description": "Taxi",
            "group_id": 1,
            "paid_by": 2,
            "splits": [{"user_id": 1, "owed_amount": "12.50"}],
        },
        "new": None,
    })
    assert snap.version == 1
    assert snap.old.amount == Decimal("12.50")
    assert snap.old.splits[0].user_id == 1


def test_unknown_snapshot_version_is_invalid():
    with pytest.raises(InvalidStateError):
        read_snapshot({"version": 99, "old": None, "new": None})
    with pytest.raises(InvalidStateError):
        read_snapshot("not json")


# ---- time travel ------------------------------------------------------------

def test_balances_at_date_ignores_later_expenses(ledger, add_expense):
    add_expense(TRIP, ALICE, "30", [(BOB, "15"), (CAROL, "15")], datetime(2026, 1, 10, 12, 0), "Lunch")
    add_expense(TRIP, BOB, "60", [(ALICE, "30"), (BOB, "30")], datetime(2026, 2, 10, 12, 0), "Tickets")

    january = ledger.history.balances_at_date(TRIP, "2026-01-31")
    assert january.expense_count == 1
    assert january.total_spent == 30.0
    assert {b.id: b.balance for b in january.balances} == {ALICE: 30.0, BOB: -15.0, CAROL: -15.0}
    assert [e.description for e in january.recent_expenses] == ["Lunch"]

    later = ledger.history.balances_at_date(TRIP, "2026-03-01T00:00:00Z")
    assert later.expense_count == 2
    assert {b.id: b.balance for b in later.balances} == {ALICE: 0.0, BOB: 15.0, CAROL: -15.0}


def test_date_only_cutoff_means_midnight(ledger, add_expense):
    add_expense(TRIP, ALICE, "30", [(BOB, "30")], datetime(2026, 1, 15, 10, 0))

    assert ledger.history.balances_at_date(TRIP, "2026-01-15").expense_count == 0
    assert ledger.history.balances_at_date(TRIP, "2026-01-15T23:59:59").expense_count == 1


def test_balances_at_date_errors(ledger):
    with pytest.raises(ValidationError):
        ledger.history.balances_at_date(TRIP, "15/01/2026")
    with pytest.raises(ValidationError):
        ledger.history.balances_at_date(TRIP, None)
    with pytest.raises(NotFoundError):
        ledger.history.balances_at_date(999, "2026-01-15")


# ---- аудит ------------------------------------------------------------------

def test_audit_trail_newest_first_and_keeps_deleted(ledger):
    first = _dinner(ledger)
    second = _dinner(ledger, amount="12.00", payer=BOB, participants=(BOB, CAROL))
    ledger.history.undo(first.id, CAROL)

    trail = ledger.history.audit_trail(TRIP)
    assert [(e.expense_id, e.action) for e in trail] == [
        (first.id, "deleted"),
        (second.id, "created"),
        (first.id, "created"),
    ]
    assert trail[0].changed_by == CAROL
    assert trail[0].changed_by_name == "Carol"
    assert trail[0].old_amount == Decimal("90.00")

    assert [e.action for e in ledger.history.audit_trail(TRIP, limit=1)] == ["deleted"]
    assert ledger.history.audit_trail(FLAT) == []


def test_audit_trail_limit_is_clamped(ledger, settings):
    settings.audit_trail_max_limit = 3
    assert ledger.history.clamp_limit(10_000) == 3
    assert ledger.history.clamp_limit(0) == 1
    assert ledger.history.clamp_limit(None) == settings.audit_trail_default_limit


def test_audit_trail_unknown_group(ledger):
    with pytest.raises(NotFoundError):
        ledger.history.audit_trail(999)
    with pytest.raises(ValidationError):
        ledger.history.audit_trail(0)


def test_expense_history_lists_versions(ledger):
    out = _dinner(ledger)
    ledger.history.undo(out.id, ALICE)

    assert [e.action for e in ledger.history.expense_history(out.id)] == ["deleted", "created"]


def test_former_member_keeps_balance_row(ledger, session_factory):
    _dinner(ledger)

    with session_factory() as db:
        member = db.scalar(select(GroupMember).where(GroupMember.group_id == TRIP, GroupMember.user_id == CAROL))
        member.deleted_at = datetime.utcnow()
        db.commit()

    balances = _balances(ledger)
    assert balances == {ALICE: 60.0, BOB: -30.0, CAROL: -30.0}
    assert sum(balances.values()) == 0

    plan = ledger.settlements.recompute(TRIP)
    assert sum(s.amount for s in plan.settlements if s.to_user == ALICE) == 60.0
    assert {s.from_user for s in plan.settlements} == {BOB, CAROL}

    as_of = ledger.history.balances_at_date(TRIP, "2999-01-01")
    assert sum(b.balance for b in as_of.balances) == 0
    assert CAROL in {n.id for n in ledger.debt_graph.build(TRIP).nodes}

    # новые расходы на ушедшего участника по-прежнему запрещены
    with pytest.raises(ValidationError):
        _dinner(ledger)
