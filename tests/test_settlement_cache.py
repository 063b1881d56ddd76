import pytest

from src.errors import DependencyError, NotFoundError
from src.services.hooks import run_post_commit_hooks
from src.services.ledger import Ledger
from src.services.settlements import SettlementService
from tests.conftest import ALICE, BOB, CAROL, FLAT, TRIP


def _transfers(plan):
    return [(s.from_user, s.to_user, s.amount) for s in plan.settlements]


def _dinner(ledger, amount="90.00"):
    return ledger.expenses.create_expense(
        group_id=TRIP,
        payer_id=ALICE,
        amount=amount,
        participant_ids=[ALICE, BOB, CAROL],
    )


def test_get_returns_none_on_miss(ledger):
    assert ledger.settlements.get(TRIP) is None


def test_expense_creation_refreshes_cache(ledger):
    _dinner(ledger)

    cached = ledger.settlements.get(TRIP)
    assert cached.source == "cache"
    assert _transfers(cached) == [(BOB, ALICE, 30.0), (CAROL, ALICE, 30.0)]
    assert cached.settlements[0].from_name == "Bob"
    assert cached.settlements[0].to_name == "Alice"


def test_recompute_is_fresh_and_idempotent(ledger):
    _dinner(ledger)

    first = ledger.settlements.recompute(TRIP)
    second = ledger.settlements.recompute(TRIP)

    assert first.source == second.source == "fresh"
    assert _transfers(first) == _transfers(second)
    assert second.generated_at >= first.generated_at


def test_get_or_compute_falls_back_to_recompute(session_factory, settings):
    settings.recompute_on_change = False
    ledger = Ledger(session_factory, settings)
    _dinner(ledger)

    # без пересчёта на мутации кэш пуст
    assert ledger.settlements.get(TRIP) is None

    plan = ledger.settlements.get_or_compute(TRIP)
    assert plan.source == "fresh"
    assert ledger.settlements.get_or_compute(TRIP).source == "cache"


def test_stale_cache_is_served_as_cache(session_factory, settings):
    settings.recompute_on_change = False
    ledger = Ledger(session_factory, settings)
    _dinner(ledger)
    ledger.settlements.recompute(TRIP)
    _dinner(ledger, amount="30.00")

    stale = ledger.settlements.get(TRIP)
    fresh = ledger.settlements.recompute(TRIP)

    assert stale.source == "cache"
    assert _transfers(stale) == [(BOB, ALICE, 30.0), (CAROL, ALICE, 30.0)]
    assert _transfers(fresh) == [(BOB, ALICE, 40.0), (CAROL, ALICE, 40.0)]


def test_undo_refreshes_cache(ledger):
    out = _dinner(ledger)
    ledger.history.undo(out.id, ALICE)

    assert ledger.settlements.get(TRIP).settlements == []


def test_recompute_failure_does_not_fail_expense(ledger, monkeypatch):
    def broken(self, group_id, **kwargs):
        raise RuntimeError("cache store unavailable")

    monkeypatch.setattr(SettlementService, "recompute", broken)

    out = _dinner(ledger)

    assert ledger.expenses.get_expense(out.id).id == out.id
    assert ledger.settlements.get(TRIP) is None


def test_hook_failures_are_reported_as_dependency_errors():
    calls = []

    def ok():
        calls.append("ok")

    def broken():
        raise RuntimeError("boom")

    failures = run_post_commit_hooks([broken, ok])

    assert calls == ["ok"]
    assert len(failures) == 1
    assert isinstance(failures[0], DependencyError)
    assert isinstance(failures[0].__cause__, RuntimeError)


def test_for_user_keeps_only_own_transfers(ledger):
    _dinner(ledger)
    plan = ledger.settlements.recompute(TRIP)

    mine = SettlementService.for_user(plan, BOB)
    assert _transfers(mine) == [(BOB, ALICE, 30.0)]
    assert _transfers(SettlementService.for_user(plan, ALICE)) == _transfers(plan)
    assert len(plan.settlements) == 2


def test_groups_are_cached_independently(ledger):
    _dinner(ledger)
    assert ledger.settlements.get(FLAT) is None
    assert ledger.settlements.recompute(FLAT).settlements == []


def test_recompute_unknown_group(ledger):
    with pytest.raises(NotFoundError):
        ledger.settlements.recompute(999)
