# src/services/balances.py
# -----------------------------------------------------------------------------
# АГРЕГАТОР БАЛАНСОВ
# -----------------------------------------------------------------------------
# Для группы (и опционального cutoff) по КАЖДОМУ участнику:
#   paid  = сумма Expense.amount, где он плательщик,
#   owed  = сумма ExpenseSplit.owed_amount по расходам группы,
#   balance = paid − owed.
# С cutoff учитываются только расходы с created_at <= cutoff («time travel»).
# -----------------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from src.config import Settings
from src.errors import NotFoundError
from src.schemas.balance import BalanceOut
from src.services.ledger_store import LedgerStore
from src.utils.balance import aggregate_balances
from src.utils.guards import CutoffLike, parse_cutoff, require_id


def compute_balance_rows(
    store: LedgerStore,
    group_id: int,
    cutoff: Optional[datetime] = None,
    timeout_ms: Optional[int] = None,
) -> List[Dict]:
    """
    [{"id", "name", "paid", "owed", "balance"}, ...] - Decimal, по участникам группы
    и бывшим участникам, у которых есть расходы или доли (сумма balance = 0).
    Существование группы проверяет вызывающий.
    """
    with store.bounded(timeout_ms):
        members = store.list_balance_users(group_id, cutoff)
        paid = store.paid_totals(group_id, cutoff)
        owed = store.owed_totals(group_id, cutoff)
    return aggregate_balances(members, paid, owed)


def to_balance_out(rows: List[Dict]) -> List[BalanceOut]:
    return [
        BalanceOut(id=r["id"], name=r["name"], paid=r["paid"], owed=r["owed"], balance=r["balance"])
        for r in rows
    ]


class BalanceService:
    def __init__(self, session_factory: sessionmaker, settings: Settings):
        self.session_factory = session_factory
        self.settings = settings

    def balances(
        self,
        group_id: int,
        cutoff: CutoffLike = None,
        *,
        timeout_ms: Optional[int] = None,
    ) -> List[BalanceOut]:
        gid = require_id(group_id, "group_id")
        cutoff_dt = parse_cutoff(cutoff) if cutoff is not None else None

        with self.session_factory() as db:
            store = LedgerStore(db, statement_timeout_ms=self.settings.query_timeout_ms)
            if store.get_group(gid) is None:
                raise NotFoundError("Group not found")
            rows = compute_balance_rows(store, gid, cutoff_dt, timeout_ms)
        return to_balance_out(rows)
