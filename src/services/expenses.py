# src/services/expenses.py
# -----------------------------------------------------------------------------
# СОЗДАНИЕ / ЧТЕНИЕ РАСХОДОВ
# -----------------------------------------------------------------------------
# create_expense:
#   1) валидация (сумма > 0, участники и плательщик - в группе) ДО записи;
#   2) одна транзакция: expense + splits + запись истории 'created'
#      (история - best-effort через SAVEPOINT);
#   3) после коммита - post-commit хуки (пересчёт кэша settle-up);
#      их падение не валит создание расхода.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy.orm import sessionmaker

from src.config import Settings
from src.errors import NotFoundError, ValidationError
from src.models.expense import Expense
from src.models.expense_history import ACTION_CREATED
from src.schemas.expense import ExpenseOut, ExpenseSplitOut
from src.services.history import HistoryService, record_history_in, snapshot_expense
from src.services.hooks import HookRunner
from src.services.ledger_store import LedgerStore
from src.utils.balance import money
from src.utils.guards import require_id
from src.utils.split import compute_equal_split, normalize_custom_split

log = logging.getLogger(__name__)


def _positive_amount(amount) -> Decimal:
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Invalid total amount")
    if not value.is_finite():
        raise ValidationError("Invalid total amount")
    value = money(value)
    if value <= 0:
        raise ValidationError("Amount must be positive")
    return value


def _expense_out(store: LedgerStore, expense: Expense) -> ExpenseOut:
    names = store.user_names([expense.paid_by] + [s.user_id for s in expense.splits])
    return ExpenseOut(
        id=expense.id,
        group_id=expense.group_id,
        paid_by=expense.paid_by,
        payer_name=names.get(expense.paid_by),
        amount=money(expense.amount),
        description=expense.description,
        created_at=expense.created_at,
        splits=[
            ExpenseSplitOut(user_id=s.user_id, owed_amount=money(s.owed_amount), user_name=names.get(s.user_id))
            for s in sorted(expense.splits, key=lambda s: s.user_id)
        ],
    )


class ExpenseService:
    def __init__(self, session_factory: sessionmaker, settings: Settings, history: HistoryService):
        self.session_factory = session_factory
        self.settings = settings
        self.history = history

    def create_expense(
        self,
        *,
        group_id: int,
        payer_id: int,
        amount,
        participant_ids: Iterable[int] = (),
        description: Optional[str] = None,
        actor_id: Optional[int] = None,
        shares: Optional[Iterable[Mapping]] = None,
        run_hooks: Optional[HookRunner] = None,
    ) -> ExpenseOut:
        gid = require_id(group_id, "group_id")
        payer = require_id(payer_id, "paid_by")
        actor = require_id(actor_id, "actor_id") if actor_id is not None else payer
        total = _positive_amount(amount)

        if shares:
            splits: List[Dict] = normalize_custom_split(total, shares)
        else:
            ids = {require_id(uid, "participant id") for uid in participant_ids}
            if not ids:
                raise ValidationError("At least one participant is required")
            splits = compute_equal_split(total, ids)

        description = (description or "").strip() or None

        with self.session_factory() as db:
            store = LedgerStore(db)
            if store.get_group(gid) is None:
                raise NotFoundError("Group not found")

            member_ids = {m["id"] for m in store.list_members(gid)}
            if payer not in member_ids:
                raise ValidationError("paid_by must be a member of the group")
            if any(s["user_id"] not in member_ids for s in splits):
                raise ValidationError("One or more participants are not in the group")

            with store.transaction():
                expense = store.insert_expense(
                    group_id=gid,
                    paid_by=payer,
                    amount=total,
                    description=description,
                    splits=splits,
                )
                record_history_in(
                    store,
                    expense_id=expense.id,
                    action=ACTION_CREATED,
                    actor_id=actor,
                    old=None,
                    new=snapshot_expense(expense),
                )
                out = _expense_out(store, expense)

        log.info("expenses: expense %s created in group %s (%s splits)", out.id, gid, len(out.splits))
        self.history.after_commit(gid, run_hooks)
        return out

    def get_expense(self, expense_id: int) -> ExpenseOut:
        eid = require_id(expense_id, "expense_id")
        with self.session_factory() as db:
            store = LedgerStore(db)
            expense = store.get_expense(eid)
            if expense is None:
                raise NotFoundError("Expense not found")
            return _expense_out(store, expense)
