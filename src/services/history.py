# src/services/history.py
# -----------------------------------------------------------------------------
# АУДИТ / ИСТОРИЯ РАСХОДОВ (time travel + undo/redo)
# -----------------------------------------------------------------------------
# Жизненный цикл расхода: live -> deleted -> (опционально) restored-as-new-live.
#
#   • record(...)        - append-only запись истории; best-effort: ошибки
#                          логируются ("data-integrity risk"), не пробрасываются.
#   • undo(expense_id)   - снапшот расхода + долей в запись 'deleted' и удаление
#                          живых строк. АТОМАРНО: запись истории обязательна.
#   • redo(history_id)   - новый расход (НОВЫЙ id) из снапшота 'deleted' +
#                          запись 'restored' со ссылкой на исходную запись.
#   • balances_at_date   - балансы на момент cutoff (делегирует агрегатору).
#   • audit_trail        - лента истории группы, новые сверху, с лимитом.
#   • expense_history    - версии одного расхода.
# После коммита undo/redo запускаются post-commit хуки (пересчёт кэша).
# -----------------------------------------------------------------------------

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import sessionmaker

from src.config import Settings
from src.errors import InvalidStateError, NotFoundError, ValidationError
from src.models.expense import Expense
from src.models.expense_history import (
    ACTION_DELETED,
    ACTION_RESTORED,
    ACTIONS,
    ExpenseHistory,
)
from src.schemas.balance import BalancesAtDateOut, RecentExpenseOut
from src.schemas.history import (
    SNAPSHOT_VERSION,
    AuditEntryOut,
    ExpenseSnapshot,
    HistorySnapshot,
    RedoResultOut,
    SplitSnapshot,
    UndoResultOut,
)
from src.services.balances import compute_balance_rows, to_balance_out
from src.services.hooks import HookRunner, PostCommitHook, run_inline
from src.services.ledger_store import LedgerStore
from src.services.settlements import SettlementService
from src.utils.guards import CutoffLike, parse_cutoff, require_id

log = logging.getLogger(__name__)

RECENT_EXPENSES_LIMIT = 20


# =========================
# СНАПШОТЫ
# =========================

def snapshot_expense(expense: Expense) -> ExpenseSnapshot:
    """Полное состояние расхода + долей, достаточное для восстановления."""
    return ExpenseSnapshot(
        amount=expense.amount,
        description=expense.description,
        group_id=expense.group_id,
        paid_by=expense.paid_by,
        created_at=expense.created_at,
        splits=[
            SplitSnapshot(user_id=s.user_id, owed_amount=s.owed_amount)
            for s in sorted(expense.splits or [], key=lambda s: s.user_id)
        ],
    )


def make_snapshot(
    old: Optional[ExpenseSnapshot],
    new: Optional[ExpenseSnapshot],
    *,
    restored_from: Optional[int] = None,
) -> Dict[str, Any]:
    return HistorySnapshot(
        version=SNAPSHOT_VERSION,
        old=old,
        new=new,
        timestamp=datetime.utcnow(),
        restored_from=restored_from,
    ).model_dump(mode="json")


def read_snapshot(raw: Any) -> HistorySnapshot:
    """
    Разбирает snapshot из expense_history. Блобы без "version" (старый формат
    той же формы) читаются как версия 1; неизвестная версия - InvalidStateError.
    """
    if raw is None:
        raise InvalidStateError("No snapshot data available for restore")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise InvalidStateError("Snapshot is not valid JSON")
    if not isinstance(raw, dict):
        raise InvalidStateError("Snapshot has unexpected shape")

    version = raw.get("version", SNAPSHOT_VERSION)
    if version != SNAPSHOT_VERSION:
        raise InvalidStateError(f"Unsupported snapshot version: {version}")

    data = dict(raw)
    data["version"] = SNAPSHOT_VERSION
    data.setdefault("timestamp", datetime.utcnow().isoformat())
    try:
        return HistorySnapshot.model_validate(data)
    except SchemaValidationError as e:
        raise InvalidStateError(f"Snapshot is unreadable: {e.error_count()} error(s)")


def _write_history(
    store: LedgerStore,
    *,
    expense_id: int,
    action: str,
    actor_id: int,
    old: Optional[ExpenseSnapshot],
    new: Optional[ExpenseSnapshot],
    restored_from: Optional[int] = None,
) -> ExpenseHistory:
    if action not in ACTIONS:
        raise ValidationError(f"Unknown history action: {action}")
    ref = old or new
    return store.add_history(
        expense_id=expense_id,
        action=action,
        changed_by=actor_id,
        group_id=ref.group_id if ref is not None else None,
        snapshot=make_snapshot(old, new, restored_from=restored_from),
        old_amount=old.amount if old is not None else None,
        new_amount=new.amount if new is not None else None,
        old_description=old.description if old is not None else None,
        new_description=new.description if new is not None else None,
    )


def record_history_in(
    store: LedgerStore,
    *,
    expense_id: int,
    action: str,
    actor_id: int,
    old: Optional[ExpenseSnapshot],
    new: Optional[ExpenseSnapshot],
    restored_from: Optional[int] = None,
) -> Optional[ExpenseHistory]:
    """
    Best-effort запись внутри текущей транзакции мутации (через SAVEPOINT):
    если запись не удалась - откатываем только её, мутация идёт дальше.
    """
    try:
        with store.db.begin_nested():
            return _write_history(
                store,
                expense_id=expense_id,
                action=action,
                actor_id=actor_id,
                old=old,
                new=new,
                restored_from=restored_from,
            )
    except Exception:
        log.exception(
            "history: failed to record '%s' for expense %s (data-integrity risk)", action, expense_id
        )
        return None


def _audit_out(entry: ExpenseHistory) -> AuditEntryOut:
    return AuditEntryOut.model_validate(entry)


# =========================
# СЕРВИС
# =========================

class HistoryService:
    def __init__(
        self,
        session_factory: sessionmaker,
        settings: Settings,
        settlements: Optional[SettlementService] = None,
        hook_runner: HookRunner = run_inline,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.settlements = settlements
        self.hook_runner = hook_runner

    # ---- post-commit ----------------------------------------------------------

    def post_commit_hooks(self, group_id: int) -> List[PostCommitHook]:
        if self.settlements is None or not self.settings.recompute_on_change:
            return []
        return [self.settlements.recompute_hook(group_id)]

    def after_commit(self, group_id: int, run_hooks: Optional[HookRunner]) -> None:
        hooks = self.post_commit_hooks(group_id)
        if hooks:
            (run_hooks or self.hook_runner)(hooks)

    # ---- запись истории -------------------------------------------------------

    def record(
        self,
        expense_id: int,
        action: str,
        actor_id: int,
        old: Optional[ExpenseSnapshot] = None,
        new: Optional[ExpenseSnapshot] = None,
    ) -> Optional[int]:
        """
        Самостоятельная (вне мутации) запись истории. Никогда не бросает:
        ошибка логируется, возвращается None.
        """
        try:
            with self.session_factory() as db:
                store = LedgerStore(db)
                with store.transaction():
                    entry = _write_history(
                        store,
                        expense_id=expense_id,
                        action=action,
                        actor_id=actor_id,
                        old=old,
                        new=new,
                    )
                return entry.id
        except Exception:
            log.exception(
                "history: failed to record '%s' for expense %s (data-integrity risk)", action, expense_id
            )
            return None

    # ---- undo / redo ----------------------------------------------------------

    def undo(self, expense_id: int, actor_id: int, *, run_hooks: Optional[HookRunner] = None) -> UndoResultOut:
        eid = require_id(expense_id, "expense_id")
        uid = require_id(actor_id, "actor_id")

        with self.session_factory() as db:
            store = LedgerStore(db)
            with store.transaction():
                expense = store.get_expense(eid)
                if expense is None:
                    raise NotFoundError("Expense not found")

                old = snapshot_expense(expense)
                # здесь история НЕ best-effort: без снапшота redo невозможен
                entry = _write_history(
                    store, expense_id=eid, action=ACTION_DELETED, actor_id=uid, old=old, new=None
                )
                store.delete_expense(expense)
            history_id = entry.id

        log.info("history: expense %s undone by user %s (history %s)", eid, uid, history_id)
        self.after_commit(old.group_id, run_hooks)
        return UndoResultOut(expense_id=eid, history_id=history_id)

    def redo(self, history_id: int, actor_id: int, *, run_hooks: Optional[HookRunner] = None) -> RedoResultOut:
        hid = require_id(history_id, "history_id")
        uid = require_id(actor_id, "actor_id")

        with self.session_factory() as db:
            store = LedgerStore(db)
            with store.transaction():
                entry = store.get_history(hid)
                if entry is None:
                    raise NotFoundError("History entry not found")
                if entry.action != ACTION_DELETED:
                    raise InvalidStateError(f"History entry {hid} is not a deletion ('{entry.action}')")

                old = read_snapshot(entry.snapshot).old
                if old is None:
                    raise InvalidStateError("No snapshot data available for restore")

                if store.get_group(old.group_id) is None:
                    raise InvalidStateError("Group of the deleted expense no longer exists")
                member_ids = {m["id"] for m in store.list_members(old.group_id)}
                outsiders = sorted(
                    ({old.paid_by} | {s.user_id for s in old.splits}) - member_ids
                )
                if outsiders:
                    raise InvalidStateError(f"Users {outsiders} are no longer members of the group")

                expense = store.insert_expense(
                    group_id=old.group_id,
                    paid_by=old.paid_by,
                    amount=old.amount,
                    description=old.description,
                    splits=[s.model_dump() for s in old.splits],
                )
                new_id = expense.id
                restored = record_history_in(
                    store,
                    expense_id=new_id,
                    action=ACTION_RESTORED,
                    actor_id=uid,
                    old=None,
                    new=snapshot_expense(expense),
                    restored_from=hid,
                )
            restored_id = restored.id if restored is not None else None

        log.info("history: history %s redone by user %s as expense %s", hid, uid, new_id)
        self.after_commit(old.group_id, run_hooks)
        return RedoResultOut(history_id=hid, new_expense_id=new_id, restored_history_id=restored_id)

    # ---- чтение ---------------------------------------------------------------

    def balances_at_date(
        self,
        group_id: int,
        cutoff: CutoffLike,
        *,
        timeout_ms: Optional[int] = None,
    ) -> BalancesAtDateOut:
        gid = require_id(group_id, "group_id")
        cutoff_dt = parse_cutoff(cutoff)

        with self.session_factory() as db:
            store = LedgerStore(db, statement_timeout_ms=self.settings.query_timeout_ms)
            if store.get_group(gid) is None:
                raise NotFoundError("Group not found")

            rows = compute_balance_rows(store, gid, cutoff_dt, timeout_ms)
            with store.bounded(timeout_ms):
                summary = store.expense_summary(gid, cutoff_dt)
                recent = [
                    RecentExpenseOut(
                        id=e.id,
                        amount=float(e.amount),
                        description=e.description,
                        created_at=e.created_at,
                        paid_by=e.paid_by,
                        paid_by_name=e.payer_name,
                    )
                    for e in store.recent_expenses(gid, cutoff_dt, RECENT_EXPENSES_LIMIT)
                ]

        return BalancesAtDateOut(
            as_of_date=cutoff_dt,
            balances=to_balance_out(rows),
            expense_count=summary["count"],
            total_spent=float(summary["total"]),
            recent_expenses=recent,
        )

    def clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.settings.audit_trail_default_limit
        return max(1, min(int(limit), self.settings.audit_trail_max_limit))

    def audit_trail(self, group_id: int, limit: Optional[int] = None) -> List[AuditEntryOut]:
        gid = require_id(group_id, "group_id")
        n = self.clamp_limit(limit)
        with self.session_factory() as db:
            store = LedgerStore(db)
            if store.get_group(gid) is None:
                raise NotFoundError("Group not found")
            return [_audit_out(h) for h in store.group_audit_trail(gid, n)]

    def expense_history(self, expense_id: int) -> List[AuditEntryOut]:
        eid = require_id(expense_id, "expense_id")
        with self.session_factory() as db:
            store = LedgerStore(db)
            return [_audit_out(h) for h in store.expense_history(eid)]
