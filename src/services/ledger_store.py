# src/services/ledger_store.py
# -----------------------------------------------------------------------------
# ХРАНИЛИЩЕ ЛЕДЖЕРА (обёртка над одной SQLAlchemy-сессией)
# -----------------------------------------------------------------------------
# Единственное место, где ядро ходит в БД:
#   • контракты чтения: list_members / list_balance_users / list_expenses / list_splits;
#   • агрегаты: paid_totals / owed_totals (опционально до cutoff);
#   • мутации: insert_expense / delete_expense / add_history;
#   • история: get_history / expense_history / group_audit_trail;
#   • кэш settle-up: get_cached_plan / upsert_cached_plan;
#   • transaction(): commit при нормальном выходе, rollback на ЛЮБОЙ ошибке.
# Сам ничего не коммитит вне transaction().
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from sqlalchemy import func, or_, select, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.errors import ConflictError, LedgerError, LedgerTimeoutError
from src.models.expense import Expense
from src.models.expense_history import ExpenseHistory
from src.models.expense_split import ExpenseSplit
from src.models.group import Group
from src.models.group_member import GroupMember
from src.models.settlement_cache import SettlementCache
from src.models.user import User
from src.utils.balance import money

log = logging.getLogger(__name__)

# SQLSTATE 57014 - query_canceled (в т.ч. по statement_timeout)
_PG_QUERY_CANCELED = "57014"


def _is_statement_timeout(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code == _PG_QUERY_CANCELED


class LedgerStore:
    def __init__(self, db: Session, *, statement_timeout_ms: Optional[int] = None):
        self.db = db
        self.statement_timeout_ms = statement_timeout_ms

    # =========================
    # ТРАНЗАКЦИИ / ТАЙМАУТЫ
    # =========================

    @contextmanager
    def transaction(self) -> Iterator["LedgerStore"]:
        """
        Рамка одной атомарной мутации. Частичная запись (расход без долей и т.п.)
        наружу не видна: либо commit всего, либо rollback всего.
        """
        try:
            yield self
            self.db.commit()
        except LedgerError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            log.exception("ledger: transaction rolled back")
            raise ConflictError("Ledger transaction failed, retry the operation") from e
        except BaseException:
            self.db.rollback()
            raise

    @contextmanager
    def bounded(self, timeout_ms: Optional[int] = None) -> Iterator[None]:
        """
        Ограничение времени чтения. На PostgreSQL - SET LOCAL statement_timeout;
        отменённый по таймауту запрос превращается в LedgerTimeoutError.
        """
        ms = timeout_ms if timeout_ms is not None else self.statement_timeout_ms
        if ms and self.db.get_bind().dialect.name == "postgresql":
            self.db.execute(text(f"SET LOCAL statement_timeout = {int(ms)}"))
        try:
            yield
        except DBAPIError as e:
            if not _is_statement_timeout(e):
                raise
            self.db.rollback()
            log.warning("ledger: read exceeded statement timeout (%s ms)", ms)
            detail = f"exceeded {ms} ms" if ms else "timed out"
            raise LedgerTimeoutError(f"Ledger query {detail}, retry later") from e

    # =========================
    # ГРУППЫ / УЧАСТНИКИ
    # =========================

    def get_group(self, group_id: int) -> Optional[Group]:
        return self.db.get(Group, group_id)

    def list_members(self, group_id: int) -> List[Dict]:
        """
        Участники группы = создатель + активные membership'ы (deleted_at IS NULL).
        Создатель входит, даже если строки в group_members нет.
        """
        group = self.get_group(group_id)
        if group is None:
            return []
        member_ids = GroupMember.active_user_ids(group_id)
        rows = self.db.execute(
            select(User.id, User.name)
            .where(or_(User.id == group.created_by, User.id.in_(member_ids)))
            .order_by(User.id.asc())
        ).all()
        return [{"id": uid, "name": name} for uid, name in rows]

    def list_balance_users(self, group_id: int, cutoff: Optional[datetime] = None) -> List[Dict]:
        """
        Строки балансов = текущие участники + все, кто встречается в расходах
        группы (платил или должен), даже если уже вышел из группы.
        Иначе доли ушедших пропадают из балансов и сумма net перестаёт быть нулём.
        """
        members = self.list_members(group_id)
        payers = select(Expense.paid_by).where(Expense.group_id == group_id)
        owers = (
            select(ExpenseSplit.user_id)
            .join(Expense, Expense.id == ExpenseSplit.expense_id)
            .where(Expense.group_id == group_id)
        )
        if cutoff is not None:
            payers = payers.where(Expense.created_at <= cutoff)
            owers = owers.where(Expense.created_at <= cutoff)

        known = {m["id"] for m in members}
        active = set(self.db.scalars(payers).all()) | set(self.db.scalars(owers).all())
        former = active - known
        if not former:
            return members

        names = self.user_names(former)
        rows = members + [{"id": uid, "name": names.get(uid)} for uid in former]
        return sorted(rows, key=lambda r: r["id"])

    def user_names(self, user_ids: Iterable[int]) -> Dict[int, Optional[str]]:
        ids = set(user_ids)
        if not ids:
            return {}
        rows = self.db.execute(select(User.id, User.name).where(User.id.in_(ids))).all()
        return {uid: name for uid, name in rows}

    # =========================
    # РАСХОДЫ / ДОЛИ (чтение)
    # =========================

    def list_expenses(self, group_id: int, cutoff: Optional[datetime] = None) -> List[Dict]:
        stmt = select(
            Expense.id, Expense.paid_by, Expense.amount, Expense.description, Expense.created_at
        ).where(Expense.group_id == group_id)
        if cutoff is not None:
            stmt = stmt.where(Expense.created_at <= cutoff)
        stmt = stmt.order_by(Expense.created_at.asc(), Expense.id.asc())
        return [
            {
                "id": eid,
                "payer": payer,
                "amount": money(amount),
                "description": description,
                "created_at": created_at,
            }
            for eid, payer, amount, description, created_at in self.db.execute(stmt).all()
        ]

    def list_splits(self, expense_ids: Sequence[int]) -> List[Dict]:
        if not expense_ids:
            return []
        rows = self.db.execute(
            select(ExpenseSplit.expense_id, ExpenseSplit.user_id, ExpenseSplit.owed_amount)
            .where(ExpenseSplit.expense_id.in_(list(expense_ids)))
            .order_by(ExpenseSplit.expense_id.asc(), ExpenseSplit.user_id.asc())
        ).all()
        return [
            {"expense_id": eid, "user": uid, "owed_amount": money(owed)}
            for eid, uid, owed in rows
        ]

    def paid_totals(self, group_id: int, cutoff: Optional[datetime] = None) -> Dict[int, Decimal]:
        stmt = select(Expense.paid_by, func.sum(Expense.amount)).where(Expense.group_id == group_id)
        if cutoff is not None:
            stmt = stmt.where(Expense.created_at <= cutoff)
        stmt = stmt.group_by(Expense.paid_by)
        return {uid: money(total) for uid, total in self.db.execute(stmt).all()}

    def owed_totals(self, group_id: int, cutoff: Optional[datetime] = None) -> Dict[int, Decimal]:
        stmt = (
            select(ExpenseSplit.user_id, func.sum(ExpenseSplit.owed_amount))
            .join(Expense, Expense.id == ExpenseSplit.expense_id)
            .where(Expense.group_id == group_id)
        )
        if cutoff is not None:
            stmt = stmt.where(Expense.created_at <= cutoff)
        stmt = stmt.group_by(ExpenseSplit.user_id)
        return {uid: money(total) for uid, total in self.db.execute(stmt).all()}

    def expense_summary(self, group_id: int, cutoff: Optional[datetime] = None) -> Dict:
        stmt = select(func.count(Expense.id), func.sum(Expense.amount)).where(Expense.group_id == group_id)
        if cutoff is not None:
            stmt = stmt.where(Expense.created_at <= cutoff)
        count, total = self.db.execute(stmt).one()
        return {"count": int(count or 0), "total": money(total)}

    def recent_expenses(self, group_id: int, cutoff: Optional[datetime] = None, limit: int = 20) -> List[Expense]:
        stmt = select(Expense).where(Expense.group_id == group_id)
        if cutoff is not None:
            stmt = stmt.where(Expense.created_at <= cutoff)
        stmt = stmt.order_by(Expense.created_at.desc(), Expense.id.desc()).limit(limit)
        return list(self.db.execute(stmt).unique().scalars().all())

    def get_expense(self, expense_id: int) -> Optional[Expense]:
        return self.db.get(Expense, expense_id)

    # =========================
    # РАСХОДЫ (мутации) - только внутри transaction()
    # =========================

    def insert_expense(
        self,
        *,
        group_id: int,
        paid_by: int,
        amount,
        description: Optional[str],
        splits: Iterable[Dict],
        created_at: Optional[datetime] = None,
    ) -> Expense:
        expense = Expense(
            group_id=group_id,
            paid_by=paid_by,
            amount=money(amount),
            description=description,
            created_at=created_at or datetime.utcnow(),
        )
        expense.splits = [
            ExpenseSplit(user_id=int(s["user_id"]), owed_amount=money(s["owed_amount"]))
            for s in splits
        ]
        self.db.add(expense)
        self.db.flush()  # получим expense.id
        return expense

    def delete_expense(self, expense: Expense) -> None:
        # доли удаляются каскадом ORM (Expense.splits, delete-orphan)
        self.db.delete(expense)
        self.db.flush()

    # =========================
    # ИСТОРИЯ
    # =========================

    def add_history(
        self,
        *,
        expense_id: int,
        action: str,
        changed_by: int,
        group_id: Optional[int],
        snapshot: Dict,
        old_amount=None,
        new_amount=None,
        old_description: Optional[str] = None,
        new_description: Optional[str] = None,
    ) -> ExpenseHistory:
        entry = ExpenseHistory(
            expense_id=expense_id,
            action=action,
            changed_by=changed_by,
            group_id=group_id,
            old_amount=money(old_amount) if old_amount is not None else None,
            new_amount=money(new_amount) if new_amount is not None else None,
            old_description=old_description,
            new_description=new_description,
            snapshot=snapshot,
            changed_at=datetime.utcnow(),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def get_history(self, history_id: int) -> Optional[ExpenseHistory]:
        return self.db.get(ExpenseHistory, history_id)

    def expense_history(self, expense_id: int) -> List[ExpenseHistory]:
        stmt = (
            select(ExpenseHistory)
            .where(ExpenseHistory.expense_id == expense_id)
            .order_by(ExpenseHistory.changed_at.desc(), ExpenseHistory.id.desc())
        )
        return list(self.db.execute(stmt).unique().scalars().all())

    def group_audit_trail(self, group_id: int, limit: int) -> List[ExpenseHistory]:
        stmt = (
            select(ExpenseHistory)
            .where(ExpenseHistory.group_id == group_id)
            .order_by(ExpenseHistory.changed_at.desc(), ExpenseHistory.id.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).unique().scalars().all())

    # =========================
    # КЭШ SETTLE-UP
    # =========================

    def get_cached_plan(self, group_id: int) -> Optional[SettlementCache]:
        return self.db.scalar(select(SettlementCache).where(SettlementCache.group_id == group_id))

    def upsert_cached_plan(self, group_id: int, settlements: List[Dict], generated_at: datetime) -> SettlementCache:
        row = self.get_cached_plan(group_id)
        if row is None:
            row = SettlementCache(group_id=group_id)
            self.db.add(row)
        row.settlements = settlements
        row.generated_at = generated_at
        self.db.flush()
        return row
