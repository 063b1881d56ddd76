# src/routers/ledger.py
# -----------------------------------------------------------------------------
# HTTP-АДАПТЕР ЯДРА ЛЕДЖЕРА (/api)
# -----------------------------------------------------------------------------
# Тонкий слой: разбирает запрос, зовёт сервис ядра, отдаёт схему.
# Ошибки ядра (LedgerError) в HTTP-коды переводит обработчик в src/main.py.
# Post-commit хуки (пересчёт кэша settle-up) уходят в BackgroundTasks.
# -----------------------------------------------------------------------------

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.schemas.balance import BalanceOut, BalancesAtDateOut
from src.schemas.debt_graph import DebtGraphOut
from src.schemas.expense import ExpenseCreate, ExpenseOut
from src.schemas.history import AuditEntryOut, RedoResultOut, UndoResultOut
from src.schemas.settlement import SettlementPlanOut
from src.services.hooks import HookRunner
from src.services.ledger import Ledger
from src.utils.deps import get_actor_id, get_hook_runner, get_ledger, get_optional_actor_id

router = APIRouter()


# ===== Расходы ================================================================

@router.post("/expenses", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED)
def create_expense(
    data: ExpenseCreate,
    ledger: Ledger = Depends(get_ledger),
    actor_id: int = Depends(get_actor_id),
    run_hooks: HookRunner = Depends(get_hook_runner),
):
    shares = [s.model_dump() for s in data.shares] if data.shares else None
    return ledger.expenses.create_expense(
        group_id=data.group_id,
        payer_id=data.paid_by or actor_id,
        amount=data.amount,
        participant_ids=data.participant_ids,
        description=data.description,
        actor_id=actor_id,
        shares=shares,
        run_hooks=run_hooks,
    )


@router.get("/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense(expense_id: int, ledger: Ledger = Depends(get_ledger)):
    return ledger.expenses.get_expense(expense_id)


@router.get("/expenses/{expense_id}/history", response_model=List[AuditEntryOut])
def get_expense_history(expense_id: int, ledger: Ledger = Depends(get_ledger)):
    return ledger.history.expense_history(expense_id)


@router.post("/expenses/{expense_id}/undo", response_model=UndoResultOut)
def undo_expense(
    expense_id: int,
    ledger: Ledger = Depends(get_ledger),
    actor_id: int = Depends(get_actor_id),
    run_hooks: HookRunner = Depends(get_hook_runner),
):
    return ledger.history.undo(expense_id, actor_id, run_hooks=run_hooks)


@router.post("/history/{history_id}/redo", response_model=RedoResultOut)
def redo_expense(
    history_id: int,
    ledger: Ledger = Depends(get_ledger),
    actor_id: int = Depends(get_actor_id),
    run_hooks: HookRunner = Depends(get_hook_runner),
):
    return ledger.history.redo(history_id, actor_id, run_hooks=run_hooks)


# ===== Группа: балансы / settle-up / граф =====================================

@router.get("/groups/{group_id}/balances", response_model=List[BalanceOut])
def get_group_balances(group_id: int, ledger: Ledger = Depends(get_ledger)):
    return ledger.balances.balances(group_id)


@router.get("/groups/{group_id}/settlements", response_model=SettlementPlanOut)
def get_group_settlements(
    group_id: int,
    ledger: Ledger = Depends(get_ledger),
    actor_id: Optional[int] = Depends(get_optional_actor_id),
    fresh: bool = Query(False, description="Пересчитать план из живого леджера, минуя кэш"),
    mine: bool = Query(False, description="Только переводы с участием текущего пользователя"),
):
    plan = ledger.settlements.recompute(group_id) if fresh else ledger.settlements.get_or_compute(group_id)
    if mine:
        if actor_id is None:
            raise HTTPException(status_code=401, detail="X-User-Id header is required for mine=1")
        plan = ledger.settlements.for_user(plan, actor_id)
    return plan


@router.get("/groups/{group_id}/debt-graph", response_model=DebtGraphOut)
def get_group_debt_graph(group_id: int, ledger: Ledger = Depends(get_ledger)):
    return ledger.debt_graph.build(group_id)


# ===== Группа: история ========================================================

@router.get("/groups/{group_id}/time-travel", response_model=BalancesAtDateOut)
def get_group_balances_at_date(
    group_id: int,
    date: Optional[str] = Query(None, description="YYYY-MM-DD или ISO-8601"),
    ledger: Ledger = Depends(get_ledger),
):
    return ledger.history.balances_at_date(group_id, date)


@router.get("/groups/{group_id}/audit-trail", response_model=List[AuditEntryOut])
def get_group_audit_trail(
    group_id: int,
    limit: Optional[int] = Query(None, description="Размер страницы (ограничивается сверху)"),
    ledger: Ledger = Depends(get_ledger),
):
    return ledger.history.audit_trail(group_id, limit)
