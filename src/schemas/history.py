# src/schemas/history.py
# -----------------------------------------------------------------------------
# СХЕМЫ Pydantic: снапшоты истории расходов + аудит
# -----------------------------------------------------------------------------
# Снапшот версионирован: {"version": 1, "old", "new", "timestamp", "restored_from"}.
# Старые блобы без "version" читаются как версия 1 (та же форма).
# -----------------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

SNAPSHOT_VERSION = 1


class SplitSnapshot(BaseModel):
    user_id: int
    owed_amount: Decimal


class ExpenseSnapshot(BaseModel):
    amount: Decimal
    description: Optional[str] = None
    group_id: int
    paid_by: int
    created_at: Optional[datetime] = None
    splits: List[SplitSnapshot] = Field(default_factory=list)


class HistorySnapshot(BaseModel):
    version: int = SNAPSHOT_VERSION
    old: Optional[ExpenseSnapshot] = None
    new: Optional[ExpenseSnapshot] = None
    timestamp: datetime
    restored_from: Optional[int] = None


class AuditEntryOut(BaseModel):
    id: int
    expense_id: int
    action: str
    old_amount: Optional[Decimal] = None
    new_amount: Optional[Decimal] = None
    old_description: Optional[str] = None
    new_description: Optional[str] = None
    changed_by: int
    changed_by_name: Optional[str] = None
    changed_at: datetime

    class Config:
        from_attributes = True


class UndoResultOut(BaseModel):
    expense_id: int
    history_id: int
    message: str = "Expense undone successfully"


class RedoResultOut(BaseModel):
    history_id: int
    new_expense_id: int
    restored_history_id: Optional[int] = None
    message: str = "Expense restored successfully"
