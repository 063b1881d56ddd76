# src/schemas/expense.py
# -----------------------------------------------------------------------------
# СХЕМЫ Pydantic: Expense / ExpenseSplit
# -----------------------------------------------------------------------------
# Проверку принадлежности участников группе и точную сверку сумм долей
# выполняем в сервисном слое, а не в схемах.
# -----------------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, condecimal

Money = condecimal(max_digits=12, decimal_places=2)


class ExpenseShareIn(BaseModel):
    user_id: int = Field(..., description="ID участника группы")
    amount: Money = Field(..., description="Сумма доли участника")


class ExpenseCreate(BaseModel):
    group_id: int
    amount: Money = Field(..., description="Общая сумма расхода (> 0)")
    description: Optional[str] = None
    # для равного деления - список участников
    participant_ids: List[int] = Field(default_factory=list)
    # для произвольного деления - явные доли (сумма должна совпасть с amount)
    shares: Optional[List[ExpenseShareIn]] = None
    # плательщик; по умолчанию - текущий пользователь
    paid_by: Optional[int] = None


class ExpenseSplitOut(BaseModel):
    user_id: int
    owed_amount: Decimal
    user_name: Optional[str] = None

    class Config:
        from_attributes = True


class ExpenseOut(BaseModel):
    id: int
    group_id: int
    paid_by: int
    payer_name: Optional[str] = None
    amount: Decimal
    description: Optional[str] = None
    created_at: datetime
    splits: List[ExpenseSplitOut] = Field(default_factory=list)

    class Config:
        from_attributes = True
