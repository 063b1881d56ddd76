# src/schemas/balance.py

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class BalanceOut(BaseModel):
    id: int
    name: Optional[str] = None
    paid: float
    owed: float
    balance: float  # > 0 - пользователю должны; < 0 - он должен


class RecentExpenseOut(BaseModel):
    id: int
    amount: float
    description: Optional[str] = None
    created_at: datetime
    paid_by: int
    paid_by_name: Optional[str] = None


class BalancesAtDateOut(BaseModel):
    """
    Time travel: балансы группы по состоянию на as_of_date
    (учитываются только расходы с created_at <= as_of_date).
    """
    as_of_date: datetime = Field(..., alias="asOfDate")
    balances: List[BalanceOut] = Field(default_factory=list)
    expense_count: int = Field(0, alias="expenseCount")
    total_spent: float = Field(0.0, alias="totalSpent")
    recent_expenses: List[RecentExpenseOut] = Field(default_factory=list, alias="recentExpenses")

    class Config:
        populate_by_name = True
