# src/schemas/debt_graph.py
# -----------------------------------------------------------------------------
# СХЕМЫ Pydantic: граф долгов группы (для визуализации)
# -----------------------------------------------------------------------------

from typing import List, Optional

from pydantic import BaseModel, Field

from src.schemas.balance import BalanceOut
from src.schemas.settlement import SettlementOut


class NodeOut(BaseModel):
    id: int
    name: Optional[str] = None


class EdgeOut(BaseModel):
    from_user: int = Field(..., alias="from")
    to_user: int = Field(..., alias="to")
    amount: float
    from_name: Optional[str] = None
    to_name: Optional[str] = None

    class Config:
        populate_by_name = True


class CircularDebtOut(BaseModel):
    participants: List[int]
    cancel_amount: float = Field(..., alias="cancelAmount")

    class Config:
        populate_by_name = True


class GraphStatsOut(BaseModel):
    total_members: int = Field(..., alias="totalMembers")
    total_edges: int = Field(..., alias="totalEdges")
    aggregated_edges: int = Field(..., alias="aggregatedEdges")
    optimized_transactions: int = Field(..., alias="optimizedTransactions")
    circular_debts_found: int = Field(..., alias="circularDebtsFound")
    savings_percent: int = Field(..., alias="savingsPercent")

    class Config:
        populate_by_name = True


class DebtGraphOut(BaseModel):
    nodes: List[NodeOut] = Field(default_factory=list)
    edges: List[EdgeOut] = Field(default_factory=list)
    net_balances: List[BalanceOut] = Field(default_factory=list, alias="netBalances")
    optimized_settlements: List[SettlementOut] = Field(default_factory=list, alias="optimizedSettlements")
    circular_debts: List[CircularDebtOut] = Field(default_factory=list, alias="circularDebts")
    stats: GraphStatsOut

    class Config:
        populate_by_name = True
