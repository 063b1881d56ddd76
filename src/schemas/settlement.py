# src/schemas/settlement.py

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class SettlementOut(BaseModel):
    """
    Один перевод плана settle-up (жадного алгоритма оптимизации переводов).
    Наружу отдаётся как {"from", "to", "amount"} (+ имена, если известны).
    """
    from_user: int = Field(..., alias="from")  # id того, кто должен совершить перевод (должник)
    to_user: int = Field(..., alias="to")      # id того, кому перевод предназначен (кредитор)
    amount: float                              # сумма перевода (>0, округляется до 2 знаков)
    from_name: Optional[str] = None
    to_name: Optional[str] = None

    class Config:
        populate_by_name = True


class SettlementPlanOut(BaseModel):
    """
    План группы + откуда он взят: "cache" - из кэша (может отставать),
    "fresh" - только что пересчитан из живого леджера.
    """
    group_id: int
    source: Literal["cache", "fresh"]
    generated_at: datetime
    settlements: List[SettlementOut] = Field(default_factory=list)
