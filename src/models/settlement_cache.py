# src/models/settlement_cache.py
# Производный кэш плана settle-up по группе. НЕ источник истины:
# всегда воспроизводится из expenses + expense_splits.

from sqlalchemy import Column, Integer, DateTime, JSON, UniqueConstraint
from src.db import Base


class SettlementCache(Base):
    __tablename__ = "settlement_cache"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, nullable=False)

    # [{"from": int, "to": int, "amount": "12.34"}, ...]
    settlements = Column(JSON, nullable=False, default=list)

    generated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("group_id", name="uq_settlement_cache_group"),
    )

    def __repr__(self) -> str:
        return f"<SettlementCache group={self.group_id} items={len(self.settlements or [])}>"
