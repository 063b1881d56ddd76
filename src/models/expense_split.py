# src/models/expense_split.py
# -----------------------------------------------------------------------------
# МОДЕЛЬ: ExpenseSplit (SQLAlchemy) - доля участника в расходе
# -----------------------------------------------------------------------------

from __future__ import annotations

from sqlalchemy import (
    Column,
    Integer,
    ForeignKey,
    Numeric,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship

from src.db import Base


class ExpenseSplit(Base):
    __tablename__ = "expense_splits"

    id = Column(Integer, primary_key=True, index=True)

    expense_id = Column(
        Integer,
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        comment="ID расхода",
    )

    user_id = Column(
        Integer,
        ForeignKey("users.id"),
        nullable=False,
        comment="ID участника группы",
    )

    owed_amount = Column(
        Numeric(12, 2),
        nullable=False,
        comment="Сколько участник должен плательщику по этому расходу",
    )

    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="uq_expense_splits_expense_user"),
        Index("ix_expense_splits_user", "user_id"),
    )

    expense = relationship("Expense", back_populates="splits")
    user = relationship("User", lazy="joined")

    @property
    def user_name(self):
        return self.user.name if self.user is not None else None
