# src/models/expense.py
# -----------------------------------------------------------------------------
# МОДЕЛЬ: Expense (SQLAlchemy)
# -----------------------------------------------------------------------------
# Расход неизменяем после создания: «правка» - это удаление (undo) со снапшотом
# в expense_history и, при необходимости, восстановление (redo) новой строкой.
# -----------------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    Numeric,
    DateTime,
    Index,
)
from sqlalchemy.orm import relationship

from src.db import Base


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)

    group_id = Column(
        Integer,
        ForeignKey("groups.id"),
        nullable=False,
        comment="ID группы, к которой относится расход",
    )

    paid_by = Column(
        Integer,
        ForeignKey("users.id"),
        nullable=False,
        comment="Кто оплатил",
    )

    amount = Column(
        Numeric(12, 2),
        nullable=False,
        comment="Сумма расхода (> 0, NUMERIC(12,2))",
    )

    description = Column(
        String,
        nullable=True,
        comment="Комментарий/описание",
    )

    created_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        comment="Когда создана запись (используется для time travel)",
    )

    __table_args__ = (
        Index("ix_expenses_group_created", "group_id", "created_at"),
        # id удалённого расхода остаётся в expense_history: sqlite не должен его переиспользовать
        {"sqlite_autoincrement": True},
    )

    group = relationship("Group", lazy="joined")
    payer = relationship("User", foreign_keys=[paid_by], lazy="joined")

    splits = relationship(
        "ExpenseSplit",
        back_populates="expense",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="ExpenseSplit.user_id",
    )

    @property
    def payer_name(self):
        return self.payer.name if self.payer is not None else None
