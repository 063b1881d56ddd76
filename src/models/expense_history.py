# src/models/expense_history.py
# -----------------------------------------------------------------------------
# МОДЕЛЬ: ExpenseHistory - append-only журнал действий над расходами
# -----------------------------------------------------------------------------
#   • action: created | updated | deleted | restored
#   • snapshot: версионированный JSON {version, old, new, timestamp, restored_from}
#     Для action='deleted' в snapshot.old лежит ВСЁ, что нужно для redo.
#   • expense_id - НЕ внешний ключ: запись переживает удалённый расход.
# -----------------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, DateTime, JSON, Index
from sqlalchemy.orm import relationship

from src.db import Base

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_DELETED = "deleted"
ACTION_RESTORED = "restored"

ACTIONS = (ACTION_CREATED, ACTION_UPDATED, ACTION_DELETED, ACTION_RESTORED)


class ExpenseHistory(Base):
    __tablename__ = "expense_history"

    id = Column(Integer, primary_key=True, index=True)

    expense_id = Column(Integer, nullable=False, comment="ID расхода (живого или удалённого)")
    action = Column(String(16), nullable=False, comment="created|updated|deleted|restored")

    changed_by = Column(Integer, ForeignKey("users.id"), nullable=False, comment="Кто совершил действие")

    # денормализованные поля для быстрой выдачи аудита
    group_id = Column(Integer, nullable=True, comment="Группа расхода на момент действия")
    old_amount = Column(Numeric(12, 2), nullable=True)
    new_amount = Column(Numeric(12, 2), nullable=True)
    old_description = Column(String, nullable=True)
    new_description = Column(String, nullable=True)

    snapshot = Column(JSON, nullable=True, comment="Версионированный снапшот old/new")

    changed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_expense_history_expense", "expense_id"),
        Index("ix_expense_history_group_changed", "group_id", "changed_at"),
    )

    actor = relationship("User", lazy="joined")

    @property
    def changed_by_name(self):
        return self.actor.name if self.actor is not None else None

    def __repr__(self) -> str:
        return f"<ExpenseHistory id={self.id} expense={self.expense_id} action={self.action}>"
