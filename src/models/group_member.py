# src/models/group_member.py
# -----------------------------------------------------------------------------
# МОДЕЛЬ: GroupMember - членство пользователя в группе леджера
# -----------------------------------------------------------------------------
# Активное членство: deleted_at IS NULL. Ушедший участник остаётся строкой
# (его старые доли по-прежнему считаются в балансах), но в новые расходы
# и в redo удалённых расходов попасть уже не может.
# -----------------------------------------------------------------------------

from datetime import datetime

from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint, DateTime, Index, select
from sqlalchemy.orm import relationship

from src.db import Base


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    joined_at = Column(DateTime, nullable=False, default=datetime.utcnow, comment="Когда пользователь вошёл в группу")
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True, comment="Выход из группы (soft-delete)")

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
        Index("ix_group_members_group_active", "group_id", "deleted_at"),
    )

    group = relationship("Group")
    user = relationship("User")

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    @classmethod
    def active_user_ids(cls, group_id: int):
        """Подзапрос id активных участников группы (создатель сюда не входит)."""
        return select(cls.user_id).where(cls.group_id == group_id, cls.deleted_at.is_(None))
