# src/models/group.py
# -----------------------------------------------------------------------------
# МОДЕЛЬ: Group (SQLAlchemy)
# -----------------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index
from sqlalchemy.orm import relationship

from ..db import Base


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True, nullable=False)

    created_by = Column(
        Integer,
        ForeignKey("users.id"),
        nullable=False,
        comment="Создатель группы; всегда считается участником",
    )
    creator = relationship("User")

    parent_id = Column(
        Integer,
        ForeignKey("groups.id"),
        nullable=True,
        comment="Родительская группа (иерархические подгруппы)",
    )
    parent = relationship("Group", remote_side=[id], backref="subgroups")

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_groups_parent_id", "parent_id"),
    )
