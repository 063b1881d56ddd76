# src/models/user.py

from sqlalchemy import Column, Integer, String, DateTime, func
from src.db import Base


class User(Base):
    """
    Пользователь леджера. Создаётся внешним слоем (регистрация/авторизация);
    для ядра - неизменяемая идентичность: числовой id и отображаемое имя.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True, nullable=True)  # Отображаемое имя
    created_at = Column(DateTime, nullable=False, default=func.now())

    def __repr__(self):
        return f"<User(id={self.id}, name={self.name})>"
