# ОБЩИЕ ГАРДЫ ВХОДНЫХ ДАННЫХ ЯДРА.
# Всё здесь падает ValidationError ДО любого обращения к хранилищу.

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Union

from src.errors import ValidationError

CutoffLike = Union[str, date, datetime, None]


def require_id(value, name: str) -> int:
    """Положительный целый идентификатор (int или строка из цифр)."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {name}")
    if isinstance(value, int):
        ivalue = value
    elif isinstance(value, str) and value.strip().isdigit():
        ivalue = int(value.strip())
    else:
        raise ValidationError(f"Invalid {name}")
    if ivalue <= 0:
        raise ValidationError(f"Invalid {name}")
    return ivalue


def parse_cutoff(value: CutoffLike) -> datetime:
    """
    Приводит cutoff к naive-UTC datetime (так хранится Expense.created_at).
    Строка - ISO-8601 ('2026-01-15', '2026-01-15T10:00:00', '...Z', '...+03:00');
    дата без времени означает полночь этого дня.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Date is required (YYYY-MM-DD or ISO-8601)")

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        raw = value.strip()
        if raw[-1] in "Zz":
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            raise ValidationError(f"Invalid date format: {value!r}")
    else:
        raise ValidationError(f"Invalid date format: {value!r}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
