# -----------------------------------------------------------------------------
# ДЕЛЕНИЕ РАСХОДА НА ДОЛИ
# -----------------------------------------------------------------------------
# Равное деление в целых центах:
#   base = total_cents // N, remainder = total_cents % N
#   первые `remainder` участников (по возрастанию user_id) получают base + 1.
# Сумма долей всегда равна total_cents - копейки не теряются.
# -----------------------------------------------------------------------------

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List, Mapping

from src.errors import ValidationError
from src.utils.balance import from_cents, money, to_cents


def compute_equal_split_cents(total_cents: int, participant_ids: Iterable[int]) -> List[Dict]:
    ids = sorted(set(participant_ids))
    if not ids:
        raise ValidationError("At least one participant is required")
    if total_cents < 0:
        raise ValidationError("Amount must not be negative")

    base, remainder = divmod(total_cents, len(ids))
    return [
        {"user_id": uid, "cents": base + (1 if idx < remainder else 0)}
        for idx, uid in enumerate(ids)
    ]


def compute_equal_split(total, participant_ids: Iterable[int]) -> List[Dict]:
    """
    [{"user_id", "owed_amount": Decimal}, ...] отсортировано по user_id.
    """
    return [
        {"user_id": s["user_id"], "owed_amount": from_cents(s["cents"])}
        for s in compute_equal_split_cents(to_cents(total), participant_ids)
    ]


def normalize_custom_split(total, shares: Iterable[Mapping]) -> List[Dict]:
    """
    Явные доли: агрегируем повторы user_id и сверяем сумму с total до цента.
    """
    agg: Dict[int, Decimal] = {}
    for share in shares:
        uid = int(share["user_id"])
        amount = money(share["amount"])
        if amount < 0:
            raise ValidationError(f"Share of user {uid} must not be negative")
        agg[uid] = agg.get(uid, Decimal("0")) + amount

    if not agg:
        raise ValidationError("At least one participant is required")

    total_amount = money(total)
    total_shares = money(sum(agg.values(), Decimal("0")))
    if total_shares != total_amount:
        raise ValidationError(
            f"Sum of shares ({total_shares}) must equal expense amount ({total_amount})"
        )
    return [{"user_id": uid, "owed_amount": agg[uid]} for uid in sorted(agg)]
