# -----------------------------------------------------------------------------
# УТИЛИТЫ РАСЧЁТА БАЛАНСОВ / SETTLE-UP
# -----------------------------------------------------------------------------
# Политика:
#   • Внутренние расчёты - Decimal с точностью до цента; наружу - 2 знака.
#   • Семантика net:
#       net > 0 - пользователю ДОЛЖНЫ; net < 0 - он ДОЛЖЕН.
#   • net = paid_total − owed_total в рамках группы (опционально до cutoff).
#   • Алгоритм settle-up - "greedy": сводим крупнейшего кредитора с крупнейшим
#     должником, пока обе стороны не обнулятся (с порогом EPS = 1 цент).
#     Порядок детерминирован: сортировка (-|net|, user_id).
# -----------------------------------------------------------------------------

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Iterable, Mapping, Optional

CENT = Decimal("0.01")
EPS = CENT
ZERO = Decimal("0")


# =========================
# ВСПОМОГАТЕЛЬНОЕ
# =========================

def _D(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    if x is None:
        return ZERO
    return Decimal(str(x))


def money(x) -> Decimal:
    """Приводит значение к Decimal с точностью до цента (ROUND_HALF_UP)."""
    return _D(x).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(x) -> int:
    return int(money(x) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


# =========================
# NET-БАЛАНСЫ
# =========================

def aggregate_balances(
    members: Iterable[Mapping],
    paid_totals: Mapping[int, Decimal],
    owed_totals: Mapping[int, Decimal],
) -> List[Dict]:
    """
    Сводит суммы «заплатил» / «должен» в строки балансов по КАЖДОМУ участнику.
    Участники без активности тоже попадают в ответ - с нулями.

    members: [{"id", "name"}, ...] - порядок сохраняется.
    Возвращает: [{"id", "name", "paid", "owed", "balance"}, ...] (Decimal, 2 знака).
    """
    rows: List[Dict] = []
    for m in members:
        uid = m["id"]
        paid = money(paid_totals.get(uid, ZERO))
        owed = money(owed_totals.get(uid, ZERO))
        rows.append({
            "id": uid,
            "name": m.get("name"),
            "paid": paid,
            "owed": owed,
            "balance": paid - owed,
        })
    return rows


def net_balance_map(balance_rows: Iterable[Mapping]) -> Dict[int, Decimal]:
    return {r["id"]: _D(r["balance"]) for r in balance_rows}


# =========================
# АЛГОРИТМ ВЫДАЧИ ПЛАНА
# =========================

def greedy_settle_up(
    net_balance: Mapping[int, Decimal],
    names: Optional[Mapping[int, Optional[str]]] = None,
) -> List[Dict]:
    """
    Жадный settle-up.
    Возвращает список переводов: [{"from_user_id", "to_user_id", "amount", ...}, ...]
    где amount - Decimal > 0 с точностью до цента.

    Пустой вход, все нули, один участник - пустой план.
    """
    creditors = sorted(
        [(uid, money(bal)) for uid, bal in net_balance.items() if _D(bal) > EPS],
        key=lambda x: (-x[1], x[0]),
    )
    debtors = sorted(
        [(uid, money(-_D(bal))) for uid, bal in net_balance.items() if _D(bal) < -EPS],
        key=lambda x: (-x[1], x[0]),
    )

    settlements: List[Dict] = []
    i, j = 0, 0
    while i < len(debtors) and j < len(creditors):
        debtor_id, debt_abs = debtors[i]
        creditor_id, credit_abs = creditors[j]

        amount = min(debt_abs, credit_abs)

        if amount <= ZERO:
            if debt_abs <= EPS:
                i += 1
            if credit_abs <= EPS:
                j += 1
            continue

        item = {"from_user_id": debtor_id, "to_user_id": creditor_id, "amount": amount}
        if names is not None:
            item["from_name"] = names.get(debtor_id)
            item["to_name"] = names.get(creditor_id)
        settlements.append(item)

        debtors[i] = (debtor_id, debt_abs - amount)
        creditors[j] = (creditor_id, credit_abs - amount)

        if debtors[i][1] <= EPS:
            i += 1
        if creditors[j][1] <= EPS:
            j += 1

    return settlements


def optimize_settlements(balance_rows: Iterable[Mapping]) -> List[Dict]:
    """
    Обёртка над greedy_settle_up для строк вида {"id", "name"?, "balance"}.
    """
    rows = list(balance_rows)
    names = {r["id"]: r.get("name") for r in rows}
    return greedy_settle_up(net_balance_map(rows), names=names)
