# -----------------------------------------------------------------------------
# ГРАФ ДОЛГОВ + ПОИСК КРУГОВЫХ ДОЛГОВ
# -----------------------------------------------------------------------------
#   • Сырой граф: каждая доля (split), не принадлежащая плательщику, даёт ребро
#       ower -> payer на owed_amount. Параллельные рёбра НЕ сливаем.
#   • Агрегированный граф: для каждой неупорядоченной пары {A,B} сводим
#       sum(A->B) против sum(B->A); остаётся одно ребро в сторону большей суммы
#       на |разницу|; пары с остатком <= 0.01 выбрасываем.
#   • Круговые долги (A->B->C->A): DFS с явным стеком по сырому графу.
#       Вес ребра u->v для «бутылочного горлышка» - сумма всех сырых u->v.
#       Циклы дедуплицируются по канонической ротации (начало с min user_id).
#   Всё здесь - чистые функции, леджер не меняется.
# -----------------------------------------------------------------------------

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from src.utils.balance import EPS, ZERO, _D, money


# =========================
# СЫРОЙ ГРАФ
# =========================

def build_raw_edges(
    expenses: Iterable[Mapping],
    splits: Iterable[Mapping],
    names: Optional[Mapping[int, Optional[str]]] = None,
) -> List[Dict]:
    """
    expenses: [{"id", "payer", "amount", "description"?}, ...]
    splits:   [{"expense_id", "user", "owed_amount"}, ...]
    Возвращает [{"from", "to", "amount", "expense_id", "expense", "from_name", "to_name"}, ...]
    в порядке (expense.id, user).
    """
    names = names or {}
    by_expense: Dict[int, List[Mapping]] = defaultdict(list)
    for s in splits:
        by_expense[s["expense_id"]].append(s)

    edges: List[Dict] = []
    for exp in sorted(expenses, key=lambda e: e["id"]):
        payer = exp["payer"]
        for s in sorted(by_expense.get(exp["id"], []), key=lambda x: x["user"]):
            ower = s["user"]
            if ower == payer:
                continue
            amount = _D(s["owed_amount"])
            if amount <= ZERO:
                continue
            edges.append({
                "from": ower,
                "from_name": names.get(ower),
                "to": payer,
                "to_name": names.get(payer),
                "amount": amount,
                "expense_id": exp["id"],
                "expense": exp.get("description") or f"Expense #{exp['id']}",
            })
    return edges


# =========================
# АГРЕГАЦИЯ ПАР
# =========================

def aggregate_edges(
    raw_edges: Iterable[Mapping],
    names: Optional[Mapping[int, Optional[str]]] = None,
) -> List[Dict]:
    """
    Неттинг встречных рёбер внутри каждой пары.
    Выход отсортирован по (from, to); amount - Decimal с точностью до цента.
    """
    names = names or {}
    sums: Dict[Tuple[int, int], Decimal] = defaultdict(Decimal)
    for e in raw_edges:
        sums[(e["from"], e["to"])] += _D(e["amount"])

    out: List[Dict] = []
    seen = set()
    for (a, b) in sorted(sums):
        pair = (min(a, b), max(a, b))
        if pair in seen:
            continue
        seen.add(pair)
        lo, hi = pair
        diff = sums.get((lo, hi), ZERO) - sums.get((hi, lo), ZERO)
        amount = money(abs(diff))
        if amount <= EPS:
            continue
        src, dst = (lo, hi) if diff > 0 else (hi, lo)
        out.append({
            "from": src,
            "from_name": names.get(src),
            "to": dst,
            "to_name": names.get(dst),
            "amount": amount,
        })
    out.sort(key=lambda e: (e["from"], e["to"]))
    return out


# =========================
# КРУГОВЫЕ ДОЛГИ
# =========================

def _canonical(cycle: List[int]) -> Tuple[int, ...]:
    k = cycle.index(min(cycle))
    return tuple(cycle[k:] + cycle[:k])


def detect_circular_debts(raw_edges: Iterable[Mapping]) -> List[Dict]:
    """
    Поиск простых направленных циклов (DFS из каждого узла, явный стек).

    Состояние обхода:
      path     - текущий путь (список узлов),
      on_path  - {узел: индекс в path} для O(1)-проверки обратного ребра,
      visited  - полностью обработанные узлы (повторно не входим).
    Обратное ребро в узел из on_path даёт цикл path[on_path[v]:].
    Из-за visited цикл, который проходит через уже закрытый узел, не находится:
    для 1->2, 2->1, 1->3, 3->2 вернётся только [1, 2], без 1->3->2->1.
    Каждый узел обходится один раз (O(V+E)); полный перебор циклов (Johnson) не делаем.

    Возвращает [{"participants": [uid, ...], "cancelAmount": Decimal}, ...]
    в порядке обнаружения; дубликаты (та же ротация) отбрасываются.
    """
    weights: Dict[Tuple[int, int], Decimal] = defaultdict(Decimal)
    for e in raw_edges:
        weights[(e["from"], e["to"])] += _D(e["amount"])

    adjacency: Dict[int, List[int]] = defaultdict(list)
    for (u, v) in sorted(weights):
        adjacency[u].append(v)

    cycles: List[Dict] = []
    found = set()
    visited = set()

    for root in sorted(adjacency):
        if root in visited:
            continue

        path: List[int] = [root]
        on_path: Dict[int, int] = {root: 0}
        # стек фреймов: [узел, индекс следующего соседа]
        stack: List[List[int]] = [[root, 0]]

        while stack:
            frame = stack[-1]
            node, idx = frame
            neighbors = adjacency.get(node, [])

            if idx >= len(neighbors):
                stack.pop()
                path.pop()
                del on_path[node]
                visited.add(node)
                continue

            frame[1] = idx + 1
            nxt = neighbors[idx]

            if nxt in on_path:
                cycle = path[on_path[nxt]:]
                key = _canonical(cycle)
                if key in found:
                    continue
                bottleneck = min(
                    weights[(cycle[k], cycle[(k + 1) % len(cycle)])]
                    for k in range(len(cycle))
                )
                if bottleneck > ZERO:
                    found.add(key)
                    cycles.append({
                        "participants": list(key),
                        "cancelAmount": money(bottleneck),
                    })
                continue

            if nxt in visited:
                continue

            on_path[nxt] = len(path)
            path.append(nxt)
            stack.append([nxt, 0])

    return cycles


def graph_stats(
    nodes: List[Mapping],
    raw_edges: List[Mapping],
    aggregated: List[Mapping],
    optimized: List[Mapping],
    cycles: List[Mapping],
) -> Dict:
    total_edges = len(raw_edges)
    savings = round((1 - len(optimized) / total_edges) * 100) if total_edges > 0 else 0
    return {
        "totalMembers": len(nodes),
        "totalEdges": total_edges,
        "aggregatedEdges": len(aggregated),
        "optimizedTransactions": len(optimized),
        "circularDebtsFound": len(cycles),
        "savingsPercent": savings,
    }
