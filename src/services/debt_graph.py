# src/services/debt_graph.py
# -----------------------------------------------------------------------------
# ГРАФ ДОЛГОВ ГРУППЫ (для визуализации)
# -----------------------------------------------------------------------------
# Собирает из леджера: узлы (участники), сырые рёбра по долям, агрегированные
# рёбра, net-балансы, оптимальный план (greedy), круговые долги и статистику.
# Только чтение - ни кэш, ни леджер не трогаем.
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import sessionmaker

from src.config import Settings
from src.errors import NotFoundError
from src.schemas.debt_graph import (
    CircularDebtOut,
    DebtGraphOut,
    EdgeOut,
    GraphStatsOut,
    NodeOut,
)
from src.schemas.settlement import SettlementOut
from src.services.balances import compute_balance_rows, to_balance_out
from src.services.ledger_store import LedgerStore
from src.utils.balance import optimize_settlements
from src.utils.debt_graph import (
    aggregate_edges,
    build_raw_edges,
    detect_circular_debts,
    graph_stats,
)
from src.utils.guards import require_id


class DebtGraphService:
    def __init__(self, session_factory: sessionmaker, settings: Settings):
        self.session_factory = session_factory
        self.settings = settings

    def build(self, group_id: int, *, timeout_ms: Optional[int] = None) -> DebtGraphOut:
        gid = require_id(group_id, "group_id")

        with self.session_factory() as db:
            store = LedgerStore(db, statement_timeout_ms=self.settings.query_timeout_ms)
            if store.get_group(gid) is None:
                raise NotFoundError("Group not found")

            balances = compute_balance_rows(store, gid, None, timeout_ms)
            with store.bounded(timeout_ms):
                expenses = store.list_expenses(gid)
                splits = store.list_splits([e["id"] for e in expenses])

        nodes = [{"id": b["id"], "name": b["name"]} for b in balances]
        names = {n["id"]: n["name"] for n in nodes}

        raw_edges = build_raw_edges(expenses, splits, names)
        edges = aggregate_edges(raw_edges, names)
        optimized = optimize_settlements(balances)
        cycles = detect_circular_debts(raw_edges)
        stats = graph_stats(nodes, raw_edges, edges, optimized, cycles)

        return DebtGraphOut(
            nodes=[NodeOut(**n) for n in nodes],
            edges=[
                EdgeOut(
                    from_user=e["from"],
                    to_user=e["to"],
                    amount=float(e["amount"]),
                    from_name=e["from_name"],
                    to_name=e["to_name"],
                )
                for e in edges
            ],
            net_balances=to_balance_out(balances),
            optimized_settlements=[
                SettlementOut(
                    from_user=s["from_user_id"],
                    to_user=s["to_user_id"],
                    amount=float(s["amount"]),
                    from_name=s.get("from_name"),
                    to_name=s.get("to_name"),
                )
                for s in optimized
            ],
            circular_debts=[
                CircularDebtOut(participants=c["participants"], cancel_amount=float(c["cancelAmount"]))
                for c in cycles
            ],
            stats=GraphStatsOut(
                total_members=stats["totalMembers"],
                total_edges=stats["totalEdges"],
                aggregated_edges=stats["aggregatedEdges"],
                optimized_transactions=stats["optimizedTransactions"],
                circular_debts_found=stats["circularDebtsFound"],
                savings_percent=stats["savingsPercent"],
            ),
        )
