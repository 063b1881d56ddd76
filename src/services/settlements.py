# src/services/settlements.py
# -----------------------------------------------------------------------------
# КЭШ ПЛАНА SETTLE-UP
# -----------------------------------------------------------------------------
#   • get(group_id)       - последний закэшированный план или None (промах).
#   • recompute(group_id) - ВСЕГДА пересчитывает из живого леджера
#                           (балансы -> greedy) и перезаписывает кэш (upsert).
#   • get_or_compute      - кэш, а при промахе - recompute.
# Кэш не авторитетен: кому нужен гарантированно свежий план - зовёт recompute.
# В ответе всегда видно, откуда план: source = "cache" | "fresh".
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from src.config import Settings
from src.errors import NotFoundError
from src.schemas.settlement import SettlementOut, SettlementPlanOut
from src.services.balances import compute_balance_rows
from src.services.hooks import PostCommitHook
from src.services.ledger_store import LedgerStore
from src.utils.balance import money, optimize_settlements
from src.utils.guards import require_id

log = logging.getLogger(__name__)


def _to_cache_rows(plan: List[Dict]) -> List[Dict]:
    # в JSON храним суммы строками, чтобы не терять центы на float
    return [
        {"from": s["from_user_id"], "to": s["to_user_id"], "amount": str(money(s["amount"]))}
        for s in plan
    ]


def _plan_out(
    group_id: int,
    rows: List[Dict],
    generated_at: datetime,
    source: str,
    names: Dict[int, Optional[str]],
) -> SettlementPlanOut:
    return SettlementPlanOut(
        group_id=group_id,
        source=source,
        generated_at=generated_at,
        settlements=[
            SettlementOut(
                from_user=r["from"],
                to_user=r["to"],
                amount=float(money(r["amount"])),
                from_name=names.get(r["from"]),
                to_name=names.get(r["to"]),
            )
            for r in rows
        ],
    )


def _involved(rows: List[Dict]) -> set:
    ids = set()
    for r in rows:
        ids.add(r["from"])
        ids.add(r["to"])
    return ids


class SettlementService:
    def __init__(self, session_factory: sessionmaker, settings: Settings):
        self.session_factory = session_factory
        self.settings = settings

    def get(self, group_id: int) -> Optional[SettlementPlanOut]:
        gid = require_id(group_id, "group_id")
        with self.session_factory() as db:
            store = LedgerStore(db)
            row = store.get_cached_plan(gid)
            if row is None:
                return None
            rows = list(row.settlements or [])
            names = store.user_names(_involved(rows))
            return _plan_out(gid, rows, row.generated_at, "cache", names)

    def recompute(self, group_id: int, *, timeout_ms: Optional[int] = None) -> SettlementPlanOut:
        gid = require_id(group_id, "group_id")
        with self.session_factory() as db:
            store = LedgerStore(db, statement_timeout_ms=self.settings.query_timeout_ms)
            if store.get_group(gid) is None:
                raise NotFoundError("Group not found")

            balances = compute_balance_rows(store, gid, None, timeout_ms)
            plan = optimize_settlements(balances)
            rows = _to_cache_rows(plan)
            generated_at = datetime.utcnow()

            with store.transaction():
                store.upsert_cached_plan(gid, rows, generated_at)

            names = {b["id"]: b["name"] for b in balances}

        log.info("settlements: recomputed group %s (%s transfers)", gid, len(rows))
        return _plan_out(gid, rows, generated_at, "fresh", names)

    def get_or_compute(self, group_id: int) -> SettlementPlanOut:
        cached = self.get(group_id)
        if cached is not None:
            return cached
        return self.recompute(group_id)

    def recompute_hook(self, group_id: int) -> PostCommitHook:
        """Хук для post-commit списка мутации: пересчитать кэш этой группы."""
        def recompute_settlement_cache():
            self.recompute(group_id)
        return recompute_settlement_cache

    @staticmethod
    def for_user(plan: SettlementPlanOut, user_id: int) -> SettlementPlanOut:
        """Только переводы, где user_id - плательщик или получатель."""
        mine = [s for s in plan.settlements if s.from_user == user_id or s.to_user == user_id]
        return plan.model_copy(update={"settlements": mine})
