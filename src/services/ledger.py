# src/services/ledger.py
# Сборка ядра: все сервисы получают ОДНУ фабрику сессий и настройки явно.
# Экземпляр живёт столько же, сколько приложение (создаётся на старте).

from __future__ import annotations

from sqlalchemy.orm import sessionmaker

from src.config import Settings
from src.services.balances import BalanceService
from src.services.debt_graph import DebtGraphService
from src.services.expenses import ExpenseService
from src.services.history import HistoryService
from src.services.hooks import HookRunner, run_inline
from src.services.settlements import SettlementService


class Ledger:
    def __init__(self, session_factory: sessionmaker, settings: Settings, hook_runner: HookRunner = run_inline):
        self.session_factory = session_factory
        self.settings = settings

        self.balances = BalanceService(session_factory, settings)
        self.settlements = SettlementService(session_factory, settings)
        self.debt_graph = DebtGraphService(session_factory, settings)
        self.history = HistoryService(session_factory, settings, self.settlements, hook_runner)
        self.expenses = ExpenseService(session_factory, settings, self.history)
