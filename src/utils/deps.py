# src/utils/deps.py
"""
FastAPI-зависимости HTTP-слоя:
- get_ledger: ядро леджера, собранное на старте приложения (app.state.ledger)
- get_actor_id: id инициатора действия из заголовка X-User-Id
- get_hook_runner: запуск post-commit хуков через BackgroundTasks (после ответа)
"""

from typing import Optional

from fastapi import BackgroundTasks, Header, HTTPException, Request

from src.services.hooks import HookRunner, PostCommitHook, run_post_commit_hooks
from src.services.ledger import Ledger


def get_ledger(request: Request) -> Ledger:
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None:
        raise HTTPException(status_code=503, detail="Ledger is not initialized")
    return ledger


def get_actor_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> int:
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    raw = x_user_id.strip()
    if not raw.isdigit() or int(raw) <= 0:
        raise HTTPException(status_code=422, detail="X-User-Id must be a positive integer")
    return int(raw)


def get_hook_runner(background_tasks: BackgroundTasks) -> HookRunner:
    def run_in_background(hooks):
        hooks = list(hooks)
        if hooks:
            background_tasks.add_task(run_post_commit_hooks, hooks)
    return run_in_background


def get_optional_actor_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> Optional[int]:
    if x_user_id is None or not x_user_id.strip():
        return None
    return get_actor_id(x_user_id)
