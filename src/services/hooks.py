# src/services/hooks.py
# -----------------------------------------------------------------------------
# POST-COMMIT ХУКИ
# -----------------------------------------------------------------------------
# Побочные эффекты мутации (пересчёт кэша settle-up и т.п.) выполняются ПОСЛЕ
# коммита. Каждый хук изолирован: его падение логируется как DependencyError
# и никогда не откатывает и не валит уже успешную мутацию.
#
# HookRunner решает, КАК выполнить список хуков: по умолчанию - сразу
# в текущем потоке; HTTP-слой подсовывает раннер поверх BackgroundTasks,
# чтобы ответ не ждал пересчёта.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from typing import Callable, List, Sequence

from src.errors import DependencyError

log = logging.getLogger(__name__)

PostCommitHook = Callable[[], object]
HookRunner = Callable[[Sequence[PostCommitHook]], None]


def run_post_commit_hooks(hooks: Sequence[PostCommitHook]) -> List[DependencyError]:
    """
    Выполняет хуки по очереди. Возвращает список ошибок (для тестов/диагностики),
    наружу ничего не бросает.
    """
    failures: List[DependencyError] = []
    for hook in hooks:
        name = getattr(hook, "__name__", repr(hook))
        try:
            hook()
        except Exception as e:
            err = DependencyError(f"post-commit hook {name} failed: {e}")
            err.__cause__ = e
            failures.append(err)
            log.exception("post-commit hook %s failed; primary mutation already committed", name)
    return failures


def run_inline(hooks: Sequence[PostCommitHook]) -> None:
    run_post_commit_hooks(hooks)
