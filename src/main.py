# src/main.py
# Главная точка входа FastAPI для ядра леджера.
#  • Движок БД и фабрика сессий создаются на старте (lifespan) и закрываются на остановке.
#  • Ядро (src.services.ledger.Ledger) кладётся в app.state.ledger.
#  • Ошибки ядра переводятся в HTTP-коды единым обработчиком.

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from src.config import Settings
from src.db import make_engine, make_session_factory
from src.errors import (
    ConflictError,
    InvalidStateError,
    LedgerError,
    LedgerTimeoutError,
    NotFoundError,
    ValidationError,
)
from src.routers.ledger import router as ledger_router
from src.services.ledger import Ledger

log = logging.getLogger(__name__)

# код ответа по типу ошибки ядра; всё неизвестное - 500
STATUS_BY_ERROR = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (ConflictError, 409),
    (LedgerTimeoutError, 503),
)

RETRY_AFTER_SECONDS = "1"


def status_for(exc: LedgerError) -> int:
    for cls, code in STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return code
    return 500


async def ledger_error_handler(request: Request, exc: LedgerError):
    code = status_for(exc)
    if code >= 500:
        log.warning("ledger error on %s %s: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    headers = {"Retry-After": RETRY_AFTER_SECONDS} if exc.retryable else None
    return JSONResponse(status_code=code, content={"detail": exc.message, "code": exc.code}, headers=headers)


def create_app(settings: Optional[Settings] = None, session_factory: Optional[sessionmaker] = None) -> FastAPI:
    """
    Собирает приложение. Если session_factory передан (тесты) - ядро создаётся
    сразу и движком приложение не управляет; иначе движок поднимается в lifespan.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = None
        if getattr(app.state, "ledger", None) is None:
            engine = make_engine(settings)
            app.state.ledger = Ledger(make_session_factory(engine), settings)
            log.info("ledger: engine started (%s)", engine.url.get_backend_name())
        try:
            yield
        finally:
            if engine is not None:
                app.state.ledger = None
                engine.dispose()
                log.info("ledger: engine disposed")

    app = FastAPI(
        title="Ledger Core",
        description="Расходы группы, балансы, settle-up, граф долгов, история и undo/redo.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.ledger = Ledger(session_factory, settings) if session_factory is not None else None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LedgerError, ledger_error_handler)

    app.include_router(ledger_router, prefix="/api", tags=["Леджер"])

    @app.get("/")
    def root():
        """Простой healthcheck."""
        return {"message": "Ledger core работает!", "docs": "/docs"}

    return app


settings = Settings.from_env()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(settings)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("src.main:app", host="0.0.0.0", port=8000, reload=False)
