#!/usr/bin/env python3
"""
Ledger Service - FastAPI Application.

============================================================
SINGLE ENTRYPOINT
============================================================
Wires the ledger components into one HTTP application:

- Transfer engine (/transfer)
- Copy-order engine (/trades) and admin surface (/admin)
- Periodic settlement + volume projection sweep (lifespan)

Authentication happens upstream; the gateway forwards the
identity as X-User-Id / X-Vip-Tier-Id / X-User-Role headers.

============================================================
USAGE
============================================================
    python run_api.py

or
    uvicorn app:create_app --factory --host 0.0.0.0 --port 8000

The application is built by the factory at server start, so
importing this module opens no database engine.

============================================================
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.clock import ClockFactory, ClockProtocol
from core.config import LedgerConfig
from core.exceptions import LedgerException, PersistenceError
from database.engine import create_all_tables, create_database_engine, create_session_factory
from notifications import NotificationDispatcher, build_dispatcher
from accounts.router import admin_router as transfer_admin_router, router as transfer_router
from accounts.trading_volume import VolumeProjection
from accounts.transfer_engine import TransferEngine
from copy_trading.router import admin_router, router as trades_router
from copy_trading.service import CopyTradingService
from copy_trading.settlement import ProfitSettlementService
from copy_trading.vip import VipTierService
from scheduler.service import LedgerScheduler

logger = logging.getLogger(__name__)


# ============================================================
# ERROR ENVELOPE
# ============================================================

def _error_response(status_code: int, code: str, message: str, context: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message, "context": context or {}},
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(LedgerException)
    async def ledger_exception_handler(request: Request, exc: LedgerException):
        if isinstance(exc, PersistenceError):
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
            return _error_response(500, exc.code, "Internal server error")
        body = exc.to_dict()
        return _error_response(exc.http_status, body["code"], body["message"], body["context"])

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        return _error_response(
            400, "validation_error",
            first.get("msg", "Invalid request"),
            {"field": field} if field else {},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, "http_error", str(exc.detail))

    @app.exception_handler(Exception)
    async def unexpected_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _error_response(500, "internal_error", "Internal server error")


# ============================================================
# APPLICATION FACTORY
# ============================================================

def create_app(
    config: Optional[LedgerConfig] = None,
    engine: Optional[Engine] = None,
    clock: Optional[ClockProtocol] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> FastAPI:
    """
    Build the ledger application.

    Args:
        config: Service configuration (defaults to environment)
        engine: SQLAlchemy engine (defaults to config.database.url)
        clock: Time source shared by all components
        notifier: Notification dispatcher (defaults to config channels)
    """
    config = config or LedgerConfig.from_env()
    errors = config.validate()
    if errors:
        raise ValueError(f"Invalid configuration: {'; '.join(errors)}")

    engine = engine or create_database_engine(
        config.database.url,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
        echo=config.database.echo,
    )
    session_factory = create_session_factory(engine)
    clock = clock or ClockFactory.get_clock()
    notifier = notifier or build_dispatcher(config.notifications)

    settlement = ProfitSettlementService(
        session_factory,
        clock=clock,
        max_attempts=config.scheduler.max_settlement_attempts,
        batch_size=config.scheduler.batch_size,
        notifier=notifier,
    )
    scheduler = LedgerScheduler(
        settlement,
        VolumeProjection(session_factory, clock=clock),
        config=config.scheduler,
        clock=clock,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        create_all_tables(engine)
        if config.scheduler.enabled:
            await scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()

    app = FastAPI(
        title="Ledger & Copy Trading API",
        description="Multi-account transfer ledger with volume-gated fees and simulated copy trading",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.transfer_engine = TransferEngine(
        session_factory, fee_policy=config.fees, clock=clock, notifier=notifier,
    )
    app.state.copy_trading = CopyTradingService(session_factory, clock=clock, notifier=notifier)
    app.state.vip_tiers = VipTierService(session_factory)
    app.state.settlement = settlement
    app.state.scheduler = scheduler

    register_exception_handlers(app)
    app.include_router(transfer_router)
    app.include_router(trades_router)
    app.include_router(admin_router)
    app.include_router(transfer_admin_router)

    @app.get("/health")
    def health():
        return {"status": "ok", "scheduler": scheduler.get_statistics()}

    return app

