"""Leasing financial core - FastAPI entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from leasecore import __version__
from leasecore.api import commissions, ledger, payments, schedules
from leasecore.config import settings
from leasecore.database import Base, async_session, engine
from leasecore.logging_config import configure_logging
from leasecore.middleware.error_capture import ErrorCaptureMiddleware
from leasecore.seed_ledger import seed_ledger_data
from leasecore.services.errors import (
    ConcurrencyConflict,
    InvalidStateTransition,
    LeaseCoreError,
    NotFound,
    ValidationError,
)

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and seed the chart of accounts (dev only); in prod use Alembic."""
    if settings.environment == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with async_session() as db:
            await seed_ledger_data(db)
    yield
    await engine.dispose()


app = FastAPI(
    title="Leasing Financial Core API",
    description="Ledger, payment schedules and manufacturer commissions",
    version=__version__,
    lifespan=lifespan,
)


# ── Domain error translation ─────────────────────────────────────
def _status_for(exc: LeaseCoreError) -> int:
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, (InvalidStateTransition, ConcurrencyConflict)):
        return 409
    if isinstance(exc, ValidationError):
        return 400
    return 500


@app.exception_handler(LeaseCoreError)
async def lease_core_error_handler(request: Request, exc: LeaseCoreError) -> JSONResponse:
    status_code = _status_for(exc)
    logger.info(
        "%s %s rejected with %d: %s", request.method, request.url.path, status_code, exc
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": str(exc),
            "error": type(exc).__name__,
            "retryable": isinstance(exc, ConcurrencyConflict),
        },
    )


# Error capture middleware
app.add_middleware(ErrorCaptureMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With"],
)

# Routers
app.include_router(ledger.router, prefix="/api/ledger", tags=["General Ledger"])
app.include_router(schedules.router, prefix="/api/schedules", tags=["Payment Schedules"])
app.include_router(commissions.router, prefix="/api/commissions", tags=["Commissions"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "leasecore", "version": __version__}
