"""
FastAPI Application Entry Point.

This is the main application file for the Institute Finance service
(cash-float ledger, transfers and income/expense approvals).
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from institute_finance.app.core.config import settings
from institute_finance.app.api.v1.router import router as api_v1_router
from institute_finance.app.core.observability import ObservabilityMiddleware, configure_logging
from institute_finance.app.core.redis_client import ping_redis
from institute_finance.app.db.session import engine, Base
from institute_finance.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from institute_finance.app.models.holder import Holder
from institute_finance.app.models.ledger_entry import LedgerEntry
from institute_finance.app.models.cash_transfer import CashTransfer
from institute_finance.app.models.income import Income
from institute_finance.app.models.expense import Expense
from institute_finance.app.models.audit_log import AuditLog

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Disposes the engine pool on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Cash-float ledger, cash transfers and income/expense approvals for an institute",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Redis only carries notifications, so a Redis outage degrades the
    service instead of failing it.

    Returns:
        dict: Status and application information
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if redis_ok else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to the Institute Finance API",
        "docs": "/docs",
        "health": "/health",
    }
