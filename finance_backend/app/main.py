"""
FastAPI Application Entry Point.

This is the main application file for the Finance Back-Office Service.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from finance_backend.app.core.config import settings
from finance_backend.app.api.v1.router import router as api_v1_router
from finance_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from finance_backend.app.db.session import engine, Base
from finance_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from finance_backend.app.models.admin import Admin
from finance_backend.app.models.user import User, UserWallet, WalletTransaction
from finance_backend.app.models.merchant import Merchant, Venue, Device
from finance_backend.app.models.order import Order, Rental, Payment, Refund
from finance_backend.app.models.distribution import Distributor, Commission
from finance_backend.app.models.settlement import Settlement
from finance_backend.app.models.withdrawal import Withdrawal
from finance_backend.app.models.audit_log import AuditLog

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup and disposes the engine on shutdown.
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
    description="Finance back office: settlements, withdrawal review, revenue reports and exports",
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

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to the Finance Back-Office API",
        "docs": "/docs",
        "health": "/health",
    }
