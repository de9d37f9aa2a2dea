"""
FastAPI Application Entry Point.

This is the main application file for the Fee Ledger Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fee_ledger.app.core.config import settings
from fee_ledger.app.api.v1.router import router as api_v1_router
from fee_ledger.app.core.observability import ObservabilityMiddleware
from fee_ledger.app.core.redis_client import ping_redis
from fee_ledger.app.db.session import engine, Base
from fee_ledger.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from fee_ledger.app.models.user import User
from fee_ledger.app.models.course import Course, CourseEnrollment
from fee_ledger.app.models.fee_obligation import FeeObligation
from fee_ledger.app.models.payment_record import PaymentRecord
from fee_ledger.app.models.invoice import Invoice, InvoicePaymentLine, InvoiceSequence
from fee_ledger.app.models.audit_log import AuditLog


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Configures logging and creates database tables (seeding the invoice
    sequence row) on startup.
    """
    logging.basicConfig(level=settings.log_level)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Fee obligations, payment ledger and invoicing",
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
        "redis": "ok" if await ping_redis() else "unavailable",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to Fee Ledger Backend API",
        "docs": "/docs",
        "health": "/health",
    }
