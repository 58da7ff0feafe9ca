"""
Main FastAPI application entry point.
Sets up the API, error handlers, routes and the background worker.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from bankcore import models  # noqa: F401  registers tables on Base.metadata
from bankcore.api import (
    accounts,
    favorites,
    notifications,
    qr,
    scheduled_transfers,
    simple_password,
    transactions,
    transfers,
)
from bankcore.core.config import settings
from bankcore.core.exceptions import BankingError, banking_error_handler, request_validation_handler
from bankcore.core.logging_config import configure_logging
from bankcore.database import engine, Base
from bankcore.services.scheduler import ScheduledTransferWorker

logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    worker = None
    if settings.SCHEDULER_ENABLED:
        worker = ScheduledTransferWorker()
        worker.start()
    app.state.worker = worker
    logger.info("%s %s started", settings.PROJECT_NAME, settings.VERSION)
    try:
        yield
    finally:
        if worker is not None:
            worker.shutdown()


# Initialize FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=settings.DESCRIPTION,
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc UI
    lifespan=lifespan,
)

# CORS middleware (allows the mobile/web client to call the API)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Idempotent-Replayed"],
)

app.add_exception_handler(BankingError, banking_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)


@app.get("/")
def root():
    """
    Root endpoint - service summary.
    """
    return {
        "message": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "status": "running",
        "docs": "/docs",
        "endpoints": {
            "accounts": f"{settings.API_V1_PREFIX}/accounts",
            "transfers": f"{settings.API_V1_PREFIX}/transfers",
            "qr": f"{settings.API_V1_PREFIX}/qr",
            "scheduledTransfers": f"{settings.API_V1_PREFIX}/scheduled-transfers",
            "transactions": f"{settings.API_V1_PREFIX}/transactions",
            "favorites": f"{settings.API_V1_PREFIX}/favorites",
            "notifications": f"{settings.API_V1_PREFIX}/notifications",
        }
    }


@app.get("/health")
def health_check():
    """
    Health check endpoint for monitoring.
    """
    worker = getattr(app.state, "worker", None)
    return {
        "status": "healthy",
        "database": "connected",
        "scheduler": "running" if worker is not None and worker.scheduler.running else "stopped",
    }


# Include API routers
app.include_router(accounts.router, prefix=settings.API_V1_PREFIX)
app.include_router(transfers.router, prefix=settings.API_V1_PREFIX)
app.include_router(qr.router, prefix=settings.API_V1_PREFIX)
app.include_router(scheduled_transfers.router, prefix=settings.API_V1_PREFIX)
app.include_router(transactions.router, prefix=settings.API_V1_PREFIX)
app.include_router(favorites.router, prefix=settings.API_V1_PREFIX)
app.include_router(notifications.router, prefix=settings.API_V1_PREFIX)
app.include_router(simple_password.router, prefix=settings.API_V1_PREFIX)
