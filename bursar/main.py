# bursar/main.py - FastAPI application: billing, payments, expenses, ledger and reports
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import traceback
import time

from bursar.core.config import settings
from bursar.core.db import db_manager, init_db
from bursar.core.exceptions import BursarError
from bursar.core.logging import setup_logging
from bursar.api.routers import fees, invoices, payments, expenses, ledger, reports, cash

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"Starting {settings.API_TITLE}...")
    logger.info(f"Environment: {settings.ENV}")
    logger.info(f"Database URL: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'local'}")

    # Create tables if they don't exist (for development)
    if settings.is_development:
        logger.info("Creating database tables...")
        init_db()

    yield

    logger.info(f"Shutting down {settings.API_TITLE}...")
    db_manager.close()


app = FastAPI(
    title=settings.API_TITLE,
    description="School fee billing and double-entry ledger",
    version=settings.API_VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its status and duration"""
    start_time = time.time()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"Error processing {request.method} {request.url.path}: {str(e)}")
        raise
    process_time = time.time() - start_time
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)",
        extra={"school_id": request.headers.get("x-school-id", "")},
    )
    return response


app.add_middleware(CORSMiddleware, **settings.get_cors_config())


@app.exception_handler(BursarError)
async def bursar_error_handler(request: Request, exc: BursarError):
    """Rejected billing/ledger operations become {code, detail, context}"""
    # Services already logged the rejection (WARNING) or the corruption (bursar.alerts)
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {str(exc)}")
    logger.error(traceback.format_exc())

    if settings.is_development:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "traceback": traceback.format_exc()}
        )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENV,
        "version": settings.API_VERSION,
        "database": db_manager.health_check(),
    }


app.include_router(fees.router, prefix="/api/fees", tags=["Fees"])
app.include_router(invoices.router, prefix="/api/invoices", tags=["Invoices"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
app.include_router(expenses.router, prefix="/api/expenses", tags=["Expenses"])
app.include_router(ledger.router, prefix="/api/ledger", tags=["Ledger"])
app.include_router(reports.router, prefix="/api/reports", tags=["Reports"])
app.include_router(cash.router, prefix="/api/cash-register", tags=["Cash register"])
