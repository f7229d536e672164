# main.py

"""FastAPI application for the invoice billing backend."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings

from . import db
from .middlewares import (
    HttpErrorCounterMiddleware,
    LoggingMiddleware,
    RequestIdMiddleware,
)
from .obs import capture_exception, init_sentry
from .obs.logging import configure_logging
from .routes_invoice_reports import router as invoice_reports_router
from .routes_invoices import purchase_router, sales_router
from .routes_metrics import router as metrics_router
from .services import invoice_audit
from .utils.responses import err, ok

settings = get_settings()
configure_logging(settings.log_level.upper())
logger = logging.getLogger("api")
init_sentry(env=settings.environment)

app = FastAPI(
    title="Billing API",
    version="1.0.0",
    servers=[{"url": "/"}],
    openapi_url="/openapi.json",
)
app.add_middleware(HttpErrorCounterMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(
        exc.detail,
        extra={
            "status": exc.status_code,
            "route": request.url.path,
            "user": request.headers.get("X-User-ID"),
        },
    )
    return JSONResponse(err(exc.status_code, exc.detail), status_code=exc.status_code)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(
        "database_error",
        exc_info=exc,
        extra={"status": 500, "route": request.url.path},
    )
    capture_exception(exc)
    return JSONResponse(err(500, "Database error"), status_code=500)


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    logger.exception(
        "unhandled_error",
        exc_info=exc,
        extra={
            "status": 500,
            "route": request.url.path,
            "user": request.headers.get("X-User-ID"),
        },
    )
    capture_exception(exc)
    return JSONResponse(err(500, "Internal Server Error"), status_code=500)


@app.on_event("startup")
async def bootstrap_schema() -> None:
    """Create tables on a fresh development database."""
    if settings.environment == "dev":
        await db.create_all()


@app.on_event("shutdown")
async def flush_audit_and_dispose() -> None:
    await invoice_audit.drain()
    await db.dispose()


@app.get("/health")
async def health() -> dict:
    return ok({"status": "ok"})


app.include_router(sales_router)
app.include_router(purchase_router)
app.include_router(invoice_reports_router)
app.include_router(metrics_router)
