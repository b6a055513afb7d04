"""RoofCalc FastAPI application.

Run with:
    uvicorn roofcalc.web.app:app --reload
or:
    roofcalc web serve
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from roofcalc import __version__
from roofcalc.core.logging import configure_logging
from roofcalc.db.connection import close_db
from roofcalc.errors import (
    AIServiceTimeoutError,
    ExternalServiceError,
    NotFoundError,
    ParseError,
    RoofCalcError,
    ValidationError,
)
from roofcalc.ingestion.locks import ImportLockRegistry
from roofcalc.web.routes import health, pricing, quotes, templates

logger = structlog.get_logger()

# Most specific first; the first isinstance match wins
ERROR_STATUS = (
    (ValidationError, 400),
    (ParseError, 400),
    (NotFoundError, 404),
    (AIServiceTimeoutError, 504),
    (ExternalServiceError, 502),
)


def status_for(exc: RoofCalcError) -> int:
    for error_cls, status_code in ERROR_STATUS:
        if isinstance(exc, error_cls):
            return status_code
    return 500


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise

        logger.info("request_completed", status_code=response.status_code)
        response.headers["X-Request-ID"] = request_id
        return response


async def roofcalc_error_handler(request: Request, exc: RoofCalcError) -> JSONResponse:
    status_code = status_for(exc)
    content: dict = {"error": exc.message}
    if exc.session_id:
        content["sessionId"] = exc.session_id

    log = logger.warning if status_code < 500 else logger.error
    log("request_error", error_type=type(exc).__name__, error=exc.message, status_code=status_code)
    return JSONResponse(status_code=status_code, content=content)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("roofcalc_startup", version=__version__)
    yield
    await close_db()
    logger.info("roofcalc_shutdown")


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="RoofCalc",
        description="Roofing quote generation and historical pricing API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.import_locks = ImportLockRegistry()
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(RoofCalcError, roofcalc_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    app.include_router(health.router)
    app.include_router(quotes.router)
    app.include_router(pricing.router)
    app.include_router(templates.router)
    return app


app = create_app()
