"""FastAPI application entry point."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from freightflow.api import admin, messages
from freightflow.core.config import load_config
from freightflow.core.exceptions import PipelineError
from freightflow.core.services import get_services
from freightflow.logging import configure_logging, get_request_id
from freightflow.middleware.request_context import RequestContextMiddleware
from freightflow.storage.configurations import seed_providers
from freightflow.storage.database import init_db
from freightflow.telemetry.events import record_event

configure_logging()

logger = logging.getLogger("freightflow.app")

app = FastAPI(
    title="Freightflow",
    version="0.1.0",
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url=None,
)
app.include_router(admin.router)
app.include_router(messages.router)
app.add_middleware(RequestContextMiddleware)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    config = load_config()
    seed_providers(config.providers)
    get_services()
    logger.info(
        "Pipeline ready",
        extra={"event": "startup", "providers": len(config.providers)},
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.exception_handler(PipelineError)
async def pipeline_exception_handler(request: Request, exc: PipelineError) -> JSONResponse:
    logger.warning(
        "Pipeline error",
        extra={
            "event": "request_pipeline_error",
            "path": request.url.path,
            "error_type": type(exc).__name__,
        },
    )
    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "message": exc.message,
                "type": type(exc).__name__,
                "code": "pipeline_error",
            }
        },
    )


@app.exception_handler(Exception)
async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error",
        extra={
            "event": "request_error",
            "path": request.url.path,
            "request_id": get_request_id(),
        },
    )
    record_event(
        "request_error",
        "ERROR",
        message=str(exc),
        meta={
            "path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "message": "Internal server error",
                "type": "internal_server_error",
                "code": "internal_error",
            }
        },
    )
