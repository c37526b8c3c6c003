"""
Workforce Sync API

HTTP entry point for spreadsheet imports, scheduling platform syncs,
identity reconciliation, data quality issues and alerts.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from workforce_sync.api.alerts import alerts_router
from workforce_sync.api.data_quality import data_quality_router
from workforce_sync.api.identity import identity_router
from workforce_sync.api.imports import imports_router
from workforce_sync.api.sync_jobs import sync_jobs_router
from workforce_sync.config.settings import get_settings
from workforce_sync.database.database import DatabaseConfig, dispose_engine, get_engine, init_db
from workforce_sync.utils.errors import APIError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ROUTERS = (
    imports_router,
    sync_jobs_router,
    identity_router,
    data_quality_router,
    alerts_router,
)


# =============================================================================
# Error Responses
# =============================================================================

def _error_body(message: str, code: str, **extra) -> dict:
    return {"error": {"message": message, "code": code, **extra}}


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    response = exc.to_response()
    return JSONResponse(status_code=response.status_code, content=response.to_dict())


async def model_validation_handler(request: Request, exc: PydanticValidationError) -> JSONResponse:
    """Payloads rebuilt inside a handler (mappings, rows) fail as a 400."""
    field_errors = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "code": error["type"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=_error_body("Request validation failed", "validation_error", field_errors=field_errors),
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=_error_body("An unexpected error occurred", "internal_error"),
    )


# =============================================================================
# Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config = DatabaseConfig.from_settings()
    if config.is_sqlite:
        # Local runs have no migrations; build the schema from the models
        logger.info("Using SQLite database, creating tables from models")
        init_db(config)
    else:
        get_engine(config)
    logger.info("Workforce Sync API ready")

    yield

    dispose_engine()
    logger.info("Workforce Sync API stopped")


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Imports restaurant and payroll spreadsheets, synchronizes the "
            "scheduling platform, reconciles employee identities and monitors "
            "data quality."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )

    # The back office frontend is served from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router in ROUTERS:
        app.include_router(router)

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(PydanticValidationError, model_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict:
        return {"status": "healthy", "version": settings.app_version}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("workforce_sync.main:app", host="0.0.0.0", port=8000, reload=True)
