# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""FastAPI main application module."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from dental_scribe import __version__
from dental_scribe.database import close_db, init_db
from dental_scribe.deps import get_settings
from dental_scribe.exceptions import DentalScribeError, ValidationError
from dental_scribe.logging_config import configure_logging
from dental_scribe.models.api import ErrorResponse
from dental_scribe.routers import health, recordings, uploads, visit_types
from dental_scribe.services.llm import RefertoGenerator, create_openai_client
from dental_scribe.services.storage import create_storage_manager
from dental_scribe.services.transcription import TranscriptionService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level)
    await init_db()

    app.state.storage_manager = create_storage_manager(settings)
    client = create_openai_client(settings)
    app.state.transcription_service = TranscriptionService(settings, client=client)
    app.state.referto_generator = RefertoGenerator(settings, client=client)
    logger.info(f"{settings.api_title} {__version__} started (storage={settings.storage_backend})")

    yield
    # Shutdown
    await client.close()
    await close_db()


async def domain_error_handler(request: Request, exc: DentalScribeError) -> JSONResponse:
    """Render domain errors as ``ErrorResponse`` with their mapped status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")

    body = ErrorResponse(
        error=exc.message,
        detail=exc.detail,
        code=exc.code,
        field=exc.field if isinstance(exc, ValidationError) else None,
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


app = FastAPI(
    title="Dental Scribe API",
    description="Dental visit recordings, AI clinical reports and tooth charts",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Shared with the rate-limited processing route
app.state.limiter = recordings.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(DentalScribeError, domain_error_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(visit_types.router)
app.include_router(recordings.router)
app.include_router(uploads.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Dental Scribe API - Recordings, referti and odontogrammi",
        "version": __version__,
        "docs": "/api/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("dental_scribe.main:app", host="0.0.0.0", port=8000, reload=True)
