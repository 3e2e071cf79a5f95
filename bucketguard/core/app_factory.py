"""Application factory for the FastAPI app.

Centralizes app construction (middleware, handlers, routers, lifespan) so
tests can build an app around their own admission engine.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from bucketguard.api.routes import health_router, rate_limit_router, zip_router
from bucketguard.core.config import settings
from bucketguard.core.exception_handlers import setup_exception_handlers
from bucketguard.core.logging import configure_logging
from bucketguard.core.middleware import request_id_middleware
from bucketguard.core.openapi import apply_openapi_customizations
from bucketguard.core.rate_limit import build_admission_service
from bucketguard.services.admission_service import AdmissionService

logger = logging.getLogger(__name__)


def create_app(admission_service: AdmissionService | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        admission_service: Engine to use; built from settings when omitted.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    service = admission_service or build_admission_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Connecting runs in the background; requests fail open until READY.
        await service.lifecycle.start()
        try:
            yield
        finally:
            await service.shutdown()
            logger.info("app.shutdown_complete")

    app = FastAPI(
        title="Bucketguard",
        description=(
            "Photo archive API protected by a distributed token bucket rate "
            "limiter. Bucket state is shared through Redis so every instance "
            "enforces the same per-client limit; when Redis is unreachable the "
            "limiter fails open."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.admission_service = service

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(zip_router, prefix="/v1")
    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
