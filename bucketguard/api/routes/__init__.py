from __future__ import annotations

from bucketguard.api.routes.health import router as health_router
from bucketguard.api.routes.rate_limit import router as rate_limit_router
from bucketguard.api.routes.zip import router as zip_router

__all__ = ["health_router", "rate_limit_router", "zip_router"]
