from __future__ import annotations

from fastapi import APIRouter, Request

from bucketguard.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Always reports ``ok`` while the process serves traffic; a store outage
    only changes ``rate_limiting`` to ``fail_open``.

    Returns:
        dict: ``status``, the store connection ``store`` state and whether
        the limiter is currently metering.
    """

    lifecycle = request.app.state.admission_service.lifecycle
    if not settings.rate_limit.enabled:
        mode = "disabled"
    elif lifecycle.is_available:
        mode = "active"
    else:
        mode = "fail_open"

    return {"status": "ok", "store": lifecycle.state.value, "rate_limiting": mode}
