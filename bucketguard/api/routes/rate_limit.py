from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from bucketguard.core.config import settings
from bucketguard.core.errors import ValidationAppError
from bucketguard.core.rate_limit import get_admission_service
from bucketguard.schemas.rate_limit import BucketStatsResponse
from bucketguard.services.admission_service import AdmissionService

router = APIRouter(tags=["Rate Limit"])


@router.get("/rate-limit/stats", response_model=BucketStatsResponse)
async def bucket_stats(
    request: Request,
    service: Annotated[AdmissionService, Depends(get_admission_service)],
    identity: Annotated[str | None, Query(description="Identity to inspect; defaults to the caller")] = None,
) -> BucketStatsResponse:
    """Report a client's token bucket without consuming tokens.

    Callers only see their own bucket unless
    ``RATE_LIMIT_STATS_IDENTITY_OVERRIDE`` is enabled.

    Raises:
        ValidationAppError: If no identity can be resolved, or ``identity``
            names another client while overrides are disabled.
    """

    caller = service.resolve_identity(request)
    if identity and identity != caller and not settings.rate_limit.stats_identity_override:
        raise ValidationAppError(
            code="identity_override_disabled",
            message="Only the caller's own bucket can be inspected",
            details={"field": "identity"},
        )

    resolved = identity or caller
    if not resolved:
        raise ValidationAppError(
            code="identity_unresolved",
            message="Unable to determine client identity",
        )
    return BucketStatsResponse(**await service.stats(resolved))
