from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from bucketguard.core.rate_limit import enforce_rate_limit
from bucketguard.schemas.rate_limit import ZipJobResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Archive"])


@router.post(
    "/zip",
    response_model=ZipJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(enforce_rate_limit)],
)
async def queue_zip(
    tags: Annotated[str | None, Query()] = None,
    prenom: Annotated[str | None, Query()] = None,
) -> ZipJobResponse:
    """Accept an archive job for the photos matching ``tags``.

    This endpoint only validates and acknowledges the request; it publishes
    nothing. Building the archive and publishing the job belong to an
    external worker, so the response is an acknowledgement, not a receipt.

    Raises:
        HTTPException: 400 if ``tags`` is missing, 401 if ``prenom`` is missing.
    """

    if not tags:
        raise HTTPException(status_code=400, detail="Tags parameter is required")
    if not prenom:
        raise HTTPException(
            status_code=401,
            detail="Authentication required: prenom parameter is missing",
        )

    logger.info("zip.job_accepted", extra={"tags": tags})
    return ZipJobResponse(
        message="Zip job queued successfully",
        tags=tags,
        prenom=prenom,
        checkStatusAt=f"/job-status/{tags}",
    )
