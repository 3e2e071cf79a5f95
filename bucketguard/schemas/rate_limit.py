"""Pydantic schemas for rate limit and archive job responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class BucketStatsResponse(BaseModel):
    """Read-only snapshot of a client's token bucket."""

    identity: str = Field(..., description="Resolved client identity the bucket is keyed by.")
    availableTokens: float = Field(
        ..., description="Tokens available right now, rounded to two decimals."
    )
    maxTokens: float = Field(..., description="Bucket ceiling.")
    refillRatePerSecond: float = Field(..., description="Tokens granted per elapsed second.")
    tokenCost: float = Field(..., description="Tokens debited per admitted request.")
    lastRefill: str = Field(
        ..., description="ISO-8601 UTC instant the stored token count was computed."
    )


class ZipJobResponse(BaseModel):
    """Acknowledgement for an accepted archive job."""

    message: str = Field(..., description="Human-readable status.")
    tags: str = Field(..., description="Photo tags the archive is built from.")
    prenom: str = Field(..., description="Requesting user.")
    checkStatusAt: str = Field(..., description="Path to poll for the job result.")
