"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    field: str
    operation: str
    retry_after: float


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class StoreAppError(AppError):
    """Raised when a single shared-store call fails.

    Never crosses the adapter boundary: the store adapters catch it and
    report an absent record or a failed write instead.
    """


class RateLimitExceededError(AppError):
    """Raised when a client's bucket cannot cover the request cost."""

    def __init__(
        self,
        *,
        retry_after_seconds: int,
        available_tokens: float,
        required_tokens: float,
    ) -> None:
        self.retry_after_seconds = retry_after_seconds
        self.available_tokens = available_tokens
        self.required_tokens = required_tokens
        super().__init__(
            code="rate_limit_exceeded",
            message=(
                f"Rate limit exceeded. Please wait {retry_after_seconds} "
                "second(s) before trying again."
            ),
            details={"retry_after": float(retry_after_seconds)},
        )
