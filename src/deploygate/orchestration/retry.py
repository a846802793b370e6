"""
deploygate.orchestration.retry - Whole-Run Retry Policy
=========================================================

A failed deploy is never resumed step by step. When the failure is
transient, the whole run (authenticate, upload, start, poll) is repeated
from the beginning; otherwise the failure is final.

    error_code            retried?
    PUBLISH_FAILED        yes   (Target write rejected, e.g. store unavailable)
    TIMEOUT_EXCEEDED      yes   (token validation, job start or poll bound hit)
    STORE_UNAVAILABLE     yes   (Staging upload hit a transient store error)
    TRUST_REJECTED        no
    ARTIFACT_MISSING      no
    ACCESS_DENIED         no
    anything else         no

Delay between attempts is exponential with proportional jitter:

    delay = min(initial_delay * backoff_multiplier ** attempt + jitter, max_delay)
    jitter = uniform(0, 10% of the base delay)
"""

from __future__ import annotations

import random

from pydantic import BaseModel, Field


DEFAULT_RETRYABLE_ERRORS = ["PUBLISH_FAILED", "TIMEOUT_EXCEEDED", "STORE_UNAVAILABLE"]


class RetryPolicy(BaseModel):
    """How often and how patiently to repeat a failed run.

    Attributes:
        max_retries: Retries after the first attempt. 0 disables retrying.
        initial_delay: Base delay in seconds before the first retry.
        max_delay: Upper bound on any single delay.
        backoff_multiplier: Growth factor per attempt.
        retryable_errors: Error codes worth a fresh run.

    Example:
        >>> policy = RetryPolicy(max_retries=2, initial_delay=0.5)
        >>> policy.is_retryable("PUBLISH_FAILED")
        True
        >>> policy.is_retryable("TRUST_REJECTED")
        False
    """

    max_retries: int = Field(default=2, ge=0, le=10)
    initial_delay: float = Field(default=1.0, gt=0, le=30.0)
    max_delay: float = Field(default=30.0, gt=0, le=300.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0, le=10.0)
    retryable_errors: list[str] = Field(default_factory=lambda: list(DEFAULT_RETRYABLE_ERRORS))

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (zero-based)."""
        base_delay = self.initial_delay * (self.backoff_multiplier ** attempt)
        jitter = random.uniform(0, base_delay * 0.1)
        return min(base_delay + jitter, self.max_delay)

    def is_retryable(self, error_code: str | None) -> bool:
        return error_code is not None and error_code in self.retryable_errors

    def should_retry(self, error_code: str | None, attempt: int) -> bool:
        """True if a run that failed with ``error_code`` on ``attempt`` gets another go.

        ``attempt`` is zero-based: attempt 0 is the first run.
        """
        return attempt < self.max_retries and self.is_retryable(error_code)
