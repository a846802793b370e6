"""
deploygate.orchestration - Run-level control: retry policy for whole deploys.
"""

from deploygate.orchestration.retry import DEFAULT_RETRYABLE_ERRORS, RetryPolicy

__all__ = ["DEFAULT_RETRYABLE_ERRORS", "RetryPolicy"]
