"""
deploygate.core.exceptions - Custom Exception Hierarchy
=========================================================

Structured exceptions for DeployGate. Components raise and catch specific
exception types that carry an error code and a details dict, never bare
``Exception`` or ``ValueError``.

Exception Hierarchy:
    DeployGateError (base)
        ├── ConfigurationError      - Invalid config, missing TARGET_BUCKET
        ├── ProvisioningError       - A provisioning invariant was violated
        ├── TrustRejectedError      - Federated token failed a trust clause
        ├── AccessDeniedError       - Action outside an identity's grants
        ├── StoreError              - Object store request failed
        │     └── ObjectNotFoundError
        ├── BuildError              - Invalid build spec / unknown build
        │     ├── ArtifactMissingError  - Expected artifact absent
        │     └── PublishFailureError   - Target Store rejected the write
        └── TimeoutExceededError    - External call exceeded its bound

Retry Semantics (see orchestration/retry.py):
    TRUST_REJECTED     → never retried; the actor must re-authenticate
    ARTIFACT_MISSING   → never retried; the source is wrong
    PUBLISH_FAILED     → whole-build retry at the caller
    TIMEOUT_EXCEEDED   → whole-run retry at the caller

Usage:
    >>> raise TrustRejectedError(
    ...     message="Subject does not match trust condition",
    ...     clause="subject",
    ...     details={"subject": "repo:acme/site:ref:refs/heads/dev"},
    ... )
"""

from __future__ import annotations

from typing import Any, Optional


# =============================================================================
# Base Exception
# =============================================================================
class DeployGateError(Exception):
    """Base exception for all DeployGate errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable code (UPPER_SNAKE_CASE) used for
            retry decisions and log filtering.
        details: Additional debugging context.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize this exception for structured logging.

        Returns:
            Dictionary with error_type, message, error_code, and details.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


# =============================================================================
# Configuration Error
# =============================================================================
# Raised at startup or at build start when required configuration is missing.
# Fail fast: nothing runs with bad config.
# =============================================================================
class ConfigurationError(DeployGateError):
    """Raised when configuration is invalid or missing.

    Common Causes:
        - Malformed YAML configuration file
        - Build runner environment without TARGET_BUCKET
        - Provisioning parameters missing an owner/repo/branch
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class ProvisioningError(DeployGateError):
    """Raised when provisioning would violate a permission-model invariant.

    Examples: Staging and Target resolve to the same store, a grant names a
    wildcard resource, or one identity could write to both stores.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "PROVISIONING_INVARIANT",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


# =============================================================================
# Trust Rejected
# =============================================================================
# The Trust Broker's "Rejected" outcome. Carries the clause that failed so
# audit logs can say WHY, but the caller never receives partial credentials.
# =============================================================================
class TrustRejectedError(DeployGateError):
    """Raised when a federated token fails the trust condition.

    Attributes:
        clause: The first clause that failed (issuer, audience, expiry,
            subject), or "verification" when the token could not be
            verified at all.
    """

    def __init__(
        self,
        message: str,
        clause: str,
        error_code: str = "TRUST_REJECTED",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["clause"] = clause

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.clause = clause


class AccessDeniedError(DeployGateError):
    """Raised when a principal attempts an action it holds no grant for.

    Attributes:
        principal: Name of the identity that made the request.
        action: The attempted action token.
        resource: The ARN-like resource string.
    """

    def __init__(
        self,
        message: str,
        principal: str,
        action: str,
        resource: str,
        error_code: str = "ACCESS_DENIED",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details.update(
            {"principal": principal, "action": action, "resource": resource}
        )

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.principal = principal
        self.action = action
        self.resource = resource


# =============================================================================
# Store Errors
# =============================================================================
class StoreError(DeployGateError):
    """Raised when an object store request fails.

    Common Causes:
        - Plaintext transport attempted (INSECURE_TRANSPORT)
        - Transient unavailability (STORE_UNAVAILABLE)
        - Backend client error from S3
    """

    def __init__(
        self,
        message: str,
        store: str,
        error_code: str = "STORE_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["store"] = store

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.store = store


class ObjectNotFoundError(StoreError):
    """Raised when a key does not exist in a store."""

    def __init__(
        self,
        message: str,
        store: str,
        key: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["key"] = key

        super().__init__(
            message=message,
            store=store,
            error_code="OBJECT_NOT_FOUND",
            details=enriched_details,
        )

        self.key = key


# =============================================================================
# Build Errors
# =============================================================================
class BuildError(DeployGateError):
    """Raised for build-level problems.

    Used directly for invalid build specs and unknown build handles; the
    two step failures below subclass it.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "BUILD_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class ArtifactMissingError(BuildError):
    """The expected artifact file is absent from the unpacked source."""

    def __init__(
        self,
        message: str,
        artifact: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["artifact"] = artifact

        super().__init__(message=message, error_code="ARTIFACT_MISSING", details=enriched_details)

        self.artifact = artifact


class PublishFailureError(BuildError):
    """The Target Store rejected the artifact write."""

    def __init__(
        self,
        message: str,
        target: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["target"] = target

        super().__init__(message=message, error_code="PUBLISH_FAILED", details=enriched_details)

        self.target = target


# =============================================================================
# Timeout
# =============================================================================
class TimeoutExceededError(DeployGateError):
    """An external call (token validation, job start, status poll, build)
    exceeded its caller-supplied bound.

    Attributes:
        operation: Which call timed out.
        timeout_seconds: The bound that was exceeded.
    """

    def __init__(
        self,
        message: str,
        operation: str,
        timeout_seconds: float,
        error_code: str = "TIMEOUT_EXCEEDED",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["operation"] = operation
        enriched_details["timeout_seconds"] = timeout_seconds

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.operation = operation
        self.timeout_seconds = timeout_seconds
