"""
deploygate.core.models - Core Data Models
===========================================

The Pydantic models that every layer of DeployGate speaks in.

Model Hierarchy:
    ResourceRef        → One store, one job, or one log group
    PermissionGrant    → (action-set, single resource)
    Identity           → A principal and its grants
    TrustCondition     → Predicate over federated token claims
    TokenClaims        → Verified claims of a federated token
    ScopedCredentials  → Time-limited federated identity, minted per run
    ArtifactRef        → Where a published artifact landed
    BuildResult        → Succeeded(artifact_ref) | Failed(reason)
    JobHandle          → Reference to one build on the build platform
    CounterEvent       → (counter_name, increment) derived from a log line

Data Flow:
    ┌──────────────┐  TokenClaims   ┌──────────────┐  ScopedCredentials
    │ TokenVerifier│ ─────────────→ │ TrustBroker  │ ──────────────────→ actor
    └──────────────┘                └──────────────┘
                                         │ TrustCondition
    ┌──────────────┐  BuildResult   ┌──────────────┐
    │ BuildPlatform│ ←───────────── │ BuildRunner  │ ── log lines ──→ CounterEvent
    └──────────────┘                └──────────────┘
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from deploygate.core.enums import (
    JOB_ACTIONS,
    LOG_ACTIONS,
    STORE_ACTIONS,
    Action,
    BuildStatus,
    IdentityKind,
    ResourceKind,
)


# =============================================================================
# Helpers
# =============================================================================
def _now() -> datetime:
    """Current UTC timestamp. Every timestamp in DeployGate is UTC."""
    return datetime.now(timezone.utc)


def _generate_id(prefix: str) -> str:
    return f"{prefix}-{uuid4()}"


_WILDCARD_CHARS = frozenset("*?")

_ACTIONS_BY_KIND: dict[ResourceKind, frozenset[Action]] = {
    ResourceKind.STORE: STORE_ACTIONS,
    ResourceKind.JOB: JOB_ACTIONS,
    ResourceKind.LOG_GROUP: LOG_ACTIONS,
}


def like_pattern_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile an IAM ``StringLike`` pattern.

    ``*`` matches any run of characters (including none and including
    ``/``), ``?`` matches exactly one character, everything else is a
    case-sensitive literal. The whole string must match.
    """
    parts: list[str] = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.DOTALL)


# =============================================================================
# Resource Reference
# =============================================================================
# A grant's resource-set is always exactly one named resource. Wildcards are
# refused here so no grant can ever span stores.
# =============================================================================
class ResourceRef(BaseModel):
    """A single named resource that a grant is scoped to.

    Attributes:
        kind: store, job, or log-group.
        name: The resource's name (bucket name, job name, log group name).
        account_id: Account the resource lives in (jobs and log groups).
        region: Region the resource lives in (jobs and log groups).

    Example:
        >>> ResourceRef(kind=ResourceKind.STORE, name="ci-source-dev").arn
        'arn:aws:s3:::ci-source-dev'
    """

    model_config = {"frozen": True}

    kind: ResourceKind
    name: str = Field(min_length=1)
    account_id: str = Field(default="")
    region: str = Field(default="")

    @field_validator("name")
    @classmethod
    def _no_wildcards(cls, value: str) -> str:
        if _WILDCARD_CHARS & set(value):
            raise ValueError(f"resource name must not contain wildcards: {value!r}")
        if value.strip() != value:
            raise ValueError("resource name must not have surrounding whitespace")
        return value

    @property
    def arn(self) -> str:
        """ARN-style rendering used in logs and error messages."""
        if self.kind == ResourceKind.STORE:
            return f"arn:aws:s3:::{self.name}"
        if self.kind == ResourceKind.JOB:
            return f"arn:aws:codebuild:{self.region}:{self.account_id}:project/{self.name}"
        return f"arn:aws:logs:{self.region}:{self.account_id}:log-group:{self.name}"

    def __str__(self) -> str:
        return self.arn


# =============================================================================
# Permission Grant
# =============================================================================
class PermissionGrant(BaseModel):
    """An (action-set, resource) pair.

    The actions must all be meaningful for the resource kind: store actions
    on a store, job actions on a job, log actions on a log group.

    Example:
        >>> grant = PermissionGrant(
        ...     actions=frozenset({Action.WRITE_OBJECT}),
        ...     resource=ResourceRef(kind=ResourceKind.STORE, name="ci-source-dev"),
        ... )
        >>> grant.allows(Action.WRITE_OBJECT, grant.resource)
        True
    """

    model_config = {"frozen": True}

    actions: frozenset[Action]
    resource: ResourceRef

    @model_validator(mode="after")
    def _actions_fit_resource(self) -> PermissionGrant:
        if not self.actions:
            raise ValueError("a permission grant needs at least one action")
        allowed = _ACTIONS_BY_KIND[self.resource.kind]
        stray = self.actions - allowed
        if stray:
            names = sorted(a.value for a in stray)
            raise ValueError(
                f"actions {names} are not valid on a {self.resource.kind.value} resource"
            )
        return self

    def allows(self, action: Action, resource: ResourceRef) -> bool:
        """True if this grant covers ``action`` on exactly ``resource``."""
        return action in self.actions and resource == self.resource


# =============================================================================
# Identity
# =============================================================================
class Identity(BaseModel):
    """A principal with zero or more permission grants.

    Attributes:
        name: Identity name (role name).
        kind: PLATFORM (build runner) or FEDERATED (one per CI run).
        grants: The grants attached to this identity. Anything not granted
            is denied.
    """

    model_config = {"frozen": True}

    name: str = Field(min_length=1)
    kind: IdentityKind
    grants: tuple[PermissionGrant, ...] = Field(default=())

    def permits(self, action: Action, resource: ResourceRef) -> bool:
        """Default-deny check: True only if some grant covers the request."""
        return any(grant.allows(action, resource) for grant in self.grants)

    def writable_stores(self) -> set[str]:
        """Names of all stores this identity can write to."""
        return {
            grant.resource.name
            for grant in self.grants
            if grant.resource.kind == ResourceKind.STORE
            and Action.WRITE_OBJECT in grant.actions
        }

    @property
    def arn(self) -> str:
        return f"role/{self.name}"


# =============================================================================
# Trust Condition
# =============================================================================
# issuer == I, audience == A, subject LIKE repo:<owner>/<repo>:ref:refs/heads/<branch>
# =============================================================================
class TrustCondition(BaseModel):
    """Predicate over an incoming federated token's claims.

    The subject pattern encodes (owner, repo, ref). Components are not
    validated at construction time; ``is_fully_qualified`` reports whether
    all three are usable and the Trust Broker fails closed when they are not.

    Example:
        >>> cond = TrustCondition(
        ...     issuer="https://token.actions.githubusercontent.com",
        ...     audience="sts.amazonaws.com",
        ...     owner="acme", repo="site", branch="main",
        ... )
        >>> cond.subject_pattern
        'repo:acme/site:ref:refs/heads/main'
    """

    model_config = {"frozen": True}

    issuer: str
    audience: str
    owner: str = ""
    repo: str = ""
    branch: str = ""

    @property
    def subject_pattern(self) -> str:
        return f"repo:{self.owner}/{self.repo}:ref:refs/heads/{self.branch}"

    def missing_components(self) -> list[str]:
        """Subject components that are blank or nothing but wildcards."""
        missing = []
        for label, value in (("owner", self.owner), ("repo", self.repo), ("branch", self.branch)):
            stripped = value.strip()
            if not stripped or set(stripped) <= _WILDCARD_CHARS:
                missing.append(label)
        return missing

    def is_fully_qualified(self) -> bool:
        return not self.missing_components() and bool(self.issuer) and bool(self.audience)

    def subject_matches(self, subject: str) -> bool:
        """IAM StringLike match of ``subject`` against the pattern."""
        if not self.is_fully_qualified():
            return False
        return like_pattern_to_regex(self.subject_pattern).fullmatch(subject) is not None


# =============================================================================
# Token Claims
# =============================================================================
class TokenClaims(BaseModel):
    """Claims of a federated identity token after signature verification.

    ``audience`` may be a single string or a list, as in OIDC.
    """

    issuer: str
    audience: Union[str, list[str]]
    subject: str
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @property
    def audiences(self) -> list[str]:
        if isinstance(self.audience, str):
            return [self.audience]
        return list(self.audience)


# =============================================================================
# Scoped Credentials
# =============================================================================
class ScopedCredentials(BaseModel):
    """Time-limited credentials minted for one CI run.

    Attributes:
        credential_id: Unique id for audit correlation.
        identity: The federated identity with its grants.
        session_name: Session label (derived from the token subject).
        issued_at: Mint time (UTC).
        expires_at: Expiry (UTC). Expired credentials permit nothing.
    """

    model_config = {"frozen": True}

    credential_id: str = Field(default_factory=lambda: _generate_id("cred"))
    identity: Identity
    session_name: str
    issued_at: datetime = Field(default_factory=_now)
    expires_at: datetime

    @property
    def grants(self) -> tuple[PermissionGrant, ...]:
        return self.identity.grants

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or _now()) >= self.expires_at

    def permits(
        self,
        action: Action,
        resource: ResourceRef,
        now: Optional[datetime] = None,
    ) -> bool:
        if self.is_expired(now):
            return False
        return self.identity.permits(action, resource)


# =============================================================================
# Build Models
# =============================================================================
class ArtifactRef(BaseModel):
    """Location of a published artifact."""

    store: str
    key: str
    size_bytes: int = Field(default=0, ge=0)
    version_id: Optional[str] = None

    @property
    def uri(self) -> str:
        return f"s3://{self.store}/{self.key}"


class BuildResult(BaseModel):
    """Outcome of one Build Runner execution: Succeeded or Failed, nothing else.

    Attributes:
        build_id: Id of the build this result belongs to.
        status: SUCCEEDED or FAILED.
        artifact_ref: Where the artifact was published (success only).
        reason: Why the build failed (failure only).
        error_code: Machine-readable failure code (failure only).
        log_lines: Everything the runner wrote to its log stream.
    """

    build_id: str
    status: BuildStatus
    artifact_ref: Optional[ArtifactRef] = None
    reason: str = ""
    error_code: Optional[str] = None
    log_lines: list[str] = Field(default_factory=list)
    completed_at: datetime = Field(default_factory=_now)

    @classmethod
    def succeeded(
        cls, build_id: str, artifact_ref: ArtifactRef, log_lines: list[str]
    ) -> BuildResult:
        return cls(
            build_id=build_id,
            status=BuildStatus.SUCCEEDED,
            artifact_ref=artifact_ref,
            log_lines=log_lines,
        )

    @classmethod
    def failed(
        cls, build_id: str, reason: str, error_code: str, log_lines: list[str]
    ) -> BuildResult:
        return cls(
            build_id=build_id,
            status=BuildStatus.FAILED,
            reason=reason,
            error_code=error_code,
            log_lines=log_lines,
        )

    @property
    def is_success(self) -> bool:
        return self.status == BuildStatus.SUCCEEDED


class JobHandle(BaseModel):
    """Reference to one build started on the build platform."""

    model_config = {"frozen": True}

    build_id: str = Field(default_factory=lambda: _generate_id("build"))
    job_name: str
    source_key: str
    started_at: datetime = Field(default_factory=_now)


class CounterEvent(BaseModel):
    """One increment of a named counter, derived from a log line."""

    model_config = {"frozen": True}

    counter_name: str
    increment: int = 1
