"""
deploygate.security.trust_broker - Federated Trust Broker
===========================================================

Exchanges a CI provider's short-lived identity token for scoped, temporary
credentials. This is the only path by which the external actor gains any
authority, and it can grant exactly two things:

    1. write-object                   on the Staging Store
    2. start-job + get-job-status     on the one build job

Decision Flow:

    token ──→ TokenVerifier.verify() ──→ TokenClaims
                 (bounded by timeout)          │
                                               ▼
                     ┌──────────────────────────────────────────┐
                     │ evaluate(claims)                          │
                     │   condition fully qualified?  else REJECT │
                     │   iss == issuer?              else REJECT │
                     │   audience in aud?            else REJECT │
                     │   not expired?                else REJECT │
                     │   sub LIKE pattern?           else REJECT │
                     └──────────────────────────────────────────┘
                                               │ all clauses pass
                                               ▼
                                      ScopedCredentials (2 grants)

Fail-Closed:
    Any failing clause yields TrustRejectedError. There is no partial grant,
    no fallback identity, and no default-allow branch. Every decision,
    accepted or rejected, is logged and appended to ``audit_log``.

The broker never issues tokens. The TokenVerifier is the identity
provider's contract: it validates the signature and returns claims.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field

from deploygate.core.enums import Action, IdentityKind, ResourceKind, TrustClause
from deploygate.core.exceptions import (
    ConfigurationError,
    TimeoutExceededError,
    TrustRejectedError,
)
from deploygate.core.models import (
    Identity,
    PermissionGrant,
    ResourceRef,
    ScopedCredentials,
    TokenClaims,
    TrustCondition,
)


logger = structlog.get_logger()


# =============================================================================
# Token Verifier (identity provider contract)
# =============================================================================
class TokenVerifier(ABC):
    """Verifies a federated token's signature and returns its claims."""

    @abstractmethod
    async def verify(self, token: str) -> TokenClaims:
        """Return the verified claims of ``token``.

        Raises:
            TrustRejectedError: With clause "verification" when the token is
                malformed, unsigned, or signed by an unknown key.
        """
        ...


class StaticTokenVerifier(TokenVerifier):
    """In-memory verifier: knows a fixed set of tokens and their claims.

    ``delay`` simulates a slow identity provider round trip.

    Example:
        >>> verifier = StaticTokenVerifier()
        >>> verifier.register("tok-1", TokenClaims(
        ...     issuer="https://token.actions.githubusercontent.com",
        ...     audience="sts.amazonaws.com",
        ...     subject="repo:acme/site:ref:refs/heads/main",
        ... ))
    """

    def __init__(
        self,
        tokens: Optional[dict[str, TokenClaims]] = None,
        delay: float = 0.0,
    ) -> None:
        self._tokens: dict[str, TokenClaims] = dict(tokens or {})
        self._delay = delay

    def register(self, token: str, claims: TokenClaims) -> None:
        self._tokens[token] = claims

    async def verify(self, token: str) -> TokenClaims:
        if self._delay:
            await asyncio.sleep(self._delay)
        claims = self._tokens.get(token)
        if claims is None:
            raise TrustRejectedError(
                message="Token signature could not be verified",
                clause=TrustClause.VERIFICATION.value,
            )
        return claims


# =============================================================================
# Trust Decision
# =============================================================================
class TrustDecision(BaseModel):
    """Audit record of one credential issuance decision.

    Attributes:
        accepted: Whether credentials were issued.
        failed_clause: The first clause that failed (None when accepted).
        reason: Human-readable explanation.
        subject: Token subject, when known.
        credential_id: Id of the issued credentials (accepted only).
    """

    decision_id: str = Field(default_factory=lambda: f"decision-{uuid4()}")
    accepted: bool
    failed_clause: Optional[TrustClause] = None
    reason: str = ""
    subject: Optional[str] = None
    credential_id: Optional[str] = None
    decided_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# =============================================================================
# Trust Broker
# =============================================================================
class TrustBroker:
    """Validates federated tokens and mints per-run scoped credentials.

    Attributes:
        condition: The trust condition every token must satisfy.
        staging: The Staging Store resource (target of the write grant).
        build_job: The build job resource (target of the start/poll grant).
    """

    def __init__(
        self,
        condition: TrustCondition,
        verifier: TokenVerifier,
        staging: ResourceRef,
        build_job: ResourceRef,
        session_duration_seconds: int = 3600,
        default_timeout: float = 10.0,
        role_name: str = "GitHubActionsRole",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if staging.kind != ResourceKind.STORE:
            raise ConfigurationError(
                message=f"Staging resource must be a store, got {staging.kind.value}",
                details={"resource": staging.arn},
            )
        if build_job.kind != ResourceKind.JOB:
            raise ConfigurationError(
                message=f"Build job resource must be a job, got {build_job.kind.value}",
                details={"resource": build_job.arn},
            )

        self.condition = condition
        self.staging = staging
        self.build_job = build_job
        self._verifier = verifier
        self._session_duration = timedelta(seconds=session_duration_seconds)
        self._default_timeout = default_timeout
        self._role_name = role_name
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._audit_log: list[TrustDecision] = []
        self._logger = logger.bind(component="trust_broker", role=role_name)

    @property
    def audit_log(self) -> list[TrustDecision]:
        return list(self._audit_log)

    @property
    def issued_count(self) -> int:
        return sum(1 for d in self._audit_log if d.accepted)

    def scoped_grants(self) -> tuple[PermissionGrant, PermissionGrant]:
        """The only two grants this broker can ever issue."""
        return (
            PermissionGrant(
                actions=frozenset({Action.WRITE_OBJECT}),
                resource=self.staging,
            ),
            PermissionGrant(
                actions=frozenset({Action.START_JOB, Action.GET_JOB_STATUS}),
                resource=self.build_job,
            ),
        )

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(self, claims: TokenClaims, now: Optional[datetime] = None) -> TrustDecision:
        """Evaluate claims against the trust condition without minting anything."""
        now = now or self._clock()
        cond = self.condition

        def reject(clause: TrustClause, reason: str) -> TrustDecision:
            return TrustDecision(
                accepted=False,
                failed_clause=clause,
                reason=reason,
                subject=claims.subject,
            )

        missing = cond.missing_components()
        if missing or not cond.issuer or not cond.audience:
            return reject(
                TrustClause.CONDITION,
                f"trust condition is not fully qualified (missing: {', '.join(missing) or 'issuer/audience'})",
            )
        if claims.issuer != cond.issuer:
            return reject(TrustClause.ISSUER, f"issuer {claims.issuer!r} is not trusted")
        if cond.audience not in claims.audiences:
            return reject(TrustClause.AUDIENCE, f"audience {claims.audience!r} does not match")
        if claims.expires_at is not None and claims.expires_at <= now:
            return reject(TrustClause.EXPIRY, "token has expired")
        if not cond.subject_matches(claims.subject):
            return reject(
                TrustClause.SUBJECT,
                f"subject {claims.subject!r} does not match {cond.subject_pattern!r}",
            )
        return TrustDecision(accepted=True, reason="all clauses matched", subject=claims.subject)

    # =========================================================================
    # Issuance
    # =========================================================================

    async def issue_credentials(
        self,
        token: str,
        *,
        timeout: Optional[float] = None,
    ) -> ScopedCredentials:
        """Exchange a federated token for scoped credentials.

        Args:
            token: The raw federated identity token.
            timeout: Bound on the verification round trip, in seconds.
                Defaults to the broker's configured timeout.

        Returns:
            ScopedCredentials carrying exactly the two scoped grants.

        Raises:
            TrustRejectedError: If verification fails or any clause fails.
            TimeoutExceededError: If verification exceeds ``timeout``.
        """
        bound = self._default_timeout if timeout is None else timeout

        try:
            claims = await asyncio.wait_for(self._verifier.verify(token), timeout=bound)
        except asyncio.TimeoutError as exc:
            self._record(
                TrustDecision(
                    accepted=False,
                    failed_clause=TrustClause.VERIFICATION,
                    reason=f"token verification exceeded {bound}s",
                )
            )
            raise TimeoutExceededError(
                message=f"Token verification exceeded {bound}s",
                operation="token_validation",
                timeout_seconds=bound,
            ) from exc
        except TrustRejectedError as exc:
            self._record(
                TrustDecision(
                    accepted=False,
                    failed_clause=TrustClause.VERIFICATION,
                    reason=exc.message,
                )
            )
            raise

        decision = self.evaluate(claims)
        if not decision.accepted:
            self._record(decision)
            raise TrustRejectedError(
                message=f"Federated token rejected: {decision.reason}",
                clause=decision.failed_clause.value if decision.failed_clause else "unknown",
                details={"subject": claims.subject},
            )

        issued_at = self._clock()
        credentials = ScopedCredentials(
            identity=Identity(
                name=self._role_name,
                kind=IdentityKind.FEDERATED,
                grants=self.scoped_grants(),
            ),
            session_name=f"github-actions-{uuid4().hex[:12]}",
            issued_at=issued_at,
            expires_at=issued_at + self._session_duration,
        )
        self._record(decision.model_copy(update={"credential_id": credentials.credential_id}))
        return credentials

    def _record(self, decision: TrustDecision) -> None:
        self._audit_log.append(decision)
        if decision.accepted:
            self._logger.info(
                "trust_decision_accepted",
                subject=decision.subject,
                credential_id=decision.credential_id,
            )
        else:
            self._logger.warning(
                "trust_decision_rejected",
                subject=decision.subject,
                clause=decision.failed_clause.value if decision.failed_clause else None,
                reason=decision.reason,
            )
