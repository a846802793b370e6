"""
deploygate.security - Trust and Permission Model
==================================================

    - trust_broker:  TokenVerifier, TrustBroker, TrustDecision
    - permissions:   authorize(), AuthorizedObjectStore, AuthorizedLogWriter
"""

from deploygate.security.permissions import (
    AuthorizedLogWriter,
    AuthorizedObjectStore,
    Principal,
    authorize,
)
from deploygate.security.trust_broker import (
    StaticTokenVerifier,
    TokenVerifier,
    TrustBroker,
    TrustDecision,
)

__all__ = [
    "AuthorizedLogWriter",
    "AuthorizedObjectStore",
    "Principal",
    "StaticTokenVerifier",
    "TokenVerifier",
    "TrustBroker",
    "TrustDecision",
    "authorize",
]
