"""
deploygate.core - Foundation Layer
====================================

Plain data structures and configuration shared by every other package:

    - config:      DeployGateConfig, ProvisioningConfig, TimeoutConfig
    - enums:       Action, ResourceKind, JobStatus, StepAction, ...
    - models:      PermissionGrant, Identity, TrustCondition, ScopedCredentials, ...
    - exceptions:  DeployGateError hierarchy
    - logging:     structlog configuration

Dependency Rule:
    core/ depends on nothing else in the deploygate package.
"""

from deploygate.core.config import (
    DeployGateConfig,
    ProvisioningConfig,
    TimeoutConfig,
    load_config,
)
from deploygate.core.enums import (
    Action,
    BuildStatus,
    IdentityKind,
    JobStatus,
    OnFailure,
    ResourceKind,
    StepAction,
    TrustClause,
)
from deploygate.core.exceptions import (
    AccessDeniedError,
    ArtifactMissingError,
    BuildError,
    ConfigurationError,
    DeployGateError,
    ObjectNotFoundError,
    ProvisioningError,
    PublishFailureError,
    StoreError,
    TimeoutExceededError,
    TrustRejectedError,
)
from deploygate.core.models import (
    ArtifactRef,
    BuildResult,
    CounterEvent,
    Identity,
    JobHandle,
    PermissionGrant,
    ResourceRef,
    ScopedCredentials,
    TokenClaims,
    TrustCondition,
)

__all__ = [
    # Config
    "DeployGateConfig",
    "ProvisioningConfig",
    "TimeoutConfig",
    "load_config",
    # Enums
    "Action",
    "BuildStatus",
    "IdentityKind",
    "JobStatus",
    "OnFailure",
    "ResourceKind",
    "StepAction",
    "TrustClause",
    # Models
    "ArtifactRef",
    "BuildResult",
    "CounterEvent",
    "Identity",
    "JobHandle",
    "PermissionGrant",
    "ResourceRef",
    "ScopedCredentials",
    "TokenClaims",
    "TrustCondition",
    # Exceptions
    "DeployGateError",
    "ConfigurationError",
    "ProvisioningError",
    "TrustRejectedError",
    "AccessDeniedError",
    "StoreError",
    "ObjectNotFoundError",
    "BuildError",
    "ArtifactMissingError",
    "PublishFailureError",
    "TimeoutExceededError",
]
