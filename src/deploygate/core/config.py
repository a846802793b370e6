"""
deploygate.core.config - Configuration Management
===================================================

Configuration for DeployGate. Sources, highest priority first:

    1. Explicit constructor arguments (load_config passes YAML values here)
    2. Environment variables (prefixed with DEPLOYGATE_)
    3. Default values defined in the models below

Architecture Context:
    The top-level DeployGateConfig is created once and handed to the
    provisioning step and the runtime facade. There is no ambient
    "current account / region": those values live in ProvisioningConfig and
    are passed explicitly.

        DeployGateConfig
            ├── ProvisioningConfig → Provisioner (names, trust condition)
            ├── TimeoutConfig      → TrustBroker, BuildPlatform, DeployPipeline
            └── (other settings)   → logging, retries, session duration

Usage:
    config = DeployGateConfig()                       # env + defaults
    config = load_config("deploygate.yaml")           # YAML + env
    config = DeployGateConfig(log_level="DEBUG")      # explicit overrides

Environment Variables:
    DEPLOYGATE_LOG_LEVEL=DEBUG
    DEPLOYGATE_PROVISIONING__GITHUB_OWNER=acme
    DEPLOYGATE_PROVISIONING__SUFFIX=prod
    DEPLOYGATE_TIMEOUTS__BUILD_SECONDS=600
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from deploygate.core.exceptions import ConfigurationError


# =============================================================================
# Provisioning Configuration
# =============================================================================
# Parameters supplied once, at provisioning time, never per run. They
# determine every derived name (stores, identities, job) and the trust
# condition that gates the federated CI identity.
# =============================================================================
class ProvisioningConfig(BaseModel):
    """One-time provisioning parameters.

    Attributes:
        github_owner: Owner component of the trusted subject.
        github_repo: Repository component of the trusted subject.
        github_branch: Branch component; becomes ``refs/heads/<branch>``.
        suffix: Naming suffix used to derive store and identity names.
        account_id: Deployment account identifier (used in ARN-like names).
        region: Deployment region identifier.
        oidc_issuer: Expected ``iss`` claim of federated tokens.
        oidc_audience: Expected ``aud`` claim of federated tokens.
        build_job_name: Name of the single build job.
        artifact_name: The one file the pipeline republishes.
        source_key: Key of the source archive in the Staging Store.
    """

    github_owner: str = Field(default="", description="Trusted repository owner")
    github_repo: str = Field(default="", description="Trusted repository name")
    github_branch: str = Field(default="main", description="Trusted branch")
    suffix: str = Field(
        default="dev",
        min_length=1,
        description="Suffix for derived resource names",
    )
    account_id: str = Field(default="000000000000", description="Deployment account id")
    region: str = Field(default="ap-northeast-1", description="Deployment region")
    oidc_issuer: str = Field(
        default="https://token.actions.githubusercontent.com",
        description="Expected issuer claim",
    )
    oidc_audience: str = Field(
        default="sts.amazonaws.com",
        description="Expected audience claim",
    )
    build_job_name: str = Field(default="deploy-readme-s3")
    artifact_name: str = Field(default="README.md")
    source_key: str = Field(default="source.zip")

    @field_validator("suffix")
    @classmethod
    def _suffix_is_name_safe(cls, value: str) -> str:
        # Store names are lowercase DNS-style labels.
        if not all(ch.isalnum() or ch == "-" for ch in value) or value != value.lower():
            raise ValueError("suffix must be lowercase alphanumerics and hyphens")
        return value


# =============================================================================
# Timeout Configuration
# =============================================================================
# Every call that may block on an external service is bounded. These are the
# defaults; callers may pass a tighter timeout per call.
# =============================================================================
class TimeoutConfig(BaseModel):
    """Bounds for external calls, in seconds."""

    token_validation_seconds: float = Field(default=10.0, gt=0, le=300)
    job_start_seconds: float = Field(default=30.0, gt=0, le=600)
    job_status_seconds: float = Field(default=10.0, gt=0, le=300)
    build_seconds: float = Field(default=900.0, gt=0, le=28800)
    poll_interval_seconds: float = Field(default=2.0, gt=0, le=60)


# =============================================================================
# Main Configuration
# =============================================================================
class DeployGateConfig(BaseSettings):
    """Top-level configuration for DeployGate.

    Attributes:
        environment: Deployment environment name.
        log_level: Logging level for structlog output.
        log_format: "console" for humans, "json" for log shipping.
        session_duration_seconds: Lifetime of federated credentials. Bounded
            to the 15 minute – 12 hour window that STS allows.
        max_deploy_retries: Whole-run retries for retryable failures.
        provisioning: One-time provisioning parameters.
        timeouts: Bounds for external calls.
    """

    environment: Literal["dev", "staging", "prod"] = Field(default="dev")
    log_level: str = Field(default="INFO")
    log_format: Literal["console", "json"] = Field(default="console")
    session_duration_seconds: int = Field(default=3600, ge=900, le=43200)
    max_deploy_retries: int = Field(default=2, ge=0, le=10)

    provisioning: ProvisioningConfig = Field(default_factory=ProvisioningConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)

    model_config = {
        "env_prefix": "DEPLOYGATE_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }


# =============================================================================
# Configuration Loader
# =============================================================================
def load_config(path: Optional[str] = None) -> DeployGateConfig:
    """Load configuration from a YAML file and/or environment variables.

    Args:
        path: Path to a YAML file. If None, ``deploygate.yaml`` in the
            current directory is used when present; otherwise only defaults
            and environment variables apply.

    Returns:
        A validated DeployGateConfig.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigurationError: If the file is not valid YAML or not a mapping.
    """
    if path is None:
        default_path = Path("deploygate.yaml")
        if default_path.exists():
            path = str(default_path)

    yaml_data: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(config_path) as f:
            try:
                raw_data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    message=f"Invalid YAML in {path}: {exc}",
                    error_code="INVALID_CONFIG_FILE",
                    details={"path": str(path)},
                ) from exc

        if raw_data is None:
            raw_data = {}
        if not isinstance(raw_data, dict):
            raise ConfigurationError(
                message=f"Configuration file {path} must contain a mapping",
                error_code="INVALID_CONFIG_FILE",
                details={"path": str(path), "type": type(raw_data).__name__},
            )
        yaml_data = raw_data

    return DeployGateConfig(**yaml_data)


def get_default_config() -> DeployGateConfig:
    """Create a DeployGateConfig from defaults and environment variables."""
    return DeployGateConfig()
