"""
Shared Test Fixtures for DeployGate
=====================================

Reusable pytest fixtures, organized by layer:

    1. Configuration fixtures
    2. Source archive builders
    3. Security fixtures (token verifier with known tokens)
    4. Provisioned pipeline fixtures
"""

from __future__ import annotations

import io
import zipfile
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from deploygate.core.config import DeployGateConfig, ProvisioningConfig, TimeoutConfig
from deploygate.core.models import TokenClaims
from deploygate.facade import DeployPipeline
from deploygate.provisioning.provisioner import Provisioner
from deploygate.security.trust_broker import StaticTokenVerifier


ISSUER = "https://token.actions.githubusercontent.com"
AUDIENCE = "sts.amazonaws.com"

MAIN_TOKEN = "token-acme-site-main"
DEV_TOKEN = "token-acme-site-dev"
WRONG_AUDIENCE_TOKEN = "token-wrong-audience"
WRONG_ISSUER_TOKEN = "token-wrong-issuer"
EXPIRED_TOKEN = "token-expired"

README = b"# acme/site\n\nDeployed by the pipeline.\n"


def make_claims(
    subject: str = "repo:acme/site:ref:refs/heads/main",
    issuer: str = ISSUER,
    audience: str = AUDIENCE,
    expires_in: float = 3600,
) -> TokenClaims:
    now = datetime.now(timezone.utc)
    return TokenClaims(
        issuer=issuer,
        audience=audience,
        subject=subject,
        issued_at=now,
        expires_at=now + timedelta(seconds=expires_in),
    )


def make_archive(files: dict[str, bytes]) -> bytes:
    """Zip ``files`` (name -> bytes) in memory."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buffer.getvalue()


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def config():
    """DeployGate configuration trusting acme/site on main, with fast polling."""
    return DeployGateConfig(
        provisioning=ProvisioningConfig(
            github_owner="acme",
            github_repo="site",
            github_branch="main",
            suffix="test",
            account_id="123456789012",
            region="ap-northeast-1",
        ),
        timeouts=TimeoutConfig(
            token_validation_seconds=1.0,
            job_start_seconds=1.0,
            job_status_seconds=1.0,
            build_seconds=5.0,
            poll_interval_seconds=0.01,
        ),
        max_deploy_retries=2,
    )


# =============================================================================
# Source Archives
# =============================================================================

@pytest.fixture
def archive_builder():
    """Builder that zips a name -> bytes mapping."""
    return make_archive


@pytest.fixture
def readme_bytes():
    """The README.md payload inside readme_archive."""
    return README


@pytest.fixture
def readme_archive():
    """A source.zip holding README.md and a stray file."""
    return make_archive({"README.md": README, "src/app.py": b"print('hi')\n"})


@pytest.fixture
def empty_archive():
    """A source.zip without README.md."""
    return make_archive({"docs/guide.md": b"# guide\n"})


# =============================================================================
# Security
# =============================================================================

@pytest.fixture
def tokens():
    """Names of the tokens the verifier fixture knows."""
    return SimpleNamespace(
        main=MAIN_TOKEN,
        dev=DEV_TOKEN,
        wrong_audience=WRONG_AUDIENCE_TOKEN,
        wrong_issuer=WRONG_ISSUER_TOKEN,
        expired=EXPIRED_TOKEN,
    )


@pytest.fixture
def claims_builder():
    """Builder for TokenClaims with sensible defaults."""
    return make_claims


@pytest.fixture
def verifier():
    """StaticTokenVerifier that knows one good token and several bad ones."""
    v = StaticTokenVerifier()
    v.register(MAIN_TOKEN, make_claims())
    v.register(DEV_TOKEN, make_claims(subject="repo:acme/site:ref:refs/heads/dev"))
    v.register(WRONG_AUDIENCE_TOKEN, make_claims(audience="api://somewhere-else"))
    v.register(WRONG_ISSUER_TOKEN, make_claims(issuer="https://issuer.example.com"))
    v.register(EXPIRED_TOKEN, make_claims(expires_in=-60))
    return v


# =============================================================================
# Provisioned Pipeline
# =============================================================================

@pytest.fixture
def resources(config, verifier):
    """Freshly provisioned in-memory pipeline resources."""
    return Provisioner(verifier=verifier).provision(config)


@pytest.fixture
async def pipeline(config, resources):
    """Initialized DeployPipeline over the provisioned resources, no backoff sleep."""

    async def _no_sleep(_: float) -> None:
        return None

    async with DeployPipeline(config, resources=resources, sleep=_no_sleep) as p:
        yield p
