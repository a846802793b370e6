"""
Full Pipeline Example: Provision, Deploy, Observe
===================================================

Provisions an in-memory DeployGate pipeline trusting ``acme/site`` on
``main``, then drives it the way the CI side would:

    1. A token from the main branch deploys README.md
    2. A token from the dev branch is refused before anything is uploaded
    3. A source without README.md fails the build, leaving Target as it was

Afterwards the provisioning outputs and the log-derived counters are
printed.

Usage:
    python examples/full_pipeline.py
"""

from __future__ import annotations

import asyncio
import io
import zipfile
from datetime import datetime, timedelta, timezone

from deploygate import DeployPipeline
from deploygate.core.config import DeployGateConfig, ProvisioningConfig, TimeoutConfig
from deploygate.core.logging import configure_logging
from deploygate.core.models import TokenClaims
from deploygate.security.trust_broker import StaticTokenVerifier


ISSUER = "https://token.actions.githubusercontent.com"
AUDIENCE = "sts.amazonaws.com"


def zip_files(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def claims_for(branch: str) -> TokenClaims:
    now = datetime.now(timezone.utc)
    return TokenClaims(
        issuer=ISSUER,
        audience=AUDIENCE,
        subject=f"repo:acme/site:ref:refs/heads/{branch}",
        issued_at=now,
        expires_at=now + timedelta(minutes=10),
    )


async def main() -> None:
    configure_logging(level="WARNING")

    config = DeployGateConfig(
        provisioning=ProvisioningConfig(github_owner="acme", github_repo="site", suffix="demo"),
        timeouts=TimeoutConfig(poll_interval_seconds=0.05),
    )

    # The identity provider side: which tokens verify, and to what claims.
    verifier = StaticTokenVerifier()
    verifier.register("main-run", claims_for("main"))
    verifier.register("dev-run", claims_for("dev"))

    runs = [
        ("main branch, README present", "main-run", zip_files({"README.md": b"# acme/site\n"})),
        ("dev branch", "dev-run", zip_files({"README.md": b"# from dev\n"})),
        ("main branch, README missing", "main-run", zip_files({"docs/index.md": b"# docs\n"})),
    ]

    async with DeployPipeline(config, verifier=verifier) as pipeline:
        print("=" * 60)
        print("  DeployGate Pipeline Demo")
        print("=" * 60)
        print()

        print("Provisioning Outputs:")
        for key, value in pipeline.outputs().items():
            print(f"  {key:22s} {value}")
        print()

        print("Deploys:")
        for label, token, archive in runs:
            outcome = await pipeline.deploy(token, archive)
            status = "SUCCEEDED" if outcome.succeeded else "FAILED"
            print(f"  [{status:9s}] {label:30s} {outcome.reason}")
        print()

        target = pipeline.resources.target_store
        print(f"Target README.md : {(await target.get_object('README.md')).decode().strip()}")
        print()

        print(f"Counters ({pipeline.counters.namespace}):")
        for name, value in sorted(pipeline.counters.snapshot().items()):
            print(f"  {name:16s} {value}")

        print()
        print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
