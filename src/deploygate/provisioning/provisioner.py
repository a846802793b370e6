"""
deploygate.provisioning.provisioner - One-Time Pipeline Provisioning
======================================================================

Creates every long-lived piece of the pipeline from an explicit
configuration, checks the least-privilege invariants, and hands back the
wired resources. Runtime code only consumes what this returns.

What gets created (suffix "dev", job "deploy-readme-s3"):

    ┌──────────────────────────────────────────────────────────────────────┐
    │  Staging Store     ci-source-dev                                      │
    │  Target Store      readme-deploy-dev                                  │
    │  Log group         /aws/codebuild/deploy-readme-s3                    │
    │                      └── metric filters: BuildErrors, BuildSuccesses  │
    │  Runner identity   deploy-readme-s3-runner-dev                        │
    │                      read-object, list-objects   on ci-source-dev     │
    │                      write-object, list-objects  on readme-deploy-dev │
    │                      create-log-stream, put-log-events on log group   │
    │  Build job         deploy-readme-s3 (TARGET_BUCKET=readme-deploy-dev) │
    │  Trust Broker      GitHubActionsRole-dev                              │
    │                      write-object on ci-source-dev                    │
    │                      start-job, get-job-status on deploy-readme-s3    │
    └──────────────────────────────────────────────────────────────────────┘

Invariants (violations raise ProvisioningError, nothing is returned):
    - Staging and Target are different stores
    - no identity can write to both stores
    - the runner cannot write Staging, the federated identity cannot
      touch Target
    - the trust condition fully qualifies owner, repo and branch
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional

import structlog
from pydantic import BaseModel

from deploygate.build.platform import InMemoryBuildPlatform
from deploygate.build.runner import TARGET_BUCKET_ENV, BuildRunner
from deploygate.build.steps import default_build_spec
from deploygate.core.config import DeployGateConfig, ProvisioningConfig
from deploygate.core.enums import Action, IdentityKind, ResourceKind
from deploygate.core.exceptions import ProvisioningError
from deploygate.core.models import Identity, PermissionGrant, ResourceRef, TrustCondition
from deploygate.infrastructure.log_stream import LogCollection
from deploygate.infrastructure.object_store import InMemoryObjectStore, ObjectStore
from deploygate.monitoring.log_metrics import LogMetricDeriver
from deploygate.security.trust_broker import TokenVerifier, TrustBroker


logger = structlog.get_logger()

StoreFactory = Callable[[str], ObjectStore]


# =============================================================================
# Derived Names
# =============================================================================
class PipelineNames(BaseModel):
    """Every resource name, derived from the provisioning parameters."""

    model_config = {"frozen": True}

    staging_store: str
    target_store: str
    build_job: str
    log_group: str
    runner_role: str
    federated_role: str

    @classmethod
    def derive(cls, config: ProvisioningConfig) -> PipelineNames:
        return cls(
            staging_store=f"ci-source-{config.suffix}",
            target_store=f"readme-deploy-{config.suffix}",
            build_job=config.build_job_name,
            log_group=f"/aws/codebuild/{config.build_job_name}",
            runner_role=f"{config.build_job_name}-runner-{config.suffix}",
            federated_role=f"GitHubActionsRole-{config.suffix}",
        )


# =============================================================================
# Provisioned Resources
# =============================================================================
class PipelineResources:
    """Everything provisioning created, wired together."""

    def __init__(
        self,
        config: ProvisioningConfig,
        names: PipelineNames,
        staging_store: ObjectStore,
        target_store: ObjectStore,
        runner_identity: Identity,
        trust_broker: TrustBroker,
        build_platform: InMemoryBuildPlatform,
        log_collection: LogCollection,
        metric_deriver: LogMetricDeriver,
    ) -> None:
        self.config = config
        self.names = names
        self.staging_store = staging_store
        self.target_store = target_store
        self.runner_identity = runner_identity
        self.trust_broker = trust_broker
        self.build_platform = build_platform
        self.log_collection = log_collection
        self.metric_deriver = metric_deriver

    @property
    def stores(self) -> dict[str, ObjectStore]:
        return {
            self.staging_store.name: self.staging_store,
            self.target_store.name: self.target_store,
        }

    @property
    def federated_role_arn(self) -> str:
        return f"arn:aws:iam::{self.config.account_id}:role/{self.names.federated_role}"

    def outputs(self) -> dict[str, str]:
        """Values the CI side needs to drive a deploy."""
        return {
            "SourceBucketName": self.staging_store.name,
            "TargetBucketName": self.target_store.name,
            "CodeBuildProjectName": self.names.build_job,
            "GithubActionsRoleArn": self.federated_role_arn,
            "LogGroupName": self.log_collection.name,
        }

    def __repr__(self) -> str:
        return (
            f"PipelineResources(staging={self.staging_store.name!r}, "
            f"target={self.target_store.name!r}, job={self.names.build_job!r})"
        )


# =============================================================================
# Invariant Checks
# =============================================================================
def check_invariants(
    staging: ObjectStore,
    target: ObjectStore,
    runner: Identity,
    federated: Identity,
    condition: TrustCondition,
) -> None:
    """Raise ProvisioningError on the first least-privilege violation."""
    if staging is target or staging.name == target.name:
        raise ProvisioningError(
            message=f"Staging and Target must be different stores (both {staging.name!r})",
            details={"invariant": "distinct_stores"},
        )

    for identity in (runner, federated):
        writable = identity.writable_stores()
        if len(writable) > 1:
            raise ProvisioningError(
                message=f"{identity.name} can write to more than one store: {sorted(writable)}",
                details={"invariant": "single_writable_store", "identity": identity.name},
            )

    if staging.name in runner.writable_stores():
        raise ProvisioningError(
            message=f"{runner.name} must not write the Staging Store",
            details={"invariant": "runner_reads_staging_only", "identity": runner.name},
        )

    target_grants = [
        g for g in federated.grants
        if g.resource.kind == ResourceKind.STORE and g.resource.name == target.name
    ]
    if target_grants:
        raise ProvisioningError(
            message=f"{federated.name} must have no access to the Target Store",
            details={"invariant": "federated_excludes_target", "identity": federated.name},
        )

    missing = condition.missing_components()
    if missing or not condition.is_fully_qualified():
        raise ProvisioningError(
            message=(
                "Trust condition must fully qualify owner, repo and branch "
                f"(missing: {', '.join(missing) or 'issuer/audience'})"
            ),
            details={"invariant": "qualified_trust_condition", "missing": missing},
        )


def _grant(actions: Iterable[Action], resource: ResourceRef) -> PermissionGrant:
    return PermissionGrant(actions=frozenset(actions), resource=resource)


# =============================================================================
# Provisioner
# =============================================================================
class Provisioner:
    """Builds a PipelineResources from a DeployGateConfig.

    Args:
        verifier: The identity provider contract used by the Trust Broker.
        store_factory: Creates a store from a name. Defaults to
            InMemoryObjectStore; pass an S3ObjectStore factory for real
            buckets.

    Example:
        >>> provisioner = Provisioner(verifier=StaticTokenVerifier())
        >>> resources = provisioner.provision(config)
        >>> resources.outputs()["TargetBucketName"]
        'readme-deploy-dev'
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        store_factory: Optional[StoreFactory] = None,
    ) -> None:
        self._verifier = verifier
        self._store_factory: StoreFactory = store_factory or InMemoryObjectStore
        self._logger = logger.bind(component="provisioner")

    def provision(self, config: DeployGateConfig) -> PipelineResources:
        params = config.provisioning
        names = PipelineNames.derive(params)
        self._logger.info("provisioning_started", suffix=params.suffix, job=names.build_job)

        condition = TrustCondition(
            issuer=params.oidc_issuer,
            audience=params.oidc_audience,
            owner=params.github_owner,
            repo=params.github_repo,
            branch=params.github_branch,
        )

        staging_store = self._store_factory(names.staging_store)
        target_store = self._store_factory(names.target_store)

        staging_ref = ResourceRef(kind=ResourceKind.STORE, name=staging_store.name)
        target_ref = ResourceRef(kind=ResourceKind.STORE, name=target_store.name)
        log_ref = ResourceRef(
            kind=ResourceKind.LOG_GROUP,
            name=names.log_group,
            account_id=params.account_id,
            region=params.region,
        )

        platform = InMemoryBuildPlatform(
            account_id=params.account_id,
            region=params.region,
            build_timeout=config.timeouts.build_seconds,
        )
        job_ref = platform.job_resource(names.build_job)

        runner_identity = Identity(
            name=names.runner_role,
            kind=IdentityKind.PLATFORM,
            grants=(
                _grant((Action.READ_OBJECT, Action.LIST_OBJECTS), staging_ref),
                _grant((Action.WRITE_OBJECT, Action.LIST_OBJECTS), target_ref),
                _grant((Action.CREATE_LOG_STREAM, Action.PUT_LOG_EVENTS), log_ref),
            ),
        )

        broker = TrustBroker(
            condition=condition,
            verifier=self._verifier,
            staging=staging_ref,
            build_job=job_ref,
            session_duration_seconds=config.session_duration_seconds,
            default_timeout=config.timeouts.token_validation_seconds,
            role_name=names.federated_role,
        )
        federated_template = Identity(
            name=names.federated_role,
            kind=IdentityKind.FEDERATED,
            grants=broker.scoped_grants(),
        )

        check_invariants(staging_store, target_store, runner_identity, federated_template, condition)

        log_collection = LogCollection(names.log_group)
        deriver = LogMetricDeriver()
        deriver.attach(log_collection)

        runner = BuildRunner(
            identity=runner_identity,
            staging=staging_store,
            stores={target_store.name: target_store},
            logs=log_collection,
            log_group=log_ref,
            environment={TARGET_BUCKET_ENV: target_store.name},
            spec=default_build_spec(params.artifact_name),
        )
        platform.register_job(names.build_job, runner)

        resources = PipelineResources(
            config=params,
            names=names,
            staging_store=staging_store,
            target_store=target_store,
            runner_identity=runner_identity,
            trust_broker=broker,
            build_platform=platform,
            log_collection=log_collection,
            metric_deriver=deriver,
        )
        self._logger.info("provisioning_complete", **resources.outputs())
        return resources
