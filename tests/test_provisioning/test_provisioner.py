"""
Tests for deploygate.provisioning.provisioner
===============================================

What's Being Tested:
    - Resource naming and outputs
    - Runner and federated grants
    - Least-privilege invariant checks refuse bad configurations
"""

import pytest

from deploygate.core.config import DeployGateConfig, ProvisioningConfig
from deploygate.core.enums import Action, IdentityKind, ResourceKind
from deploygate.core.exceptions import ProvisioningError
from deploygate.core.models import Identity, PermissionGrant, ResourceRef, TrustCondition
from deploygate.infrastructure.object_store import InMemoryObjectStore
from deploygate.provisioning.provisioner import PipelineNames, Provisioner, check_invariants


class TestNamesAndOutputs:
    """Names derive from the suffix and the job name."""

    def test_derived_names(self) -> None:
        names = PipelineNames.derive(ProvisioningConfig(github_owner="acme", github_repo="site", suffix="dev"))
        assert names.staging_store == "ci-source-dev"
        assert names.target_store == "readme-deploy-dev"
        assert names.build_job == "deploy-readme-s3"
        assert names.log_group == "/aws/codebuild/deploy-readme-s3"
        assert names.federated_role == "GitHubActionsRole-dev"

    def test_outputs(self, resources) -> None:
        assert resources.outputs() == {
            "SourceBucketName": "ci-source-test",
            "TargetBucketName": "readme-deploy-test",
            "CodeBuildProjectName": "deploy-readme-s3",
            "GithubActionsRoleArn": "arn:aws:iam::123456789012:role/GitHubActionsRole-test",
            "LogGroupName": "/aws/codebuild/deploy-readme-s3",
        }

    def test_job_registered(self, resources) -> None:
        assert resources.build_platform.job_names == ["deploy-readme-s3"]
        assert set(resources.stores) == {"ci-source-test", "readme-deploy-test"}


class TestGrants:
    """Each identity holds only what its role needs."""

    def test_runner_grants(self, resources) -> None:
        runner = resources.runner_identity
        staging = ResourceRef(kind=ResourceKind.STORE, name="ci-source-test")
        target = ResourceRef(kind=ResourceKind.STORE, name="readme-deploy-test")

        assert runner.kind == IdentityKind.PLATFORM
        assert runner.permits(Action.READ_OBJECT, staging)
        assert not runner.permits(Action.WRITE_OBJECT, staging)
        assert runner.permits(Action.WRITE_OBJECT, target)
        assert not runner.permits(Action.READ_OBJECT, target)
        assert runner.writable_stores() == {"readme-deploy-test"}

    def test_runner_cannot_start_job(self, resources) -> None:
        job = resources.build_platform.job_resource("deploy-readme-s3")
        assert not resources.runner_identity.permits(Action.START_JOB, job)

    def test_broker_grants_stay_off_target(self, resources) -> None:
        names = {g.resource.name for g in resources.trust_broker.scoped_grants()}
        assert names == {"ci-source-test", "deploy-readme-s3"}


class TestInvariants:
    """Provisioning refuses configurations that break least privilege."""

    def test_unqualified_owner_refused(self, verifier) -> None:
        config = DeployGateConfig(provisioning=ProvisioningConfig(github_owner="", github_repo="site"))
        with pytest.raises(ProvisioningError) as exc_info:
            Provisioner(verifier=verifier).provision(config)
        assert exc_info.value.details["invariant"] == "qualified_trust_condition"

    def test_wildcard_branch_refused(self, verifier) -> None:
        config = DeployGateConfig(
            provisioning=ProvisioningConfig(github_owner="acme", github_repo="site", github_branch="*")
        )
        with pytest.raises(ProvisioningError):
            Provisioner(verifier=verifier).provision(config)

    def test_shared_store_refused(self, config, verifier) -> None:
        shared = InMemoryObjectStore("shared")
        with pytest.raises(ProvisioningError) as exc_info:
            Provisioner(verifier=verifier, store_factory=lambda name: shared).provision(config)
        assert exc_info.value.details["invariant"] == "distinct_stores"

    def _store_grant(self, actions, name: str) -> PermissionGrant:
        return PermissionGrant(
            actions=frozenset(actions),
            resource=ResourceRef(kind=ResourceKind.STORE, name=name),
        )

    def _check(self, runner: Identity, federated: Identity) -> None:
        check_invariants(
            InMemoryObjectStore("staging"),
            InMemoryObjectStore("target"),
            runner,
            federated,
            TrustCondition(issuer="i", audience="a", owner="acme", repo="site", branch="main"),
        )

    def test_identity_writing_both_stores_refused(self) -> None:
        runner = Identity(
            name="runner",
            kind=IdentityKind.PLATFORM,
            grants=(
                self._store_grant({Action.WRITE_OBJECT}, "staging"),
                self._store_grant({Action.WRITE_OBJECT}, "target"),
            ),
        )
        federated = Identity(name="fed", kind=IdentityKind.FEDERATED)
        with pytest.raises(ProvisioningError) as exc_info:
            self._check(runner, federated)
        assert exc_info.value.details["invariant"] == "single_writable_store"

    def test_runner_writing_staging_refused(self) -> None:
        runner = Identity(
            name="runner",
            kind=IdentityKind.PLATFORM,
            grants=(self._store_grant({Action.WRITE_OBJECT}, "staging"),),
        )
        federated = Identity(name="fed", kind=IdentityKind.FEDERATED)
        with pytest.raises(ProvisioningError) as exc_info:
            self._check(runner, federated)
        assert exc_info.value.details["invariant"] == "runner_reads_staging_only"

    def test_federated_reading_target_refused(self) -> None:
        runner = Identity(name="runner", kind=IdentityKind.PLATFORM)
        federated = Identity(
            name="fed",
            kind=IdentityKind.FEDERATED,
            grants=(self._store_grant({Action.READ_OBJECT}, "target"),),
        )
        with pytest.raises(ProvisioningError) as exc_info:
            self._check(runner, federated)
        assert exc_info.value.details["invariant"] == "federated_excludes_target"

    def test_valid_identities_pass(self) -> None:
        runner = Identity(
            name="runner",
            kind=IdentityKind.PLATFORM,
            grants=(
                self._store_grant({Action.READ_OBJECT}, "staging"),
                self._store_grant({Action.WRITE_OBJECT}, "target"),
            ),
        )
        federated = Identity(
            name="fed",
            kind=IdentityKind.FEDERATED,
            grants=(self._store_grant({Action.WRITE_OBJECT}, "staging"),),
        )
        self._check(runner, federated)
