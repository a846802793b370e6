"""
Tests for deploygate.facade
=============================

What's Being Tested:
    - deploy() outcomes for accepted and rejected tokens
    - Whole-run retries on transient failures only
    - Facade lifecycle (initialize, shutdown, context manager)
"""

import pytest

from deploygate.facade import DeployOutcome, DeployPipeline
from deploygate.monitoring.log_metrics import ERROR_COUNTER, SUCCESS_COUNTER
from deploygate.orchestration.retry import RetryPolicy
from deploygate.security.trust_broker import StaticTokenVerifier


class TestDeploy:
    """One deploy() call is one binary outcome."""

    async def test_successful_deploy(self, pipeline, resources, tokens, readme_archive, readme_bytes) -> None:
        outcome = await pipeline.deploy(tokens.main, readme_archive)

        assert isinstance(outcome, DeployOutcome)
        assert outcome.succeeded
        assert outcome.reason == "published s3://readme-deploy-test/README.md"
        assert outcome.attempts == 1
        assert await resources.target_store.get_object("README.md") == readme_bytes
        assert pipeline.counters.value(SUCCESS_COUNTER) == 1
        assert pipeline.counters.value(ERROR_COUNTER) == 0

    async def test_rejected_token_changes_nothing(self, pipeline, resources, tokens, readme_archive) -> None:
        outcome = await pipeline.deploy(tokens.dev, readme_archive)

        assert not outcome.succeeded
        assert outcome.error_code == "TRUST_REJECTED"
        assert outcome.build_id is None
        assert outcome.attempts == 1
        assert await resources.staging_store.list_objects() == []
        assert await resources.target_store.list_objects() == []
        assert pipeline.counters.snapshot() == {}

    async def test_missing_readme_is_final(self, pipeline, resources, tokens, empty_archive) -> None:
        outcome = await pipeline.deploy(tokens.main, empty_archive)

        assert not outcome.succeeded
        assert outcome.error_code == "ARTIFACT_MISSING"
        assert outcome.attempts == 1
        assert await resources.target_store.list_objects() == []
        assert pipeline.counters.value(ERROR_COUNTER) == 1
        assert pipeline.counters.value(SUCCESS_COUNTER) == 0

    async def test_encrypted_readme_fails_without_retry(self, pipeline, resources, tokens, readme_archive) -> None:
        data = bytearray(readme_archive)
        for signature, offset in ((b"PK\x03\x04", 6), (b"PK\x01\x02", 8)):
            start = data.find(signature)
            data[start + offset] |= 0x1

        outcome = await pipeline.deploy(tokens.main, bytes(data))

        assert not outcome.succeeded
        assert outcome.error_code == "INVALID_SOURCE_ARCHIVE"
        assert outcome.attempts == 1
        assert await resources.target_store.list_objects() == []
        assert pipeline.counters.value(ERROR_COUNTER) == 1


class TestRetry:
    """Transient failures repeat the whole run; others do not."""

    async def test_publish_failure_retried(self, pipeline, resources, tokens, readme_archive, readme_bytes) -> None:
        resources.target_store.fail_next_put()

        outcome = await pipeline.deploy(tokens.main, readme_archive)

        assert outcome.succeeded
        assert outcome.attempts == 2
        assert await resources.target_store.get_object("README.md") == readme_bytes
        assert pipeline.counters.value(ERROR_COUNTER) == 1
        assert pipeline.counters.value(SUCCESS_COUNTER) == 1

    async def test_staging_outage_retried(self, pipeline, resources, tokens, readme_archive) -> None:
        resources.staging_store.fail_next_put()
        outcome = await pipeline.deploy(tokens.main, readme_archive)
        assert outcome.succeeded
        assert outcome.attempts == 2

    async def test_retries_exhausted(self, config, resources, tokens, readme_archive) -> None:
        sleeps: list[float] = []

        async def record_sleep(delay: float) -> None:
            sleeps.append(delay)

        class FlakyPipeline(DeployPipeline):
            async def _attempt(self, token, archive):
                resources.target_store.fail_next_put()
                return await super()._attempt(token, archive)

        policy = RetryPolicy(max_retries=2, initial_delay=0.5)
        async with FlakyPipeline(config, resources=resources, retry_policy=policy, sleep=record_sleep) as p:
            outcome = await p.deploy(tokens.main, readme_archive)

        assert not outcome.succeeded
        assert outcome.error_code == "PUBLISH_FAILED"
        assert outcome.attempts == 3
        assert len(sleeps) == 2
        assert sleeps[1] > sleeps[0]

    async def test_verification_timeout_retried(self, config, claims_builder, readme_archive) -> None:
        slow = StaticTokenVerifier({"slow": claims_builder()}, delay=5.0)
        fast_config = config.model_copy(
            update={"timeouts": config.timeouts.model_copy(update={"token_validation_seconds": 0.01})}
        )

        async def no_sleep(_: float) -> None:
            return None

        async with DeployPipeline(fast_config, verifier=slow, sleep=no_sleep) as p:
            outcome = await p.deploy("slow", readme_archive)

        assert outcome.error_code == "TIMEOUT_EXCEEDED"
        assert outcome.attempts == config.max_deploy_retries + 1


class TestLifecycle:
    """initialize/shutdown and the async context manager."""

    async def test_deploy_before_initialize_raises(self, config, tokens, readme_archive) -> None:
        p = DeployPipeline(config)
        with pytest.raises(RuntimeError, match="not been initialized"):
            await p.deploy(tokens.main, readme_archive)

    async def test_initialize_provisions(self, config, verifier) -> None:
        p = DeployPipeline(config, verifier=verifier)
        await p.initialize()
        await p.initialize()
        assert p.is_initialized
        assert p.outputs()["TargetBucketName"] == "readme-deploy-test"
        await p.shutdown()
        assert not p.is_initialized

    async def test_shutdown_without_initialize_is_noop(self, config) -> None:
        p = DeployPipeline(config)
        await p.shutdown()
        assert not p.is_initialized

    async def test_context_manager(self, config, verifier, tokens, readme_archive) -> None:
        async with DeployPipeline(config, verifier=verifier) as p:
            assert p.is_initialized
            assert (await p.deploy(tokens.main, readme_archive)).succeeded
        assert not p.is_initialized

    def test_repr(self, config) -> None:
        assert "initialized=False" in repr(DeployPipeline(config))
