"""
deploygate.facade - DeployPipeline Top-Level Facade
=====================================================

The single entry point the external CI actor drives. One ``deploy()`` call
is one complete run; its result is binary.

Run Flow:

    deploy(token, archive)
        │
        ├── attempt 0 ───────────────────────────────────────────────────┐
        │     1. TrustBroker.issue_credentials(token)  (bounded)         │
        │     2. upload archive → Staging[source.zip]  (scoped creds)    │
        │     3. BuildPlatform.start_job(...)          (bounded)         │
        │     4. poll get_job_status until terminal    (each bounded,    │
        │                                               overall bounded) │
        │     5. BuildResult → DeployOutcome                             │
        ├─────────────────────────────────────────────────────────────────┘
        │
        ├── failed with PUBLISH_FAILED / TIMEOUT_EXCEEDED / STORE_UNAVAILABLE
        │     and retries left → backoff, repeat the whole run
        │
        └── DeployOutcome(succeeded, reason, ...)

Layering:

    ┌──────────────────────────────────────────────────┐
    │              DeployPipeline (Facade)              │
    │  ┌─────────────────────────────────────────────┐ │
    │  │  Provisioning: stores, identities, job,      │ │
    │  │  trust condition, metric filters             │ │
    │  └─────────────────────┬───────────────────────┘ │
    │  ┌─────────────────────▼───────────────────────┐ │
    │  │  Security: TrustBroker, authorize()          │ │
    │  └─────────────────────┬───────────────────────┘ │
    │  ┌─────────────────────▼───────────────────────┐ │
    │  │  Build: BuildPlatform → BuildRunner          │ │
    │  └─────────────────────┬───────────────────────┘ │
    │  ┌─────────────────────▼───────────────────────┐ │
    │  │  Infrastructure: ObjectStore, LogCollection  │ │
    │  └─────────────────────────────────────────────┘ │
    └──────────────────────────────────────────────────┘

Usage:
    >>> async with DeployPipeline(config, verifier=verifier) as pipeline:
    ...     outcome = await pipeline.deploy(token, archive_bytes)
    ...     print(outcome.succeeded, outcome.reason)
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from pydantic import BaseModel

from deploygate.core.config import DeployGateConfig
from deploygate.core.exceptions import DeployGateError, TimeoutExceededError
from deploygate.core.models import ArtifactRef, JobHandle, ScopedCredentials
from deploygate.monitoring.log_metrics import MetricCounters
from deploygate.orchestration.retry import RetryPolicy
from deploygate.provisioning.provisioner import PipelineResources, Provisioner
from deploygate.security.permissions import AuthorizedObjectStore
from deploygate.security.trust_broker import StaticTokenVerifier, TokenVerifier


logger = structlog.get_logger()

T = TypeVar("T")


class DeployOutcome(BaseModel):
    """What the external actor sees: Succeeded or Failed, plus a reason.

    Attributes:
        succeeded: The whole run's binary result.
        reason: Human-readable explanation.
        error_code: Machine-readable code of the final failure.
        build_id: The last build started, if any.
        artifact_ref: Where the artifact landed (success only).
        attempts: How many runs were made, retries included.
    """

    succeeded: bool
    reason: str
    error_code: Optional[str] = None
    build_id: Optional[str] = None
    artifact_ref: Optional[ArtifactRef] = None
    attempts: int = 1


class DeployPipeline:
    """Provisioned pipeline plus the CI-side deploy procedure.

    Args:
        config: DeployGate configuration. Defaults to DeployGateConfig().
        verifier: Token verifier used when provisioning here.
        resources: Already provisioned resources. When omitted,
            ``initialize()`` provisions them from ``config``.
        retry_policy: Whole-run retry policy. Defaults to one built from
            ``config.max_deploy_retries``.
        sleep: Coroutine used for backoff between attempts.
    """

    def __init__(
        self,
        config: Optional[DeployGateConfig] = None,
        *,
        verifier: Optional[TokenVerifier] = None,
        resources: Optional[PipelineResources] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config or DeployGateConfig()
        self._verifier = verifier or StaticTokenVerifier()
        self._resources = resources
        self._retry_policy = retry_policy or RetryPolicy(
            max_retries=self._config.max_deploy_retries
        )
        self._sleep = sleep
        self._active_builds: dict[str, JobHandle] = {}
        self._initialized = False
        self._logger = logger.bind(component="deploy_pipeline")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config(self) -> DeployGateConfig:
        return self._config

    @property
    def resources(self) -> PipelineResources:
        return self._ensure_initialized()

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @property
    def counters(self) -> MetricCounters:
        """Totals derived from the build log group."""
        return self.resources.metric_deriver.counters

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def outputs(self) -> dict[str, str]:
        return self.resources.outputs()

    # =========================================================================
    # Lifecycle Management
    # =========================================================================

    async def initialize(self) -> None:
        """Provision resources if none were supplied. Idempotent."""
        if self._initialized:
            self._logger.debug("pipeline_already_initialized")
            return

        if self._resources is None:
            self._resources = Provisioner(verifier=self._verifier).provision(self._config)

        self._initialized = True
        self._logger.info("pipeline_initialized", **self._resources.outputs())

    async def shutdown(self) -> None:
        """Abort builds still in flight. Idempotent."""
        if not self._initialized:
            self._logger.debug("pipeline_not_initialized_skipping_shutdown")
            return

        platform = self._ensure_initialized().build_platform
        for handle in list(self._active_builds.values()):
            await platform.abort(handle)
        self._active_builds.clear()

        self._initialized = False
        self._logger.info("pipeline_shutdown_complete")

    async def __aenter__(self) -> DeployPipeline:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    # =========================================================================
    # Deploy
    # =========================================================================

    async def deploy(self, token: str, archive: bytes) -> DeployOutcome:
        """Run the full deploy, retrying the whole run on transient failures."""
        self._ensure_initialized()

        attempt = 0
        while True:
            outcome = await self._attempt(token, archive)
            outcome = outcome.model_copy(update={"attempts": attempt + 1})

            if outcome.succeeded or not self._retry_policy.should_retry(outcome.error_code, attempt):
                self._logger.info(
                    "deploy_finished",
                    succeeded=outcome.succeeded,
                    reason=outcome.reason,
                    error_code=outcome.error_code,
                    attempts=outcome.attempts,
                )
                return outcome

            delay = self._retry_policy.calculate_delay(attempt)
            self._logger.warning(
                "deploy_retrying",
                attempt=attempt + 1,
                error_code=outcome.error_code,
                delay_seconds=round(delay, 3),
            )
            await self._sleep(delay)
            attempt += 1

    async def _attempt(self, token: str, archive: bytes) -> DeployOutcome:
        resources = self.resources
        timeouts = self._config.timeouts
        params = resources.config
        handle: Optional[JobHandle] = None

        try:
            credentials = await resources.trust_broker.issue_credentials(
                token, timeout=timeouts.token_validation_seconds
            )

            staging = AuthorizedObjectStore(resources.staging_store, credentials)
            await staging.put_object(params.source_key, archive)

            handle = await self._bounded(
                resources.build_platform.start_job(
                    resources.names.build_job, params.source_key, credentials
                ),
                timeouts.job_start_seconds,
                "job_start",
            )
            self._active_builds[handle.build_id] = handle
            try:
                await self._wait_for_completion(handle, credentials)
            finally:
                self._active_builds.pop(handle.build_id, None)

        except DeployGateError as exc:
            return DeployOutcome(
                succeeded=False,
                reason=exc.message,
                error_code=exc.error_code,
                build_id=handle.build_id if handle else None,
            )

        result = resources.build_platform.get_build_result(handle)
        if result is None:
            return DeployOutcome(
                succeeded=False,
                reason="build finished without a result",
                error_code="BUILD_ERROR",
                build_id=handle.build_id,
            )
        if result.is_success:
            return DeployOutcome(
                succeeded=True,
                reason=f"published {result.artifact_ref.uri}" if result.artifact_ref else "published",
                build_id=result.build_id,
                artifact_ref=result.artifact_ref,
            )
        return DeployOutcome(
            succeeded=False,
            reason=result.reason,
            error_code=result.error_code,
            build_id=result.build_id,
        )

    async def _wait_for_completion(self, handle: JobHandle, credentials: ScopedCredentials) -> None:
        timeouts = self._config.timeouts
        platform = self.resources.build_platform
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeouts.build_seconds

        while True:
            status = await self._bounded(
                platform.get_job_status(handle, credentials),
                timeouts.job_status_seconds,
                "job_status_poll",
            )
            if status.is_terminal:
                return
            if loop.time() >= deadline:
                await platform.abort(handle)
                raise TimeoutExceededError(
                    message=f"Build {handle.build_id} did not finish within {timeouts.build_seconds}s",
                    operation="build",
                    timeout_seconds=timeouts.build_seconds,
                )
            await asyncio.sleep(timeouts.poll_interval_seconds)

    async def _bounded(self, call: Awaitable[T], timeout: float, operation: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise TimeoutExceededError(
                message=f"{operation} exceeded {timeout}s",
                operation=operation,
                timeout_seconds=timeout,
            ) from exc

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    def _ensure_initialized(self) -> PipelineResources:
        if not self._initialized or self._resources is None:
            raise RuntimeError(
                "DeployPipeline has not been initialized. "
                "Call await pipeline.initialize() or use 'async with DeployPipeline() as pipeline:'"
            )
        return self._resources

    def __repr__(self) -> str:
        return (
            f"DeployPipeline(initialized={self._initialized}, "
            f"active_builds={len(self._active_builds)})"
        )
