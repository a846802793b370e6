"""
deploygate.build.platform - Build-Execution Platform
======================================================

The scheduler side of the build job: the external actor starts a job and
polls its status with its scoped credentials; the platform runs the job's
BuildRunner under the runner's own identity.

Job Lifecycle:

    start_job()  ──→  PENDING  ──(lock acquired)──→  RUNNING
                                                        │
                          ┌─────────────────────────────┼───────────────────┐
                          ▼                             ▼                   ▼
                      SUCCEEDED                       FAILED             FAILED
                  (runner succeeded)            (runner failed,      (abort() or
                                                 runner error or      cancellation)
                                                 build timeout)

Failures the runner does not report itself (timeouts, aborts and
unexpected runner errors, recorded as BUILD_ERROR) still get an ERROR line
written through the runner, so the log-derived error count sees every
failed build.

Concurrency:
    Builds of the same job are serialized by a per-job asyncio.Lock, the
    way the real platform queues builds of one project. Different jobs run
    independently.

Authorization:
    start_job     requires start-job       on the job resource
    get_job_status requires get-job-status on the job resource
    Both are checked against the caller's ScopedCredentials, never against
    the runner identity.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import structlog

from deploygate.build.runner import BuildRunner
from deploygate.core.enums import Action, JobStatus, ResourceKind
from deploygate.core.exceptions import BuildError, DeployGateError
from deploygate.core.models import BuildResult, JobHandle, ResourceRef, ScopedCredentials
from deploygate.security.permissions import authorize


logger = structlog.get_logger()

ABORTED_REASON = "aborted"


# =============================================================================
# Abstract Interface
# =============================================================================
class BuildPlatform(ABC):
    """Contract of the build-execution service."""

    @abstractmethod
    async def start_job(
        self,
        job_name: str,
        source_key: str,
        credentials: ScopedCredentials,
    ) -> JobHandle:
        """Queue a build of ``job_name`` against ``source_key``.

        Raises:
            AccessDeniedError: If the credentials lack start-job on the job.
            BuildError: If the job is unknown.
        """
        ...

    @abstractmethod
    async def get_job_status(
        self,
        handle: JobHandle,
        credentials: ScopedCredentials,
    ) -> JobStatus:
        """Return the current status of a started build."""
        ...

    @abstractmethod
    def get_build_result(self, handle: JobHandle) -> Optional[BuildResult]:
        """Return the finished build's result, or None while it runs."""
        ...

    @abstractmethod
    async def abort(self, handle: JobHandle) -> bool:
        """Cancel a queued or running build. Returns False if already finished."""
        ...


# =============================================================================
# In-Memory Implementation
# =============================================================================
class InMemoryBuildPlatform(BuildPlatform):
    """Runs registered BuildRunners as asyncio tasks.

    Example:
        >>> platform = InMemoryBuildPlatform(account_id="123456789012", region="ap-northeast-1")
        >>> platform.register_job("deploy-readme-s3", runner)
        >>> handle = await platform.start_job("deploy-readme-s3", "source.zip", creds)
        >>> result = await platform.wait_for_build(handle)
    """

    def __init__(
        self,
        account_id: str = "",
        region: str = "",
        build_timeout: float = 900.0,
    ) -> None:
        self._account_id = account_id
        self._region = region
        self._build_timeout = build_timeout
        self._runners: dict[str, BuildRunner] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._statuses: dict[str, JobStatus] = {}
        self._results: dict[str, BuildResult] = {}
        self._tasks: dict[str, asyncio.Task[BuildResult]] = {}
        self._logger = logger.bind(component="build_platform")

    def register_job(self, job_name: str, runner: BuildRunner) -> ResourceRef:
        """Bind a job name to the runner that executes it."""
        if job_name in self._runners:
            raise BuildError(
                message=f"Job {job_name!r} is already registered",
                error_code="DUPLICATE_JOB",
            )
        self._runners[job_name] = runner
        self._locks[job_name] = asyncio.Lock()
        self._logger.info("job_registered", job_name=job_name)
        return self.job_resource(job_name)

    def job_resource(self, job_name: str) -> ResourceRef:
        return ResourceRef(
            kind=ResourceKind.JOB,
            name=job_name,
            account_id=self._account_id,
            region=self._region,
        )

    @property
    def job_names(self) -> list[str]:
        return list(self._runners)

    # =========================================================================
    # BuildPlatform interface
    # =========================================================================

    async def start_job(
        self,
        job_name: str,
        source_key: str,
        credentials: ScopedCredentials,
    ) -> JobHandle:
        authorize(credentials, Action.START_JOB, self.job_resource(job_name))

        runner = self._runners.get(job_name)
        if runner is None:
            raise BuildError(
                message=f"Unknown build job {job_name!r}",
                error_code="UNKNOWN_JOB",
                details={"job_name": job_name},
            )

        handle = JobHandle(job_name=job_name, source_key=source_key)
        self._statuses[handle.build_id] = JobStatus.PENDING
        self._tasks[handle.build_id] = asyncio.create_task(
            self._run(handle, runner),
            name=handle.build_id,
        )
        self._logger.info(
            "job_started",
            job_name=job_name,
            build_id=handle.build_id,
            session=credentials.session_name,
        )
        return handle

    async def get_job_status(
        self,
        handle: JobHandle,
        credentials: ScopedCredentials,
    ) -> JobStatus:
        authorize(credentials, Action.GET_JOB_STATUS, self.job_resource(handle.job_name))
        status = self._statuses.get(handle.build_id)
        if status is None:
            raise BuildError(
                message=f"Unknown build {handle.build_id}",
                error_code="UNKNOWN_BUILD",
                details={"build_id": handle.build_id},
            )
        return status

    def get_build_result(self, handle: JobHandle) -> Optional[BuildResult]:
        return self._results.get(handle.build_id)

    async def abort(self, handle: JobHandle) -> bool:
        task = self._tasks.get(handle.build_id)
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        # A task cancelled before its first step never enters _run.
        if handle.build_id not in self._results:
            await self._fail_outside_runner(
                self._runners[handle.job_name], handle.build_id, ABORTED_REASON, "BUILD_ABORTED"
            )
        self._logger.info("job_aborted", build_id=handle.build_id)
        return True

    async def wait_for_build(self, handle: JobHandle) -> BuildResult:
        """Await a build's completion and return its result."""
        task = self._tasks.get(handle.build_id)
        if task is None:
            raise BuildError(
                message=f"Unknown build {handle.build_id}",
                error_code="UNKNOWN_BUILD",
                details={"build_id": handle.build_id},
            )
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
        return self._results[handle.build_id]

    # =========================================================================
    # Execution
    # =========================================================================

    async def _run(self, handle: JobHandle, runner: BuildRunner) -> BuildResult:
        build_id = handle.build_id
        try:
            async with self._locks[handle.job_name]:
                self._statuses[build_id] = JobStatus.RUNNING
                self._logger.debug("job_running", build_id=build_id)
                try:
                    result = await asyncio.wait_for(
                        runner.execute(handle.source_key, build_id=build_id),
                        timeout=self._build_timeout,
                    )
                except asyncio.TimeoutError:
                    result = await self._fail_outside_runner(
                        runner,
                        build_id,
                        f"build exceeded {self._build_timeout}s",
                        "TIMEOUT_EXCEEDED",
                    )
                except DeployGateError as exc:
                    result = await self._fail_outside_runner(
                        runner, build_id, exc.message, exc.error_code
                    )
                except Exception as exc:
                    self._logger.error(
                        "job_runner_error",
                        build_id=build_id,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    result = await self._fail_outside_runner(
                        runner,
                        build_id,
                        f"build runner error: {type(exc).__name__}: {exc}",
                        "BUILD_ERROR",
                    )
                else:
                    self._finish(result)
        except asyncio.CancelledError:
            await self._fail_outside_runner(runner, build_id, ABORTED_REASON, "BUILD_ABORTED")
            raise

        return result

    async def _fail_outside_runner(
        self,
        runner: BuildRunner,
        build_id: str,
        reason: str,
        error_code: str,
    ) -> BuildResult:
        """Record a failure the runner itself did not report, with its ERROR line."""
        lines: list[str] = []
        try:
            lines.append(await runner.record_failure(build_id, reason))
        except DeployGateError as exc:
            self._logger.warning(
                "job_error_marker_not_written",
                build_id=build_id,
                error_code=exc.error_code,
            )
        result = BuildResult.failed(build_id, reason, error_code, lines)
        self._finish(result)
        return result

    def _finish(self, result: BuildResult) -> None:
        self._results[result.build_id] = result
        self._statuses[result.build_id] = (
            JobStatus.SUCCEEDED if result.is_success else JobStatus.FAILED
        )
        self._logger.info(
            "job_finished",
            build_id=result.build_id,
            status=result.status.value,
            error_code=result.error_code,
        )
