"""
deploygate.build.runner - Build Runner
========================================

Executes the declarative build spec against one source archive under the
build-runner identity.

Execution Flow:

    execute(source_key)
        │
        ├── resolve TARGET_BUCKET from the runner environment
        ├── open log stream (build id)
        │
        ├── for step in spec.steps:             strictly in order
        │       ANNOUNCE             → log banner
        │       CHECK_PRESENCE       → read source.zip from Staging, unpack,
        │                              artifact must be a file at the root
        │       PUBLISH              → put artifact bytes to Target[target_key]
        │       EMIT_SUCCESS_MARKER  → log "SUCCESS: <artifact> deployed"
        │   any DeployGateError → log "ERROR: <reason>", abort remaining steps
        │   unreadable archive members → INVALID_SOURCE_ARCHIVE
        │
        └── BuildResult.succeeded(artifact_ref) | BuildResult.failed(reason)

Identity Scoping:
    Every store call goes through AuthorizedObjectStore bound to the runner
    identity, so the runner can read Staging and write Target but cannot
    write Staging or read Target. Log writes go through AuthorizedLogWriter.

Determinism:
    The published bytes are exactly the archive member's bytes. Running the
    same archive twice leaves the same Target content.

Cancellation:
    asyncio.CancelledError propagates. PUBLISH is a single store call, so a
    cancel before it leaves Target unchanged; a cancel after it but before
    the marker leaves the artifact updated and the marker absent.
"""

from __future__ import annotations

import io
import zipfile
import zlib
from typing import Awaitable, Callable, Mapping, Optional
from uuid import uuid4

import structlog

from deploygate.build.steps import (
    ERROR_MARKER_TEMPLATE,
    BuildSpec,
    PipelineStep,
    default_build_spec,
)
from deploygate.core.enums import StepAction
from deploygate.core.exceptions import (
    ArtifactMissingError,
    BuildError,
    ConfigurationError,
    DeployGateError,
    ObjectNotFoundError,
    PublishFailureError,
    StoreError,
)
from deploygate.core.models import ArtifactRef, BuildResult, Identity, ResourceRef
from deploygate.infrastructure.log_stream import LogCollection
from deploygate.infrastructure.object_store import ObjectStore
from deploygate.security.permissions import AuthorizedLogWriter, AuthorizedObjectStore


logger = structlog.get_logger()

TARGET_BUCKET_ENV = "TARGET_BUCKET"


class _BuildContext:
    """Mutable per-build scratch state passed between steps."""

    def __init__(self, build_id: str, source_key: str, target: ObjectStore) -> None:
        self.build_id = build_id
        self.source_key = source_key
        self.target = target
        self.artifact_bytes: Optional[bytes] = None
        self.artifact_ref: Optional[ArtifactRef] = None
        self.log_lines: list[str] = []


class BuildRunner:
    """Runs the validate-and-publish sequence for one build job.

    Args:
        identity: The build-runner identity (read Staging, write Target,
            write logs).
        staging: The Staging Store (the job's source location).
        stores: Stores the runner may resolve TARGET_BUCKET against.
        logs: The job's log group.
        log_group: ResourceRef of the log group, for authorization.
        environment: Runtime environment; must carry TARGET_BUCKET.
        spec: Build spec; defaults to ``default_build_spec()``.
    """

    def __init__(
        self,
        identity: Identity,
        staging: ObjectStore,
        stores: Mapping[str, ObjectStore],
        logs: LogCollection,
        log_group: ResourceRef,
        environment: Mapping[str, str],
        spec: Optional[BuildSpec] = None,
    ) -> None:
        self._identity = identity
        self._staging = AuthorizedObjectStore(staging, identity)
        self._stores = dict(stores)
        self._log_writer = AuthorizedLogWriter(logs, identity, log_group)
        self._environment = dict(environment)
        self._spec = spec or default_build_spec()
        self._handlers: dict[StepAction, Callable[[PipelineStep, _BuildContext], Awaitable[None]]] = {
            StepAction.ANNOUNCE: self._announce,
            StepAction.CHECK_PRESENCE: self._check_presence,
            StepAction.PUBLISH: self._publish,
            StepAction.EMIT_SUCCESS_MARKER: self._emit_success_marker,
        }
        self._logger = logger.bind(component="build_runner", identity=identity.name)

    @property
    def spec(self) -> BuildSpec:
        return self._spec

    @property
    def identity(self) -> Identity:
        return self._identity

    # =========================================================================
    # Entry Point
    # =========================================================================

    async def execute(self, source_key: str, build_id: Optional[str] = None) -> BuildResult:
        """Run every step in order against ``source_key`` in the Staging Store.

        Returns:
            BuildResult.succeeded with the published ArtifactRef, or
            BuildResult.failed with the reason of the first failing step.
        """
        build_id = build_id or f"build-{uuid4()}"
        log = self._logger.bind(build_id=build_id, source_key=source_key)
        log.info("build_starting", steps=[s.name for s in self._spec.steps])

        await self._log_writer.open_stream(build_id)

        try:
            target = self._resolve_target()
        except ConfigurationError as exc:
            return await self._fail(_BuildContext(build_id, source_key, self._staging), exc, log)

        ctx = _BuildContext(build_id, source_key, target)
        for step in self._spec.steps:
            try:
                await self._run_step(step, ctx)
            except DeployGateError as exc:
                log.warning("build_step_failed", step=step.name, error_code=exc.error_code)
                return await self._fail(ctx, exc, log)

        if ctx.artifact_ref is None:
            return await self._fail(
                ctx,
                BuildError(
                    message="build spec finished without publishing an artifact",
                    error_code="STEP_ORDER_VIOLATION",
                ),
                log,
            )
        log.info("build_succeeded", artifact=ctx.artifact_ref.uri)
        return BuildResult.succeeded(build_id, ctx.artifact_ref, ctx.log_lines)

    async def _run_step(self, step: PipelineStep, ctx: _BuildContext) -> None:
        self._logger.debug("build_step_starting", build_id=ctx.build_id, step=step.name)
        await self._handlers[step.action](step, ctx)

    async def _fail(self, ctx: _BuildContext, exc: DeployGateError, log: structlog.typing.FilteringBoundLogger) -> BuildResult:
        await self._emit(ctx, ERROR_MARKER_TEMPLATE.format(reason=exc.message))
        log.error("build_failed", error_code=exc.error_code, reason=exc.message)
        return BuildResult.failed(ctx.build_id, exc.message, exc.error_code, ctx.log_lines)

    async def record_failure(self, build_id: str, reason: str) -> str:
        """Write the ERROR marker for a build the platform ended outside ``execute``.

        Used for build timeouts, aborts and unexpected runner errors so that
        every failed build leaves exactly one ERROR line in the log group.
        """
        line = ERROR_MARKER_TEMPLATE.format(reason=reason)
        await self._log_writer.write(build_id, [line])
        return line

    def _resolve_target(self) -> ObjectStore:
        bucket = self._environment.get(TARGET_BUCKET_ENV, "").strip()
        if not bucket:
            raise ConfigurationError(
                message=f"{TARGET_BUCKET_ENV} is not set in the build environment",
                error_code="MISSING_TARGET_BUCKET",
            )
        store = self._stores.get(bucket)
        if store is None:
            raise ConfigurationError(
                message=f"{TARGET_BUCKET_ENV} names unknown store {bucket!r}",
                error_code="UNKNOWN_TARGET_BUCKET",
                details={"bucket": bucket},
            )
        return AuthorizedObjectStore(store, self._identity)

    async def _emit(self, ctx: _BuildContext, line: str) -> None:
        ctx.log_lines.append(line)
        await self._log_writer.write(ctx.build_id, [line])

    # =========================================================================
    # Step Handlers
    # =========================================================================

    async def _announce(self, step: PipelineStep, ctx: _BuildContext) -> None:
        await self._emit(ctx, step.message or f"Deploy {self._spec.artifact_name}")

    async def _check_presence(self, step: PipelineStep, ctx: _BuildContext) -> None:
        artifact = self._spec.artifact_name
        try:
            archive = await self._staging.get_object(ctx.source_key)
        except ObjectNotFoundError as exc:
            raise ArtifactMissingError(
                message=f"Source archive {ctx.source_key} not found in {self._staging.name}",
                artifact=artifact,
                details={"source_key": ctx.source_key},
            ) from exc

        try:
            with zipfile.ZipFile(io.BytesIO(archive)) as zf:
                info = next(
                    (i for i in zf.infolist() if i.filename == artifact and not i.is_dir()),
                    None,
                )
                if info is None:
                    raise ArtifactMissingError(
                        message=f"{artifact} not found in {ctx.source_key}",
                        artifact=artifact,
                        details={"source_key": ctx.source_key},
                    )
                ctx.artifact_bytes = zf.read(info)
        except (zipfile.BadZipFile, RuntimeError, NotImplementedError, zlib.error, EOFError) as exc:
            raise BuildError(
                message=f"Source {ctx.source_key} is not a readable zip archive",
                error_code="INVALID_SOURCE_ARCHIVE",
                details={"source_key": ctx.source_key},
            ) from exc

        self._logger.debug(
            "artifact_present",
            build_id=ctx.build_id,
            artifact=artifact,
            size_bytes=len(ctx.artifact_bytes),
        )

    async def _publish(self, step: PipelineStep, ctx: _BuildContext) -> None:
        if ctx.artifact_bytes is None:
            raise BuildError(
                message="publish reached without a presence-checked artifact",
                error_code="STEP_ORDER_VIOLATION",
            )
        key = self._spec.target_key
        try:
            version = await ctx.target.put_object(key, ctx.artifact_bytes)
        except StoreError as exc:
            raise PublishFailureError(
                message=f"Publishing {key} to {ctx.target.name} failed: {exc.message}",
                target=ctx.target.name,
                details={"store_error_code": exc.error_code},
            ) from exc

        ctx.artifact_ref = ArtifactRef(
            store=ctx.target.name,
            key=key,
            size_bytes=version.size_bytes,
            version_id=version.version_id,
        )

    async def _emit_success_marker(self, step: PipelineStep, ctx: _BuildContext) -> None:
        if ctx.artifact_ref is None:
            raise BuildError(
                message="success marker reached before the artifact was published",
                error_code="STEP_ORDER_VIOLATION",
            )
        await self._emit(ctx, self._spec.success_marker)
