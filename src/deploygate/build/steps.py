"""
deploygate.build.steps - Declarative Build Spec
=================================================

The build command sequence as data: an ordered list of steps, each with a
name, an action, and an on-failure policy. The runner interprets the list;
there is no shell text to inject into.

Default Sequence:

    #   name                  action                on_failure
    1   announce              ANNOUNCE              abort
    2   check-presence        CHECK_PRESENCE        abort
    3   publish               PUBLISH               abort
    4   emit-success-marker   EMIT_SUCCESS_MARKER   abort

Ordering Rules (validated when a BuildSpec is built):
    - CHECK_PRESENCE, PUBLISH and EMIT_SUCCESS_MARKER each appear exactly once
    - CHECK_PRESENCE < PUBLISH < EMIT_SUCCESS_MARKER
    - step names are unique
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, model_validator

from deploygate.core.enums import OnFailure, StepAction


ANNOUNCE_TEMPLATE = "Deploy {artifact} to S3"
SUCCESS_MARKER_TEMPLATE = "SUCCESS: {artifact} deployed"
ERROR_MARKER_TEMPLATE = "ERROR: {reason}"

_REQUIRED_ORDER = (
    StepAction.CHECK_PRESENCE,
    StepAction.PUBLISH,
    StepAction.EMIT_SUCCESS_MARKER,
)


class PipelineStep(BaseModel):
    """One step of the build spec.

    Attributes:
        name: Unique step name, used in logs.
        action: What the step does.
        on_failure: What happens when it fails (always abort).
        message: Optional text for ANNOUNCE steps; defaults to the banner.
    """

    name: str = Field(min_length=1)
    action: StepAction
    on_failure: OnFailure = OnFailure.ABORT
    message: Optional[str] = None


class BuildSpec(BaseModel):
    """Ordered, validated build step list for one artifact.

    Attributes:
        artifact_name: The file that must exist in the unpacked source.
        target_key: The fixed key the artifact is published under.
        steps: The ordered steps.
    """

    version: str = "0.2"
    artifact_name: str = Field(default="README.md", min_length=1)
    target_key: str = Field(default="README.md", min_length=1)
    steps: list[PipelineStep]

    @model_validator(mode="after")
    def _validate_order(self) -> BuildSpec:
        names = [s.name for s in self.steps]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate step names: {duplicates}")

        positions = []
        for action in _REQUIRED_ORDER:
            indices = [i for i, s in enumerate(self.steps) if s.action == action]
            if len(indices) != 1:
                raise ValueError(
                    f"build spec must contain exactly one {action.value} step, found {len(indices)}"
                )
            positions.append(indices[0])

        if positions != sorted(positions):
            raise ValueError(
                "steps must run in order: check-presence, publish, emit-success-marker"
            )
        return self

    @property
    def success_marker(self) -> str:
        return SUCCESS_MARKER_TEMPLATE.format(artifact=self.artifact_name)


def default_build_spec(
    artifact_name: str = "README.md",
    target_key: Optional[str] = None,
) -> BuildSpec:
    """The fixed validate-and-publish sequence for a single artifact."""
    return BuildSpec(
        artifact_name=artifact_name,
        target_key=target_key or artifact_name,
        steps=[
            PipelineStep(
                name="announce",
                action=StepAction.ANNOUNCE,
                message=ANNOUNCE_TEMPLATE.format(artifact=artifact_name),
            ),
            PipelineStep(name="check-presence", action=StepAction.CHECK_PRESENCE),
            PipelineStep(name="publish", action=StepAction.PUBLISH),
            PipelineStep(name="emit-success-marker", action=StepAction.EMIT_SUCCESS_MARKER),
        ],
    )
