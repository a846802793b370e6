"""
Tests for deploygate.build.steps
==================================

What's Being Tested:
    - default_build_spec() contents
    - Ordering rules enforced at construction
"""

import pytest
from pydantic import ValidationError

from deploygate.build.steps import BuildSpec, PipelineStep, default_build_spec
from deploygate.core.enums import OnFailure, StepAction


def _step(name: str, action: StepAction) -> PipelineStep:
    return PipelineStep(name=name, action=action)


class TestDefaultBuildSpec:
    """The fixed four-step sequence."""

    def test_step_order(self) -> None:
        spec = default_build_spec()
        assert [s.action for s in spec.steps] == [
            StepAction.ANNOUNCE,
            StepAction.CHECK_PRESENCE,
            StepAction.PUBLISH,
            StepAction.EMIT_SUCCESS_MARKER,
        ]
        assert all(s.on_failure == OnFailure.ABORT for s in spec.steps)

    def test_banner_and_marker(self) -> None:
        spec = default_build_spec()
        assert spec.steps[0].message == "Deploy README.md to S3"
        assert spec.success_marker == "SUCCESS: README.md deployed"

    def test_target_key_defaults_to_artifact_name(self) -> None:
        assert default_build_spec("CHANGELOG.md").target_key == "CHANGELOG.md"
        assert default_build_spec("README.md", target_key="index.md").target_key == "index.md"


class TestBuildSpecValidation:
    """Specs that break the ordering rules are refused."""

    def test_publish_before_presence_check_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must run in order"):
            BuildSpec(steps=[
                _step("publish", StepAction.PUBLISH),
                _step("check", StepAction.CHECK_PRESENCE),
                _step("marker", StepAction.EMIT_SUCCESS_MARKER),
            ])

    def test_marker_before_publish_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BuildSpec(steps=[
                _step("check", StepAction.CHECK_PRESENCE),
                _step("marker", StepAction.EMIT_SUCCESS_MARKER),
                _step("publish", StepAction.PUBLISH),
            ])

    def test_missing_presence_check_rejected(self) -> None:
        with pytest.raises(ValidationError, match="exactly one check-presence"):
            BuildSpec(steps=[
                _step("publish", StepAction.PUBLISH),
                _step("marker", StepAction.EMIT_SUCCESS_MARKER),
            ])

    def test_second_publish_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BuildSpec(steps=[
                _step("check", StepAction.CHECK_PRESENCE),
                _step("publish", StepAction.PUBLISH),
                _step("publish-again", StepAction.PUBLISH),
                _step("marker", StepAction.EMIT_SUCCESS_MARKER),
            ])

    def test_duplicate_names_rejected(self) -> None:
        with pytest.raises(ValidationError, match="duplicate step names"):
            BuildSpec(steps=[
                _step("same", StepAction.CHECK_PRESENCE),
                _step("same", StepAction.PUBLISH),
                _step("marker", StepAction.EMIT_SUCCESS_MARKER),
            ])

    def test_extra_announcements_allowed(self) -> None:
        spec = BuildSpec(steps=[
            _step("hello", StepAction.ANNOUNCE),
            _step("check", StepAction.CHECK_PRESENCE),
            _step("mid", StepAction.ANNOUNCE),
            _step("publish", StepAction.PUBLISH),
            _step("marker", StepAction.EMIT_SUCCESS_MARKER),
        ])
        assert len(spec.steps) == 5
