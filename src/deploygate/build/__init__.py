"""
deploygate.build - Build Execution
====================================

    - steps:     PipelineStep, BuildSpec, default_build_spec()
    - runner:    BuildRunner (validate and publish one artifact)
    - platform:  BuildPlatform, InMemoryBuildPlatform (start / poll / abort)
"""

from deploygate.build.platform import BuildPlatform, InMemoryBuildPlatform
from deploygate.build.runner import TARGET_BUCKET_ENV, BuildRunner
from deploygate.build.steps import BuildSpec, PipelineStep, default_build_spec

__all__ = [
    "BuildPlatform",
    "BuildRunner",
    "BuildSpec",
    "InMemoryBuildPlatform",
    "PipelineStep",
    "TARGET_BUCKET_ENV",
    "default_build_spec",
]
