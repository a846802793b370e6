"""
deploygate.provisioning - One-time creation of stores, identities and jobs.
"""

from deploygate.provisioning.provisioner import (
    PipelineNames,
    PipelineResources,
    Provisioner,
    check_invariants,
)

__all__ = [
    "PipelineNames",
    "PipelineResources",
    "Provisioner",
    "check_invariants",
]
