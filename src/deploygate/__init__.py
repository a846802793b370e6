"""
DeployGate - Least-Privilege Continuous Deployment
====================================================

A CI job proves who it is with a short-lived federated token, receives
credentials scoped to exactly two permissions, uploads a source archive
and starts one build job. The build job, under its own narrower identity,
validates and republishes a single artifact, and its log lines become
health counters.

    CI actor ──token──→ Trust Broker ──scoped creds──→ Staging Store
                                                           │
                                    Build Runner ←─────────┘
                                         │
                              Target Store + log lines ──→ counters

Layers (top to bottom):
    1. Facade          - DeployPipeline, DeployOutcome
    2. Provisioning    - one-time creation of stores, identities, job
    3. Security        - TrustBroker, default-deny authorization
    4. Build           - BuildSpec, BuildRunner, BuildPlatform
    5. Monitoring      - LogMetricDeriver, MetricCounters
    6. Infrastructure  - ObjectStore (in-memory, S3), LogCollection

Quick Start:
    >>> from deploygate import DeployPipeline
    >>> async with DeployPipeline(config, verifier=verifier) as pipeline:
    ...     outcome = await pipeline.deploy(token, archive_bytes)
"""

__version__ = "0.1.0"

from deploygate.facade import DeployOutcome, DeployPipeline

__all__ = ["DeployOutcome", "DeployPipeline", "__version__"]
