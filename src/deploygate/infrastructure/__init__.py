"""
deploygate.infrastructure - External Collaborator Layer
=========================================================

Interfaces (and in-memory / boto3 implementations) for the platform
services DeployGate consumes but does not own:

    ┌──────────────────── INFRASTRUCTURE LAYER ───────────────────┐
    │                                                             │
    │  ObjectStore (ABC)                                          │
    │    ├── InMemoryObjectStore                                  │
    │    └── S3ObjectStore (boto3)                                │
    │                                                             │
    │  LogCollection  (captured build output + subscriptions)     │
    │                                                             │
    └─────────────────────────────────────────────────────────────┘
"""

from deploygate.infrastructure.log_stream import LogCollection, LogEvent
from deploygate.infrastructure.object_store import (
    InMemoryObjectStore,
    ObjectStore,
    ObjectVersion,
)
from deploygate.infrastructure.s3_store import S3ObjectStore

__all__ = [
    "InMemoryObjectStore",
    "LogCollection",
    "LogEvent",
    "ObjectStore",
    "ObjectVersion",
    "S3ObjectStore",
]
