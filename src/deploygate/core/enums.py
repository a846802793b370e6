"""
deploygate.core.enums - Type-Safe Enumerations
================================================

All enumeration types used throughout DeployGate. Every enum inherits from
both ``str`` and ``Enum`` so values serialize to plain strings (Pydantic and
JSON friendly) and compare equal to their string form:

    >>> Action.WRITE_OBJECT == "write-object"
    True

Architecture Mapping:

    ┌─────────────────────────────────────────────────────────────────┐
    │  PERMISSION MODEL                                               │
    │    Action:        What a grant allows (write-object, ...)       │
    │    ResourceKind:  What a grant applies to (store, job, logs)    │
    │    IdentityKind:  Platform-internal vs. federated principal     │
    ├─────────────────────────────────────────────────────────────────┤
    │  BUILD EXECUTION                                                │
    │    StepAction:    The fixed build step vocabulary               │
    │    OnFailure:     What happens when a step fails                │
    │    JobStatus:     Build-platform job lifecycle                  │
    │    BuildStatus:   Binary build outcome                          │
    ├─────────────────────────────────────────────────────────────────┤
    │  TRUST                                                          │
    │    TrustClause:   Which clause of the trust condition failed    │
    └─────────────────────────────────────────────────────────────────┘
"""

from enum import Enum


# =============================================================================
# Action Enumeration
# =============================================================================
# The enumerable action tokens a PermissionGrant can carry. The names follow
# the object-store / build-platform / log-service operations consumed in the
# external interfaces. There is deliberately no wildcard action.
# =============================================================================
class Action(str, Enum):
    """Actions that can appear in a permission grant.

    Grouped by the resource kind they apply to:
        Store:     WRITE_OBJECT, READ_OBJECT, LIST_OBJECTS, DELETE_OBJECT
        Job:       START_JOB, GET_JOB_STATUS
        Log group: CREATE_LOG_STREAM, PUT_LOG_EVENTS
    """

    # --- Object store actions ---
    WRITE_OBJECT = "write-object"
    READ_OBJECT = "read-object"
    LIST_OBJECTS = "list-objects"
    DELETE_OBJECT = "delete-object"

    # --- Build job actions ---
    START_JOB = "start-job"
    GET_JOB_STATUS = "get-job-status"

    # --- Log group actions ---
    CREATE_LOG_STREAM = "create-log-stream"
    PUT_LOG_EVENTS = "put-log-events"


# Which actions are meaningful for which resource kind. A grant pairing an
# action with the wrong kind of resource is rejected at model validation.
STORE_ACTIONS = frozenset({
    Action.WRITE_OBJECT,
    Action.READ_OBJECT,
    Action.LIST_OBJECTS,
    Action.DELETE_OBJECT,
})
JOB_ACTIONS = frozenset({Action.START_JOB, Action.GET_JOB_STATUS})
LOG_ACTIONS = frozenset({Action.CREATE_LOG_STREAM, Action.PUT_LOG_EVENTS})


class ResourceKind(str, Enum):
    """The kind of resource a grant is scoped to."""

    STORE = "store"
    JOB = "job"
    LOG_GROUP = "log-group"


class IdentityKind(str, Enum):
    """Where an identity comes from.

    PLATFORM identities are created once at provisioning and live across
    runs (the build-runner identity). FEDERATED identities are minted per CI
    run by the Trust Broker and expire on their own.
    """

    PLATFORM = "platform"
    FEDERATED = "federated"


# =============================================================================
# Build Step Vocabulary
# =============================================================================
# The build spec is a declarative list of steps rather than shell text. Each
# step names one of these actions; the runner maps each action to a handler.
# =============================================================================
class StepAction(str, Enum):
    """Actions a build step can perform."""

    ANNOUNCE = "announce"                   # Emit an informational banner line
    CHECK_PRESENCE = "check-presence"       # Artifact must exist in the source
    PUBLISH = "publish"                     # Copy artifact to the Target Store
    EMIT_SUCCESS_MARKER = "emit-success-marker"


class OnFailure(str, Enum):
    """Policy applied when a build step fails.

    Only ABORT exists: steps are not independently resumable, so a failed
    step always stops the sequence.
    """

    ABORT = "abort"


class JobStatus(str, Enum):
    """Lifecycle of a job on the build-execution platform.

    Transitions:
        PENDING → RUNNING → (SUCCEEDED | FAILED)
    """

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """True once the job will not change status again."""
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class BuildStatus(str, Enum):
    """Binary outcome of one Build Runner execution."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TrustClause(str, Enum):
    """Clauses of a trust decision, in evaluation order.

    VERIFICATION covers everything before the claims are known: a token the
    identity provider contract refuses, or a verification that timed out.
    CONDITION covers a trust condition that is not fully qualified.
    """

    VERIFICATION = "verification"
    CONDITION = "condition"
    ISSUER = "issuer"
    AUDIENCE = "audience"
    EXPIRY = "expiry"
    SUBJECT = "subject"
