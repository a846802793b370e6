"""
deploygate.security.permissions - Default-Deny Authorization
==============================================================

Every request a principal makes against a store, the build job, or a log
group passes through ``authorize()``. A request is allowed only when one of
the principal's grants names that exact action on that exact resource.
There is no wildcard and no default-allow branch.

Principals:
    - Identity:           the long-lived build-runner identity
    - ScopedCredentials:  the per-run federated identity (also checks expiry)

Wrappers:
    AuthorizedObjectStore  - an ObjectStore that authorizes, then delegates
    AuthorizedLogWriter    - writes to a LogCollection after authorizing

Action mapping for stores:

    put_object            → write-object
    get_object            → read-object
    get_object_versions   → read-object
    list_objects          → list-objects
    delete_object         → delete-object
"""

from __future__ import annotations

from typing import Union

import structlog

from deploygate.core.enums import Action, ResourceKind
from deploygate.core.exceptions import AccessDeniedError
from deploygate.core.models import Identity, ResourceRef, ScopedCredentials
from deploygate.infrastructure.log_stream import LogCollection
from deploygate.infrastructure.object_store import ObjectStore, ObjectVersion


logger = structlog.get_logger()

Principal = Union[Identity, ScopedCredentials]


def principal_name(principal: Principal) -> str:
    if isinstance(principal, ScopedCredentials):
        return principal.identity.name
    return principal.name


def authorize(principal: Principal, action: Action, resource: ResourceRef) -> None:
    """Raise AccessDeniedError unless ``principal`` may do ``action`` on ``resource``."""
    if principal.permits(action, resource):
        return

    name = principal_name(principal)
    reason = "not granted"
    if isinstance(principal, ScopedCredentials) and principal.is_expired():
        reason = "credentials expired"

    logger.warning(
        "access_denied",
        principal=name,
        action=action.value,
        resource=resource.arn,
        reason=reason,
    )
    raise AccessDeniedError(
        message=f"{name} is not allowed to {action.value} on {resource.arn} ({reason})",
        principal=name,
        action=action.value,
        resource=resource.arn,
    )


def store_resource(store: ObjectStore) -> ResourceRef:
    return ResourceRef(kind=ResourceKind.STORE, name=store.name)


# =============================================================================
# AuthorizedObjectStore
# =============================================================================
class AuthorizedObjectStore(ObjectStore):
    """An ObjectStore view bound to one principal.

    Example:
        >>> staging_for_runner = AuthorizedObjectStore(staging, runner_identity)
        >>> await staging_for_runner.get_object("source.zip")   # allowed
        >>> await staging_for_runner.put_object("x", b"")       # AccessDeniedError
    """

    def __init__(self, store: ObjectStore, principal: Principal) -> None:
        super().__init__(store.name)
        self._store = store
        self._principal = principal
        self._resource = store_resource(store)

    @property
    def principal(self) -> Principal:
        return self._principal

    async def put_object(self, key: str, data: bytes, *, secure: bool = True) -> ObjectVersion:
        authorize(self._principal, Action.WRITE_OBJECT, self._resource)
        return await self._store.put_object(key, data, secure=secure)

    async def get_object(self, key: str, *, secure: bool = True) -> bytes:
        authorize(self._principal, Action.READ_OBJECT, self._resource)
        return await self._store.get_object(key, secure=secure)

    async def list_objects(self, prefix: str = "") -> list[str]:
        authorize(self._principal, Action.LIST_OBJECTS, self._resource)
        return await self._store.list_objects(prefix)

    async def delete_object(self, key: str) -> bool:
        authorize(self._principal, Action.DELETE_OBJECT, self._resource)
        return await self._store.delete_object(key)

    async def get_object_versions(self, key: str) -> list[ObjectVersion]:
        authorize(self._principal, Action.READ_OBJECT, self._resource)
        return await self._store.get_object_versions(key)


# =============================================================================
# AuthorizedLogWriter
# =============================================================================
class AuthorizedLogWriter:
    """Writes build output to a log group on behalf of a principal."""

    def __init__(
        self,
        collection: LogCollection,
        principal: Principal,
        resource: ResourceRef,
    ) -> None:
        if resource.kind != ResourceKind.LOG_GROUP or resource.name != collection.name:
            raise ValueError(
                f"resource {resource.arn} does not describe log group {collection.name}"
            )
        self._collection = collection
        self._principal = principal
        self._resource = resource

    async def open_stream(self, stream: str) -> None:
        authorize(self._principal, Action.CREATE_LOG_STREAM, self._resource)
        await self._collection.create_log_stream(stream)

    async def write(self, stream: str, lines: list[str]) -> None:
        authorize(self._principal, Action.PUT_LOG_EVENTS, self._resource)
        await self._collection.put_log_events(stream, lines)
