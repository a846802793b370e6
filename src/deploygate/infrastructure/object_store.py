"""
deploygate.infrastructure.object_store - Object Store Abstraction
===================================================================

The Staging Store and the Target Store are two instances of the same
external collaborator: an encrypted, private object store.

Architecture Context:

    ┌──────────────┐  put source.zip  ┌──────────────────┐  get   ┌──────────────┐
    │  CI actor    │ ───────────────→ │  Staging Store   │ ─────→ │ Build Runner │
    └──────────────┘                  └──────────────────┘        └──────┬───────┘
                                                                         │ put README.md
                                      ┌──────────────────┐               │
                                      │  Target Store    │ ←─────────────┘
                                      └──────────────────┘

Store Guarantees (enforced by every implementation):
    - Server-side encryption: every object is stored with AES256.
    - Secure transport only: a request with ``secure=False`` is refused.
    - Public access blocked: cannot be switched off.
    - Per-key version history: a write never destroys earlier versions.

Implementations:
    - InMemoryObjectStore: dict-backed, for development and tests
    - S3ObjectStore (s3_store.py): boto3-backed

Access control is NOT the store's job. Stores trust their caller; the
AuthorizedObjectStore wrapper in security/permissions.py checks grants
before delegating here.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field

from deploygate.core.exceptions import ObjectNotFoundError, StoreError


logger = structlog.get_logger()

SERVER_SIDE_ENCRYPTION = "AES256"


# =============================================================================
# Object Version Model
# =============================================================================
class ObjectVersion(BaseModel):
    """Metadata of one stored version of an object.

    Attributes:
        key: Object key.
        version_id: Unique id of this version.
        size_bytes: Payload size.
        checksum: SHA-256 hex digest of the payload.
        encryption: Server-side encryption applied (always AES256).
        is_latest: Whether this is the current version.
        last_modified: When this version was written (UTC).
    """

    key: str
    version_id: str = Field(default_factory=lambda: uuid4().hex)
    size_bytes: int = Field(ge=0)
    checksum: str = ""
    encryption: str = SERVER_SIDE_ENCRYPTION
    is_latest: bool = True
    last_modified: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# =============================================================================
# Abstract Base Class
# =============================================================================
class ObjectStore(ABC):
    """Abstract interface for an encrypted, private object store.

    Methods:
        put_object(key, data):       Write bytes under a key (new version).
        get_object(key):             Read the latest bytes of a key.
        list_objects(prefix):        Keys starting with a prefix, sorted.
        delete_object(key):          Remove a key and its history.
        get_object_versions(key):    Version history, newest first.
    """

    def __init__(self, name: str) -> None:
        self._name = name

    @property
    def name(self) -> str:
        """The store (bucket) name."""
        return self._name

    @property
    def public_access_blocked(self) -> bool:
        """Public access is always blocked at the store level."""
        return True

    def _require_secure_transport(self, secure: bool, operation: str) -> None:
        if not secure:
            logger.warning(
                "insecure_transport_refused",
                store=self._name,
                operation=operation,
            )
            raise StoreError(
                message=f"Store {self._name} refuses plaintext transport for {operation}",
                store=self._name,
                error_code="INSECURE_TRANSPORT",
                details={"operation": operation},
            )

    @abstractmethod
    async def put_object(self, key: str, data: bytes, *, secure: bool = True) -> ObjectVersion:
        """Write ``data`` under ``key``.

        Returns:
            Metadata of the version that was written.

        Raises:
            StoreError: On plaintext transport or store unavailability.
        """
        ...

    @abstractmethod
    async def get_object(self, key: str, *, secure: bool = True) -> bytes:
        """Read the latest bytes stored under ``key``.

        Raises:
            ObjectNotFoundError: If the key does not exist.
            StoreError: On plaintext transport or store unavailability.
        """
        ...

    @abstractmethod
    async def list_objects(self, prefix: str = "") -> list[str]:
        """Keys starting with ``prefix``, sorted."""
        ...

    @abstractmethod
    async def delete_object(self, key: str) -> bool:
        """Remove ``key``. Returns False if it did not exist."""
        ...

    @abstractmethod
    async def get_object_versions(self, key: str) -> list[ObjectVersion]:
        """Version history of ``key``, newest first. Empty if unknown."""
        ...


# =============================================================================
# In-Memory Implementation
# =============================================================================
class InMemoryObjectStore(ObjectStore):
    """Dict-backed object store for development and testing.

    Keeps every version of every key. Supports failure injection so tests
    can simulate a store that is transiently unavailable.

    Example:
        >>> store = InMemoryObjectStore("readme-deploy-dev")
        >>> await store.put_object("README.md", b"# hello")
        >>> await store.get_object("README.md")
        b'# hello'
    """

    def __init__(self, name: str) -> None:
        super().__init__(name)
        # key -> versions, oldest first
        self._objects: dict[str, list[tuple[ObjectVersion, bytes]]] = {}
        self._pending_put_failures: list[StoreError] = []
        self._logger = logger.bind(component="in_memory_object_store", store=name)

    def fail_next_put(self, error: Optional[StoreError] = None) -> None:
        """Make the next ``put_object`` call raise instead of writing."""
        self._pending_put_failures.append(
            error
            or StoreError(
                message=f"Store {self._name} is temporarily unavailable",
                store=self._name,
                error_code="STORE_UNAVAILABLE",
            )
        )

    async def put_object(self, key: str, data: bytes, *, secure: bool = True) -> ObjectVersion:
        self._require_secure_transport(secure, "put_object")
        if self._pending_put_failures:
            error = self._pending_put_failures.pop(0)
            self._logger.warning("object_put_failed", key=key, error_code=error.error_code)
            raise error

        payload = bytes(data)
        version = ObjectVersion(
            key=key,
            size_bytes=len(payload),
            checksum=hashlib.sha256(payload).hexdigest(),
        )
        history = self._objects.setdefault(key, [])
        history[:] = [
            (v.model_copy(update={"is_latest": False}), d) for v, d in history
        ]
        history.append((version, payload))

        self._logger.debug(
            "object_put",
            key=key,
            size_bytes=version.size_bytes,
            version_id=version.version_id,
        )
        return version

    async def get_object(self, key: str, *, secure: bool = True) -> bytes:
        self._require_secure_transport(secure, "get_object")
        history = self._objects.get(key)
        if not history:
            raise ObjectNotFoundError(
                message=f"No such key {key!r} in store {self._name}",
                store=self._name,
                key=key,
            )
        return history[-1][1]

    async def list_objects(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._objects if k.startswith(prefix))

    async def delete_object(self, key: str) -> bool:
        if key in self._objects:
            del self._objects[key]
            self._logger.debug("object_deleted", key=key)
            return True
        return False

    async def get_object_versions(self, key: str) -> list[ObjectVersion]:
        return [v for v, _ in reversed(self._objects.get(key, []))]
