"""
deploygate.infrastructure.s3_store - boto3-backed Object Store
================================================================

ObjectStore implementation on Amazon S3. boto3 is synchronous, so each call
runs in a worker thread via ``asyncio.to_thread``.

Every write requests ``ServerSideEncryption=AES256``. ``NoSuchKey`` maps to
ObjectNotFoundError; every other ClientError becomes a StoreError carrying
the AWS error code.

Usage:
    >>> store = S3ObjectStore("readme-deploy-prod", region_name="ap-northeast-1")
    >>> await store.put_object("README.md", b"# hello")
"""

from __future__ import annotations

import asyncio
import hashlib
from typing import Any, Optional

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from deploygate.core.exceptions import ObjectNotFoundError, StoreError
from deploygate.infrastructure.object_store import (
    SERVER_SIDE_ENCRYPTION,
    ObjectStore,
    ObjectVersion,
)


logger = structlog.get_logger()


class S3ObjectStore(ObjectStore):
    """Object store backed by one S3 bucket.

    Args:
        bucket_name: The bucket this store reads and writes.
        region_name: AWS region for the client.
        client: Pre-built S3 client (tests pass a stubbed one).
    """

    def __init__(
        self,
        bucket_name: str,
        region_name: str = "us-east-1",
        client: Optional[Any] = None,
    ) -> None:
        super().__init__(bucket_name)
        self._client = client or boto3.client("s3", region_name=region_name, use_ssl=True)
        self._logger = logger.bind(component="s3_object_store", store=bucket_name)

    def _wrap_client_error(self, exc: ClientError, operation: str, key: str = "") -> StoreError:
        code = exc.response.get("Error", {}).get("Code", "Unknown")
        if code in ("NoSuchKey", "404"):
            return ObjectNotFoundError(
                message=f"No such key {key!r} in store {self._name}",
                store=self._name,
                key=key,
            )
        self._logger.error("s3_client_error", operation=operation, key=key, aws_error_code=code)
        return StoreError(
            message=f"S3 {operation} failed for {self._name}/{key}: {code}",
            store=self._name,
            error_code="STORE_UNAVAILABLE" if code in ("SlowDown", "ServiceUnavailable", "InternalError") else "STORE_ERROR",
            details={"aws_error_code": code, "operation": operation},
        )

    async def _call(self, operation: str, key: str, **kwargs: Any) -> dict[str, Any]:
        return await self._in_thread(operation, key, getattr(self._client, operation), **kwargs)

    async def _paginate(self, operation: str, key: str, **kwargs: Any) -> list[dict[str, Any]]:
        """Collect every page of a listing operation."""
        paginator = self._client.get_paginator(operation)

        def collect() -> list[dict[str, Any]]:
            return list(paginator.paginate(**kwargs))

        return await self._in_thread(operation, key, collect)

    async def _in_thread(self, operation: str, key: str, func: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, **kwargs)
        except ClientError as exc:
            raise self._wrap_client_error(exc, operation, key) from exc
        except BotoCoreError as exc:
            self._logger.error("s3_transport_error", operation=operation, key=key, error=str(exc))
            raise StoreError(
                message=f"S3 {operation} failed for {self._name}/{key}: {exc}",
                store=self._name,
                error_code="STORE_UNAVAILABLE",
                details={"operation": operation},
            ) from exc

    async def put_object(self, key: str, data: bytes, *, secure: bool = True) -> ObjectVersion:
        self._require_secure_transport(secure, "put_object")
        payload = bytes(data)
        response = await self._call(
            "put_object",
            key,
            Bucket=self._name,
            Key=key,
            Body=payload,
            ServerSideEncryption=SERVER_SIDE_ENCRYPTION,
        )
        self._logger.info("object_put", key=key, size_bytes=len(payload))
        return ObjectVersion(
            key=key,
            version_id=response.get("VersionId") or "null",
            size_bytes=len(payload),
            checksum=hashlib.sha256(payload).hexdigest(),
            encryption=response.get("ServerSideEncryption", SERVER_SIDE_ENCRYPTION),
        )

    async def get_object(self, key: str, *, secure: bool = True) -> bytes:
        self._require_secure_transport(secure, "get_object")
        response = await self._call("get_object", key, Bucket=self._name, Key=key)
        body = response["Body"]
        return await asyncio.to_thread(body.read)

    async def list_objects(self, prefix: str = "") -> list[str]:
        pages = await self._paginate("list_objects_v2", prefix, Bucket=self._name, Prefix=prefix)
        return sorted(item["Key"] for page in pages for item in page.get("Contents", []))

    async def delete_object(self, key: str) -> bool:
        if key not in await self.list_objects(prefix=key):
            return False
        await self._call("delete_object", key, Bucket=self._name, Key=key)
        self._logger.info("object_deleted", key=key)
        return True

    async def get_object_versions(self, key: str) -> list[ObjectVersion]:
        pages = await self._paginate(
            "list_object_versions", key, Bucket=self._name, Prefix=key
        )
        versions = [
            ObjectVersion(
                key=item["Key"],
                version_id=item.get("VersionId") or "null",
                size_bytes=item.get("Size", 0),
                checksum=str(item.get("ETag", "")).strip('"'),
                is_latest=bool(item.get("IsLatest", False)),
                last_modified=item["LastModified"],
            )
            for page in pages
            for item in page.get("Versions", [])
            if item["Key"] == key
        ]
        return sorted(versions, key=lambda v: v.last_modified, reverse=True)
