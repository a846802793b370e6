"""
Tests for deploygate.infrastructure.s3_store
==============================================

The boto3 client is driven through botocore's Stubber, so no request ever
leaves the process.

What's Being Tested:
    - put_object requests AES256 server-side encryption
    - NoSuchKey maps to ObjectNotFoundError
    - Throttling maps to STORE_UNAVAILABLE
    - list_objects and get_object_versions read every page
"""

import io
from datetime import datetime, timezone

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from deploygate.core.exceptions import ObjectNotFoundError, StoreError
from deploygate.infrastructure.s3_store import S3ObjectStore


BUCKET = "readme-deploy-test"


@pytest.fixture
def s3_client():
    """S3 client with dummy credentials; every call is stubbed."""
    return boto3.client(
        "s3",
        region_name="ap-northeast-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubbed(s3_client):
    """(store, stubber) pair with the stubber active."""
    with Stubber(s3_client) as stubber:
        yield S3ObjectStore(BUCKET, client=s3_client), stubber
        stubber.assert_no_pending_responses()


class TestS3ObjectStore:
    """Tests for the boto3 adapter."""

    async def test_put_object_requests_encryption(self, stubbed) -> None:
        store, stubber = stubbed
        stubber.add_response(
            "put_object",
            {"VersionId": "v-1", "ServerSideEncryption": "AES256"},
            {
                "Bucket": BUCKET,
                "Key": "README.md",
                "Body": b"# hello",
                "ServerSideEncryption": "AES256",
            },
        )

        version = await store.put_object("README.md", b"# hello")
        assert version.version_id == "v-1"
        assert version.encryption == "AES256"
        assert version.size_bytes == 7

    async def test_get_object_reads_body(self, stubbed) -> None:
        store, stubber = stubbed
        stubber.add_response(
            "get_object",
            {"Body": StreamingBody(io.BytesIO(b"zipdata"), len(b"zipdata"))},
            {"Bucket": BUCKET, "Key": "source.zip"},
        )

        assert await store.get_object("source.zip") == b"zipdata"

    async def test_missing_key_maps_to_object_not_found(self, stubbed) -> None:
        store, stubber = stubbed
        stubber.add_client_error(
            "get_object",
            service_error_code="NoSuchKey",
            http_status_code=404,
            expected_params={"Bucket": BUCKET, "Key": "source.zip"},
        )

        with pytest.raises(ObjectNotFoundError):
            await store.get_object("source.zip")

    async def test_throttling_maps_to_store_unavailable(self, stubbed) -> None:
        store, stubber = stubbed
        stubber.add_client_error(
            "put_object",
            service_error_code="SlowDown",
            http_status_code=503,
        )

        with pytest.raises(StoreError) as exc_info:
            await store.put_object("README.md", b"x")
        assert exc_info.value.error_code == "STORE_UNAVAILABLE"
        assert exc_info.value.details["aws_error_code"] == "SlowDown"

    async def test_access_denied_maps_to_store_error(self, stubbed) -> None:
        store, stubber = stubbed
        stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)

        with pytest.raises(StoreError) as exc_info:
            await store.put_object("README.md", b"x")
        assert exc_info.value.error_code == "STORE_ERROR"

    async def test_list_objects_paginates(self, stubbed) -> None:
        store, stubber = stubbed
        stubber.add_response(
            "list_objects_v2",
            {
                "Contents": [{"Key": "b.md"}],
                "IsTruncated": True,
                "NextContinuationToken": "token-2",
            },
            {"Bucket": BUCKET, "Prefix": ""},
        )
        stubber.add_response(
            "list_objects_v2",
            {"Contents": [{"Key": "a.md"}], "IsTruncated": False},
            {"Bucket": BUCKET, "Prefix": "", "ContinuationToken": "token-2"},
        )

        assert await store.list_objects() == ["a.md", "b.md"]

    async def test_get_object_versions_newest_first(self, stubbed) -> None:
        store, stubber = stubbed
        older = datetime(2024, 1, 1, tzinfo=timezone.utc)
        newer = datetime(2024, 2, 1, tzinfo=timezone.utc)
        stubber.add_response(
            "list_object_versions",
            {
                "Versions": [
                    {"Key": "README.md", "VersionId": "v1", "Size": 1, "IsLatest": False, "LastModified": older},
                    {"Key": "README.md", "VersionId": "v2", "Size": 2, "IsLatest": True, "LastModified": newer},
                    {"Key": "README.md.bak", "VersionId": "v9", "Size": 9, "IsLatest": True, "LastModified": newer},
                ]
            },
            {"Bucket": BUCKET, "Prefix": "README.md"},
        )

        versions = await store.get_object_versions("README.md")
        assert [v.version_id for v in versions] == ["v2", "v1"]
        assert versions[0].is_latest

    async def test_get_object_versions_follows_every_page(self, stubbed) -> None:
        store, stubber = stubbed
        first = datetime(2024, 1, 1, tzinfo=timezone.utc)
        second = datetime(2024, 2, 1, tzinfo=timezone.utc)
        third = datetime(2024, 3, 1, tzinfo=timezone.utc)
        stubber.add_response(
            "list_object_versions",
            {
                "Versions": [
                    {"Key": "README.md", "VersionId": "v3", "Size": 3, "IsLatest": True, "LastModified": third},
                    {"Key": "README.md", "VersionId": "v2", "Size": 2, "IsLatest": False, "LastModified": second},
                ],
                "IsTruncated": True,
                "NextKeyMarker": "README.md",
                "NextVersionIdMarker": "v2",
            },
            {"Bucket": BUCKET, "Prefix": "README.md"},
        )
        stubber.add_response(
            "list_object_versions",
            {
                "Versions": [
                    {"Key": "README.md", "VersionId": "v1", "Size": 1, "IsLatest": False, "LastModified": first},
                ],
                "IsTruncated": False,
            },
            {"Bucket": BUCKET, "Prefix": "README.md", "KeyMarker": "README.md", "VersionIdMarker": "v2"},
        )

        versions = await store.get_object_versions("README.md")
        assert [v.version_id for v in versions] == ["v3", "v2", "v1"]

    async def test_listing_error_on_later_page(self, stubbed) -> None:
        store, stubber = stubbed
        stubber.add_response(
            "list_objects_v2",
            {"Contents": [{"Key": "a.md"}], "IsTruncated": True, "NextContinuationToken": "token-2"},
            {"Bucket": BUCKET, "Prefix": ""},
        )
        stubber.add_client_error("list_objects_v2", service_error_code="ServiceUnavailable", http_status_code=503)

        with pytest.raises(StoreError) as exc_info:
            await store.list_objects()
        assert exc_info.value.error_code == "STORE_UNAVAILABLE"

    async def test_plaintext_transport_refused_without_request(self, stubbed) -> None:
        store, _ = stubbed
        with pytest.raises(StoreError) as exc_info:
            await store.get_object("source.zip", secure=False)
        assert exc_info.value.error_code == "INSECURE_TRANSPORT"
