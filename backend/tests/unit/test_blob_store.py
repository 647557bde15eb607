"""
Unit Tests — S3BlobStore
═════════════════════════
The aioboto3 client is replaced by an AsyncMock behind a MagicMock context
manager; no AWS or LocalStack needed.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from ragchat.core.exceptions import BlobStoreUnavailable
from ragchat.storage.s3 import S3BlobStore


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "GetObject")


@pytest.fixture
def s3():
    return AsyncMock()


@pytest.fixture
def store(s3):
    store = S3BlobStore(bucket="test-bucket", prefix="pdfs")
    cm = MagicMock()
    cm.__aenter__.return_value = s3
    cm.__aexit__.return_value = False
    store._client = MagicMock(return_value=cm)
    return store


@pytest.mark.unit
class TestS3BlobStore:

    async def test_put_uses_tenant_scoped_key(self, store, s3, test_tenant_id):
        blob = await store.put(test_tenant_id, "../../evil.pdf", b"%PDF-1.4")

        assert blob.key.startswith(f"pdfs/{test_tenant_id}/")
        assert blob.key.endswith(".pdf")
        assert "evil" not in blob.key
        assert blob.size_bytes == 8
        kwargs = s3.put_object.await_args.kwargs
        assert kwargs["Bucket"] == "test-bucket"
        assert kwargs["Key"] == blob.key
        assert kwargs["ContentType"] == "application/pdf"

    async def test_keys_are_unique(self, store, test_tenant_id):
        first  = await store.put(test_tenant_id, "a.pdf", b"%PDF")
        second = await store.put(test_tenant_id, "a.pdf", b"%PDF")
        assert first.key != second.key

    async def test_put_failure_raises_blob_store_unavailable(self, store, s3, test_tenant_id):
        s3.put_object.side_effect = EndpointConnectionError(endpoint_url="http://s3")
        with pytest.raises(BlobStoreUnavailable):
            await store.put(test_tenant_id, "a.pdf", b"%PDF")

    async def test_get_missing_key_raises_file_not_found(self, store, s3):
        s3.get_object.side_effect = _client_error("NoSuchKey")
        with pytest.raises(FileNotFoundError):
            await store.get("pdfs/t/missing.pdf")

    async def test_get_returns_body(self, store, s3):
        body = AsyncMock()
        body.read.return_value = b"%PDF-1.7 data"
        s3.get_object.return_value = {"Body": body}
        assert await store.get("pdfs/t/x.pdf") == b"%PDF-1.7 data"

    async def test_delete_failure_raises(self, store, s3):
        s3.delete_object.side_effect = _client_error("AccessDenied")
        with pytest.raises(BlobStoreUnavailable):
            await store.delete("pdfs/t/x.pdf")
