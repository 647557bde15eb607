"""
S3 Blob Store — Temporary PDF Storage

Uploaded PDFs live in S3 only until the worker has extracted their text;
the pipeline then hard-deletes the object. Nothing else is stored here.

Key layout (server-constructed, never accepted from the client):
    <s3_prefix>/<tenant_id>/<uuid4>.pdf

The original filename is kept in object metadata only, so a hostile
filename can never influence the key.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from uuid import UUID

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from ragchat.core.config import settings
from ragchat.core.exceptions import BlobStoreUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredBlob:
    """Returned by put(): the key the worker fetches, and a display URL."""
    key:  str
    url:  str
    size_bytes: int


class S3BlobStore:
    """Async S3 put/get/delete for pending PDF uploads."""

    def __init__(self, bucket: str | None = None, prefix: str | None = None) -> None:
        self._bucket  = bucket or settings.s3_bucket
        self._prefix  = (prefix or settings.s3_prefix).strip("/")
        self._session = aioboto3.Session(
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client(
            "s3",
            region_name=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url or None,
        )

    def _key_for(self, tenant_id: UUID) -> str:
        return f"{self._prefix}/{tenant_id}/{uuid.uuid4()}.pdf"

    def _url_for(self, key: str) -> str:
        if settings.s3_endpoint_url:
            return f"{settings.s3_endpoint_url.rstrip('/')}/{self._bucket}/{key}"
        return f"https://{self._bucket}.s3.{settings.aws_region}.amazonaws.com/{key}"

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def put(self, tenant_id: UUID, filename: str, data: bytes) -> StoredBlob:
        """Store a PDF under a fresh tenant-scoped key."""
        key = self._key_for(tenant_id)
        try:
            async with self._client() as s3:
                await s3.put_object(
                    Bucket=self._bucket,
                    Key=key,
                    Body=data,
                    ContentType="application/pdf",
                    Metadata={
                        "tenant_id": str(tenant_id),
                        "filename":  filename.encode("ascii", "replace").decode("ascii"),
                    },
                )
        except (ClientError, BotoCoreError) as exc:
            logger.error("S3 upload failed | tenant=%s key=%s error=%s", tenant_id, key, exc)
            raise BlobStoreUnavailable(str(exc)) from exc

        logger.info("S3 upload ok | tenant=%s key=%s size=%d", tenant_id, key, len(data))
        return StoredBlob(key=key, url=self._url_for(key), size_bytes=len(data))

    async def get(self, key: str) -> bytes:
        try:
            async with self._client() as s3:
                resp = await s3.get_object(Bucket=self._bucket, Key=key)
                return await resp["Body"].read()
        except ClientError as exc:
            code = exc.response["Error"]["Code"]
            if code in ("NoSuchKey", "404"):
                raise FileNotFoundError(f"Object not found: {key}") from exc
            raise BlobStoreUnavailable(str(exc)) from exc
        except BotoCoreError as exc:
            raise BlobStoreUnavailable(str(exc)) from exc

    async def delete(self, key: str) -> None:
        """Permanently remove the object. S3 treats a missing key as success."""
        try:
            async with self._client() as s3:
                await s3.delete_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreUnavailable(str(exc)) from exc
        logger.info("S3 delete | key=%s", key)
