"""S3-compatible object storage for raw videos and thumbnails.

This module provides:
- The ``ObjectStorage`` interface the pipeline depends on
- ``S3ObjectStorage``, an aioboto3 implementation with path-style URLs
- Pre-signed URLs for one-time client writes and time-limited reads
- Canonical storage path generation
"""

import re
import time
from abc import ABC, abstractmethod
from typing import Optional

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from videoai.core.logger import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def sanitize_filename(filename: str) -> str:
    """Replace everything outside ``[a-zA-Z0-9.-]`` with underscores."""
    return _UNSAFE_CHARS.sub("_", filename) or "file"


def build_storage_path(owner_id: str, filename: str, now_ms: Optional[int] = None) -> str:
    """Canonical key ``{owner_id}/{epoch_millis}_{sanitized_filename}``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{owner_id}/{now_ms}_{sanitize_filename(filename)}"


class ObjectStorage(ABC):
    """Blob store used for raw videos and thumbnail images."""

    @abstractmethod
    async def presigned_put_url(
        self, bucket: str, key: str, content_type: str, expires_in: int
    ) -> str:
        """One-time write URL for a direct client upload."""

    @abstractmethod
    async def presigned_get_url(self, bucket: str, key: str, expires_in: int) -> str:
        """Time-limited read URL."""

    @abstractmethod
    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> bool:
        """Store bytes. Returns False when the store refuses them."""

    @abstractmethod
    async def exists(self, bucket: str, key: str) -> bool:
        """Direct existence check of a single object."""

    @abstractmethod
    async def list_keys(self, bucket: str, prefix: str) -> list[str]:
        """Keys under ``prefix``."""

    @abstractmethod
    async def delete(self, bucket: str, key: str) -> bool:
        """Remove an object. Returns False on failure."""


class S3ObjectStorage(ObjectStorage):
    """S3-compatible storage service (MinIO, ClawCloud, AWS)."""

    def __init__(
        self,
        endpoint: str,
        access_key: Optional[str],
        secret_key: Optional[str],
        region: str = "us-east-1",
        use_ssl: bool = True,
    ):
        self.access_key = access_key
        self.secret_key = secret_key
        self.region = region
        self.use_ssl = use_ssl
        self.endpoint = endpoint

        # Boto3 config for path-style URLs
        self._config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
        )

    def _get_session(self) -> aioboto3.Session:
        """Create authenticated aioboto3 session."""
        return aioboto3.Session(
            aws_access_key_id=self.access_key,
            aws_secret_access_key=self.secret_key,
            region_name=self.region,
        )

    def _get_endpoint_url(self) -> str:
        endpoint = self.endpoint
        if not endpoint.startswith("http"):
            protocol = "https" if self.use_ssl else "http"
            endpoint = f"{protocol}://{endpoint}"
        return endpoint

    def _client(self):
        return self._get_session().client(
            "s3",
            endpoint_url=self._get_endpoint_url(),
            config=self._config,
        )

    async def presigned_put_url(
        self, bucket: str, key: str, content_type: str, expires_in: int = 3600
    ) -> str:
        """
        Generate pre-signed PUT URL for direct client upload.

        Args:
            bucket: Target bucket
            key: S3 key where the file will be uploaded
            content_type: MIME type of the file
            expires_in: URL expiration time in seconds (default 1 hour)
        """
        async with self._client() as s3:
            url = await s3.generate_presigned_url(
                "put_object",
                Params={
                    "Bucket": bucket,
                    "Key": key,
                    "ContentType": content_type,
                },
                ExpiresIn=expires_in,
            )

        logger.info(f"Generated pre-signed PUT URL for s3://{bucket}/{key}")
        return url

    async def presigned_get_url(self, bucket: str, key: str, expires_in: int = 3600) -> str:
        """Generate pre-signed GET URL for reading a file."""
        async with self._client() as s3:
            return await s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in,
            )

    async def put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> bool:
        try:
            async with self._client() as s3:
                await s3.put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                )
            logger.info(f"Uploaded file to s3://{bucket}/{key}")
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 upload failed for s3://{bucket}/{key}: {e}")
            return False

    async def exists(self, bucket: str, key: str) -> bool:
        """Check if a file exists in S3."""
        try:
            async with self._client() as s3:
                await s3.head_object(Bucket=bucket, Key=key)
            return True
        except (BotoCoreError, ClientError):
            return False

    async def list_keys(self, bucket: str, prefix: str) -> list[str]:
        keys: list[str] = []
        async with self._client() as s3:
            paginator = s3.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return keys

    async def delete(self, bucket: str, key: str) -> bool:
        try:
            async with self._client() as s3:
                await s3.delete_object(Bucket=bucket, Key=key)
            logger.info(f"Deleted s3://{bucket}/{key}")
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 delete failed for s3://{bucket}/{key}: {e}")
            return False

    async def ensure_buckets_exist(self, buckets: list[str]) -> None:
        """Ensure required buckets exist (create if not)."""
        async with self._client() as s3:
            for bucket in buckets:
                try:
                    await s3.head_bucket(Bucket=bucket)
                    logger.info(f"Bucket exists: {bucket}")
                except ClientError:
                    try:
                        await s3.create_bucket(Bucket=bucket)
                        logger.info(f"Created bucket: {bucket}")
                    except (BotoCoreError, ClientError) as e:
                        logger.error(f"Failed to ensure bucket {bucket}: {e}")
