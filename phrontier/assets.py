"""
Asset store gateway: binary uploads to an S3-compatible bucket.

Objects are written under a random prefix so two files with the
same name never collide. The gateway only validates size and normalizes
errors; it never touches the resource store.
"""

import asyncio
import re
import uuid
from typing import Any, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from .errors import (
    ConfigurationError,
    EmptyPayload,
    PayloadTooLarge,
    StorageUnavailable,
    UploadTimeout,
)
from .settings import Settings
from .shared.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
KEY_PREFIX = "uploads"


def safe_filename(filename: Optional[str]) -> str:
    """Reduce a client-supplied name to a safe object-key segment."""
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    name = re.sub(r"[^A-Za-z0-9._-]+", "-", name).strip("-.")
    return name[:120] or "unnamed-file"


def format_size(num_bytes: int) -> str:
    return f"{num_bytes / (1024 * 1024):.0f} MB" if num_bytes >= 1024 * 1024 else f"{num_bytes // 1024} KB"


class AssetStore:
    """Upload bytes to the bucket and hand back a public URL."""

    def __init__(
        self,
        bucket: Optional[str],
        client: Optional[Any] = None,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        public_url: Optional[str] = None,
        max_bytes: int = 25 * 1024 * 1024,
        timeout: float = 180.0,
    ):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.public_url = public_url.rstrip("/") if public_url else None
        self.max_bytes = max_bytes
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "AssetStore":
        return cls(
            bucket=settings.blob_bucket,
            region=settings.blob_region,
            endpoint_url=settings.blob_endpoint_url,
            public_url=settings.blob_public_url,
            max_bytes=settings.upload_max_bytes,
            timeout=settings.upload_timeout,
        )

    @property
    def configured(self) -> bool:
        return self.bucket is not None

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.region,
                endpoint_url=self.endpoint_url,  # For MinIO, R2, LocalStack
                config=Config(
                    connect_timeout=10,
                    read_timeout=self.timeout,
                    retries={"max_attempts": 2},
                ),
            )
        return self._client

    def object_url(self, key: str) -> str:
        """Public URL of an object key."""
        quoted = quote(key)
        if self.public_url:
            return f"{self.public_url}/{quoted}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{quoted}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quoted}"

    def validate(self, data: bytes) -> None:
        if not data:
            raise EmptyPayload("No file content found in request body.")
        if len(data) > self.max_bytes:
            raise PayloadTooLarge(
                f"File is {format_size(len(data))}, above the {format_size(self.max_bytes)} upload limit.",
                limit=self.max_bytes,
                hint="Try a smaller file, or host it elsewhere and paste a direct URL instead.",
            )

    def upload_sync(self, data: bytes, filename: Optional[str], content_type: Optional[str]) -> str:
        """Blocking upload; see ``upload``."""
        self.validate(data)
        if not self.configured:
            raise ConfigurationError(
                "Object storage is not configured.",
                hint="Set PHRONTIER_BLOB_BUCKET and the storage credentials.",
            )

        key = f"{KEY_PREFIX}/{uuid.uuid4().hex[:12]}-{safe_filename(filename)}"
        try:
            self._get_client().put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or DEFAULT_CONTENT_TYPE,
            )
        except NoCredentialsError as e:
            logger.error("Upload failed, no storage credentials: %s", e)
            raise ConfigurationError(
                "Object storage credentials are missing.",
                hint="Configure AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY for the bucket.",
            ) from e
        except (ReadTimeoutError, ConnectTimeoutError) as e:
            logger.warning("Upload of %s timed out: %s", key, e)
            raise UploadTimeout("Upload timed out.", hint="Check your connection and try again.") from e
        except (ClientError, EndpointConnectionError, BotoCoreError) as e:
            logger.error("Upload of %s to bucket %s failed: %s", key, self.bucket, e)
            raise StorageUnavailable(f"Object storage rejected the upload: {e}") from e

        url = self.object_url(key)
        logger.info("Uploaded %d bytes to %s", len(data), url)
        return url

    async def upload(self, data: bytes, filename: Optional[str], content_type: Optional[str]) -> str:
        """Upload ``data`` and return its public URL.

        Raises EmptyPayload, PayloadTooLarge, ConfigurationError,
        StorageUnavailable or UploadTimeout.
        """
        self.validate(data)
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, self.upload_sync, data, filename, content_type),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Upload of %s exceeded %.0fs", filename, self.timeout)
            raise UploadTimeout("Upload timed out.", hint="Check your connection and try again.") from e
