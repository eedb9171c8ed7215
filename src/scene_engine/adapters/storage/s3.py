"""S3 object storage with presigned URLs."""

import asyncio
import tempfile
from typing import Any

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError

from scene_engine.adapters.storage.base import ObjectStorage
from scene_engine.config import settings
from scene_engine.domain.errors import ExternalServiceError
from scene_engine.logging import get_logger

logger = get_logger(__name__)


class S3ObjectStorage(ObjectStorage):
    """Frames and media in an S3 bucket, read through presigned GET URLs."""

    def __init__(
        self,
        bucket: str | None = None,
        client: Any | None = None,
        download_timeout: float = 300.0,
    ) -> None:
        self.bucket = bucket or settings.storage_bucket
        self.download_timeout = download_timeout
        self.s3_client = client or boto3.client(
            "s3",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )

    @property
    def name(self) -> str:
        return "s3"

    def sign_url(self, key: str, ttl_seconds: int) -> str:
        try:
            url: str = self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("s3_presigned_url_failed", key=key, error=str(e))
            raise ExternalServiceError(self.name, f"Failed to sign {key}: {e}") from e

        logger.debug("s3_presigned_url_generated", key=key, expiry_seconds=ttl_seconds)
        return url

    async def store_from_url(
        self,
        url: str,
        key: str,
        headers: dict[str, str] | None = None,
    ) -> str:
        logger.info("s3_ingest_started", url=url[:100], key=key)
        with tempfile.TemporaryFile() as buffer:
            try:
                async with httpx.AsyncClient(
                    timeout=self.download_timeout, follow_redirects=True
                ) as client:
                    async with client.stream("GET", url, headers=headers) as response:
                        response.raise_for_status()
                        content_type = response.headers.get("content-type", "video/mp4")
                        async for chunk in response.aiter_bytes():
                            buffer.write(chunk)
            except httpx.HTTPError as e:
                logger.error("s3_ingest_download_failed", url=url[:100], error=str(e))
                raise ExternalServiceError(self.name, f"Download failed for {key}: {e}") from e

            size = buffer.tell()
            buffer.seek(0)
            try:
                await asyncio.to_thread(
                    self.s3_client.upload_fileobj,
                    buffer,
                    self.bucket,
                    key,
                    ExtraArgs={"ContentType": content_type},
                )
            except (BotoCoreError, ClientError) as e:
                logger.error("s3_upload_failed", key=key, error=str(e))
                raise ExternalServiceError(self.name, f"Upload failed for {key}: {e}") from e

        logger.info("s3_ingest_completed", key=key, size=size)
        return key
