"""Local filesystem storage with HMAC-signed URLs."""

import hashlib
import hmac
import time
from collections.abc import Callable
from pathlib import Path
from urllib.parse import quote, urlencode

import httpx

from scene_engine.adapters.storage.base import ObjectStorage
from scene_engine.config import settings
from scene_engine.domain.errors import ExternalServiceError
from scene_engine.logging import get_logger

logger = get_logger(__name__)


class LocalObjectStorage(ObjectStorage):
    """Objects under a base directory, served by the API's ``/media`` route.

    Signed URLs carry ``expires`` (unix seconds) and ``signature`` query
    parameters; ``verify`` checks both.
    """

    def __init__(
        self,
        base_path: Path | None = None,
        public_base_url: str | None = None,
        secret: str | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.base_path = base_path or Path(settings.storage_local_path)
        self.public_base_url = (public_base_url or settings.storage_public_base_url).rstrip("/")
        self._secret = (secret or settings.storage_signing_secret).encode()
        self._clock = clock or time.time

    @property
    def name(self) -> str:
        return "local"

    def _signature(self, key: str, expires: int) -> str:
        message = f"{key}:{expires}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def sign_url(self, key: str, ttl_seconds: int) -> str:
        expires = int(self._clock()) + ttl_seconds
        query = urlencode({"expires": expires, "signature": self._signature(key, expires)})
        return f"{self.public_base_url}/{quote(key)}?{query}"

    def verify(self, key: str, expires: int, signature: str) -> bool:
        """Check a signed URL's parameters for ``key``."""
        if expires < self._clock():
            return False
        return hmac.compare_digest(self._signature(key, expires), signature)

    def path_for(self, key: str) -> Path:
        """Resolve a key to a file path inside the base directory."""
        base = self.base_path.resolve()
        path = (base / key).resolve()
        if not path.is_relative_to(base):
            raise ValueError(f"Key escapes storage root: {key}")
        return path

    async def store_from_url(
        self,
        url: str,
        key: str,
        headers: dict[str, str] | None = None,
    ) -> str:
        path = self.path_for(key)
        partial = path.with_name(f"{path.name}.part")
        logger.info("storage_download_started", url=url[:100], destination=str(path))

        path.parent.mkdir(parents=True, exist_ok=True)
        size = 0
        try:
            async with httpx.AsyncClient(timeout=300.0, follow_redirects=True) as client:
                async with client.stream("GET", url, headers=headers) as response:
                    response.raise_for_status()
                    with partial.open("wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
                            size += len(chunk)
        except httpx.HTTPError as e:
            partial.unlink(missing_ok=True)
            logger.error("storage_download_failed", url=url[:100], error=str(e))
            raise ExternalServiceError(self.name, f"Download failed for {key}: {e}") from e

        # Readers never see a half-written file
        partial.replace(path)

        logger.info("storage_download_completed", file_path=str(path), file_size=size)
        return key
