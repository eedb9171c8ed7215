"""Base interface for object storage (frames and generated media)."""

from abc import ABC, abstractmethod


class ObjectStorage(ABC):
    """Abstract base class for object storage backends.

    Implementations:
    - LocalObjectStorage: Files on disk, HMAC-signed URLs served by the API
    - S3ObjectStorage: S3 bucket with presigned GET URLs
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Storage backend identifier."""
        ...

    @abstractmethod
    def sign_url(self, key: str, ttl_seconds: int) -> str:
        """Issue a read URL for ``key`` valid for ``ttl_seconds``.

        Blocking; async callers run it in a worker thread.
        """
        ...

    @abstractmethod
    async def store_from_url(
        self,
        url: str,
        key: str,
        headers: dict[str, str] | None = None,
    ) -> str:
        """Copy a remote object (e.g. a generated video) under ``key``.

        Returns:
            The storage key the object was written to
        """
        ...
