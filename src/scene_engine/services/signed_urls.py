"""Time-limited read URLs for frames and media, cached per subject key.

A cached URL is handed out only while more than ``margin`` of its lifetime
remains, so a consumer never receives a URL that expires before it can be
used. At most one signing per key is in flight; concurrent callers for the
same key await the same result.
"""

import asyncio
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from functools import partial

from scene_engine.adapters.storage.base import ObjectStorage
from scene_engine.config import settings
from scene_engine.domain.errors import ValidationError
from scene_engine.domain.models import SignedUrl
from scene_engine.logging import get_logger
from scene_engine.utils import utcnow

logger = get_logger(__name__)


class SignedUrlCache:
    """Issues and refreshes signed read URLs through an ``ObjectStorage``."""

    def __init__(
        self,
        storage: ObjectStorage,
        ttl_seconds: int | None = None,
        refresh_fraction: float | None = None,
        min_margin_seconds: int | None = None,
        max_entries: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.storage = storage
        self.ttl_seconds = ttl_seconds or settings.signed_url_ttl_seconds
        fraction = (
            refresh_fraction
            if refresh_fraction is not None
            else settings.signed_url_refresh_fraction
        )
        min_margin = (
            min_margin_seconds
            if min_margin_seconds is not None
            else settings.signed_url_min_margin_seconds
        )
        self.ttl = timedelta(seconds=self.ttl_seconds)
        self.margin = max(self.ttl * fraction, timedelta(seconds=min_margin))
        if self.margin >= self.ttl:
            raise ValueError(
                f"Refresh margin {self.margin} must be shorter than the URL lifetime {self.ttl}"
            )
        self.max_entries = max_entries or settings.signed_url_max_entries
        self._clock = clock
        self._entries: dict[str, SignedUrl] = {}
        self._inflight: dict[str, asyncio.Task[SignedUrl]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def is_fresh(self, entry: SignedUrl, now: datetime | None = None) -> bool:
        """Whether an entry may still be handed out."""
        return entry.remaining(now or self._clock()) > self.margin

    async def get_url(self, subject_key: str) -> SignedUrl:
        """Return a signed URL for ``subject_key`` with more than ``margin`` left.

        Raises:
            ValidationError: If the key is empty
            ExternalServiceError: If signing fails
        """
        if not subject_key:
            raise ValidationError("Subject key is required", field="subject_key")

        entry = self._entries.get(subject_key)
        if entry is not None and self.is_fresh(entry):
            return entry

        loop = asyncio.get_running_loop()
        task = self._inflight.get(subject_key)
        if task is None or task.get_loop() is not loop:
            # The signing outlives any one caller; cancelling a caller leaves it running
            task = loop.create_task(self._issue(subject_key))
            self._inflight[subject_key] = task
            task.add_done_callback(partial(self._issue_done, subject_key))
        return await asyncio.shield(task)

    def _issue_done(self, subject_key: str, task: asyncio.Task[SignedUrl]) -> None:
        if self._inflight.get(subject_key) is task:
            del self._inflight[subject_key]
        # Waiters re-raise a failure; one nobody awaited must not warn
        if not task.cancelled():
            task.exception()

    async def get_urls(self, subject_keys: Iterable[str]) -> dict[str, SignedUrl]:
        """Sign several keys concurrently; duplicates are signed once."""
        keys = list(dict.fromkeys(k for k in subject_keys if k))
        urls = await asyncio.gather(*(self.get_url(key) for key in keys))
        return dict(zip(keys, urls, strict=True))

    async def _issue(self, subject_key: str) -> SignedUrl:
        issued_at = self._clock()
        url = await asyncio.to_thread(self.storage.sign_url, subject_key, self.ttl_seconds)
        entry = SignedUrl(
            subject_key=subject_key,
            url=url,
            issued_at=issued_at,
            expires_at=issued_at + self.ttl,
        )
        self._entries[subject_key] = entry
        if len(self._entries) > self.max_entries:
            self.prune()

        logger.debug(
            "signed_url_issued",
            subject_key=subject_key,
            storage=self.storage.name,
            expires_at=entry.expires_at.isoformat(),
        )
        return entry

    def invalidate(self, subject_key: str) -> None:
        """Drop a cached URL so the next read signs a fresh one."""
        self._entries.pop(subject_key, None)

    def prune(self, now: datetime | None = None) -> int:
        """Remove entries that can no longer be handed out.

        Returns:
            Number of entries removed
        """
        now = now or self._clock()
        stale = [key for key, entry in self._entries.items() if not self.is_fresh(entry, now)]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(
                "signed_url_cache_pruned", removed=len(stale), remaining=len(self._entries)
            )
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
