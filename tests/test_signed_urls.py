"""Tests for the signed URL cache."""

import asyncio
import threading
from datetime import timedelta

import pytest

from scene_engine.adapters.storage.base import ObjectStorage
from scene_engine.domain.errors import ExternalServiceError, ValidationError
from scene_engine.services.signed_urls import SignedUrlCache


class FlakyStorage(ObjectStorage):
    """Fails the first ``failures`` signings, slowly enough for callers to pile up."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    @property
    def name(self) -> str:
        return "flaky"

    def sign_url(self, key: str, ttl_seconds: int) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ExternalServiceError(self.name, "signing unavailable")
        return f"https://flaky.test/{key}"

    async def store_from_url(self, url, key, headers=None) -> str:
        return key


class GatedStorage(ObjectStorage):
    """Blocks signing until the test releases it."""

    def __init__(self) -> None:
        self.release = threading.Event()
        self.calls = 0

    @property
    def name(self) -> str:
        return "gated"

    def sign_url(self, key: str, ttl_seconds: int) -> str:
        self.calls += 1
        self.release.wait(timeout=5)
        return f"https://gated.test/{key}"

    async def store_from_url(self, url, key, headers=None) -> str:
        return key


class TestSignedUrlCache:
    """Caching, refresh margin and single-flight signing."""

    def test_margin_uses_larger_of_fraction_and_floor(self, storage, clock) -> None:
        cache = SignedUrlCache(
            storage, ttl_seconds=600, refresh_fraction=0.1, min_margin_seconds=120, clock=clock
        )
        assert cache.margin == timedelta(seconds=120)

    def test_margin_must_be_shorter_than_lifetime(self, storage) -> None:
        with pytest.raises(ValueError):
            SignedUrlCache(storage, ttl_seconds=60, refresh_fraction=0.5, min_margin_seconds=60)

    @pytest.mark.asyncio
    async def test_empty_key_is_rejected(self, url_cache) -> None:
        with pytest.raises(ValidationError):
            await url_cache.get_url("")

    @pytest.mark.asyncio
    async def test_cached_url_is_reused(self, url_cache, storage, clock) -> None:
        first = await url_cache.get_url("frames/a.png")
        second = await url_cache.get_url("frames/a.png")

        assert first == second
        assert storage.sign_calls == ["frames/a.png"]
        assert first.issued_at == clock()
        assert first.expires_at == clock() + timedelta(seconds=3600)

    @pytest.mark.asyncio
    async def test_url_is_refreshed_inside_margin(self, url_cache, storage, clock) -> None:
        # ttl 3600s, margin max(360s, 30s)
        first = await url_cache.get_url("frames/a.png")

        clock.advance(3600 - 361)
        assert await url_cache.get_url("frames/a.png") == first

        clock.advance(1)
        refreshed = await url_cache.get_url("frames/a.png")

        assert refreshed.url != first.url
        assert refreshed.expires_at > first.expires_at
        assert len(storage.sign_calls) == 2

    @pytest.mark.asyncio
    async def test_handed_out_urls_outlive_the_margin(self, url_cache, clock) -> None:
        for _ in range(20):
            signed = await url_cache.get_url("frames/a.png")
            assert signed.remaining(clock()) > url_cache.margin
            clock.advance(300)

    @pytest.mark.asyncio
    async def test_concurrent_requests_sign_once(self, url_cache, storage) -> None:
        results = await asyncio.gather(*(url_cache.get_url("frames/a.png") for _ in range(10)))

        assert len(storage.sign_calls) == 1
        assert len({r.url for r in results}) == 1

    @pytest.mark.asyncio
    async def test_batch_deduplicates_keys(self, url_cache, storage) -> None:
        urls = await url_cache.get_urls(["frames/a.png", "frames/b.png", "frames/a.png", ""])

        assert set(urls) == {"frames/a.png", "frames/b.png"}
        assert sorted(storage.sign_calls) == ["frames/a.png", "frames/b.png"]

    @pytest.mark.asyncio
    async def test_signing_error_reaches_every_waiter(self, clock) -> None:
        storage = FlakyStorage(failures=1)
        cache = SignedUrlCache(storage, ttl_seconds=3600, clock=clock)

        results = await asyncio.gather(
            *(cache.get_url("frames/a.png") for _ in range(3)), return_exceptions=True
        )

        assert all(isinstance(r, ExternalServiceError) for r in results)
        assert storage.calls == 1
        assert len(cache) == 0

        # The failure is not cached
        signed = await cache.get_url("frames/a.png")
        assert signed.url == "https://flaky.test/frames/a.png"

    @pytest.mark.asyncio
    async def test_invalidate_forces_new_signing(self, url_cache, storage) -> None:
        await url_cache.get_url("frames/a.png")
        url_cache.invalidate("frames/a.png")
        await url_cache.get_url("frames/a.png")

        assert len(storage.sign_calls) == 2

    @pytest.mark.asyncio
    async def test_prune_drops_entries_inside_margin(self, url_cache, clock) -> None:
        await url_cache.get_url("frames/a.png")
        clock.advance(1800)
        await url_cache.get_url("frames/b.png")

        clock.advance(1500)
        assert url_cache.prune() == 1
        assert len(url_cache) == 1

    @pytest.mark.asyncio
    async def test_cancelled_first_caller_does_not_cancel_waiters(self, clock) -> None:
        storage = GatedStorage()
        cache = SignedUrlCache(storage, ttl_seconds=3600, clock=clock)

        first = asyncio.create_task(cache.get_url("frames/a.png"))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(cache.get_url("frames/a.png"))
        await asyncio.sleep(0)

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        storage.release.set()
        signed = await waiter

        assert signed.url == "https://gated.test/frames/a.png"
        assert storage.calls == 1
        assert len(cache) == 1
