"""Tests for object storage adapters."""

from typing import Any, BinaryIO
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from scene_engine.adapters.storage.local import LocalObjectStorage
from scene_engine.adapters.storage.s3 import S3ObjectStorage
from scene_engine.domain.errors import ExternalServiceError


class FakeS3Client:
    """Records calls made through the boto3 client interface."""

    def __init__(self) -> None:
        self.presigned: list[dict[str, Any]] = []
        self.objects: dict[str, bytes] = {}
        self.extra_args: dict[str, dict[str, Any]] = {}

    def generate_presigned_url(self, operation: str, Params: dict[str, Any], ExpiresIn: int) -> str:
        self.presigned.append({"operation": operation, "params": Params, "expires_in": ExpiresIn})
        return f"https://{Params['Bucket']}.s3.test/{Params['Key']}?X-Amz-Expires={ExpiresIn}"

    def upload_fileobj(
        self, Fileobj: BinaryIO, Bucket: str, Key: str, ExtraArgs: dict[str, Any] | None = None
    ) -> None:
        self.objects[Key] = Fileobj.read()
        self.extra_args[Key] = ExtraArgs or {}


async def _chunked(*parts: bytes):
    for part in parts:
        yield part


def _patch_downloads(monkeypatch: pytest.MonkeyPatch, handler) -> None:
    """Route every httpx.AsyncClient through a mock transport."""
    real_client = httpx.AsyncClient

    def client_factory(*args: Any, **kwargs: Any) -> httpx.AsyncClient:
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)


class ManualTime:
    def __init__(self, start: float) -> None:
        self.t = start

    def __call__(self) -> float:
        return self.t


@pytest.fixture
def unix_time() -> ManualTime:
    return ManualTime(1_000_000.0)


@pytest.fixture
def local_storage(tmp_path, unix_time) -> LocalObjectStorage:
    return LocalObjectStorage(
        base_path=tmp_path / "media",
        public_base_url="http://media.test/media/",
        secret="secret",
        clock=unix_time,
    )


class TestLocalObjectStorage:
    """HMAC-signed URLs over a local directory."""

    def test_signed_url_verifies(self, local_storage) -> None:
        url = urlparse(local_storage.sign_url("frames/a b.png", 60))
        query = parse_qs(url.query)

        assert url.path == "/media/frames/a%20b.png"
        expires = int(query["expires"][0])
        assert expires == 1_000_060
        assert local_storage.verify("frames/a b.png", expires, query["signature"][0])

    def test_signature_is_bound_to_key(self, local_storage) -> None:
        query = parse_qs(urlparse(local_storage.sign_url("frames/a.png", 60)).query)
        assert not local_storage.verify(
            "frames/b.png", int(query["expires"][0]), query["signature"][0]
        )

    def test_expired_url_fails(self, local_storage, unix_time) -> None:
        query = parse_qs(urlparse(local_storage.sign_url("frames/a.png", 60)).query)
        unix_time.t += 61
        assert not local_storage.verify(
            "frames/a.png", int(query["expires"][0]), query["signature"][0]
        )

    def test_keys_cannot_escape_root(self, local_storage) -> None:
        with pytest.raises(ValueError):
            local_storage.path_for("../outside.txt")

    @pytest.mark.asyncio
    async def test_store_from_url_writes_file(self, local_storage, monkeypatch) -> None:
        _patch_downloads(monkeypatch, lambda request: httpx.Response(200, content=b"video"))

        key = await local_storage.store_from_url("https://cdn.test/v.mp4", "scenes/1/job.mp4")

        assert key == "scenes/1/job.mp4"
        assert local_storage.path_for(key).read_bytes() == b"video"

    @pytest.mark.asyncio
    async def test_store_from_url_streams_to_file(self, local_storage, monkeypatch) -> None:
        _patch_downloads(
            monkeypatch,
            lambda request: httpx.Response(200, content=_chunked(b"vid", b"eo-", b"data")),
        )

        key = await local_storage.store_from_url("https://cdn.test/v.mp4", "scenes/1/job.mp4")

        path = local_storage.path_for(key)
        assert path.read_bytes() == b"video-data"
        assert [p.name for p in path.parent.iterdir()] == ["job.mp4"]

    @pytest.mark.asyncio
    async def test_failed_download_raises(self, local_storage, monkeypatch) -> None:
        _patch_downloads(monkeypatch, lambda request: httpx.Response(404))

        with pytest.raises(ExternalServiceError):
            await local_storage.store_from_url("https://cdn.test/gone.mp4", "scenes/1/job.mp4")
        assert not local_storage.path_for("scenes/1/job.mp4").exists()
        assert not local_storage.path_for("scenes/1/job.mp4.part").exists()


class TestS3ObjectStorage:
    """Presigned GET URLs and ingestion into the bucket."""

    def test_sign_url_uses_presigned_get(self) -> None:
        client = FakeS3Client()
        storage = S3ObjectStorage(bucket="frames", client=client)

        url = storage.sign_url("projects/1/start.png", 900)

        assert url.startswith("https://frames.s3.test/projects/1/start.png")
        assert client.presigned == [
            {
                "operation": "get_object",
                "params": {"Bucket": "frames", "Key": "projects/1/start.png"},
                "expires_in": 900,
            }
        ]

    @pytest.mark.asyncio
    async def test_store_from_url_uploads(self, monkeypatch) -> None:
        client = FakeS3Client()
        storage = S3ObjectStorage(bucket="media", client=client)
        _patch_downloads(
            monkeypatch,
            lambda request: httpx.Response(
                200, content=b"mp4-bytes", headers={"content-type": "video/mp4"}
            ),
        )

        key = await storage.store_from_url("https://cdn.test/out.mp4", "scenes/1/job.mp4")

        assert key == "scenes/1/job.mp4"
        assert client.objects == {"scenes/1/job.mp4": b"mp4-bytes"}
        assert client.extra_args == {"scenes/1/job.mp4": {"ContentType": "video/mp4"}}

    @pytest.mark.asyncio
    async def test_store_from_url_streams_chunks(self, monkeypatch) -> None:
        client = FakeS3Client()
        storage = S3ObjectStorage(bucket="media", client=client)
        _patch_downloads(
            monkeypatch,
            lambda request: httpx.Response(200, content=_chunked(b"mp4-", b"chunk-", b"bytes")),
        )

        await storage.store_from_url("https://cdn.test/out.mp4", "scenes/1/job.mp4")

        assert client.objects == {"scenes/1/job.mp4": b"mp4-chunk-bytes"}
        assert client.extra_args["scenes/1/job.mp4"] == {"ContentType": "video/mp4"}

    @pytest.mark.asyncio
    async def test_failed_download_uploads_nothing(self, monkeypatch) -> None:
        client = FakeS3Client()
        storage = S3ObjectStorage(bucket="media", client=client)
        _patch_downloads(monkeypatch, lambda request: httpx.Response(503))

        with pytest.raises(ExternalServiceError):
            await storage.store_from_url("https://cdn.test/out.mp4", "scenes/1/job.mp4")
        assert client.objects == {}
