"""Tests for the HTTP API."""

from urllib.parse import urlparse
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from scene_engine.config import settings
from scene_engine.services.factory import get_object_storage


@pytest.fixture
def headers(caller, auth_headers) -> dict[str, str]:
    return auth_headers(caller)


@pytest.fixture
def scene_id(test_client: TestClient, headers, project_id) -> str:
    response = test_client.post(
        f"/api/v1/projects/{project_id}/scenes",
        json={"start_frame_key": "frames/a.png", "end_frame_key": "frames/b.png"},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["id"]


class TestHealthEndpoints:
    """Health, liveness and root."""

    def test_health_endpoint(self, test_client: TestClient) -> None:
        response = test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["video_gen"] == "stub"
        assert data["components"]["storage"] == "local"

    def test_liveness_endpoint(self, test_client: TestClient) -> None:
        response = test_client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_root_endpoint(self, test_client: TestClient) -> None:
        data = test_client.get("/").json()
        assert data["name"] == "Scene Engine"
        assert "version" in data


class TestCallerResolution:
    """X-User-Id handling."""

    def test_missing_header(self, test_client: TestClient) -> None:
        assert test_client.get("/api/v1/projects").status_code == 401

    def test_malformed_header(self, test_client: TestClient) -> None:
        response = test_client.get("/api/v1/projects", headers={"X-User-Id": "not-a-uuid"})
        assert response.status_code == 401

    def test_unknown_user(self, test_client: TestClient) -> None:
        response = test_client.get("/api/v1/projects", headers={"X-User-Id": str(uuid4())})
        assert response.status_code == 401

    def test_pending_user_is_forbidden(
        self, test_client: TestClient, make_user, auth_headers
    ) -> None:
        pending = make_user(status="pending")

        response = test_client.get("/api/v1/projects", headers=auth_headers(pending))

        assert response.status_code == 403
        assert response.json()["error"] == "PermissionDeniedError"


class TestProjectEndpoints:
    """Projects and their scenes."""

    def test_create_and_list_projects(self, test_client: TestClient, headers) -> None:
        created = test_client.post("/api/v1/projects", json={"name": "Trailer"}, headers=headers)
        assert created.status_code == 201

        listed = test_client.get("/api/v1/projects", headers=headers).json()
        assert [p["name"] for p in listed] == ["Trailer"]

    def test_create_project_validation(self, test_client: TestClient, headers) -> None:
        response = test_client.post("/api/v1/projects", json={"name": ""}, headers=headers)
        assert response.status_code == 422

    def test_create_scene_queues_generation(
        self, test_client: TestClient, headers, project_id, dispatcher
    ) -> None:
        response = test_client.post(
            f"/api/v1/projects/{project_id}/scenes",
            json={"start_frame_key": "frames/a.png", "shot_type": "aerial"},
            headers=headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["ordinal"] == 1
        assert data["status"] == "queued"
        assert data["shot_type"] == "aerial"
        assert data["end_frame_key"] is None
        assert [str(s) for s in dispatcher.submitted] == [data["id"]]

    def test_unknown_shot_type(self, test_client: TestClient, headers, project_id) -> None:
        response = test_client.post(
            f"/api/v1/projects/{project_id}/scenes",
            json={"start_frame_key": "frames/a.png", "shot_type": "dolly_zoom"},
            headers=headers,
        )

        assert response.status_code == 422
        assert response.json()["field"] == "shot_type"

    def test_scenes_of_unknown_project(self, test_client: TestClient, headers) -> None:
        response = test_client.get(f"/api/v1/projects/{uuid4()}/scenes", headers=headers)

        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_list_scenes(self, test_client: TestClient, headers, project_id, scene_id) -> None:
        scenes = test_client.get(f"/api/v1/projects/{project_id}/scenes", headers=headers).json()
        assert [s["id"] for s in scenes] == [scene_id]


class TestSceneEndpoints:
    """Scene reads, writes, deletion and callbacks."""

    def test_get_scene(self, test_client: TestClient, headers, scene_id) -> None:
        response = test_client.get(f"/api/v1/scenes/{scene_id}", headers=headers)

        assert response.status_code == 200
        assert response.json()["start_frame_key"] == "frames/a.png"

    def test_regenerate_queued_scene_conflicts(
        self, test_client: TestClient, headers, scene_id
    ) -> None:
        response = test_client.post(f"/api/v1/scenes/{scene_id}/regenerate", headers=headers)

        assert response.status_code == 409
        data = response.json()
        assert data["current_status"] == "queued"
        assert data["retryable"] is True

    def test_update_frames(self, test_client: TestClient, headers, scene_id) -> None:
        response = test_client.patch(
            f"/api/v1/scenes/{scene_id}/frames",
            json={"start_frame_key": "frames/new.png"},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["start_frame_key"] == "frames/new.png"

        empty = test_client.patch(f"/api/v1/scenes/{scene_id}/frames", json={}, headers=headers)
        assert empty.status_code == 422

    def test_frame_urls(self, test_client: TestClient, headers, scene_id) -> None:
        data = test_client.get(f"/api/v1/scenes/{scene_id}/frames", headers=headers).json()

        assert data["start"]["url"].startswith("https://signed.test/frames/a.png")
        assert data["end"]["url"].startswith("https://signed.test/frames/b.png")

    def test_delete_and_restore(self, test_client: TestClient, headers, scene_id) -> None:
        deleted = test_client.delete(f"/api/v1/scenes/{scene_id}", headers=headers)
        assert deleted.status_code == 200
        assert deleted.json()["undo_seconds"] == 10.0
        assert deleted.json()["deleted_at"] is not None

        assert test_client.get(f"/api/v1/scenes/{scene_id}", headers=headers).status_code == 404

        restored = test_client.post(f"/api/v1/scenes/{scene_id}/restore", headers=headers)
        assert restored.status_code == 200
        assert restored.json()["deleted_at"] is None

    def test_callback_completes_scene(
        self, test_client: TestClient, headers, scene_id, lifecycle, project_id
    ) -> None:
        lifecycle.claim_for_submission(UUID(scene_id))
        lifecycle.record_job_id(UUID(scene_id), "stub-job-1", attempts=1)

        payload = {"id": "stub-job-1", "state": "completed", "media_url": "media/v1.mp4"}
        response = test_client.post("/api/v1/callbacks/generation", json=payload)
        assert response.status_code == 200
        assert response.json() == {"job_id": "stub-job-1", "outcome": "applied"}

        duplicate = test_client.post("/api/v1/callbacks/generation", json=payload)
        assert duplicate.json()["outcome"] == "ignored"

        versions = test_client.get(f"/api/v1/scenes/{scene_id}/versions", headers=headers).json()
        assert [v["version"] for v in versions] == [1]
        assert versions[0]["media_ref"] == "media/v1.mp4"

        media = test_client.get(f"/api/v1/scenes/{scene_id}/media", headers=headers)
        assert media.status_code == 200
        assert media.json()["url"].startswith("https://signed.test/media/v1.mp4")

        export = test_client.get(
            f"/api/v1/projects/{project_id}/export", params={"format": "mov"}, headers=headers
        ).json()
        assert export["format"] == "mov"
        assert export["scene_count"] == 1
        assert export["entries"][0]["scene_id"] == scene_id

    def test_callback_token(self, test_client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(settings, "callback_token", "hook-secret")
        payload = {"id": "unknown-job", "state": "processing"}

        rejected = test_client.post("/api/v1/callbacks/generation", json=payload)
        assert rejected.status_code == 401

        accepted = test_client.post(
            "/api/v1/callbacks/generation",
            json=payload,
            headers={"X-Callback-Token": "hook-secret"},
        )
        assert accepted.status_code == 200
        assert accepted.json()["outcome"] == "ignored"

    def test_non_ascii_callback_token_is_rejected(
        self, test_client: TestClient, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings, "callback_token", "hook-secret")

        response = test_client.post(
            "/api/v1/callbacks/generation",
            json={"id": "unknown-job", "state": "processing"},
            headers={"X-Callback-Token": "hôok-secret".encode("latin-1")},
        )

        assert response.status_code == 401

    def test_malformed_callback(self, test_client: TestClient) -> None:
        response = test_client.post("/api/v1/callbacks/generation", json={"state": "completed"})
        assert response.status_code == 422


class TestMediaRoute:
    """Signed downloads from local storage."""

    def test_signed_download(self, test_client: TestClient) -> None:
        storage = get_object_storage()
        path = storage.path_for("frames/served.txt")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"frame-bytes")

        url = urlparse(storage.sign_url("frames/served.txt", 60))
        response = test_client.get(f"{url.path}?{url.query}")

        assert response.status_code == 200
        assert response.content == b"frame-bytes"

    def test_bad_signature(self, test_client: TestClient) -> None:
        response = test_client.get(
            "/media/frames/served.txt", params={"expires": 9999999999, "signature": "forged"}
        )
        assert response.status_code == 403
