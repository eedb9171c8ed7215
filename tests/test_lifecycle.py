"""Tests for the scene state machine, soft delete, restore and purge."""

from datetime import timedelta
from uuid import uuid4

import pytest

from scene_engine.db.session import get_session_context
from scene_engine.domain.enums import JobStatus, SceneStatus
from scene_engine.domain.errors import ConflictError, NotFoundError

WINDOW = timedelta(seconds=10)


@pytest.fixture
def scene(lifecycle, project_id, caller, clock):
    return lifecycle.create(
        project_id,
        caller.user_id,
        "frames/start.png",
        "wide",
        end_frame_key="frames/end.png",
        now=clock(),
    )


class TestCreate:
    """Scene creation."""

    def test_new_scene_is_queued_without_versions(self, scene, clock) -> None:
        assert scene.status == SceneStatus.QUEUED
        assert scene.ordinal == 1
        assert scene.current_version == 1
        assert scene.version_count == 0
        assert scene.external_job_id is None
        assert scene.status_changed_at == clock()
        assert scene.end_frame_key == "frames/end.png"

    def test_end_frame_is_optional(self, lifecycle, project_id, caller) -> None:
        scene = lifecycle.create(project_id, caller.user_id, "frames/only.png", "medium")
        assert scene.end_frame_key is None

    def test_get_unknown_scene(self, lifecycle) -> None:
        with pytest.raises(NotFoundError):
            lifecycle.get(uuid4())


class TestTransitions:
    """Compare-and-set status transitions."""

    def test_claim_moves_to_processing_with_pending_job(self, lifecycle, scene, clock) -> None:
        later = clock.advance(3)
        claimed = lifecycle.claim_for_submission(scene.id, now=later)

        assert claimed.status == SceneStatus.PROCESSING
        assert claimed.external_job_status == JobStatus.PENDING
        assert claimed.status_changed_at == later

    def test_second_claim_conflicts(self, lifecycle, scene) -> None:
        lifecycle.claim_for_submission(scene.id)

        with pytest.raises(ConflictError) as exc_info:
            lifecycle.claim_for_submission(scene.id)
        assert exc_info.value.current_status == SceneStatus.PROCESSING

    def test_transition_on_deleted_scene_is_not_found(self, lifecycle, scene) -> None:
        lifecycle.soft_delete(scene.id)

        with pytest.raises(NotFoundError):
            lifecycle.claim_for_submission(scene.id)

    def test_job_id_is_recorded_once(self, lifecycle, scene) -> None:
        lifecycle.claim_for_submission(scene.id)
        recorded = lifecycle.record_job_id(scene.id, "job-1", attempts=2)

        assert recorded.external_job_id == "job-1"
        assert recorded.submit_attempts == 2
        with pytest.raises(ConflictError):
            lifecycle.record_job_id(scene.id, "job-2", attempts=1)

    def test_ready_requires_current_job(self, lifecycle, scene) -> None:
        lifecycle.claim_for_submission(scene.id)
        lifecycle.record_job_id(scene.id, "job-1", attempts=1)

        with get_session_context(lifecycle.session_factory) as session:
            with pytest.raises(ConflictError):
                lifecycle.mark_ready(session, scene.id, "job-other")

        with get_session_context(lifecycle.session_factory) as session:
            ready = lifecycle.mark_ready(session, scene.id, "job-1")
        assert ready.status == SceneStatus.READY
        assert ready.external_job_status == JobStatus.COMPLETED

    def test_error_records_reason(self, lifecycle, scene) -> None:
        lifecycle.claim_for_submission(scene.id)
        lifecycle.record_job_id(scene.id, "job-1", attempts=1)

        failed = lifecycle.mark_error(scene.id, "content rejected", job_id="job-1")

        assert failed.status == SceneStatus.ERROR
        assert failed.external_job_status == JobStatus.FAILED
        assert failed.external_job_error == "content rejected"

    def test_requeue_resets_job_fields(self, lifecycle, scene) -> None:
        lifecycle.claim_for_submission(scene.id)
        lifecycle.record_job_id(scene.id, "job-1", attempts=3)
        lifecycle.mark_error(scene.id, "boom", job_id="job-1")

        queued = lifecycle.requeue(scene.id)

        assert queued.status == SceneStatus.QUEUED
        assert queued.external_job_id is None
        assert queued.external_job_status is None
        assert queued.external_job_error is None
        assert queued.submit_attempts == 0

    def test_requeue_while_processing_conflicts(self, lifecycle, scene) -> None:
        lifecycle.claim_for_submission(scene.id)

        with pytest.raises(ConflictError):
            lifecycle.requeue(scene.id)

    def test_illegal_edge_is_rejected_before_writing(self, lifecycle, scene) -> None:
        with pytest.raises(ValueError):
            lifecycle.requeue(scene.id, expected=[SceneStatus.PROCESSING])

    def test_frames_cannot_change_while_processing(self, lifecycle, scene) -> None:
        updated = lifecycle.update_frames(scene.id, start_frame_key="frames/new.png")
        assert updated.start_frame_key == "frames/new.png"
        assert updated.end_frame_key == "frames/end.png"

        lifecycle.claim_for_submission(scene.id)
        with pytest.raises(ConflictError):
            lifecycle.update_frames(scene.id, end_frame_key="frames/other.png")

    def test_stale_listing(self, lifecycle, scene, clock) -> None:
        assert lifecycle.list_stale(SceneStatus.QUEUED, clock() - timedelta(seconds=1)) == []

        stale = lifecycle.list_stale(SceneStatus.QUEUED, clock())
        assert [s.id for s in stale] == [scene.id]


class TestSoftDeleteAndRestore:
    """Soft delete, undo window and purge."""

    def test_soft_delete_hides_scene(self, lifecycle, scene, project_id, clock) -> None:
        deleted = lifecycle.soft_delete(scene.id, now=clock())

        assert deleted.deleted_at == clock()
        assert deleted.status == SceneStatus.QUEUED
        assert lifecycle.list_for_project(project_id) == []
        with pytest.raises(NotFoundError):
            lifecycle.get(scene.id)
        assert lifecycle.get(scene.id, include_deleted=True).is_deleted

    def test_double_delete_is_not_found(self, lifecycle, scene) -> None:
        lifecycle.soft_delete(scene.id)
        with pytest.raises(NotFoundError):
            lifecycle.soft_delete(scene.id)

    def test_restore_within_window(self, lifecycle, scene, clock) -> None:
        lifecycle.soft_delete(scene.id, now=clock())

        restored = lifecycle.restore(scene.id, now=clock.advance(9), undo_window=WINDOW)

        assert restored.deleted_at is None
        assert restored.ordinal == scene.ordinal
        assert restored.status == scene.status

    def test_restore_after_window_is_not_found(self, lifecycle, scene, clock) -> None:
        lifecycle.soft_delete(scene.id, now=clock())

        with pytest.raises(NotFoundError):
            lifecycle.restore(scene.id, now=clock.advance(11), undo_window=WINDOW)

    def test_restore_of_live_scene_is_not_found(self, lifecycle, scene, clock) -> None:
        with pytest.raises(NotFoundError):
            lifecycle.restore(scene.id, now=clock(), undo_window=WINDOW)

    def test_restore_moves_to_next_ordinal_when_taken(
        self, lifecycle, scene, project_id, caller, clock
    ) -> None:
        second = lifecycle.create(project_id, caller.user_id, "frames/2.png", "wide")
        lifecycle.soft_delete(second.id, now=clock())
        replacement = lifecycle.create(project_id, caller.user_id, "frames/3.png", "wide")
        assert replacement.ordinal == second.ordinal

        restored = lifecycle.restore(second.id, now=clock.advance(1), undo_window=WINDOW)

        assert restored.ordinal == 3
        ordinals = [s.ordinal for s in lifecycle.list_for_project(project_id)]
        assert ordinals == [1, 2, 3]

    def test_purge_respects_cutoff(self, lifecycle, scene, clock) -> None:
        deleted_at = clock()
        lifecycle.soft_delete(scene.id, now=deleted_at)

        assert lifecycle.purge(scene.id, deleted_before=deleted_at - timedelta(seconds=1)) is False
        assert lifecycle.list_purgeable(deleted_at) == [scene.id]
        assert lifecycle.purge(scene.id, deleted_before=deleted_at) is True
        with pytest.raises(NotFoundError):
            lifecycle.get(scene.id, include_deleted=True)

    def test_purge_ignores_live_scenes(self, lifecycle, scene, clock) -> None:
        assert lifecycle.purge(scene.id, deleted_before=clock()) is False
        assert lifecycle.get(scene.id).id == scene.id

    def test_purge_removes_versions(self, lifecycle, versions, scene, clock) -> None:
        with get_session_context(lifecycle.session_factory) as session:
            versions.append(session, scene.id, 0, "media/v1.mp4")
        lifecycle.soft_delete(scene.id, now=clock())

        assert lifecycle.purge(scene.id, deleted_before=clock()) is True
        assert versions.list_versions(scene.id) == []
