"""Tests for the command-line interface."""

from unittest.mock import patch

from cryptography.fernet import Fernet
from typer.testing import CliRunner

from scene_engine.cli import app

runner = CliRunner()


def test_version() -> None:
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "Scene Engine v" in result.output


def test_shot_types() -> None:
    result = runner.invoke(app, ["shot-types"])

    assert result.exit_code == 0
    assert "tracking" in result.output
    assert "close_up" in result.output


def test_keys_generate() -> None:
    result = runner.invoke(app, ["keys", "generate"])

    assert result.exit_code == 0
    Fernet(result.output.strip().encode())


def test_scenes_list(orchestrator, lifecycle, project_id, caller) -> None:
    lifecycle.create(project_id, caller.user_id, "frames/a.png", "aerial")

    with patch("scene_engine.services.factory.get_orchestrator", return_value=orchestrator):
        result = runner.invoke(app, ["scenes", "list", str(project_id)])

    assert result.exit_code == 0
    assert "aerial" in result.output
    assert "queued" in result.output


def test_scenes_list_rejects_bad_id() -> None:
    result = runner.invoke(app, ["scenes", "list", "not-a-uuid"])
    assert result.exit_code == 1


def test_expire_stale_redispatch(
    tracker, lifecycle, dispatcher, project_id, caller, clock
) -> None:
    scene = lifecycle.create(project_id, caller.user_id, "frames/a.png", "wide", now=clock())
    clock.advance(120)

    with patch("scene_engine.services.factory.get_job_tracker", return_value=tracker):
        result = runner.invoke(app, ["scenes", "expire-stale"])

    assert result.exit_code == 0
    assert dispatcher.submitted == [scene.id]
