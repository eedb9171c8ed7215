"""Command-line interface using Typer."""

from uuid import UUID

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from scene_engine import __version__
from scene_engine.logging import setup_logging

# Setup logging
setup_logging()

app = typer.Typer(
    name="scene-engine",
    help="Scene Engine - scene generation and versioning CLI",
    add_completion=False,
)

# Subcommand groups
scenes_app = typer.Typer(help="Scene inspection and maintenance commands")
keys_app = typer.Typer(help="Encryption and API key commands")
app.add_typer(scenes_app, name="scenes")
app.add_typer(keys_app, name="keys")

console = Console()

STATUS_STYLES = {
    "queued": "yellow",
    "processing": "blue",
    "ready": "green",
    "error": "red",
}


def _parse_uuid(value: str, label: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        console.print(f"[bold red]Invalid {label}: {value}[/bold red]")
        raise typer.Exit(code=1)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Scene Engine v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Scene Engine - frame-to-frame video generation with versioned scenes."""
    pass


@app.command()
def version() -> None:
    """Show the installed version."""
    console.print(f"Scene Engine v{__version__}")


@app.command()
def health() -> None:
    """Check the health of all services."""
    import httpx

    from scene_engine.config import settings

    url = f"http://{settings.api_host}:{settings.api_port}/health/ready"

    try:
        response = httpx.get(url, timeout=10)
        data = response.json()
    except httpx.RequestError as e:
        console.print(f"[bold red]Cannot connect to API: {e}[/bold red]")
        console.print("[dim]Is the API server running?[/dim]")
        raise typer.Exit(code=1)

    table = Table(title="Service Health")
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    for component in ("database", "redis", "generation"):
        table.add_row(component.title(), "✓" if data.get(component) else "✗")
    console.print(table)

    if data.get("ready"):
        console.print("[bold green]All services healthy![/bold green]")
    else:
        console.print("[bold yellow]Some services unhealthy[/bold yellow]")
        raise typer.Exit(code=1)


@app.command()
def worker() -> None:
    """Start a Celery worker with beat (for development)."""
    console.print("[bold blue]Starting Celery worker...[/bold blue]")

    import subprocess
    import sys

    subprocess.run(
        [
            sys.executable,
            "-m",
            "celery",
            "-A",
            "scene_engine.worker",
            "worker",
            "--beat",
            "-Q",
            "default,generation,low",
            "--loglevel=info",
        ],
        check=True,
    )


@app.command("shot-types")
def shot_types() -> None:
    """List available shot types."""
    from scene_engine.presets.shot_types import SHOT_TYPES

    table = Table(title="Shot Types")
    table.add_column("Name", style="cyan")
    table.add_column("Display Name")
    table.add_column("Prompt", style="dim")
    for shot in SHOT_TYPES.values():
        table.add_row(shot.name, shot.display_name, shot.format_prompt())
    console.print(table)


# =============================================================================
# SCENES COMMANDS
# =============================================================================


@scenes_app.command("list")
def scenes_list(
    project_id: str = typer.Argument(..., help="Project ID (UUID)"),
) -> None:
    """List the live scenes of a project in ordinal order."""
    from scene_engine.services.factory import get_orchestrator

    project_uuid = _parse_uuid(project_id, "project ID")
    scenes = get_orchestrator().lifecycle.list_for_project(project_uuid)

    if not scenes:
        console.print("[dim]No scenes in this project.[/dim]")
        return

    table = Table(title="Scenes")
    table.add_column("#", justify="right")
    table.add_column("ID", style="dim")
    table.add_column("Shot", style="cyan")
    table.add_column("Status")
    table.add_column("Version", justify="right")
    table.add_column("Job")

    for scene in scenes:
        style = STATUS_STYLES.get(scene.status.value, "white")
        table.add_row(
            str(scene.ordinal),
            str(scene.id),
            scene.shot_type,
            f"[{style}]{scene.status.value}[/{style}]",
            f"{scene.current_version} ({scene.version_count})",
            scene.external_job_id or "-",
        )
    console.print(table)


@scenes_app.command("show")
def scenes_show(
    scene_id: str = typer.Argument(..., help="Scene ID (UUID)"),
) -> None:
    """Show a scene and its versions."""
    from scene_engine.domain.errors import NotFoundError
    from scene_engine.services.factory import get_orchestrator

    scene_uuid = _parse_uuid(scene_id, "scene ID")
    orchestrator = get_orchestrator()
    try:
        scene = orchestrator.lifecycle.get(scene_uuid, include_deleted=True)
    except NotFoundError:
        console.print(f"[bold red]Scene not found: {scene_id}[/bold red]")
        raise typer.Exit(code=1)
    versions = orchestrator.versions.list_versions(scene_uuid)

    deleted = scene.deleted_at.strftime("%Y-%m-%d %H:%M:%S") if scene.deleted_at else "No"
    console.print(Panel.fit(
        f"[cyan]ID:[/cyan] {scene.id}\n"
        f"[cyan]Project:[/cyan] {scene.project_id}\n"
        f"[cyan]Ordinal:[/cyan] {scene.ordinal}\n"
        f"[cyan]Shot Type:[/cyan] {scene.shot_type}\n"
        f"[cyan]Status:[/cyan] {scene.status.value}\n"
        f"[cyan]Job:[/cyan] {scene.external_job_id or 'N/A'} "
        f"({scene.external_job_status.value if scene.external_job_status else 'none'})\n"
        f"[cyan]Error:[/cyan] {scene.external_job_error or 'N/A'}\n"
        f"[cyan]Deleted:[/cyan] {deleted}",
        title="Scene Details",
        border_style="blue",
    ))

    if versions:
        table = Table(title="Versions")
        table.add_column("Version", justify="right")
        table.add_column("Media")
        table.add_column("Created")
        for v in versions:
            table.add_row(
                str(v.version),
                v.media_ref or "-",
                v.created_at.strftime("%Y-%m-%d %H:%M") if v.created_at else "-",
            )
        console.print(table)


@scenes_app.command("purge-expired")
def scenes_purge_expired() -> None:
    """Hard-delete soft-deleted scenes whose undo window has passed."""
    from scene_engine.services.factory import get_orchestrator
    from scene_engine.utils import run_async

    count = run_async(get_orchestrator().purge_expired())
    console.print(f"[bold green]Purged {count} scene(s)[/bold green]")


@scenes_app.command("expire-stale")
def scenes_expire_stale(
    redispatch: bool = typer.Option(
        True, "--redispatch/--no-redispatch", help="Re-queue submission of stuck queued scenes"
    ),
) -> None:
    """Fail jobs past their deadline and report stuck queued scenes."""
    from scene_engine.services.factory import get_job_tracker
    from scene_engine.utils import run_async

    tracker = get_job_tracker()
    result = run_async(tracker.expire_stale())
    console.print(f"Expired jobs: [bold]{len(result.expired)}[/bold]")
    console.print(f"Stuck queued scenes: [bold]{len(result.stuck_queued)}[/bold]")

    if redispatch:
        for scene_id in result.stuck_queued:
            tracker.dispatcher.submit(scene_id)
        if result.stuck_queued:
            console.print("[dim]Submission re-queued for stuck scenes[/dim]")


# =============================================================================
# KEYS COMMANDS
# =============================================================================


@keys_app.command("generate")
def keys_generate() -> None:
    """Generate a new ENCRYPTION_MASTER_KEY."""
    from scene_engine.services.encryption import generate_master_key

    console.print(generate_master_key())


@keys_app.command("set-user-key")
def keys_set_user_key(
    user_id: str = typer.Argument(..., help="User ID (UUID)"),
    api_key: str = typer.Option(..., prompt=True, hide_input=True, help="Luma API key"),
) -> None:
    """Store a user's generation API key, encrypted."""
    from scene_engine.db.models import UserProfileModel
    from scene_engine.db.session import get_session_context
    from scene_engine.services.encryption import encrypt_api_key

    user_uuid = _parse_uuid(user_id, "user ID")
    with get_session_context() as session:
        profile = session.get(UserProfileModel, user_uuid)
        if profile is None:
            console.print(f"[bold red]User not found: {user_id}[/bold red]")
            raise typer.Exit(code=1)
        profile.encrypted_api_key = encrypt_api_key(api_key)

    console.print(f"[bold green]API key stored for {user_id}[/bold green]")


if __name__ == "__main__":
    app()
