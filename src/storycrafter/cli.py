"""CLI Application for Story Crafter."""

import asyncio
import logging
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.json import JSON
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import Settings, load_settings
from .errors import StoryCrafterError
from .gateway import ModelGateway
from .logging_config import configure_logging
from .models import DEFAULT_TITLE, FreshIdeaSource, Project, ProjectStatus, SavedIdeaSource
from .pipeline import PipelineOrchestrator
from .session import SessionController
from .storage import JsonFileStorage
from .store import ProjectStore

app = typer.Typer(help="Story Crafter CLI - Ideas to scripts to scene prompts")
console = Console()
err_console = Console(stderr=True)

ApiKeyOption = typer.Option(None, envvar="GEMINI_API_KEY", help="Google Gemini API Key")
DataDirOption = typer.Option(
    None,
    envvar="STORY_CRAFTER_DATA_DIR",
    help="Directory holding saved ideas and projects",
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
) -> None:
    """Configure logging for every command."""
    settings = load_settings()
    configure_logging(logging.DEBUG if verbose else settings.log_level, console=err_console)


def _settings(data_dir: Path | None) -> Settings:
    settings = load_settings()
    if data_dir is not None:
        settings.data_dir = data_dir
    return settings


def _get_store(data_dir: Path | None) -> ProjectStore:
    settings = _settings(data_dir)
    return ProjectStore(JsonFileStorage(settings.data_dir))


def _get_session(api_key: str | None, data_dir: Path | None) -> SessionController:
    """Build a session wired to the Gemini API and the local store."""
    settings = _settings(data_dir)
    api_key = api_key or settings.api_key
    if not api_key:
        console.print(
            "[bold red]Error:[/bold red] GEMINI_API_KEY not found in env or arguments.",
        )
        raise typer.Exit(code=1)
    store = ProjectStore(JsonFileStorage(settings.data_dir))
    gateway = ModelGateway(api_key=api_key, config=settings.gateway_config())
    return SessionController(PipelineOrchestrator(gateway, store), store)


def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(code=1)


def _with_spinner(description: str, coro):
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(description, total=None)
        return asyncio.run(coro)


def _view(session: SessionController, project_id: int) -> Project:
    project = session.project_action(project_id, "view")
    if project is None:
        _fail(session.last_error or f"Project {project_id} not found")
    return project


@app.command()
def ideas(
    instructions: str = typer.Argument(
        "",
        help="Optional theme or instructions; blank uses the cat family brief",
    ),
    save_all: bool = typer.Option(False, "--save-all", help="Save every generated idea"),
    start: int | None = typer.Option(
        None,
        "--start",
        help="Start a project from idea number N",
    ),
    api_key: str | None = ApiKeyOption,
    data_dir: Path | None = DataDirOption,
) -> None:
    """Generate three video ideas."""
    session = _get_session(api_key, data_dir)
    generated = _with_spinner("Brainstorming ideas...", session.generate_ideas(instructions))
    if generated is None:
        _fail(session.last_error or "Idea generation failed.")

    for i, idea in enumerate(generated, start=1):
        console.print(Panel(idea.idea, title=f"{i}. {idea.title}", border_style="cyan"))

    if save_all:
        added = session.save_all_ideas()
        console.print(f"Saved {len(added)} new idea(s).")

    if start is not None:
        if not 1 <= start <= len(generated):
            _fail(f"There is no idea number {start}.")
        chosen = generated[start - 1]
        project = session.start_project(FreshIdeaSource(title=chosen.title, idea=chosen.idea))
        console.print(f"Started project [bold]{project.id}[/bold]: {project.title}")


@app.command("save-idea")
def save_idea(
    text: str = typer.Argument(..., help="Idea text to save"),
    data_dir: Path | None = DataDirOption,
) -> None:
    """Bookmark an idea for later."""
    idea = _get_store(data_dir).save_idea(text)
    console.print(f"Saved idea [bold]{idea.id}[/bold].")


@app.command("delete-idea")
def delete_idea(
    idea_id: int = typer.Argument(..., help="Saved idea id"),
    data_dir: Path | None = DataDirOption,
) -> None:
    """Delete a saved idea."""
    _get_store(data_dir).delete_idea(idea_id)
    console.print(f"Deleted idea {idea_id}.")


@app.command()
def start(
    saved: int | None = typer.Option(None, "--saved", help="Saved idea id to promote"),
    idea: str | None = typer.Option(None, "--idea", help="Idea text for a new project"),
    title: str | None = typer.Option(None, "--title", help="Title for --idea"),
    data_dir: Path | None = DataDirOption,
) -> None:
    """Start a project from a saved idea or from text."""
    store = _get_store(data_dir)
    if saved is not None:
        saved_idea = next((i for i in store.list_saved_ideas() if i.id == saved), None)
        if saved_idea is None:
            _fail(f"Saved idea {saved} not found.")
        source = SavedIdeaSource(id=saved_idea.id, text=saved_idea.text)
    elif idea:
        source = FreshIdeaSource(title=title or DEFAULT_TITLE, idea=idea)
    else:
        _fail("Provide --saved or --idea.")
    project = SessionController(None, store).start_project(source)
    console.print(f"Started project [bold]{project.id}[/bold]: {project.title}")


@app.command()
def script(
    project_id: int = typer.Argument(..., help="Project id"),
    duration: str = typer.Option("3 minutes", help="Target video duration"),
    idea: str | None = typer.Option(None, "--idea", help="Override the idea text"),
    api_key: str | None = ApiKeyOption,
    data_dir: Path | None = DataDirOption,
) -> None:
    """Generate the script and scene prompts for a project."""
    session = _get_session(api_key, data_dir)
    _view(session, project_id)
    result = _with_spinner(
        "Writing script and extracting scenes...",
        session.generate_script(idea=idea, duration=duration),
    )
    if result is None:
        _fail(session.last_error or "Script generation failed.")

    console.print(
        Panel(
            f"[bold]Title:[/bold] {result.title}\n"
            f"[bold]Scenes:[/bold] {len(result.prompts)} extracted",
            title="Script Generated",
            border_style="green",
        ),
    )
    for warning in result.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")


@app.command()
def metadata(
    project_id: int = typer.Argument(..., help="Project id"),
    api_key: str | None = ApiKeyOption,
    data_dir: Path | None = DataDirOption,
) -> None:
    """Generate titles, description and hashtags for a project."""
    session = _get_session(api_key, data_dir)
    _view(session, project_id)
    result = _with_spinner("Writing titles and description...", session.generate_metadata())
    if result is None:
        _fail(session.last_error or "Metadata generation failed.")

    console.rule("[bold blue]Titles")
    for title in result.titles:
        console.print(f"- {title}")
    console.rule("[bold blue]Description")
    console.print(result.description)
    console.rule("[bold blue]Hashtags")
    console.print(" ".join(f"#{tag}" for tag in result.hashtags))


@app.command()
def library(
    status: ProjectStatus | None = typer.Option(None, help="Only list projects with this status"),
    data_dir: Path | None = DataDirOption,
) -> None:
    """List saved ideas and projects."""
    store = _get_store(data_dir)

    ideas_table = Table(title="Saved Ideas")
    ideas_table.add_column("ID", justify="right")
    ideas_table.add_column("Idea")
    for saved in store.list_saved_ideas():
        ideas_table.add_row(str(saved.id), saved.text)
    console.print(ideas_table)

    projects_table = Table(title="Projects")
    projects_table.add_column("ID", justify="right")
    projects_table.add_column("Title")
    projects_table.add_column("Status")
    projects_table.add_column("Created")
    for project in store.list_projects(status):
        projects_table.add_row(
            str(project.id),
            project.title,
            project.status.value,
            project.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(projects_table)


@app.command()
def show(
    project_id: int = typer.Argument(..., help="Project id"),
    data_dir: Path | None = DataDirOption,
) -> None:
    """Show a project's idea, script, scenes and metadata."""
    store = _get_store(data_dir)
    session = SessionController(None, store)
    project = _view(session, project_id)

    console.print(Panel(project.idea, title=project.title, subtitle=project.status.value))
    if session.script:
        console.print(Panel(session.script, title="Script"))
    for prompt in session.prompts:
        console.print(f"[bold]Scene #{prompt.scene_number}[/bold] {prompt.prompt_details.action}")
    if session.metadata:
        console.print(Panel(
            "\n".join(session.metadata.titles)
            + f"\n\n{session.metadata.description}\n\n"
            + " ".join(f"#{tag}" for tag in session.metadata.hashtags),
            title="Metadata",
        ))


def _project_action(project_id: int, action: str, data_dir: Path | None) -> None:
    store = _get_store(data_dir)
    session = SessionController(None, store)
    session.project_action(project_id, action)
    if session.last_error:
        _fail(session.last_error)


@app.command()
def archive(
    project_id: int = typer.Argument(..., help="Project id"),
    data_dir: Path | None = DataDirOption,
) -> None:
    """Archive a completed project."""
    _project_action(project_id, "archive", data_dir)
    console.print(f"Archived project {project_id}.")


@app.command()
def unarchive(
    project_id: int = typer.Argument(..., help="Project id"),
    data_dir: Path | None = DataDirOption,
) -> None:
    """Restore an archived project."""
    _project_action(project_id, "unarchive", data_dir)
    console.print(f"Unarchived project {project_id}.")


@app.command()
def delete(
    project_id: int = typer.Argument(..., help="Project id"),
    data_dir: Path | None = DataDirOption,
) -> None:
    """Delete a project."""
    _project_action(project_id, "delete", data_dir)
    console.print(f"Deleted project {project_id}.")


@app.command()
def prompt(
    project_id: int = typer.Argument(..., help="Project id"),
    scene: int = typer.Argument(..., help="Scene number"),
    data_dir: Path | None = DataDirOption,
) -> None:
    """Print the JSON prompt for one scene."""
    session = SessionController(None, _get_store(data_dir))
    _view(session, project_id)
    try:
        payload = session.copy_prompt(scene)
    except StoryCrafterError as e:
        _fail(e.message)
    console.print(JSON(payload))


@app.command()
def export(
    project_id: int = typer.Argument(..., help="Project id"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write JSON to this file"),
    data_dir: Path | None = DataDirOption,
) -> None:
    """Export all scene prompts of a project as JSON."""
    session = SessionController(None, _get_store(data_dir))
    _view(session, project_id)
    payload = session.copy_all_json()
    if not payload:
        _fail(f"Project {project_id} has no scene prompts yet.")
    if output is None:
        console.print(JSON(payload))
        return
    with output.open("w") as f:
        f.write(payload)
    console.print(f"Prompts saved to: [underline]{output.absolute()}[/underline]")


if __name__ == "__main__":
    app()
