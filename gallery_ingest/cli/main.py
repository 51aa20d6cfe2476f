"""Gallery Ingest CLI using Typer."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from dotenv import load_dotenv
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from gallery_ingest.config import get_default_config
from gallery_ingest.core.enums import RunStatus
from gallery_ingest.core.schema import SeedRequest, WorkflowRun
from gallery_ingest.db.engine import get_session
from gallery_ingest.db.repositories import WorkflowRepository

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

console = Console()
app = typer.Typer(
    name="gallery-ingest",
    help="Gallery Ingest - gallery and event ingestion pipeline",
    add_completion=False,
)
runs_app = typer.Typer(help="Workflow run commands")
app.add_typer(runs_app, name="runs")

SYNC_OPTION = typer.Option(False, "--sync", help="Run inline instead of enqueueing on the worker")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _execute(name: str, params: dict[str, Any], sync: bool) -> WorkflowRun | str:
    from gallery_ingest.workflows import (
        ArqDispatcher,
        InlineDispatcher,
        PipelineContext,
        run_workflow,
    )

    with get_session() as session:
        ctx = PipelineContext(
            session=session,
            config=get_default_config(),
            dispatcher=InlineDispatcher() if sync else ArqDispatcher(),
        )
        try:
            if sync:
                return await run_workflow(ctx, name, params)
            return await ctx.trigger(name, params)
        finally:
            await ctx.aclose()


def _start(name: str, params: dict[str, Any], sync: bool) -> None:
    """Run a workflow inline or enqueue it, and report the outcome."""
    if sync:
        rprint(f"\n[dim]Running {name} synchronously...[/dim]\n")
        with console.status(f"[bold blue]Running {name}...[/bold blue]"):
            run = asyncio.run(_execute(name, params, sync=True))
        _display_run(run)
        if run.status == RunStatus.FAILED:
            raise typer.Exit(1)
        return

    try:
        run_id = asyncio.run(_execute(name, params, sync=False))
    except Exception as e:
        rprint(f"\n[red]Error:[/red] Failed to enqueue workflow: {e}")
        rprint("\nMake sure Redis is running, or pass --sync to run inline")
        raise typer.Exit(1)

    rprint("\n[green]Workflow enqueued successfully![/green]")
    rprint(f"Run ID: [bold]{run_id}[/bold]")
    rprint("\nCheck status with:")
    rprint(f"  gallery-ingest runs status {run_id}")


def _display_run(run: WorkflowRun) -> None:
    """Display a workflow run with its result or error."""
    status_color = {
        RunStatus.COMPLETED: "green",
        RunStatus.RUNNING: "blue",
        RunStatus.QUEUED: "yellow",
        RunStatus.FAILED: "red",
    }.get(run.status, "white")

    rprint(f"\n[bold]Run: {run.id}[/bold]")
    rprint(f"  Workflow: {run.workflow}")
    rprint(f"  Status: [{status_color}]{run.status.value}[/{status_color}]")
    rprint(f"  Created: {run.created_at:%Y-%m-%d %H:%M:%S}")
    if run.completed_at:
        rprint(f"  Completed: {run.completed_at:%Y-%m-%d %H:%M:%S}")
    if run.error:
        rprint(f"\n[bold red]Error:[/bold red] {run.error}")
    if run.result is not None:
        rprint("\n[bold]Result:[/bold]")
        console.print_json(json.dumps(run.result, default=str))


def _seed_params(
    main_url: str,
    about: Optional[str],
    events: Optional[str],
    name: Optional[str],
    address: Optional[str],
    instagram: Optional[str],
    opening_hours: Optional[str],
) -> dict[str, Any]:
    request = SeedRequest(
        main_url=main_url,
        about_url=about,
        events_url=events,
        name=name,
        address=address,
        instagram=instagram,
        opening_hours=opening_hours,
    )
    return request.model_dump(exclude_none=True)


@app.command()
def run(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(
        False, "--reload", "-r", help="Enable auto-reload for development"
    ),
) -> None:
    """Start the workflow trigger API server."""
    import uvicorn

    typer.echo(f"Starting Gallery Ingest API on http://{host}:{port}")
    typer.echo("Press Ctrl+C to stop the server")
    typer.echo("")

    uvicorn.run(
        "gallery_ingest.web.app:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def init_db(
    migrate: bool = typer.Option(False, "--migrate", help="Apply Alembic migrations instead"),
) -> None:
    """Initialize the database (create tables)."""
    from gallery_ingest.db.engine import init_db as db_init
    from gallery_ingest.db.engine import run_migrations

    typer.echo("Initializing database...")
    if migrate:
        run_migrations()
    else:
        db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def seed(
    main_url: str = typer.Argument(..., help="Gallery main URL"),
    about: Optional[str] = typer.Option(None, "--about", help="About page URL"),
    events: Optional[str] = typer.Option(None, "--events", help="Events listing URL"),
    name: Optional[str] = typer.Option(None, "--name", help="Gallery name"),
    address: Optional[str] = typer.Option(None, "--address", help="Street address"),
    instagram: Optional[str] = typer.Option(None, "--instagram", help="Instagram handle or URL"),
    opening_hours: Optional[str] = typer.Option(
        None, "--opening-hours", help="Free-text opening hours"
    ),
    sync: bool = SYNC_OPTION,
) -> None:
    """
    Seed a gallery and start scraping and discovery for its pages.

    Examples:
        gallery-ingest seed https://acme-gallery.com --events https://acme-gallery.com/shows
    """
    params = _seed_params(main_url, about, events, name, address, instagram, opening_hours)
    _start("seed_gallery", params, sync)


@app.command()
def startup(
    main_url: str = typer.Argument(..., help="Gallery main URL"),
    about: Optional[str] = typer.Option(None, "--about", help="About page URL"),
    events: Optional[str] = typer.Option(None, "--events", help="Events listing URL"),
    name: Optional[str] = typer.Option(None, "--name", help="Gallery name"),
    address: Optional[str] = typer.Option(None, "--address", help="Street address"),
    instagram: Optional[str] = typer.Option(None, "--instagram", help="Instagram handle or URL"),
    opening_hours: Optional[str] = typer.Option(
        None, "--opening-hours", help="Free-text opening hours"
    ),
    sync: bool = SYNC_OPTION,
) -> None:
    """
    Seed (if needed), scrape, extract and embed a gallery end to end.

    Examples:
        gallery-ingest startup https://acme-gallery.com --opening-hours "Tue-Sun 12-18" --sync
    """
    params = _seed_params(main_url, about, events, name, address, instagram, opening_hours)
    _start("seed_and_startup_gallery", params, sync)


@app.command()
def discover(
    gallery_id: str = typer.Argument(..., help="Gallery ID"),
    list_urls: list[str] = typer.Argument(..., help="Listing page URLs"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Links to keep per listing"),
    sync: bool = SYNC_OPTION,
) -> None:
    """Discover new pages from listing URLs."""
    params: dict[str, Any] = {"gallery_id": gallery_id, "list_urls": list_urls}
    if limit is not None:
        params["limit"] = limit
    _start("discover_links", params, sync)


@app.command()
def scrape(
    page_ids: list[str] = typer.Argument(..., help="Page IDs"),
    sync: bool = SYNC_OPTION,
) -> None:
    """Scrape pages into markdown."""
    _start("scrape_pages", {"page_ids": page_ids}, sync)


@app.command()
def classify(
    page_ids: list[str] = typer.Argument(..., help="Page IDs"),
    sync: bool = SYNC_OPTION,
) -> None:
    """Classify discovered pages and extract the event pages among them."""
    _start("classify_pages", {"page_ids": page_ids}, sync)


@app.command()
def extract(
    page_ids: list[str] = typer.Argument(..., help="Page IDs"),
    sync: bool = SYNC_OPTION,
) -> None:
    """Extract pages and materialize their events."""
    _start("extract_event_pages", {"page_ids": page_ids}, sync)


@app.command()
def extract_gallery(
    gallery_id: str = typer.Argument(..., help="Gallery ID"),
    sync: bool = SYNC_OPTION,
) -> None:
    """Extract gallery facts from its main and about pages."""
    _start("extract_gallery", {"gallery_id": gallery_id}, sync)


@app.command()
def scrape_and_extract(
    page_ids: list[str] = typer.Argument(..., help="Page IDs"),
    sync: bool = SYNC_OPTION,
) -> None:
    """Scrape event pages and wait until each has an event."""
    _start("scrape_and_extract", {"page_ids": page_ids}, sync)


@app.command()
def embed(
    event_ids: Optional[list[str]] = typer.Option(None, "--event", "-e", help="Event ID"),
    gallery_ids: Optional[list[str]] = typer.Option(None, "--gallery", "-g", help="Gallery ID"),
    sync: bool = SYNC_OPTION,
) -> None:
    """
    Compute embeddings for events and galleries.

    Examples:
        gallery-ingest embed -e <event-id> -g <gallery-id> --sync
    """
    if not event_ids and not gallery_ids:
        rprint("[red]Error:[/red] Pass at least one --event or --gallery")
        raise typer.Exit(1)
    _start("embed", {"event_ids": event_ids or [], "gallery_ids": gallery_ids or []}, sync)


@app.command()
def worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the workflow worker.

    The worker processes queued workflow runs from Redis.
    """
    from arq import run_worker

    from gallery_ingest.ingestion.jobs import WorkerSettings

    rprint("[bold]Starting workflow worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")
    try:
        run_worker(WorkerSettings, burst=burst)
    except Exception as e:
        rprint(f"[red]Error:[/red] Worker failed: {e}")
        rprint("\nMake sure Redis is running")
        raise typer.Exit(1)


@runs_app.command("status")
def run_status(
    run_id: str = typer.Argument(..., help="Workflow run ID"),
) -> None:
    """Show the status and result of a workflow run."""
    with get_session() as session:
        run = WorkflowRepository(session).get_run(run_id)
    if run is None:
        rprint(f"[yellow]Run '{run_id}' not found[/yellow]")
        raise typer.Exit(1)
    _display_run(run)

    if run.status == RunStatus.QUEUED:
        from gallery_ingest.ingestion.jobs import get_job_status

        try:
            job = asyncio.run(get_job_status(run.id))
        except Exception as e:
            rprint(f"\n[dim]Queue status unavailable: {e}[/dim]")
            return
        if job is None:
            rprint("\n[yellow]Job not found in the queue[/yellow]")
        else:
            rprint(f"  Queue: {job['status']}")


@runs_app.command("list")
def list_runs(
    workflow: Optional[str] = typer.Option(None, "--workflow", "-w", help="Filter by workflow"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum runs to show"),
) -> None:
    """List recent workflow runs."""
    with get_session() as session:
        runs = WorkflowRepository(session).list_runs(workflow=workflow, limit=limit)

    if not runs:
        rprint("[yellow]No workflow runs found[/yellow]")
        return

    table = Table(title="Workflow Runs")
    table.add_column("ID", style="bold")
    table.add_column("Workflow")
    table.add_column("Status")
    table.add_column("Created")
    table.add_column("Error")
    for run in runs:
        table.add_row(
            run.id,
            run.workflow,
            run.status.value,
            f"{run.created_at:%Y-%m-%d %H:%M}",
            (run.error or "")[:60],
        )
    console.print(table)


if __name__ == "__main__":
    app()
