from __future__ import annotations

import json
from pathlib import Path
import typer
from rich import print

from state_timeline.config import TimelineConfig
from state_timeline.errors import TimelineError
from state_timeline.logs import setup_logging
from state_timeline.query import TimelineQuery
from state_timeline.seeder import DataSeeder
from state_timeline.service import TimelineService
from state_timeline.store import FileSystemStore

app = typer.Typer(help="Entity state timeline CLI")


def _load_config(store_dir: Path | None) -> TimelineConfig:
    config = TimelineConfig.from_env()
    if store_dir is not None:
        config = config.model_copy(update={"store_dir": store_dir})
    setup_logging(config.log)
    return config


@app.command()
def seed(
    csv_path: Path | None = typer.Argument(None, help="CSV export with vehicleId,event,timestamp columns"),
    store_dir: Path | None = typer.Option(None, "--store-dir", help="Store workspace directory"),
) -> None:
    """
    Load historical events from CSV into an empty store, then exit.
    """
    config = _load_config(store_dir)
    source = csv_path or config.seed_file
    try:
        report = DataSeeder(FileSystemStore(config.store_dir)).seed(source)
    except (OSError, TimelineError) as error:
        print(f"[red]Seeding failed: {error}[/red]")
        raise typer.Exit(code=1) from error

    if report.skipped:
        print("[yellow]Seeding skipped.[/yellow]")
    else:
        print(f"[green]Seeded {report.inserted} events ({report.skipped_rows} rows skipped).[/green]")


@app.command()
def timeline(
    entity_id: str,
    start: str,
    end: str,
    store_dir: Path | None = typer.Option(None, "--store-dir", help="Store workspace directory"),
) -> None:
    """
    Print the state intervals of ENTITY_ID between START and END (ISO 8601).
    """
    config = _load_config(store_dir)
    try:
        query = TimelineQuery.parse({"vehicleId": entity_id, "startDate": start, "endDate": end})
        service = TimelineService(FileSystemStore(config.store_dir), parallel_reads=config.parallel_reads)
        intervals = service.generate_timeline(query.entity_id, query.start, query.end)
    except TimelineError as error:
        print(f"[red]{error}[/red]")
        raise typer.Exit(code=1) from error

    typer.echo(json.dumps([interval.to_dict() for interval in intervals]))


@app.command()
def serve(
    host: str | None = typer.Option(None, help="Bind address (default API_HOST)"),
    port: int | None = typer.Option(None, help="Bind port (default API_PORT)"),
    store_dir: Path | None = typer.Option(None, "--store-dir", help="Store workspace directory"),
) -> None:
    """
    Serve the timeline HTTP API.
    """
    import uvicorn

    from state_timeline.api import create_app

    config = _load_config(store_dir)
    bind_host = host if host is not None else config.api.host
    bind_port = port if port is not None else config.api.port
    print(f"[blue]Serving timeline API on http://{bind_host}:{bind_port}[/blue]")
    uvicorn.run(create_app(config), host=bind_host, port=bind_port)


if __name__ == "__main__":
    app()
