"""CLI entry-point: python -m ingest [events|restaurants|categories|...]."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable

import typer

from ingest.aggregate import sync_events
from ingest.base import SOURCE_ORDER, get_scrapers
from ingest.config import Settings, get_settings
from ingest.errors import ConfigError
from ingest.facets import fetch_event_filters
from ingest.logging import configure_logging
from ingest.models import Restaurant
from store.catalog import extract_categories, extract_restaurant_filters, write_json
from store.database import events_collection, open_client, restaurants_collection
from store.publisher import count_events
from store.restaurants import DEFAULT_SOURCE, sync_restaurants

log = logging.getLogger("ingest")

app = typer.Typer(help="GoodRec NYC ingestion jobs")


def _settings() -> Settings:
    settings = get_settings()
    configure_logging(settings.log_level)
    return settings


def _require_db(settings: Settings) -> str:
    if not settings.mongo_uri:
        raise ConfigError("MONGO_URI (or MONGODB_URI) is required for this command")
    return settings.mongo_uri


def _run(job: Awaitable[Any]) -> Any:
    """Run *job*; config problems exit 2, anything unhandled exits 1."""
    try:
        return asyncio.run(job)
    except ConfigError as exc:
        log.error("%s", exc)
        raise typer.Exit(2)
    except Exception:
        log.exception("Job failed")
        raise typer.Exit(1)


@app.command()
def events() -> None:
    """Fetch every source and replace the published event snapshot."""
    settings = _settings()
    report = _run(sync_events(settings))
    if report.published:
        typer.echo(
            f"Published {report.published.inserted} event(s), "
            f"replaced {report.published.deleted}."
        )
    elif report.dry_run:
        typer.echo(f"Dry run: {len(report.unique)} event(s) collected, nothing published.")
    else:
        typer.echo("No events collected; previous snapshot kept.")


@app.command()
def restaurants(
    input_file: Path | None = typer.Option(
        None, "--input", "-i", help="JSON array of enriched restaurant records."
    ),
    source: str = typer.Option(DEFAULT_SOURCE, help="Source tag stored on each record."),
) -> None:
    """Upsert restaurant records (crawls the marketplace when no file is given)."""
    settings = _settings()
    records = None
    if input_file is not None:
        try:
            payload = json.loads(input_file.read_text(encoding="utf-8"))
            records = [Restaurant(**item) for item in payload]
        except (OSError, ValueError, TypeError) as exc:
            log.error("Could not read %s: %s", input_file, exc)
            raise typer.Exit(2)

    run = _run(sync_restaurants(settings, records=records, source=source))
    if run.result is None:
        typer.echo(json.dumps([r.model_dump(exclude_none=True, mode="json") for r in run.records], indent=2))
        return
    typer.echo(
        f"{run.result.inserted} inserted, {run.result.updated} updated, "
        f"{run.result.removed} stale removed."
    )


@app.command()
def categories() -> None:
    """Write data/event_categories.json from the published snapshot."""
    settings = _settings()

    async def job() -> dict:
        async with open_client(_require_db(settings)) as client:
            return await extract_categories(events_collection(client, settings))

    catalog = _run(job())
    path = write_json(Path(settings.data_dir) / "event_categories.json", catalog)
    typer.echo(f"Saved {len(catalog['categories'])} categories to {path}")


@app.command()
def filters() -> None:
    """Write data/event_filters.json from the municipal feeds."""
    settings = _settings()
    result = _run(fetch_event_filters())
    path = write_json(Path(settings.data_dir) / "event_filters.json", result)
    typer.echo(f"Filters saved to {path}")


@app.command(name="restaurant-filters")
def restaurant_filters() -> None:
    """Write data/restaurant_filters.json from the restaurant collection."""
    settings = _settings()

    async def job() -> dict:
        async with open_client(_require_db(settings)) as client:
            return await extract_restaurant_filters(restaurants_collection(client, settings))

    result = _run(job())
    path = write_json(Path(settings.data_dir) / "restaurant_filters.json", result)
    typer.echo(f"Saved {result['totalRestaurants']} restaurants' filters to {path}")


@app.command()
def count() -> None:
    """Print totals of the published event snapshot."""
    settings = _settings()

    async def job():
        async with open_client(_require_db(settings)) as client:
            return await count_events(events_collection(client, settings))

    counts = _run(job())
    typer.echo(f"Total NYC Events: {counts.total}")
    typer.echo(f"Active NYC Events: {counts.active}")
    typer.echo("\nEvents by Source:")
    for platform, n in counts.by_platform.items():
        typer.echo(f"- {platform}: {n}")


@app.command(name="list")
def list_scrapers() -> None:
    """List registered event sources in dedup order."""
    registry = get_scrapers()
    for name in SOURCE_ORDER:
        if name in registry:
            typer.echo(f"  {name}")


if __name__ == "__main__":
    app()
