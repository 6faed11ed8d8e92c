"""Fan out to every source, merge, de-duplicate and publish."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import ingest.sources  # noqa: F401  (registers adapters)
from ingest.base import SOURCE_ORDER, BaseScraper, get_scraper
from ingest.config import Settings, get_settings
from ingest.models import Event
from ingest.normalize import EventWindow, event_window
from store.database import ClientFactory, events_collection, open_client
from store.publisher import PublishResult, publish_snapshot

log = logging.getLogger(__name__)

SAMPLE_SIZE = 3


@dataclass
class SyncReport:
    counts: dict[str, int] = field(default_factory=dict)
    collected: int = 0
    unique: list[Event] = field(default_factory=list)
    published: PublishResult | None = None
    dry_run: bool = False

    @property
    def skipped(self) -> bool:
        return self.published is None


def build_scrapers(
    settings: Settings | None = None, sources: Sequence[str] | None = None
) -> list[BaseScraper]:
    """Instantiate adapters in the fixed dedup order."""
    names = [n for n in SOURCE_ORDER if not sources or n in sources]
    return [get_scraper(name)(settings) for name in names]


async def collect(
    scrapers: Sequence[BaseScraper], window: EventWindow | None = None
) -> tuple[list[Event], dict[str, int]]:
    """Run all scrapers concurrently; results keep the scrapers' order."""
    window = window or event_window()
    results = await asyncio.gather(
        *(scraper.run(window) for scraper in scrapers), return_exceptions=True
    )

    events: list[Event] = []
    counts: dict[str, int] = {}
    for scraper, result in zip(scrapers, results):
        if isinstance(result, BaseException):
            log.error("[%s] failed: %r", scraper.name, result, exc_info=result)
            result = []
        counts[scraper.name] = len(result)
        events.extend(result)
    return events, counts


def dedupe(events: Iterable[Event]) -> list[Event]:
    """Keep the first event per ``(lower(name), date)``."""
    seen: set[tuple[str, str]] = set()
    unique: list[Event] = []
    for event in events:
        if event.dedup_key in seen:
            continue
        seen.add(event.dedup_key)
        unique.append(event)
    return unique


def log_samples(events: Sequence[Event], limit: int = SAMPLE_SIZE) -> None:
    for i, event in enumerate(events[:limit], start=1):
        log.info(
            "%d. %s | %s at %s | %s | %s | %s",
            i, event.name, event.date, event.time, event.location, event.price, event.platform,
        )


async def sync_events(
    settings: Settings | None = None,
    scrapers: Sequence[BaseScraper] | None = None,
    window: EventWindow | None = None,
    client_factory: ClientFactory = open_client,
) -> SyncReport:
    """One publish cycle: fetch every source, dedupe, replace the snapshot."""
    settings = settings or get_settings()
    scrapers = scrapers if scrapers is not None else build_scrapers(settings)

    events, counts = await collect(scrapers, window)
    report = SyncReport(counts=counts, collected=len(events))
    log.info("Total events collected: %d", len(events))
    for name, count in counts.items():
        log.info("  - %s: %d", name, count)

    if not events:
        log.warning("No events collected, keeping the previous snapshot")
        return report

    report.unique = dedupe(events)
    log.info("After deduplication: %d unique events", len(report.unique))

    if not settings.mongo_uri:
        log.warning("MONGO_URI not set, skipping DB sync. Sample events:")
        log_samples(report.unique)
        report.dry_run = True
        return report

    async with client_factory(settings.mongo_uri) as client:
        collection = events_collection(client, settings)
        report.published = await publish_snapshot(collection, report.unique)
    return report
