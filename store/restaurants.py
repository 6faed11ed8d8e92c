"""Long-lived restaurant and listing records, upserted by URL."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from pymongo import ASCENDING

from ingest.config import Settings, get_settings
from ingest.models import Restaurant
from ingest.sources.eventbrite import EventbriteBackfillScraper
from store.database import (
    ClientFactory,
    listings_collection,
    open_client,
    restaurants_collection,
)

log = logging.getLogger(__name__)

RETENTION = timedelta(days=21)
DEFAULT_SOURCE = "eventbrite"


@dataclass
class UpsertResult:
    inserted: int = 0
    updated: int = 0
    removed: int = 0


def iso_z(moment: datetime) -> str:
    """UTC ISO string with millisecond precision, e.g. ``2026-10-17T04:00:00.000Z``."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


async def ensure_restaurant_indexes(collection: Any) -> None:
    await collection.create_index([("url", ASCENDING)], unique=True)
    await collection.create_index([("start", ASCENDING)])
    await collection.create_index([("scrapedAt", ASCENDING)])


async def purge_stale(collection: Any, now: datetime) -> int:
    """Drop records whose ``start`` is more than three weeks old."""
    cutoff = iso_z(now - RETENTION)
    result = await collection.delete_many({"start": {"$lt": cutoff}})
    return result.deleted_count


async def upsert_restaurants(
    collection: Any,
    records: Iterable[Restaurant],
    now: datetime | None = None,
    source: str = DEFAULT_SOURCE,
) -> UpsertResult:
    """Insert new URLs, refresh known ones, then trim stale rows.

    ``createdAt`` is only written on first insert; every touched record
    gets ``scrapedAt`` set to *now*.
    """
    now = now or datetime.now(timezone.utc)
    await ensure_restaurant_indexes(collection)

    outcome = UpsertResult()
    for record in records:
        result = await collection.update_one(
            {"url": record.url},
            {
                "$set": {**record.to_fields(), "scrapedAt": now, "source": source},
                "$setOnInsert": {"createdAt": now},
            },
            upsert=True,
        )
        if result.upserted_id is not None:
            outcome.inserted += 1
        elif result.modified_count:
            outcome.updated += 1

    outcome.removed = await purge_stale(collection, now)
    log.info(
        "Restaurants: %d inserted, %d updated, %d stale removed",
        outcome.inserted,
        outcome.updated,
        outcome.removed,
    )
    return outcome


@dataclass
class RestaurantRun:
    records: list[Restaurant]
    result: UpsertResult | None = None


async def sync_restaurants(
    settings: Settings | None = None,
    records: list[Restaurant] | None = None,
    source: str = DEFAULT_SOURCE,
    scraper: EventbriteBackfillScraper | None = None,
    client_factory: ClientFactory = open_client,
) -> RestaurantRun:
    """Crawl (or take) records and upsert them into their collection.

    Records handed in directly are enriched restaurants and go to the
    restaurants collection; crawled marketplace listings go to the
    listings collection.
    """
    settings = settings or get_settings()
    crawled = records is None
    if crawled:
        scraper = scraper or EventbriteBackfillScraper(settings)
        listings = await scraper.listings()
        records = [Restaurant(**listing.model_dump()) for listing in listings]

    run = RestaurantRun(records=records)
    log.info("Total records found: %d", len(records))
    if not settings.mongo_uri:
        log.warning("MONGODB_URI not set, skipping database save")
        return run

    async with client_factory(settings.mongo_uri) as client:
        collection = (
            listings_collection(client, settings)
            if crawled
            else restaurants_collection(client, settings)
        )
        run.result = await upsert_restaurants(collection, records, source=source)
    return run
