"""Publish a fresh event snapshot by truncating and refilling the collection.

Readers may briefly see an empty collection between the delete and the
insert; they treat that as "no results" and the job runs off the hot
path. An insert failure leaves the collection empty until the next run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from pymongo import ASCENDING, TEXT

from ingest.models import Event

log = logging.getLogger(__name__)

EVENT_INDEXES: list[list[tuple[str, Any]]] = [
    [("date", ASCENDING)],
    [("platform", ASCENDING)],
    [("isActive", ASCENDING)],
    [("name", TEXT), ("description", TEXT), ("location", TEXT)],
]


@dataclass
class PublishResult:
    deleted: int
    inserted: int


@dataclass
class EventCounts:
    total: int
    active: int
    by_platform: dict[str, int] = field(default_factory=dict)


def to_documents(events: Iterable[Event | Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Store-ready documents with the ``_sourceId`` debug field removed."""
    documents = []
    for event in events:
        if isinstance(event, Event):
            documents.append(event.to_document())
        else:
            documents.append({k: v for k, v in event.items() if k != "_sourceId"})
    return documents


async def ensure_event_indexes(collection: Any) -> None:
    for keys in EVENT_INDEXES:
        await collection.create_index(keys)


async def publish_snapshot(collection: Any, events: list[Event]) -> PublishResult:
    """Replace every published event with *events*."""
    if not events:
        raise ValueError("refusing to replace the snapshot with an empty batch")

    documents = to_documents(events)
    deleted = await collection.delete_many({})
    log.info("Deleted %d old events", deleted.deleted_count)

    result = await collection.insert_many(documents)
    log.info("Inserted %d events", len(result.inserted_ids))

    await ensure_event_indexes(collection)
    log.info("Indexes ensured")
    return PublishResult(deleted=deleted.deleted_count, inserted=len(result.inserted_ids))


async def count_events(collection: Any) -> EventCounts:
    """Totals for a quick health check of the published snapshot."""
    total = await collection.count_documents({})
    active = await collection.count_documents({"isActive": True})
    by_platform = {}
    for platform in await collection.distinct("platform"):
        by_platform[platform or "Unknown"] = await collection.count_documents(
            {"platform": platform}
        )
    ordered = dict(sorted(by_platform.items(), key=lambda item: item[1], reverse=True))
    return EventCounts(total=total, active=active, by_platform=ordered)
