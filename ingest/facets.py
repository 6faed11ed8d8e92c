"""Filter vocabularies pulled straight from the municipal event feeds."""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable

import httpx

from ingest.base import REQUEST_TIMEOUT
from ingest.sources.nyc_parks import ENDPOINT as PARKS_ENDPOINT
from ingest.sources.nyc_permitted import ENDPOINT as PERMITTED_ENDPOINT

log = logging.getLogger(__name__)

PERMITTED_FIELDS = ("event_type", "event_borough", "event_agency", "street_closure_type")
PERMITTED_LIST_FIELDS = ("community_board", "police_precinct")

_DIGITS = re.compile(r"(\d+)")
_CATEGORY_SEP = re.compile(r"[|,]")


def natural_key(value: str) -> list[Any]:
    """Sort key that orders ``"2"`` before ``"10"``."""
    return [int(part) if part.isdigit() else part.lower() for part in _DIGITS.split(value)]


def _split(value: Any, separator: re.Pattern[str] | str) -> Iterable[str]:
    if not isinstance(value, str):
        return []
    parts = separator.split(value) if isinstance(separator, re.Pattern) else value.split(separator)
    return [part.strip() for part in parts if part.strip()]


def permitted_facets(rows: list[dict[str, Any]]) -> dict[str, list[str]]:
    values: dict[str, set[str]] = {f: set() for f in (*PERMITTED_FIELDS, *PERMITTED_LIST_FIELDS)}
    for row in rows:
        for field in PERMITTED_FIELDS:
            value = row.get(field)
            if isinstance(value, str) and value.strip():
                values[field].add(value.strip())
        for field in PERMITTED_LIST_FIELDS:
            values[field].update(_split(row.get(field), ","))

    facets = {field: sorted(values[field]) for field in PERMITTED_FIELDS}
    for field in PERMITTED_LIST_FIELDS:
        facets[field] = sorted(values[field], key=natural_key)
    return facets


def parks_facets(rows: list[dict[str, Any]]) -> dict[str, list[str]]:
    categories: set[str] = set()
    parknames: set[str] = set()
    for row in rows:
        categories.update(_split(row.get("categories"), _CATEGORY_SEP))
        name = row.get("parknames")
        if isinstance(name, str) and name.strip():
            parknames.add(name.strip())
    return {"categories": sorted(categories), "parknames": sorted(parknames)}


async def fetch_event_filters(
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, dict[str, list[str]]]:
    """Fetch both feeds and return their sorted facet vocabularies."""
    async with httpx.AsyncClient(
        timeout=REQUEST_TIMEOUT, follow_redirects=True, transport=transport
    ) as client:
        log.info("Fetching NYC Permitted Events...")
        permitted = await client.get(PERMITTED_ENDPOINT)
        permitted.raise_for_status()

        log.info("Fetching NYC Parks Events...")
        parks = await client.get(PARKS_ENDPOINT)
        parks.raise_for_status()

    permitted_rows = [r for r in permitted.json() if isinstance(r, dict)]
    parks_rows = [r for r in parks.json() if isinstance(r, dict)]
    return {
        "permitted_events": permitted_facets(permitted_rows),
        "parks_events": parks_facets(parks_rows),
    }
