"""Eventbrite scraper – NYC event search listings via embedded JSON-LD."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Iterable

import httpx
from bs4 import BeautifulSoup

from ingest.base import BaseScraper, RawRecord, register
from ingest.models import ListingEvent, Platform
from ingest.normalize import EventWindow, event_window, parse_start

log = logging.getLogger(__name__)

SEARCH_URL = "https://www.eventbrite.com/d/ny--new-york/events/"
ALL_EVENTS_URL = "https://www.eventbrite.com/d/ny--new-york/all-events/"

_HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def find_event_nodes(data: Any) -> list[dict]:
    """Walk a JSON-LD document and return every ``Event`` node, in order.

    Handles a bare ``Event``, an ``ItemList`` of ``ListItem`` entries whose
    ``item`` is an event, and arbitrarily nested arrays of either.
    """
    found: list[dict] = []
    if isinstance(data, list):
        for item in data:
            found.extend(find_event_nodes(item))
    elif isinstance(data, dict):
        if data.get("@type") == "Event":
            found.append(data)
        for value in data.values():
            if isinstance(value, (dict, list)):
                found.extend(find_event_nodes(value))
    return found


def parse_jsonld_events(html: str) -> list[dict]:
    """All event nodes from a page's ``application/ld+json`` blocks."""
    soup = BeautifulSoup(html, "html.parser")
    nodes: list[dict] = []
    for script in soup.find_all("script", type="application/ld+json"):
        content = script.string or script.get_text()
        if not content or not content.strip():
            continue
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            continue
        nodes.extend(find_event_nodes(data))
    return nodes


def unique_by(nodes: Iterable[dict], *keys: str) -> list[dict]:
    seen: set[tuple] = set()
    unique: list[dict] = []
    for node in nodes:
        key = tuple(str(node.get(k)) for k in keys)
        if key in seen:
            continue
        seen.add(key)
        unique.append(node)
    return unique


@register
class EventbriteScraper(BaseScraper):
    """Incremental crawl of the first few search pages."""

    name = "eventbrite"
    platform = Platform.EVENTBRITE
    verify_tls = False

    base_url = SEARCH_URL
    max_pages: int = 10
    concurrency: int = 2
    page_delay: float = 1.0

    async def _ensure_client(self) -> httpx.AsyncClient:
        client = await super()._ensure_client()
        client.headers["Accept"] = _HTML_ACCEPT
        return client

    async def fetch_page(self, page: int, semaphore: asyncio.Semaphore) -> list[dict] | None:
        """Event nodes on *page*, de-duplicated; ``None`` when the fetch failed."""
        async with semaphore:
            try:
                resp = await self.fetch(self.base_url, params={"page": page})
            except httpx.HTTPError as exc:
                log.warning("[%s] page %d failed: %s", self.name, page, exc)
                return None
        nodes = unique_by(parse_jsonld_events(resp.text), "name", "startDate")
        log.debug("[%s] page %d: %d event(s)", self.name, page, len(nodes))
        return nodes

    async def scrape(self) -> list[RawRecord]:
        semaphore = asyncio.Semaphore(self.concurrency)
        records: list[RawRecord] = []

        for first in range(1, self.max_pages + 1, self.concurrency):
            pages = list(range(first, min(first + self.concurrency, self.max_pages + 1)))
            results = await asyncio.gather(*(self.fetch_page(p, semaphore) for p in pages))
            for page, nodes in zip(pages, results):
                if not nodes:
                    log.info("[%s] no events on page %d, stopping", self.name, page)
                    return records
                records.extend(nodes)
            await asyncio.sleep(self.page_delay)

        return records


class EventbriteBackfillScraper(EventbriteScraper):
    """Long crawl of the all-events listing used to seed the listing store."""

    name = "eventbrite_backfill"
    base_url = ALL_EVENTS_URL
    max_pages = 150
    concurrency = 5
    page_delay = 0.5

    @staticmethod
    def _listing(node: dict) -> ListingEvent | None:
        url = node.get("url")
        if not isinstance(url, str) or not url:
            return None
        place = node.get("location")
        place = place if isinstance(place, dict) else {}
        address = place.get("address")
        address = address if isinstance(address, dict) else {}
        return ListingEvent(
            title=node.get("name"),
            start=node.get("startDate"),
            end=node.get("endDate"),
            url=url,
            venue=place.get("name") or address.get("addressLocality"),
        )

    async def scrape(self) -> list[RawRecord]:
        semaphore = asyncio.Semaphore(self.concurrency)
        nodes: list[dict] = []

        for first in range(1, self.max_pages + 1, self.concurrency):
            pages = list(range(first, min(first + self.concurrency, self.max_pages + 1)))
            log.info("[%s] fetching pages %s", self.name, ", ".join(map(str, pages)))
            results = await asyncio.gather(*(self.fetch_page(p, semaphore) for p in pages))
            for page_nodes in results:
                nodes.extend(page_nodes or [])
            await asyncio.sleep(self.page_delay)

        return nodes

    async def listings(self, window: EventWindow | None = None) -> list[ListingEvent]:
        """Windowed listings, unique by URL and sorted by start."""
        window = window or event_window()
        nodes = await self.fetch_records()

        listings: list[ListingEvent] = []
        seen: set[str] = set()
        for node in nodes:
            try:
                listing = self._listing(node)
            except ValueError:
                continue
            if listing is None or listing.url in seen:
                continue
            seen.add(listing.url)
            if window.contains(parse_start(listing.start)):
                listings.append(listing)

        listings.sort(key=lambda item: parse_start(item.start))
        log.info("[%s] %d listing(s) in window", self.name, len(listings))
        return listings
