"""Abstract base scraper with httpx, pacing, UA rotation, and failure isolation."""

from __future__ import annotations

import abc
import asyncio
import json
import logging
import random
from typing import Any, Mapping

import httpx

from ingest.config import Settings, get_settings
from ingest.errors import SourceError
from ingest.models import Event, Platform
from ingest.normalize import EventWindow, event_window, normalize_record

log = logging.getLogger(__name__)

_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.0 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64; rv:132.0) Gecko/20100101 Firefox/132.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:132.0) Gecko/20100101 Firefox/132.0",
]

REQUEST_TIMEOUT = 15.0

#: Adapter order is part of the dedup contract: first seen wins.
SOURCE_ORDER = ("nyc_permitted", "nyc_parks", "eventbrite", "ticketmaster")

RawRecord = Mapping[str, Any]


class BaseScraper(abc.ABC):
    """Abstract base scraper that all source adapters must subclass."""

    #: Unique source identifier, e.g. "eventbrite".
    name: str = ""

    #: Platform tag stamped on every normalized event.
    platform: Platform | None = None

    #: Minimum seconds between requests.
    rate_limit: float = 0.0

    #: Strict TLS unless the upstream serves an awkward certificate chain.
    verify_tls: bool = True

    #: Test hook: replaces the network with e.g. ``httpx.MockTransport``.
    transport: httpx.AsyncBaseTransport | None = None

    def __init__(self, settings: Settings | None = None) -> None:
        if not self.name:
            raise ValueError("Scraper subclass must set 'name'")
        self.settings = settings or get_settings()
        self._client: httpx.AsyncClient | None = None
        self._last_request: float = 0.0
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": random.choice(_USER_AGENTS)},
                follow_redirects=True,
                timeout=REQUEST_TIMEOUT,
                verify=self.verify_tls,
                transport=self.transport,
            )
        return self._client

    async def _rate_limit_wait(self) -> None:
        if self.rate_limit <= 0:
            return
        async with self._lock:
            loop = asyncio.get_running_loop()
            elapsed = loop.time() - self._last_request
            if elapsed < self.rate_limit:
                await asyncio.sleep(self.rate_limit - elapsed)
            self._last_request = loop.time()

    async def fetch(self, url: str, **kwargs: Any) -> httpx.Response:
        """GET *url*; non-2xx responses raise ``httpx.HTTPStatusError``."""
        client = await self._ensure_client()
        await self._rate_limit_wait()
        resp = await client.get(url, **kwargs)
        resp.raise_for_status()
        return resp

    async def fetch_json(self, url: str, **kwargs: Any) -> Any:
        resp = await self.fetch(url, **kwargs)
        try:
            return resp.json()
        except json.JSONDecodeError as exc:
            raise SourceError(self.name, f"invalid JSON from {url}") from exc

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Scrape contract
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def scrape(self) -> list[RawRecord]:
        """Fetch and return source-shaped records from this source."""

    async def fetch_records(self) -> list[RawRecord]:
        """Run :meth:`scrape` behind the isolation boundary.

        Any network, HTTP, TLS or parse failure is logged and turned into
        an empty list so that one source never fails a whole run.
        """
        try:
            return await self.scrape()
        except (httpx.HTTPError, SourceError, ValueError, KeyError, TypeError) as exc:
            log.warning("[%s] fetch failed, skipping source: %s", self.name, exc)
            return []
        finally:
            await self.close()

    def normalize(self, records: list[RawRecord], window: EventWindow) -> list[Event]:
        if self.platform is None:
            raise ValueError(f"Scraper {self.name!r} has no platform")
        events: list[Event] = []
        for raw in records:
            if not isinstance(raw, Mapping):
                continue
            try:
                event = normalize_record(self.platform, raw, window)
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                log.debug("[%s] skipping malformed record: %s", self.name, exc)
                continue
            if event is not None:
                events.append(event)
        return events

    async def run(self, window: EventWindow | None = None) -> list[Event]:
        """Fetch, normalize and window this source's events."""
        window = window or event_window()
        records = await self.fetch_records()
        events = self.normalize(records, window)
        log.info("[%s] %d event(s) in window (%d raw)", self.name, len(events), len(records))
        return events


# ------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------

_registry: dict[str, type[BaseScraper]] = {}


def register(cls: type[BaseScraper]) -> type[BaseScraper]:
    """Class decorator that registers a scraper by its *name*."""
    _registry[cls.name] = cls
    return cls


def get_scrapers() -> dict[str, type[BaseScraper]]:
    """Return a copy of the scraper registry."""
    return dict(_registry)


def get_scraper(name: str) -> type[BaseScraper]:
    """Look up a registered scraper by name."""
    try:
        return _registry[name]
    except KeyError:
        raise KeyError(f"Unknown scraper: {name!r}. Available: {list(_registry)}")
