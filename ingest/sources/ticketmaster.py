"""Ticketmaster events via the Discovery API v2."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from ingest.base import BaseScraper, RawRecord, register
from ingest.errors import SourceError
from ingest.models import Platform
from ingest.normalize import event_window

log = logging.getLogger(__name__)

ENDPOINT = "https://app.ticketmaster.com/discovery/v2/events.json"
PAGE_SIZE = 100
MAX_PAGES = 3  # soft cap, the API may report more


def _iso_utc(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@register
class TicketmasterScraper(BaseScraper):
    name = "ticketmaster"
    platform = Platform.TICKETMASTER

    page_delay: float = 0.5

    async def scrape(self) -> list[RawRecord]:
        api_key = self.settings.ticketmaster_api_key
        if not api_key:
            log.info("[%s] TICKETMASTER_API_KEY not set, skipping", self.name)
            return []

        window = event_window()
        events: list[RawRecord] = []
        page = 0

        while page < MAX_PAGES:
            params = {
                "apikey": api_key,
                "city": "New York",
                "stateCode": "NY",
                "startDateTime": _iso_utc(window.start),
                "endDateTime": _iso_utc(window.end),
                "size": PAGE_SIZE,
                "page": page,
                "sort": "date,asc",
            }
            data = await self.fetch_json(ENDPOINT, params=params)
            if not isinstance(data, dict):
                raise SourceError(self.name, "expected a JSON object")

            items = (data.get("_embedded") or {}).get("events") or []
            events.extend(item for item in items if isinstance(item, dict))

            page_info = data.get("page")
            total_pages = page_info.get("totalPages") if isinstance(page_info, dict) else None
            page += 1
            if not items or not isinstance(total_pages, int) or page >= total_pages:
                break
            await asyncio.sleep(self.page_delay)

        return events
