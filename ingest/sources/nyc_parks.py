"""NYC Parks events from the department's RSS-as-JSON feed."""

from __future__ import annotations

from ingest.base import BaseScraper, RawRecord, register
from ingest.errors import SourceError
from ingest.models import Platform

ENDPOINT = "https://www.nycgovparks.org/xml/events_300_rss.json"

FIELDS = (
    "title",
    "startdate",
    "starttime",
    "location",
    "categories",
    "parkids",
    "link",
    "guid",
)


@register
class NYCParksScraper(BaseScraper):
    name = "nyc_parks"
    platform = Platform.NYC_PARKS

    async def scrape(self) -> list[RawRecord]:
        rows = await self.fetch_json(ENDPOINT)
        if not isinstance(rows, list):
            raise SourceError(self.name, "expected a JSON array of events")
        return [
            {key: row.get(key) for key in FIELDS}
            for row in rows
            if isinstance(row, dict)
        ]
