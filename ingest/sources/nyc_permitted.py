"""NYC permitted events via the Socrata (SODA) Open Data API."""

from __future__ import annotations

from datetime import datetime

from ingest.base import BaseScraper, RawRecord, register
from ingest.errors import SourceError
from ingest.models import Platform
from ingest.normalize import NYC_TZ

ENDPOINT = "https://data.cityofnewyork.us/resource/tvpp-9vvx.json"
ROW_LIMIT = 500

FIELDS = (
    "event_id",
    "event_name",
    "event_type",
    "event_location",
    "event_borough",
    "start_date_time",
)


def query_params(today: str, limit: int = ROW_LIMIT, app_token: str | None = None) -> dict:
    params: dict[str, object] = {
        "$where": f"start_date_time >= '{today}'",
        "$order": "start_date_time",
        "$limit": limit,
    }
    # Socrata app tokens are optional but raise throttle limits.
    if app_token:
        params["$$app_token"] = app_token
    return params


@register
class NYCPermittedScraper(BaseScraper):
    name = "nyc_permitted"
    platform = Platform.NYC_OPEN_DATA

    async def scrape(self) -> list[RawRecord]:
        today = datetime.now(NYC_TZ).date().isoformat()
        params = query_params(today, app_token=self.settings.nyc_open_data_app_token)
        rows = await self.fetch_json(ENDPOINT, params=params)
        if not isinstance(rows, list):
            raise SourceError(self.name, "expected a JSON array of rows")
        return [
            {key: row.get(key) for key in FIELDS}
            for row in rows
            if isinstance(row, dict)
        ]
