"""Map source-shaped records onto the canonical :class:`Event` schema.

Every adapter hands back raw dicts in whatever shape its upstream uses.
The functions here decide whether a record falls inside the publishing
window and, if so, build the display strings the DM assistant shows:
``date``, ``time``, ``location``, ``description`` and ``price``.

All civil dates are computed in America/New_York.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Mapping
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser

from ingest.models import BRAND, Event, Platform

NYC_TZ = ZoneInfo("America/New_York")
WINDOW_DAYS = 14
DESCRIPTION_LIMIT = 150

PERMITTED_LINK = "https://www.nyc.gov/events"
PARKS_LINK = "https://www.nycgovparks.org/events"
EVENTBRITE_LINK = "https://www.eventbrite.com"
TICKETMASTER_LINK = "https://www.ticketmaster.com"

BOROUGH_MAP = {
    "M": "Manhattan",
    "B": "Brooklyn",
    "Q": "Queens",
    "X": "Bronx",
    "R": "Staten Island",
    "MANHATTAN": "Manhattan",
    "BROOKLYN": "Brooklyn",
    "QUEENS": "Queens",
    "BRONX": "Bronx",
    "THE BRONX": "Bronx",
    "STATEN ISLAND": "Staten Island",
}

# State-level values that add nothing after a neighborhood.
_REGION_NOISE = {"NY", "New York"}

_TAG_RE = re.compile(r"<[^>]*>?")
_SPACE_RE = re.compile(r"\s+")
_TIME_12H_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*(am|pm)$", re.IGNORECASE)
_SUFFIX_RE = re.compile(r"\s*(am|pm)$", re.IGNORECASE)
_AMOUNT_RE = re.compile(r"^\d+(\.\d+)?$", re.ASCII)


# ------------------------------------------------------------------
# Dates and times
# ------------------------------------------------------------------


@dataclass(frozen=True)
class EventWindow:
    """Inclusive publishing window ``[today 00:00, today+14 23:59:59.999]``."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime | None) -> bool:
        if moment is None:
            return False
        return self.start <= moment <= self.end

    def contains_date(self, day: date) -> bool:
        return self.start.date() <= day <= self.end.date()


def event_window(now: datetime | None = None, days: int = WINDOW_DAYS) -> EventWindow:
    """Build the window around *now* (defaults to the current NYC time)."""
    now = to_nyc(now) if now is not None else datetime.now(NYC_TZ)
    start = datetime.combine(now.date(), time.min, tzinfo=NYC_TZ)
    last_day = now.date() + timedelta(days=days)
    end = datetime.combine(last_day, time(23, 59, 59, 999000), tzinfo=NYC_TZ)
    return EventWindow(start=start, end=end)


def to_nyc(moment: datetime) -> datetime:
    """Attach NYC time to naive values, convert aware ones."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=NYC_TZ)
    return moment.astimezone(NYC_TZ)


def parse_start(value: Any) -> datetime | None:
    """Parse a start timestamp permissively; ``None`` when unusable.

    Naive values and bare dates are taken as NYC local time.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_nyc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=NYC_TZ)
    if not isinstance(value, str):
        return None

    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = date_parser.parse(text)
        except (ValueError, OverflowError):
            return None
    return to_nyc(parsed)


def format_date(moment: datetime) -> str:
    return to_nyc(moment).date().isoformat()


def format_time(moment: datetime) -> str:
    """``7:05 PM`` style clock time in NYC."""
    local = to_nyc(moment)
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {suffix}"


def parse_time_12h(value: str | None) -> str:
    """Convert ``"7:00 pm"`` to ``"19:00:00"``; anything else is midnight."""
    if not value:
        return "00:00:00"
    match = _TIME_12H_RE.match(value.strip())
    if not match:
        return "00:00:00"
    hours, minutes, period = int(match.group(1)), match.group(2), match.group(3).lower()
    if period == "pm" and hours != 12:
        hours += 12
    if period == "am" and hours == 12:
        hours = 0
    return f"{hours:02d}:{minutes}:00"


def upper_suffix(value: str | None) -> str | None:
    """``"7:00 am"`` -> ``"7:00 AM"``; the provider's clock is kept as-is."""
    if not value:
        return None
    value = value.strip()
    return _SUFFIX_RE.sub(lambda m: " " + m.group(1).upper(), value)


# ------------------------------------------------------------------
# Places
# ------------------------------------------------------------------


def normalize_borough(raw: str | None) -> str | None:
    """Map borough codes and names to display names; unknowns pass through."""
    if not raw or not raw.strip():
        return None
    return BOROUGH_MAP.get(raw.strip().upper(), raw)


def borough_from_park_id(park_ids: str | None) -> str | None:
    """Parks ids start with the borough letter, e.g. ``B123``."""
    if not park_ids:
        return None
    return BOROUGH_MAP.get(park_ids.strip()[:1].upper())


def compose_location(
    venue: str | None,
    neighborhood: str | None = None,
    region: str | None = None,
    fallback: str = "New York City",
) -> str:
    """``"<venue> — <neighborhood>[, <region>]"`` with fallbacks."""
    venue = (venue or "").strip()
    neighborhood = (neighborhood or "").strip()
    region = (region or "").strip()

    if not venue:
        return neighborhood or region or fallback

    text = venue
    if neighborhood:
        text += f" — {neighborhood}"
        if region and region not in _REGION_NOISE:
            text += f", {region}"
    return text


# ------------------------------------------------------------------
# Text and price
# ------------------------------------------------------------------


def clean_text(text: str | None) -> str:
    if not text:
        return ""
    return _SPACE_RE.sub(" ", _TAG_RE.sub("", text)).strip()


def truncate(text: str, limit: int = DESCRIPTION_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def clean_description(text: str | None, name: str, platform: str) -> str:
    """Plain-text description of at most 150 chars, synthesized when empty."""
    text = clean_text(text)
    if not text:
        text = f"{name}. Check {platform} for full details."
    return truncate(text)


def _as_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().lstrip("$").replace(",", "")
        # plain decimal only: no exponents, signs, "NaN" or ".5"
        if not _AMOUNT_RE.match(value):
            return None
    elif not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _money(value: Any) -> str | None:
    """Render a price as given when it is numeric, e.g. ``25.00`` or ``40``."""
    number = _as_number(value)
    if number is None or number < 0:
        return None
    if isinstance(value, str):
        return value.strip().lstrip("$").replace(",", "")
    if number.is_integer():
        return str(int(number))
    return f"{number:.2f}".rstrip("0").rstrip(".")


def marketplace_price(offers: Any) -> str:
    """Price label from schema.org ``offers`` (first offer wins)."""
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    if not isinstance(offers, Mapping):
        return "Check site"

    price, low = offers.get("price"), offers.get("lowPrice")
    if _as_number(price) == 0 or _as_number(low) == 0:
        return "Free"
    for candidate in (price, low):
        amount = _money(candidate)
        if amount is not None:
            return f"${amount}"
    return "Check site"


def ticketing_price(price_ranges: Any) -> str:
    """``$min`` or ``$min - $max`` from Ticketmaster ``priceRanges``."""
    if not isinstance(price_ranges, list) or not price_ranges:
        return "Check source"
    first = price_ranges[0] if isinstance(price_ranges[0], Mapping) else {}
    low, high = _money(first.get("min")), _money(first.get("max"))
    if low is None and high is None:
        return "Check source"
    if low is None or high is None or _as_number(low) == _as_number(high):
        return f"${low if low is not None else high}"
    return f"${low} - ${high}"


# ------------------------------------------------------------------
# Per-platform mapping
# ------------------------------------------------------------------


def _build(
    *,
    platform: Platform,
    name: str,
    start: datetime,
    time_label: str | None,
    location: str,
    description: str | None,
    link: str,
    price: str,
    source_id: Any = None,
) -> Event:
    return Event(
        name=name,
        date=format_date(start),
        time=time_label,
        location=location,
        description=clean_description(description, name, platform.value),
        link=link,
        price=price,
        source=BRAND,
        platform=platform,
        isActive=True,
        _sourceId=str(source_id) if source_id not in (None, "") else None,
    )


def normalize_permitted(row: Mapping[str, Any], window: EventWindow) -> Event | None:
    start = parse_start(row.get("start_date_time"))
    if not window.contains(start):
        return None

    borough = normalize_borough(row.get("event_borough"))
    event_type = (row.get("event_type") or "").strip()
    description = (
        f"{event_type} event in NYC. Check source for details."
        if event_type
        else "Public event in New York City."
    )
    return _build(
        platform=Platform.NYC_OPEN_DATA,
        name=(row.get("event_name") or "").strip() or "NYC Event",
        start=start,
        time_label=format_time(start),
        location=compose_location(row.get("event_location"), borough),
        description=description,
        link=PERMITTED_LINK,
        price="Check source",
        source_id=row.get("event_id"),
    )


def normalize_parks(row: Mapping[str, Any], window: EventWindow) -> Event | None:
    start_date = (row.get("startdate") or "").strip()
    if not start_date:
        return None
    start = parse_start(f"{start_date}T{parse_time_12h(row.get('starttime'))}")
    if not window.contains(start):
        return None

    borough = borough_from_park_id(row.get("parkids"))
    categories = (row.get("categories") or "").strip()
    description = (
        f"{categories}. Free event at NYC Parks."
        if categories
        else "Free event at NYC Parks. Check site for details."
    )
    return _build(
        platform=Platform.NYC_PARKS,
        name=(row.get("title") or "").strip() or "NYC Parks Event",
        start=start,
        time_label=upper_suffix(row.get("starttime")),
        location=compose_location(row.get("location"), borough, fallback="NYC Park"),
        description=description,
        link=row.get("link") or PARKS_LINK,
        price="Free",
        source_id=row.get("guid"),
    )


def normalize_marketplace(node: Mapping[str, Any], window: EventWindow) -> Event | None:
    start = parse_start(node.get("startDate"))
    if not window.contains(start):
        return None

    place = node.get("location")
    if isinstance(place, list):
        place = place[0] if place else None
    place = place if isinstance(place, Mapping) else {}
    address = place.get("address")
    address = address if isinstance(address, Mapping) else {}

    name = node.get("name")
    name = name.strip() if isinstance(name, str) and name.strip() else "Eventbrite Event"
    return _build(
        platform=Platform.EVENTBRITE,
        name=name,
        start=start,
        time_label=format_time(start),
        location=compose_location(
            place.get("name") or "New York City",
            address.get("addressLocality"),
            address.get("addressRegion"),
        ),
        description=node.get("description"),
        link=node.get("url") or EVENTBRITE_LINK,
        price=marketplace_price(node.get("offers")),
        source_id=node.get("url"),
    )


def _ticketing_start(dates: Mapping[str, Any]) -> datetime | None:
    start = dates.get("start") or {}
    if start.get("dateTime"):
        return parse_start(start["dateTime"])
    if start.get("localDate"):
        local_time = start.get("localTime") or "00:00:00"
        return parse_start(f"{start['localDate']}T{local_time}")
    return None


def normalize_ticketing(item: Mapping[str, Any], window: EventWindow) -> Event | None:
    start = _ticketing_start(item.get("dates") or {})
    if not window.contains(start):
        return None

    venues = (item.get("_embedded") or {}).get("venues") or []
    venue = venues[0] if venues and isinstance(venues[0], Mapping) else {}
    return _build(
        platform=Platform.TICKETMASTER,
        name=(item.get("name") or "").strip() or "Ticketmaster Event",
        start=start,
        time_label=format_time(start),
        location=compose_location(
            venue.get("name"),
            (venue.get("city") or {}).get("name"),
            (venue.get("state") or {}).get("stateCode"),
        ),
        description=item.get("info") or item.get("pleaseNote"),
        link=item.get("url") or TICKETMASTER_LINK,
        price=ticketing_price(item.get("priceRanges")),
        source_id=item.get("id"),
    )


_NORMALIZERS: dict[Platform, Callable[[Mapping[str, Any], EventWindow], Event | None]] = {
    Platform.NYC_OPEN_DATA: normalize_permitted,
    Platform.NYC_PARKS: normalize_parks,
    Platform.EVENTBRITE: normalize_marketplace,
    Platform.TICKETMASTER: normalize_ticketing,
}


def normalize_record(
    platform: Platform | str,
    raw: Mapping[str, Any],
    window: EventWindow | None = None,
) -> Event | None:
    """Normalize one raw record; ``None`` when it falls outside the window."""
    window = window or event_window()
    return _NORMALIZERS[Platform(platform)](raw, window)


def renormalize(event: Event, window: EventWindow | None = None) -> Event | None:
    """Run an already-canonical event back through the same rules."""
    window = window or event_window()
    try:
        day = date.fromisoformat(event.date)
    except ValueError:
        return None
    if not window.contains_date(day):
        return None
    return event.model_copy(
        update={
            "name": event.name.strip() or event.name,
            "description": clean_description(
                event.description, event.name, str(event.platform)
            ),
            "location": compose_location(event.location),
        }
    )
