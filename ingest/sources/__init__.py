"""Auto-import all source adapters to trigger @register decorators."""

from ingest.sources import (  # noqa: F401
    eventbrite,
    nyc_parks,
    nyc_permitted,
    ticketmaster,
)
