"""Shared Pydantic models for the GoodRec ingestion jobs."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

BRAND = "GoodRec"


class Platform(str, Enum):
    NYC_OPEN_DATA = "NYC Open Data"
    NYC_PARKS = "NYC Parks"
    EVENTBRITE = "Eventbrite"
    TICKETMASTER = "Ticketmaster"


class Event(BaseModel):
    """Canonical event document served to the DM assistant."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    name: str
    date: str
    time: str | None = None
    location: str
    description: str
    link: str
    price: str
    source: str = BRAND
    platform: Platform
    is_active: bool = Field(default=True, alias="isActive")
    source_id: str | None = Field(default=None, alias="_sourceId")

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("event name must not be empty")
        return value

    @property
    def dedup_key(self) -> tuple[str, str]:
        return self.name.lower(), self.date

    def to_document(self) -> dict[str, Any]:
        """Camel-cased document as stored, without the debug source id."""
        return self.model_dump(by_alias=True, exclude={"source_id"})


class ListingEvent(BaseModel):
    """Slim marketplace listing captured by the backfill crawl."""

    title: str | None = None
    start: str | None = None
    end: str | None = None
    url: str
    venue: str | None = None


class Restaurant(BaseModel):
    """Record kept in the long-lived restaurant collection, keyed by url."""

    model_config = ConfigDict(extra="allow")

    url: str
    name: str | None = None
    title: str | None = None
    start: str | None = None
    end: str | None = None
    venue: str | None = None
    fullAddress: str | None = None
    cuisineDescription: str | None = None
    rating: float | None = None
    priceLevel: str | int | None = None
    userRatingsTotal: int | None = None
    phoneNumber: str | None = None
    website: str | None = None
    googleMapsUri: str | None = None
    openingHours: list[str] | dict[str, Any] | None = None
    reviewSummary: str | None = None
    googleTypes: list[str] | None = None
    scrapedAt: datetime | None = None
    createdAt: datetime | None = None
    source: str | None = None

    def to_fields(self) -> dict[str, Any]:
        """Fields to $set; bookkeeping timestamps are owned by the ingester."""
        return self.model_dump(
            exclude_none=True, exclude={"scrapedAt", "createdAt", "source"}
        )
