"""Centralized settings for the ingestion jobs."""

from __future__ import annotations

import re
from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Values copied from a template .env that were never filled in.
_PLACEHOLDER = re.compile(r"^(YOUR_.*_HERE|<.*>|changeme|xxx+)$", re.IGNORECASE)


class Settings(BaseSettings):
    # Document store
    mongo_uri: str | None = Field(
        default=None, validation_alias=AliasChoices("MONGO_URI", "MONGODB_URI")
    )
    events_db: str = "goodrec"
    events_collection: str = "events"
    restaurants_db: str = "nyc-events"
    listings_collection: str = "eventbrite_events"
    restaurants_collection: str = "restaurants"

    # Source credentials
    ticketmaster_api_key: str | None = None
    nyc_open_data_app_token: str | None = None

    # Chatbot collaborators (read here so one record validates the whole env)
    token: str | None = None
    gemini_api_key: str | None = None
    page_access_token: str | None = None

    log_level: str = "INFO"
    data_dir: str = "data"

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator(
        "mongo_uri",
        "ticketmaster_api_key",
        "nyc_open_data_app_token",
        "token",
        "gemini_api_key",
        "page_access_token",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip()
            if not value or _PLACEHOLDER.match(value):
                return None
        return value

    @property
    def has_database(self) -> bool:
        return self.mongo_uri is not None


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loaded once."""
    return Settings()
