"""Document-store connection management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from pymongo import AsyncMongoClient

from ingest.config import Settings

log = logging.getLogger(__name__)

SERVER_TIMEOUT_MS = 15_000

ClientFactory = Callable[[str], Any]


@asynccontextmanager
async def open_client(uri: str) -> AsyncIterator[AsyncMongoClient]:
    """Yield a connected client and close it on every exit path."""
    client: AsyncMongoClient = AsyncMongoClient(
        uri, serverSelectionTimeoutMS=SERVER_TIMEOUT_MS
    )
    try:
        await client.admin.command("ping")
        log.info("Connected to MongoDB")
        yield client
    finally:
        await client.close()
        log.debug("MongoDB connection closed")


def events_collection(client: Any, settings: Settings) -> Any:
    return client[settings.events_db][settings.events_collection]


def listings_collection(client: Any, settings: Settings) -> Any:
    return client[settings.restaurants_db][settings.listings_collection]


def restaurants_collection(client: Any, settings: Settings) -> Any:
    return client[settings.restaurants_db][settings.restaurants_collection]
