"""Shared fixtures: fixed clock, settings, and an in-memory document store."""

from __future__ import annotations

import itertools
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any

import httpx
import pytest

from ingest.config import Settings
from ingest.normalize import NYC_TZ, event_window

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=NYC_TZ)


def day(offset: int) -> str:
    """ISO date *offset* days after the fixed test clock."""
    return (NOW.date() + timedelta(days=offset)).isoformat()


# ------------------------------------------------------------------
# In-memory collection double
# ------------------------------------------------------------------

_MISSING = object()


def _matches(doc: dict, query: dict | None) -> bool:
    for key, cond in (query or {}).items():
        value = doc.get(key, _MISSING)
        if isinstance(cond, dict) and any(k.startswith("$") for k in cond):
            for op, operand in cond.items():
                if op == "$lt":
                    if value is _MISSING or value is None or not value < operand:
                        return False
                elif op == "$ne":
                    if value is not _MISSING and value == operand:
                        return False
                elif op == "$exists":
                    if (value is not _MISSING) != operand:
                        return False
                else:
                    raise NotImplementedError(op)
        elif value is _MISSING or value != cond:
            return False
    return True


class FakeCursor:
    def __init__(self, docs: list[dict]) -> None:
        self._docs = docs

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self._docs:
            yield doc


class FakeCollection:
    """Just enough of pymongo's async collection API for the jobs."""

    def __init__(self, docs: list[dict] | None = None) -> None:
        self._ids = itertools.count(1)
        self.docs: list[dict] = []
        self.indexes: list[tuple[list, dict]] = []
        self.calls: list[str] = []
        for doc in docs or []:
            self.docs.append({"_id": next(self._ids), **doc})

    async def delete_many(self, query: dict) -> SimpleNamespace:
        self.calls.append("delete_many")
        keep = [d for d in self.docs if not _matches(d, query)]
        deleted = len(self.docs) - len(keep)
        self.docs = keep
        return SimpleNamespace(deleted_count=deleted)

    async def insert_many(self, documents: list[dict]) -> SimpleNamespace:
        self.calls.append("insert_many")
        ids = []
        for doc in documents:
            doc.setdefault("_id", next(self._ids))
            self.docs.append(dict(doc))
            ids.append(doc["_id"])
        return SimpleNamespace(inserted_ids=ids)

    async def create_index(self, keys: list, **kwargs: Any) -> str:
        self.calls.append("create_index")
        self.indexes.append((list(keys), kwargs))
        return "_".join(f"{k}_{v}" for k, v in keys)

    async def update_one(self, query: dict, update: dict, upsert: bool = False) -> SimpleNamespace:
        self.calls.append("update_one")
        for doc in self.docs:
            if _matches(doc, query):
                before = dict(doc)
                doc.update(update.get("$set", {}))
                return SimpleNamespace(
                    matched_count=1, modified_count=int(doc != before), upserted_id=None
                )
        if not upsert:
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        doc = {"_id": next(self._ids), **query}
        doc.update(update.get("$set", {}))
        doc.update(update.get("$setOnInsert", {}))
        self.docs.append(doc)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])

    async def distinct(self, field: str) -> list:
        values: list = []
        for doc in self.docs:
            value = doc.get(field)
            if field in doc and value not in values:
                values.append(value)
        return values

    async def count_documents(self, query: dict) -> int:
        return sum(1 for d in self.docs if _matches(d, query))

    def find(self, query: dict | None = None, projection: dict | None = None) -> FakeCursor:
        found = [d for d in self.docs if _matches(d, query)]
        if projection:
            wanted = [k for k, v in projection.items() if v and k != "_id"]
            found = [{k: d[k] for k in wanted if k in d} for d in found]
        return FakeCursor(found)

    def find_one_sync(self, query: dict) -> dict | None:
        return next((d for d in self.docs if _matches(d, query)), None)


class FakeClient:
    def __init__(self) -> None:
        self.dbs: dict[str, dict[str, FakeCollection]] = {}
        self.closed = False

    def __getitem__(self, db: str) -> dict[str, FakeCollection]:
        return _AutoDict(self.dbs.setdefault(db, {}))


class _AutoDict:
    def __init__(self, store: dict[str, FakeCollection]) -> None:
        self._store = store

    def __getitem__(self, name: str) -> FakeCollection:
        return self._store.setdefault(name, FakeCollection())


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def client_factory(fake_client: FakeClient):
    """Stand-in for ``store.database.open_client`` that records its use."""
    opened: list[str] = []

    @asynccontextmanager
    async def factory(uri: str):
        opened.append(uri)
        try:
            yield fake_client
        finally:
            fake_client.closed = True

    factory.opened = opened
    return factory


# ------------------------------------------------------------------
# Settings, clock, HTTP
# ------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "MONGO_URI",
        "MONGODB_URI",
        "TICKETMASTER_API_KEY",
        "NYC_OPEN_DATA_APP_TOKEN",
        "TOKEN",
        "GEMINI_API_KEY",
        "PAGE_ACCESS_TOKEN",
    ):
        monkeypatch.delenv(name, raising=False)


def make_settings(**overrides: Any) -> Settings:
    return Settings(_env_file=None, **overrides)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def db_settings() -> Settings:
    return make_settings(MONGO_URI="mongodb://localhost:27017")


@pytest.fixture
def window():
    return event_window(NOW)


def json_transport(routes: dict[str, Any]) -> httpx.MockTransport:
    """Serve JSON bodies by URL path; unknown paths answer 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = routes.get(request.url.path)
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, json=body)

    return httpx.MockTransport(handler)
