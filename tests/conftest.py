"""
Shared fixtures: a mocked async MongoDB collection and a service bound to it.
"""
import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from moviemate.movie_service import MovieService

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeCursor:
    """Mimics pymongo's async cursors: chainable sort/skip/limit and an async to_list."""

    def __init__(self, docs=None):
        self.docs = list(docs or [])
        self.sort_spec = None
        self.skipped = 0
        self.limited = 0

    def sort(self, spec):
        self.sort_spec = spec
        return self

    def skip(self, count):
        self.skipped = count
        return self

    def limit(self, count):
        self.limited = count
        return self

    async def to_list(self, length=None):
        docs = self.docs[self.skipped:]
        if self.limited:
            docs = docs[:self.limited]
        return docs


@pytest.fixture
def collection():
    coll = MagicMock()
    coll.name = "movies"
    coll.find = MagicMock(return_value=FakeCursor())
    coll.find_one = AsyncMock(return_value=None)
    coll.count_documents = AsyncMock(return_value=0)
    coll.distinct = AsyncMock(return_value=[])
    coll.aggregate = AsyncMock(return_value=FakeCursor())
    coll.insert_one = AsyncMock(return_value=MagicMock(inserted_id=ObjectId()))
    coll.update_one = AsyncMock()
    coll.find_one_and_update = AsyncMock(return_value=None)
    return coll


@pytest.fixture
def service(collection):
    return MovieService(collection, clock=lambda: FIXED_NOW)


@pytest.fixture
def run():
    return asyncio.run
