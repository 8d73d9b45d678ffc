"""
Sample feed ingest run against mocked collections.
"""
from unittest.mock import AsyncMock, MagicMock, patch

from conftest import FakeCursor
from moviemate import ingest


class AsyncIterCursor(FakeCursor):

    def __aiter__(self):
        self._items = iter(self.docs[:self.limited or None])
        return self

    async def __anext__(self):
        try:
            return next(self._items)
        except StopIteration:
            raise StopAsyncIteration


def test_ingest_normalises_and_counts_outcomes(collection, run):
    sample = MagicMock()
    sample.find.return_value = AsyncIterCursor([
        {"title": "The Great Train Robbery", "directors": ["Edwin S. Porter"], "year": 1903, "genres": ["Western"]},
        {"title": "No Director", "year": 1910},
    ])
    sample.count_documents = AsyncMock(return_value=2)

    with patch.object(ingest, "get_mongo_collections", return_value=(sample, collection)), \
            patch.object(ingest, "ensure_indexes", AsyncMock()):
        summary = run(ingest.ingest_sample_movies(limit=10))

    assert summary == {"imported": 1, "skipped": 0, "failed": 1}
    stored = collection.insert_one.call_args[0][0]
    assert stored["director"] == "Edwin S. Porter"
    assert stored["source"] == "mflix"
