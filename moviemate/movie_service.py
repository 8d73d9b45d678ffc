"""This module serves as a service layer for the movie catalog, providing
functions to list, read, create, update and soft-delete movie documents.
It also computes catalog statistics, suggestions, trending and random picks,
and runs bulk imports and exports. Independent reads of one request are
issued concurrently with asyncio.gather.
moviemate.movie_service.py
"""
import asyncio
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from bson import ObjectId
from loguru import logger
from pydantic import ValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from moviemate.errors import (
    DuplicateMovieError,
    InvalidInputError,
    MovieNotFoundError,
    validation_errors,
)
from moviemate.filters import (
    MovieFilters,
    contains_pattern,
    exact_pattern,
    parse_enum,
    parse_rating,
    parse_year,
)
from moviemate.paging import PageRequest, SortSpec, clamp_limit, resolve_sort
from moviemate.responses import round_rating, serialize_movie, serialize_movies
from moviemate.sample_feed import normalize_sample_movie
from moviemate.schemas import BulkImportRequest, MovieCreate, MovieUpdate, Source, Status, utcnow

ACTIVE = Status.ACTIVE.value
NOT_DELETED = {"$ne": Status.DELETED.value}

RELATED_LIMIT = 6
SUGGESTION_LIMIT = 10
SUGGESTION_MIN_LENGTH = 2
STATS_LIST_LIMIT = 10
TOP_RATED_MIN = 7
RANDOM_DEFAULT, RANDOM_MAX = 5, 20
TRENDING_DEFAULT = 10

RATING_BOUNDARIES = [0, 2, 4, 6, 7, 8, 9, 10]
TRENDING_PERIODS = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}

RELATED_PROJECTION = {"title": 1, "year": 1, "poster": 1, "imdb.rating": 1, "genres": 1}
SUGGESTION_PROJECTION = {"title": 1, "year": 1, "director": 1}
TRENDING_PROJECTION = {
    "title": 1, "director": 1, "year": 1, "poster": 1, "imdb.rating": 1,
    "viewCount": 1, "favorites": 1, "genres": 1,
}
RANDOM_PROJECTION = {
    "title": 1, "director": 1, "year": 1, "runtime": 1, "genres": 1,
    "poster": 1, "imdb.rating": 1, "plot": 1,
}

IMPORTED, SKIPPED, FAILED = "imported", "skipped", "failed"

# view-count tasks are referenced here until they finish
_background_tasks = set()


def _spawn(coro):
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


def to_object_id(movie_id: str) -> ObjectId:
    if not isinstance(movie_id, str) or not re.fullmatch(r"[0-9a-fA-F]{24}", movie_id):
        raise InvalidInputError("Invalid ID format", f"'{movie_id}' is not a valid movie ID")
    return ObjectId(movie_id)


def capitalize_words(text: str) -> str:
    return re.sub(r"\w\S*", lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), text)


def _normalize_names(doc: Dict[str, Any]) -> Dict[str, Any]:
    for name in ("title", "director"):
        if doc.get(name):
            doc[name] = capitalize_words(doc[name])
    return doc


def _describe(error: Exception) -> str:
    if isinstance(error, ValidationError):
        return "; ".join(f"{e['field']}: {e['message']}" for e in validation_errors(error.errors()))
    return str(error)


@dataclass
class ImportSummary:
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: List[Dict[str, Any]] = field(default_factory=list)

    def record(self, raw: Any, outcome: str, error: Optional[str] = None):
        if outcome == IMPORTED:
            self.imported += 1
        elif outcome == SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1
            title = raw.get("title") if isinstance(raw, dict) else None
            self.error_details.append({"title": title, "error": error})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "errors": self.errors,
            "errorDetails": self.error_details,
        }


class MovieService:

    def __init__(self, collection, sample_collection=None,
                 clock: Callable[[], datetime] = utcnow):
        self.collection = collection
        self.sample_collection = sample_collection
        self.clock = clock

    async def _fetch(self, query: Dict[str, Any], sort: Optional[SortSpec] = None,
                     skip: int = 0, limit: int = 0,
                     projection: Optional[Dict[str, int]] = None) -> List[Dict[str, Any]]:
        cursor = self.collection.find(query, projection)
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=None)

    def _validate(self, model, data: Any):
        return model.model_validate(data, context={"now": self.clock()})

    async def _aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        cursor = await self.collection.aggregate(pipeline)
        return await cursor.to_list(length=None)

    # ---------- listing ----------

    async def list_movies(self, filters: MovieFilters, page: PageRequest,
                          sort_by: Optional[str] = None) -> Dict[str, Any]:
        query = filters.to_query()
        movies, total, genres, year_stats = await asyncio.gather(
            self._fetch(query, resolve_sort(sort_by), page.skip, page.limit),
            self.collection.count_documents(query),
            self.collection.distinct("genres", {"status": ACTIVE}),
            self._aggregate([
                {"$match": {"status": ACTIVE}},
                {"$group": {"_id": None, "minYear": {"$min": "$year"}, "maxYear": {"$max": "$year"}}},
            ]),
        )
        year_range = {"minYear": None, "maxYear": None}
        if year_stats:
            year_range = {"minYear": year_stats[0].get("minYear"), "maxYear": year_stats[0].get("maxYear")}

        return {
            "movies": serialize_movies(movies),
            "pagination": page.pagination(total),
            "metadata": {
                "filters": {
                    "availableGenres": sorted(g for g in genres if g),
                    "yearRange": year_range,
                },
                "searchQuery": filters.search,
                "appliedFilters": {**filters.applied(), "sortBy": sort_by or "title"},
            },
        }

    async def get_by_genre(self, genre: str, page: PageRequest,
                           sort_by: Optional[str] = None) -> Dict[str, Any]:
        query = {"status": ACTIVE, "genres": exact_pattern(genre.strip())}
        movies, total = await asyncio.gather(
            self._fetch(query, resolve_sort(sort_by, default="rating"), page.skip, page.limit),
            self.collection.count_documents(query),
        )
        return {
            "movies": serialize_movies(movies),
            "pagination": page.pagination(total),
            "genre": genre,
            "sortBy": sort_by or "rating",
        }

    async def get_suggestions(self, q: Optional[str]) -> List[Dict[str, Any]]:
        q = (q or "").strip()
        if len(q) < SUGGESTION_MIN_LENGTH:
            return []
        docs = await self._fetch(
            {"status": ACTIVE, "title": contains_pattern(q)},
            sort=[("viewCount", DESCENDING), ("title", ASCENDING)],
            limit=SUGGESTION_LIMIT,
            projection=SUGGESTION_PROJECTION,
        )
        return [
            {
                "id": str(doc["_id"]),
                "title": doc.get("title"),
                "year": doc.get("year"),
                "director": doc.get("director"),
                "display": f"{doc.get('title')} ({doc.get('year')})",
            }
            for doc in docs
        ]

    async def get_trending(self, period: Optional[str] = "week", limit: Any = None) -> Dict[str, Any]:
        period = (period or "week").strip().lower()
        window = TRENDING_PERIODS.get(period)
        query: Dict[str, Any] = {"status": ACTIVE}
        if window:
            query["updatedAt"] = {"$gte": self.clock() - window}
        docs = await self._fetch(
            query,
            sort=[("viewCount", DESCENDING), ("favorites", DESCENDING),
                  ("imdb.rating", DESCENDING), ("title", ASCENDING)],
            limit=clamp_limit(limit, default=TRENDING_DEFAULT),
            projection=TRENDING_PROJECTION,
        )
        return {"movies": serialize_movies(docs), "period": period if window else "all", "count": len(docs)}

    async def get_random(self, count: Any = None, genre: Optional[str] = None,
                         min_rating: Any = None, min_year: Any = None,
                         max_year: Any = None) -> Dict[str, Any]:
        size = clamp_limit(count, default=RANDOM_DEFAULT, maximum=RANDOM_MAX)
        match: Dict[str, Any] = {"status": ACTIVE}
        genre = (genre or "").strip() or None
        rating = parse_rating(min_rating)
        lower, upper = parse_year(min_year), parse_year(max_year)
        if genre:
            match["genres"] = exact_pattern(genre)
        if rating is not None:
            match["imdb.rating"] = {"$gte": rating}
        if lower is not None or upper is not None:
            match["year"] = {}
            if lower is not None:
                match["year"]["$gte"] = lower
            if upper is not None:
                match["year"]["$lte"] = upper

        docs = await self._aggregate([
            {"$match": match},
            {"$sample": {"size": size}},
            {"$project": RANDOM_PROJECTION},
        ])
        return {
            "movies": serialize_movies(docs),
            "count": len(docs),
            "filters": {"genre": genre, "minRating": rating, "minYear": lower, "maxYear": upper},
        }

    # ---------- single record ----------

    async def get_movie(self, movie_id: str) -> Dict[str, Any]:
        oid = to_object_id(movie_id)
        movie = await self.collection.find_one({"_id": oid})
        if movie is None or movie.get("status") == Status.DELETED.value:
            raise MovieNotFoundError(movie_id)

        _spawn(self.record_view(oid))
        related = await self.related_movies(movie)
        return {"movie": serialize_movie(movie), "relatedMovies": serialize_movies(related)}

    async def record_view(self, oid: ObjectId):
        try:
            await self.collection.update_one({"_id": oid}, {"$inc": {"viewCount": 1}})
        except Exception as exc:
            logger.opt(exception=exc).warning(f"Failed to increment view count for {oid}")

    async def related_movies(self, movie: Dict[str, Any]) -> List[Dict[str, Any]]:
        clauses = []
        if movie.get("genres"):
            clauses.append({"genres": {"$in": movie["genres"]}})
        if movie.get("director"):
            clauses.append({"director": movie["director"]})
        if not clauses:
            return []
        return await self._fetch(
            {"_id": {"$ne": movie["_id"]}, "status": ACTIVE, "$or": clauses},
            limit=RELATED_LIMIT,
            projection=RELATED_PROJECTION,
        )

    async def find_duplicate(self, title: str, year: Any,
                             exclude_id: Optional[ObjectId] = None) -> Optional[Dict[str, Any]]:
        query: Dict[str, Any] = {"title": exact_pattern(title), "year": year, "status": NOT_DELETED}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        return await self.collection.find_one(query)

    def _new_document(self, payload: MovieCreate, source: Source) -> Dict[str, Any]:
        now = self.clock()
        doc = _normalize_names(payload.to_document())
        if not doc.get("released"):
            doc["released"] = datetime(doc["year"], 1, 1, tzinfo=timezone.utc)
        doc.update(
            favorites=0,
            watchlistCount=0,
            viewCount=0,
            source=source.value,
            status=ACTIVE,
            createdAt=now,
            updatedAt=now,
        )
        return doc

    async def create_movie(self, payload: MovieCreate, source: Source = Source.USER) -> Dict[str, Any]:
        payload = self._validate(MovieCreate, payload.to_document())
        doc = self._new_document(payload, source)
        if await self.find_duplicate(doc["title"], doc["year"]):
            raise DuplicateMovieError(doc["title"], doc["year"])

        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info(f'Movie "{doc["title"]}" has been saved to database')
        return serialize_movie(doc)

    async def update_movie(self, movie_id: str, payload: MovieUpdate) -> Dict[str, Any]:
        oid = to_object_id(movie_id)
        current = await self.collection.find_one({"_id": oid, "status": NOT_DELETED})
        if current is None:
            raise MovieNotFoundError(movie_id)

        payload = self._validate(MovieUpdate, payload.to_document())
        changes = _normalize_names(payload.to_document())
        if "title" in changes or "year" in changes:
            title = changes.get("title", current.get("title"))
            year = changes.get("year", current.get("year"))
            if title and await self.find_duplicate(title, year, exclude_id=oid):
                raise DuplicateMovieError(title, year)

        changes["updatedAt"] = self.clock()
        updated = await self.collection.find_one_and_update(
            {"_id": oid, "status": NOT_DELETED},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise MovieNotFoundError(movie_id)
        return serialize_movie(updated)

    async def delete_movie(self, movie_id: str) -> Dict[str, Any]:
        oid = to_object_id(movie_id)
        now = self.clock()
        movie = await self.collection.find_one_and_update(
            {"_id": oid, "status": NOT_DELETED},
            {"$set": {"status": Status.DELETED.value, "deletedAt": now, "updatedAt": now}},
            projection={"title": 1, "year": 1},
            return_document=ReturnDocument.AFTER,
        )
        if movie is None:
            raise MovieNotFoundError(movie_id)
        logger.info(f'Movie "{movie.get("title")}" ({oid}) soft-deleted')
        return {"id": str(movie["_id"]), "title": movie.get("title"), "year": movie.get("year")}

    # ---------- engagement counters ----------

    async def _bump_counter(self, movie_id: str, counter: str, step: int) -> Dict[str, Any]:
        oid = to_object_id(movie_id)
        query: Dict[str, Any] = {"_id": oid, "status": NOT_DELETED}
        if step < 0:
            # only decrement while the result stays non-negative
            query[counter] = {"$gte": -step}
        movie = await self.collection.find_one_and_update(
            query,
            {"$inc": {counter: step}},
            projection={counter: 1},
            return_document=ReturnDocument.AFTER,
        )
        if movie is None:
            movie = await self.collection.find_one({"_id": oid, "status": NOT_DELETED}, {counter: 1})
            if movie is None:
                raise MovieNotFoundError(movie_id)
        return {"movieId": movie_id, counter: max(movie.get(counter) or 0, 0)}

    async def add_favorite(self, movie_id: str) -> Dict[str, Any]:
        return await self._bump_counter(movie_id, "favorites", 1)

    async def remove_favorite(self, movie_id: str) -> Dict[str, Any]:
        return await self._bump_counter(movie_id, "favorites", -1)

    async def add_to_watchlist(self, movie_id: str) -> Dict[str, Any]:
        return await self._bump_counter(movie_id, "watchlistCount", 1)

    async def remove_from_watchlist(self, movie_id: str) -> Dict[str, Any]:
        return await self._bump_counter(movie_id, "watchlistCount", -1)

    # ---------- statistics ----------

    async def get_stats(self) -> Dict[str, Any]:
        active = {"$match": {"status": ACTIVE}}
        (overview, genre_stats, decade_stats, rating_stats,
         top_rated, most_popular, recently_added) = await asyncio.gather(
            self._aggregate([
                active,
                {"$group": {
                    "_id": None,
                    "totalMovies": {"$sum": 1},
                    "averageRating": {"$avg": "$imdb.rating"},
                    "averageRuntime": {"$avg": "$runtime"},
                    "totalViews": {"$sum": "$viewCount"},
                    "totalFavorites": {"$sum": "$favorites"},
                    "totalWatchlist": {"$sum": "$watchlistCount"},
                    "oldestYear": {"$min": "$year"},
                    "newestYear": {"$max": "$year"},
                }},
            ]),
            self._aggregate([
                active,
                {"$unwind": "$genres"},
                {"$group": {"_id": "$genres", "count": {"$sum": 1},
                            "averageRating": {"$avg": "$imdb.rating"}}},
                {"$sort": {"count": -1, "_id": 1}},
                {"$limit": STATS_LIST_LIMIT},
            ]),
            self._aggregate([
                {"$match": {"status": ACTIVE, "year": {"$type": "number"}}},
                {"$group": {"_id": {"$subtract": ["$year", {"$mod": ["$year", 10]}]},
                            "count": {"$sum": 1},
                            "averageRating": {"$avg": "$imdb.rating"}}},
                {"$sort": {"_id": -1}},
                {"$limit": STATS_LIST_LIMIT},
            ]),
            self._aggregate([
                {"$match": {"status": ACTIVE, "imdb.rating": {"$type": "number"}}},
                {"$bucket": {
                    "groupBy": "$imdb.rating",
                    # the top bucket includes a perfect 10
                    "boundaries": RATING_BOUNDARIES[:-1] + [RATING_BOUNDARIES[-1] + 0.1],
                    "default": "Other",
                    "output": {"count": {"$sum": 1}},
                }},
            ]),
            self._fetch(
                {"status": ACTIVE, "imdb.rating": {"$gte": TOP_RATED_MIN}},
                sort=[("imdb.rating", DESCENDING), ("imdb.votes", DESCENDING), ("title", ASCENDING)],
                limit=STATS_LIST_LIMIT,
                projection={"title": 1, "director": 1, "year": 1, "imdb.rating": 1, "poster": 1},
            ),
            self._fetch(
                {"status": ACTIVE},
                sort=[("viewCount", DESCENDING), ("favorites", DESCENDING), ("title", ASCENDING)],
                limit=STATS_LIST_LIMIT,
                projection={"title": 1, "director": 1, "year": 1, "viewCount": 1, "favorites": 1, "poster": 1},
            ),
            self._fetch(
                {"status": ACTIVE},
                sort=[("createdAt", DESCENDING)],
                limit=STATS_LIST_LIMIT,
                projection={"title": 1, "director": 1, "year": 1, "createdAt": 1, "poster": 1},
            ),
        )
        return {
            "overview": self._shape_overview(overview),
            "genreDistribution": [
                {"genre": item["_id"], "count": item["count"],
                 "averageRating": round_rating(item.get("averageRating"))}
                for item in genre_stats
            ],
            "yearDistribution": [
                {"decade": f"{int(item['_id'])}s", "count": item["count"],
                 "averageRating": round_rating(item.get("averageRating") or 0)}
                for item in decade_stats
            ],
            "ratingDistribution": self._shape_histogram(rating_stats),
            "topRated": serialize_movies(top_rated),
            "mostPopular": serialize_movies(most_popular),
            "recentlyAdded": serialize_movies(recently_added),
        }

    @staticmethod
    def _shape_overview(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        row = rows[0] if rows else {}
        average_runtime = row.get("averageRuntime")
        return {
            "totalMovies": row.get("totalMovies", 0),
            "averageRating": round_rating(row.get("averageRating") or 0),
            "averageRuntime": round(average_runtime, 1) if average_runtime is not None else 0,
            "totalViews": row.get("totalViews", 0),
            "totalFavorites": row.get("totalFavorites", 0),
            "totalWatchlist": row.get("totalWatchlist", 0),
            "oldestYear": row.get("oldestYear"),
            "newestYear": row.get("newestYear"),
        }

    @staticmethod
    def _shape_histogram(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        counts = {row["_id"]: row["count"] for row in rows}
        histogram = [
            {"range": f"{low}-{high}", "min": low, "max": high, "count": counts.get(low, 0)}
            for low, high in zip(RATING_BOUNDARIES, RATING_BOUNDARIES[1:])
        ]
        if counts.get("Other"):
            histogram.append({"range": "Other", "min": None, "max": None, "count": counts["Other"]})
        return histogram

    # ---------- import / export ----------

    async def import_record(self, raw: Any, source: Source,
                            overwrite: bool = False) -> Tuple[str, Optional[str]]:
        """Import one candidate record. Returns (outcome, error message)."""
        try:
            payload = self._validate(MovieCreate, raw)
            doc = self._new_document(payload, source)
            existing = await self.find_duplicate(doc["title"], doc["year"])
            if existing and not overwrite:
                return SKIPPED, None
            if existing:
                changes = _normalize_names(payload.to_document())
                changes.update(source=source.value, updatedAt=self.clock())
                await self.collection.update_one({"_id": existing["_id"]}, {"$set": changes})
            else:
                await self.collection.insert_one(doc)
            return IMPORTED, None
        except (ValidationError, PyMongoError, ValueError, TypeError) as exc:
            title = raw.get("title") if isinstance(raw, dict) else None
            logger.warning(f'Import of "{title}" failed: {exc}')
            return FAILED, _describe(exc)

    async def bulk_import(self, request: BulkImportRequest) -> Dict[str, Any]:
        if request.source == "sample" and request.movies is None:
            if self.sample_collection is None:
                raise InvalidInputError("Invalid import data", "Sample feed is not configured")
            raw_docs = await self.sample_collection.find({}).to_list(length=None)
            records = [normalize_sample_movie(doc) for doc in raw_docs]
            tag = Source.MFLIX
        elif request.movies is not None:
            records = request.movies
            tag = parse_enum(request.source, Source) or Source.ADMIN
        else:
            raise InvalidInputError(
                "Invalid import data",
                'Please provide either source="sample" or an array of movies',
            )
        if not records:
            raise InvalidInputError("No data to import", "Import data is empty")

        summary = ImportSummary()
        for raw in records:
            outcome, error = await self.import_record(raw, tag, request.overwrite)
            summary.record(raw, outcome, error)
        logger.info(
            f"Bulk import finished: {summary.imported} imported, "
            f"{summary.skipped} skipped, {summary.errors} errors"
        )
        return summary.to_dict()

    async def export_movies(self, include_deleted: bool = False) -> List[Dict[str, Any]]:
        query = MovieFilters(include_deleted=include_deleted).to_query()
        return await self._fetch(query, sort=[("title", ASCENDING)])
