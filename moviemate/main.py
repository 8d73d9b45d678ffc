"""
This module is the main entry point for the FastAPI application.
It initializes the FastAPI app and defines the API endpoints for listing,
searching, creating, updating and soft-deleting catalog movies, together
with statistics, suggestions, trending, random picks, bulk import and export.
Errors raised by the service layer are turned into response envelopes by
the handlers in moviemate.errors.
moviemate.main.py
"""
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Query, Response, status
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pymongo.errors import PyMongoError

from moviemate.db import close_client, ensure_indexes, get_movie_collection, get_sample_collection
from moviemate.errors import register_exception_handlers
from moviemate.filters import MovieFilters
from moviemate.log import RequestLoggingMiddleware, configure_logging
from moviemate.movie_service import MovieService
from moviemate.paging import PageRequest
from moviemate.responses import movies_to_csv, serialize_movies, success_response
from moviemate.schemas import BulkImportRequest, MovieCreate, MovieUpdate

CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:3000")
HOST = os.getenv("HOST", "localhost")
PORT = int(os.getenv("PORT", "5001"))

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await ensure_indexes()
    except PyMongoError as exc:
        logger.error(f"MongoDB connection failed: {exc}")
        raise
    logger.info(f"MovieMate API running on http://{HOST}:{PORT}")
    yield
    await close_client()


app = FastAPI(title="MovieMate API", description="Movie catalog service", version="1.0.0",
              lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[CLIENT_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)


def get_movie_service() -> MovieService:
    return MovieService(get_movie_collection(), get_sample_collection())


@app.get("/api/health")
def health():
    return {
        "status": "ok",
        "message": "MovieMate API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/api/movies")
async def list_movies(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
    genre: Optional[str] = None,
    year: Optional[str] = None,
    decade: Optional[str] = None,
    min_rating: Optional[str] = Query(default=None, alias="minRating"),
    max_rating: Optional[str] = Query(default=None, alias="maxRating"),
    sort_by: Optional[str] = Query(default="title", alias="sortBy"),
    source: Optional[str] = None,
    movie_status: Optional[str] = Query(default=None, alias="status"),
    service: MovieService = Depends(get_movie_service),
):
    filters = MovieFilters.from_params(
        search=search, genre=genre, year=year, decade=decade,
        min_rating=min_rating, max_rating=max_rating,
        source=source, status=movie_status,
    )
    result = await service.list_movies(filters, PageRequest.from_params(page, limit), sort_by)
    pagination = result.pop("pagination")
    return success_response("Movies retrieved successfully", result, pagination=pagination)


@app.get("/api/movies/stats")
async def movie_stats(service: MovieService = Depends(get_movie_service)):
    stats = await service.get_stats()
    return success_response("Movie statistics retrieved successfully", stats)


@app.get("/api/movies/search/suggestions")
async def search_suggestions(q: Optional[str] = None,
                             service: MovieService = Depends(get_movie_service)):
    suggestions = await service.get_suggestions(q)
    return success_response("Search suggestions retrieved", suggestions)


@app.get("/api/movies/trending")
async def trending_movies(period: Optional[str] = "week", limit: Optional[str] = None,
                          service: MovieService = Depends(get_movie_service)):
    result = await service.get_trending(period, limit)
    return success_response("Trending movies retrieved successfully", result)


@app.get("/api/movies/random")
async def random_movies(
    count: Optional[str] = None,
    genre: Optional[str] = None,
    min_rating: Optional[str] = Query(default=None, alias="minRating"),
    min_year: Optional[str] = Query(default=None, alias="minYear"),
    max_year: Optional[str] = Query(default=None, alias="maxYear"),
    service: MovieService = Depends(get_movie_service),
):
    result = await service.get_random(count, genre, min_rating, min_year, max_year)
    return success_response("Random movies retrieved successfully", result)


@app.get("/api/movies/export")
async def export_movies(
    export_format: str = Query(default="json", alias="format"),
    include_deleted: Optional[str] = Query(default=None, alias="includeDeleted"),
    service: MovieService = Depends(get_movie_service),
):
    docs = await service.export_movies(include_deleted=(include_deleted or "").lower() == "true")
    if export_format.lower() == "csv":
        return Response(
            content=movies_to_csv(docs),
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=movies_export.csv"},
        )
    return success_response("Movies exported successfully", {
        "movies": serialize_movies(docs),
        "count": len(docs),
        "exportDate": datetime.now(timezone.utc).isoformat(),
    })


@app.get("/api/movies/genre/{genre}")
async def movies_by_genre(
    genre: str,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    sort_by: Optional[str] = Query(default="rating", alias="sortBy"),
    service: MovieService = Depends(get_movie_service),
):
    result = await service.get_by_genre(genre, PageRequest.from_params(page, limit), sort_by)
    pagination = result.pop("pagination")
    return success_response(f"Movies in {genre} genre retrieved successfully", result,
                            pagination=pagination)


@app.post("/api/movies/bulk-import")
async def bulk_import(request: Optional[BulkImportRequest] = None,
                      service: MovieService = Depends(get_movie_service)):
    summary = await service.bulk_import(request or BulkImportRequest())
    return success_response("Bulk import completed", summary)


@app.post("/api/movies", status_code=status.HTTP_201_CREATED)
async def create_movie(movie: MovieCreate, service: MovieService = Depends(get_movie_service)):
    created = await service.create_movie(movie)
    return success_response("Movie created successfully", created)


@app.get("/api/movies/{movie_id}")
async def get_movie(movie_id: str, service: MovieService = Depends(get_movie_service)):
    result = await service.get_movie(movie_id)
    return success_response("Movie retrieved successfully", result)


@app.api_route("/api/movies/{movie_id}", methods=["PUT", "PATCH"])
async def update_movie(movie_id: str, movie: MovieUpdate,
                       service: MovieService = Depends(get_movie_service)):
    updated = await service.update_movie(movie_id, movie)
    return success_response("Movie updated successfully", updated)


@app.delete("/api/movies/{movie_id}")
async def delete_movie(movie_id: str, service: MovieService = Depends(get_movie_service)):
    deleted = await service.delete_movie(movie_id)
    return success_response("Movie deleted successfully", {"deletedMovie": deleted})


@app.post("/api/movies/{movie_id}/favorite")
async def add_favorite(movie_id: str, service: MovieService = Depends(get_movie_service)):
    return success_response("Movie added to favorites", await service.add_favorite(movie_id))


@app.delete("/api/movies/{movie_id}/favorite")
async def remove_favorite(movie_id: str, service: MovieService = Depends(get_movie_service)):
    return success_response("Movie removed from favorites", await service.remove_favorite(movie_id))


@app.post("/api/movies/{movie_id}/watchlist")
async def add_to_watchlist(movie_id: str, service: MovieService = Depends(get_movie_service)):
    return success_response("Movie added to watchlist", await service.add_to_watchlist(movie_id))


@app.delete("/api/movies/{movie_id}/watchlist")
async def remove_from_watchlist(movie_id: str, service: MovieService = Depends(get_movie_service)):
    return success_response("Movie removed from watchlist",
                            await service.remove_from_watchlist(movie_id))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("moviemate.main:app", host=HOST, port=PORT, reload=True)
