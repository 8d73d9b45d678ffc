"""
HTTP surface tests. The service dependency is overridden so no database is needed.
"""
from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from loguru import logger

from moviemate.errors import DuplicateMovieError, MovieNotFoundError
from moviemate.main import app, get_movie_service
from moviemate.movie_service import MovieService


@pytest.fixture
def fake_service():
    service = MagicMock(spec=MovieService)
    app.dependency_overrides[get_movie_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


def listing(page):
    return {
        "movies": [],
        "pagination": page.pagination(0),
        "metadata": {"filters": {"availableGenres": [], "yearRange": {}}, "searchQuery": "", "appliedFilters": {}},
    }


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "X-Request-ID" in response.headers


def test_list_clamps_limit_and_returns_pagination(client, fake_service):
    fake_service.list_movies.side_effect = lambda filters, page, sort_by: listing(page)

    response = client.get("/api/movies", params={"limit": "500", "sortBy": "rating"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["pagination"]["limit"] == 50
    assert "pagination" not in body["data"]
    filters, page, sort_by = fake_service.list_movies.call_args[0]
    assert page.limit == 50
    assert sort_by == "rating"


def test_list_passes_parsed_filters(client, fake_service):
    fake_service.list_movies.side_effect = lambda filters, page, sort_by: listing(page)

    client.get("/api/movies", params={"decade": "1990s", "year": "1985", "minRating": "abc",
                                      "genre": "Drama", "status": "deleted"})

    filters = fake_service.list_movies.call_args[0][0]
    assert filters.to_query() == {
        "status": "active",
        "genres": {"$regex": "^Drama$", "$options": "i"},
        "year": {"$gte": 1990, "$lte": 1999},
    }


def test_create_with_missing_fields_is_400(client, fake_service):
    response = client.post("/api/movies", json={"title": "Heat"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert {"director", "year"} <= {error["field"] for error in body["errors"]}
    fake_service.create_movie.assert_not_called()


def test_create_returns_201(client, fake_service):
    fake_service.create_movie.return_value = {"id": str(ObjectId()), "title": "Heat"}

    response = client.post("/api/movies", json={"title": "Heat", "director": "Michael Mann", "year": 1995})

    assert response.status_code == 201
    assert response.json()["data"]["title"] == "Heat"


def test_duplicate_is_409(client, fake_service):
    fake_service.create_movie.side_effect = DuplicateMovieError("Heat", 1995)

    response = client.post("/api/movies", json={"title": "Heat", "director": "Michael Mann", "year": 1995})

    assert response.status_code == 409
    assert response.json()["message"] == "Duplicate movie"


def test_malformed_id_is_400(client, collection):
    app.dependency_overrides[get_movie_service] = lambda: MovieService(collection)
    try:
        response = client.get("/api/movies/12345")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid ID format"
    collection.find_one.assert_not_awaited()


def test_delete_missing_movie_is_404(client, fake_service):
    movie_id = str(ObjectId())
    fake_service.delete_movie.side_effect = MovieNotFoundError(movie_id)

    response = client.delete(f"/api/movies/{movie_id}")

    assert response.status_code == 404
    assert response.json()["details"] == f"No movie found with ID: {movie_id}"


def test_unknown_route_is_404(client):
    response = client.get("/api/directors")
    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Route not found"


def test_empty_update_is_400(client, fake_service):
    response = client.put(f"/api/movies/{ObjectId()}", json={})
    assert response.status_code == 400
    fake_service.update_movie.assert_not_called()


def test_patch_routes_to_update(client, fake_service):
    fake_service.update_movie.return_value = {"id": "x", "runtime": 170}
    response = client.patch(f"/api/movies/{ObjectId()}", json={"runtime": 170})
    assert response.status_code == 200
    assert response.json()["data"]["runtime"] == 170


def test_csv_export(client, fake_service):
    fake_service.export_movies.return_value = [{"title": "Heat", "director": "Michael Mann", "year": 1995}]

    response = client.get("/api/movies/export", params={"format": "csv", "includeDeleted": "true"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "movies_export.csv" in response.headers["content-disposition"]
    assert response.text.splitlines()[1].startswith('"Heat","Michael Mann","1995"')
    fake_service.export_movies.assert_awaited_once_with(include_deleted=True)


def test_bulk_import_without_body_uses_sample_feed(client, fake_service):
    fake_service.bulk_import.return_value = {"imported": 0, "skipped": 0, "errors": 0, "errorDetails": []}

    response = client.post("/api/movies/bulk-import")

    assert response.status_code == 200
    request = fake_service.bulk_import.call_args[0][0]
    assert request.source == "sample"
    assert request.movies is None


def test_favorite_routes(client, fake_service):
    movie_id = str(ObjectId())
    fake_service.add_favorite.return_value = {"movieId": movie_id, "favorites": 1}

    response = client.post(f"/api/movies/{movie_id}/favorite")

    assert response.json()["data"] == {"movieId": movie_id, "favorites": 1}
    fake_service.add_favorite.assert_awaited_once_with(movie_id)


def test_unhandled_error_is_logged_under_request_id(fake_service):
    fake_service.get_stats.side_effect = RuntimeError("boom")
    messages = []
    sink = logger.add(messages.append, format="{extra[request_id]} | {message}")
    try:
        response = TestClient(app, raise_server_exceptions=False).get("/api/movies/stats")
    finally:
        logger.remove(sink)

    assert response.status_code == 500
    assert response.json()["message"] == "Internal Server Error"
    request_id = response.headers["X-Request-ID"]
    assert any(m.startswith(f"{request_id} | GET /api/movies/stats -> 500") for m in messages)
    assert any(m.startswith(f"{request_id} | Unhandled error") for m in messages)


def test_huge_page_number_is_clamped(client, fake_service):
    fake_service.list_movies.side_effect = lambda filters, page, sort_by: listing(page)

    response = client.get("/api/movies", params={"page": "99999999999999999999", "year": "99999999999999999999"})

    assert response.status_code == 200
    filters, page, _ = fake_service.list_movies.call_args[0]
    assert page.skip <= 2 ** 63 - 1
    assert "year" not in filters.to_query()
