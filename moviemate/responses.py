"""
Response envelopes and the shaping of stored movie documents for output.
moviemate.responses.py
"""
import csv
import io
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId

CSV_HEADERS = [
    "title", "director", "year", "runtime", "plot",
    "genres", "cast", "imdb_rating", "imdb_votes",
    "poster", "viewCount", "favorites", "source", "status",
]


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def success_response(message: str, data: Any = None, **meta) -> Dict[str, Any]:
    response = {"success": True, "message": message, "timestamp": _timestamp(), **meta}
    if data is not None:
        response["data"] = data
    return response


def error_response(message: str, details: Optional[str] = None) -> Dict[str, Any]:
    response = {"success": False, "message": message, "timestamp": _timestamp()}
    if details:
        response["details"] = details
    return response


def validation_error_response(errors: List[Dict[str, Any]],
                              message: str = "Validation failed") -> Dict[str, Any]:
    return {"success": False, "message": message, "errors": errors, "timestamp": _timestamp()}


def round_rating(value: Any) -> Optional[float]:
    """Round half-up to one decimal place: 7.666 -> 7.7, 7.25 -> 7.3."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
    except ArithmeticError:
        return None


def _plain(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def serialize_movie(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    movie = {key: _plain(value) for key, value in doc.items() if key != "_id"}
    if "_id" in doc:
        movie = {"id": str(doc["_id"]), **movie}
    imdb = movie.get("imdb")
    if isinstance(imdb, dict) and imdb.get("rating") is not None:
        imdb["rating"] = round_rating(imdb["rating"])
    return movie


def serialize_movies(docs: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize_movie(doc) for doc in docs]


def _csv_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, list):
        return ";".join(str(item) for item in value)
    return value


def movies_to_csv(docs: Iterable[Dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for doc in docs:
        imdb = doc.get("imdb") or {}
        writer.writerow([
            _csv_value(doc.get("title")),
            _csv_value(doc.get("director")),
            _csv_value(doc.get("year")),
            _csv_value(doc.get("runtime")),
            _csv_value(doc.get("plot")),
            _csv_value(doc.get("genres")),
            _csv_value(doc.get("cast")),
            _csv_value(round_rating(imdb.get("rating"))),
            _csv_value(imdb.get("votes")),
            _csv_value(doc.get("poster")),
            doc.get("viewCount") or 0,
            doc.get("favorites") or 0,
            _csv_value(doc.get("source")),
            _csv_value(doc.get("status")),
        ])
    return buffer.getvalue()
