"""
Normalisation of documents from the sample_mflix feed into catalog records.
moviemate.sample_feed.py
"""
import re
from typing import Any, Dict

from moviemate.schemas import GENRES, RATED_VALUES

COPIED_FIELDS = (
    "title", "plot", "runtime", "cast", "poster", "released",
    "countries", "languages", "metacritic",
)


def _release_year(value: Any):
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # the feed has values like "2012è" and "1995-1996"
    match = re.match(r"\s*(\d{4})", str(value or ""))
    return int(match.group(1)) if match else None


def normalize_sample_movie(doc: Dict[str, Any]) -> Dict[str, Any]:
    movie = {field: doc[field] for field in COPIED_FIELDS if doc.get(field) not in (None, "", [])}

    # Replace empty plot with fullplot
    if not movie.get("plot") and doc.get("fullplot"):
        movie["plot"] = doc["fullplot"]
    if isinstance(movie.get("plot"), str) and len(movie["plot"]) > 2000:
        movie["plot"] = movie["plot"][:1997].rstrip() + "..."

    directors = doc.get("directors") or doc.get("director")
    if isinstance(directors, list):
        directors = ", ".join(str(name) for name in directors if name)
    if directors:
        movie["director"] = directors

    year = _release_year(doc.get("year"))
    if year is not None:
        movie["year"] = year

    genres = [genre for genre in doc.get("genres") or [] if genre in GENRES]
    if genres:
        movie["genres"] = genres

    if doc.get("rated") in RATED_VALUES:
        movie["rated"] = doc["rated"]

    imdb = doc.get("imdb") or {}
    rating = imdb.get("rating")
    votes = imdb.get("votes")
    imdb_info = {}
    if isinstance(rating, (int, float)) and not isinstance(rating, bool):
        imdb_info["rating"] = round(float(rating), 1)
    if isinstance(votes, int) and not isinstance(votes, bool):
        imdb_info["votes"] = votes
    if imdb.get("id") is not None:
        imdb_info["id"] = imdb["id"]
    if imdb_info:
        movie["imdb"] = imdb_info
    return movie
