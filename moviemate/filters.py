"""
Compiles loosely-typed catalog query parameters into a MongoDB filter.
Every raw value goes through a parse step that either returns a typed value
or None; values that do not parse are left out of the filter.
moviemate.filters.py
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type

from moviemate.schemas import MIN_RELEASE_YEAR, Source, Status, max_release_year

TEXT_SEARCH_FIELDS = ("title", "plot", "director", "cast", "genres")
READABLE_STATUSES = (Status.ACTIVE, Status.INACTIVE, Status.PENDING)


def parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not re.fullmatch(r"[+-]?\d+", text):
        return None
    return int(text)


def parse_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    # nan and inf parse but never belong in a filter
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def parse_rating(value: Any) -> Optional[float]:
    rating = parse_float(value)
    if rating is None or rating < 0 or rating > 10:
        return None
    return rating


def parse_year(value: Any) -> Optional[int]:
    year = parse_int(value)
    if year is None or not MIN_RELEASE_YEAR <= year <= max_release_year():
        return None
    return year


def parse_decade(value: Any) -> Optional[int]:
    """Accepts "1990", "1990s" or 1995 and returns the decade start (1990)."""
    if isinstance(value, str):
        value = value.strip().lower().removesuffix("s")
    year = parse_year(value)
    if year is None:
        return None
    return year - year % 10


def parse_enum(value: Any, enum_cls: Type) -> Optional[Any]:
    if value is None:
        return None
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return None


def contains_pattern(text: str) -> Dict[str, str]:
    """Case-insensitive substring match; regex metacharacters are literal."""
    return {"$regex": re.escape(text), "$options": "i"}


def exact_pattern(text: str) -> Dict[str, str]:
    return {"$regex": f"^{re.escape(text)}$", "$options": "i"}


@dataclass
class MovieFilters:
    search: str = ""
    genre: Optional[str] = None
    year: Optional[int] = None
    decade: Optional[int] = None
    min_rating: Optional[float] = None
    max_rating: Optional[float] = None
    source: Optional[Source] = None
    status: Status = Status.ACTIVE
    include_deleted: bool = False

    @classmethod
    def from_params(
        cls,
        search: Optional[str] = None,
        genre: Optional[str] = None,
        year: Any = None,
        decade: Any = None,
        min_rating: Any = None,
        max_rating: Any = None,
        source: Optional[str] = None,
        status: Optional[str] = None,
        include_deleted: bool = False,
    ) -> "MovieFilters":
        requested_status = parse_enum(status, Status)
        if requested_status not in READABLE_STATUSES:
            requested_status = Status.ACTIVE
        return cls(
            search=(search or "").strip(),
            genre=(genre or "").strip() or None,
            year=parse_year(year),
            decade=parse_decade(decade),
            min_rating=parse_rating(min_rating),
            max_rating=parse_rating(max_rating),
            source=parse_enum(source, Source),
            status=requested_status,
            include_deleted=include_deleted,
        )

    def to_query(self) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if not self.include_deleted:
            query["status"] = self.status.value

        if self.search:
            pattern = contains_pattern(self.search)
            query["$or"] = [{field: dict(pattern)} for field in TEXT_SEARCH_FIELDS]

        if self.genre:
            query["genres"] = exact_pattern(self.genre)

        if self.year is not None:
            query["year"] = self.year

        # decade is applied after year and replaces it
        if self.decade is not None:
            query["year"] = {"$gte": self.decade, "$lte": self.decade + 9}

        rating_bounds = {}
        if self.min_rating is not None:
            rating_bounds["$gte"] = self.min_rating
        if self.max_rating is not None:
            rating_bounds["$lte"] = self.max_rating
        if rating_bounds:
            query["imdb.rating"] = rating_bounds

        if self.source is not None:
            query["source"] = self.source.value
        return query

    def applied(self) -> Dict[str, Any]:
        return {
            "genre": self.genre,
            "year": self.year,
            "decade": self.decade,
            "minRating": self.min_rating,
            "maxRating": self.max_rating,
            "source": self.source.value if self.source else None,
            "status": None if self.include_deleted else self.status.value,
        }
