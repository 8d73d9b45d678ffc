"""
Pydantic models and vocabularies for movie records.
Write paths (create, update, bulk import) validate through these models
before the service layer touches the database.
moviemate.schemas.py
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

MIN_RELEASE_YEAR = 1800
FUTURE_YEAR_WINDOW = 5


class Genre(str, Enum):
    ACTION = "Action"
    ADVENTURE = "Adventure"
    ANIMATION = "Animation"
    BIOGRAPHY = "Biography"
    COMEDY = "Comedy"
    CRIME = "Crime"
    DOCUMENTARY = "Documentary"
    DRAMA = "Drama"
    FAMILY = "Family"
    FANTASY = "Fantasy"
    HISTORY = "History"
    HORROR = "Horror"
    MUSIC = "Music"
    MUSICAL = "Musical"
    MYSTERY = "Mystery"
    ROMANCE = "Romance"
    SCI_FI = "Sci-Fi"
    SPORT = "Sport"
    THRILLER = "Thriller"
    WAR = "War"
    WESTERN = "Western"


class Source(str, Enum):
    MFLIX = "mflix"
    OMDB = "omdb"
    TMDB = "tmdb"
    USER = "user"
    ADMIN = "admin"


class Status(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
    DELETED = "deleted"


class Rated(str, Enum):
    G = "G"
    PG = "PG"
    PG_13 = "PG-13"
    R = "R"
    NC_17 = "NC-17"
    NOT_RATED = "Not Rated"
    UNRATED = "Unrated"


GENRES = [g.value for g in Genre]
RATED_VALUES = [r.value for r in Rated]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def max_release_year(now: Optional[datetime] = None) -> int:
    """Latest accepted release year, relative to the given (or current) time."""
    now = now or utcnow()
    return now.year + FUTURE_YEAR_WINDOW


def _check_year(value: Optional[int], now: Optional[datetime] = None) -> Optional[int]:
    if value is None:
        return value
    upper = max_release_year(now)
    if value < MIN_RELEASE_YEAR or value > upper:
        raise ValueError(f"Year must be between {MIN_RELEASE_YEAR} and {upper}")
    return value


def _as_list(value: Any) -> Any:
    if isinstance(value, str):
        return [value]
    return value


class ImdbInfo(BaseModel):
    rating: Optional[float] = Field(default=None, ge=0, le=10)
    votes: Optional[int] = Field(default=None, ge=0)
    id: Optional[str] = None

    @field_validator("rating")
    @classmethod
    def one_decimal_place(cls, value):
        if value is not None and Decimal(str(value)).as_tuple().exponent < -1:
            raise ValueError("Rating must be a number with maximum 1 decimal place")
        return value

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value):
        return str(value) if value is not None else value


class MovieFields(BaseModel):
    """Fields shared by create and update payloads. Every field optional here."""

    model_config = ConfigDict(use_enum_values=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    director: Optional[str] = Field(default=None, min_length=1, max_length=100)
    year: Optional[int] = None
    genres: Optional[List[Genre]] = None
    plot: Optional[str] = Field(default=None, max_length=2000)
    runtime: Optional[int] = Field(default=None, ge=1, le=1000)
    cast: Optional[List[str]] = None
    imdb: Optional[ImdbInfo] = None
    poster: Optional[str] = Field(default=None, pattern=r"(?i)^https?://.+")
    released: Optional[datetime] = None
    rated: Optional[Rated] = None
    countries: Optional[List[str]] = None
    languages: Optional[List[str]] = None
    metacritic: Optional[int] = Field(default=None, ge=0, le=100)

    @model_validator(mode="before")
    @classmethod
    def accept_single_genre(cls, data):
        # "genre" is accepted as an alias for a one-element "genres"
        if isinstance(data, dict) and "genre" in data and "genres" not in data:
            data = {**data, "genres": data["genre"]}
        return data

    @field_validator("title", "director", "plot", "poster", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("year")
    @classmethod
    def year_in_range(cls, value, info: ValidationInfo):
        # callers may pass {"now": datetime} as validation context
        return _check_year(value, (info.context or {}).get("now"))

    @field_validator("genres", "cast", "countries", "languages", mode="before")
    @classmethod
    def single_to_list(cls, value):
        return _as_list(value)

    @field_validator("cast")
    @classmethod
    def cast_names(cls, value):
        if value is None:
            return value
        names = [name.strip() for name in value if name and name.strip()]
        for name in names:
            if len(name) > 100:
                raise ValueError("Actor name cannot exceed 100 characters")
        return names

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="python", exclude_unset=True)


class MovieCreate(MovieFields):
    title: str = Field(min_length=1, max_length=200)
    director: str = Field(min_length=1, max_length=100)
    year: int


class MovieUpdate(MovieFields):
    @model_validator(mode="after")
    def at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        for field in ("title", "director", "year"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field.capitalize()} cannot be empty if provided")
        return self


class BulkImportRequest(BaseModel):
    source: str = "sample"
    overwrite: bool = False
    movies: Optional[List[Dict[str, Any]]] = None
