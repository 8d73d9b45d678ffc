"""
Sort and pagination resolution for catalog listings.
moviemate.paging.py
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING

from moviemate.filters import parse_int

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 50
# skip is sent as a signed 64-bit integer
MAX_SKIP = 2 ** 63 - 1

SortSpec = List[Tuple[str, int]]

BY_TITLE: SortSpec = [("title", ASCENDING)]

SORT_OPTIONS: Dict[str, SortSpec] = {
    "year": [("year", DESCENDING), ("title", ASCENDING)],
    "rating": [("imdb.rating", DESCENDING), ("imdb.votes", DESCENDING), ("title", ASCENDING)],
    "popularity": [("viewCount", DESCENDING), ("favorites", DESCENDING), ("title", ASCENDING)],
    "latest": [("createdAt", DESCENDING)],
    "runtime": [("runtime", DESCENDING), ("title", ASCENDING)],
    "alphabetical": BY_TITLE,
}


def resolve_sort(sort_by: Optional[str], default: str = "alphabetical") -> SortSpec:
    """Unknown keys fall back to the default ordering, never to an error."""
    key = (sort_by or "").strip().lower()
    return list(SORT_OPTIONS.get(key) or SORT_OPTIONS.get(default, BY_TITLE))


def clamp_limit(limit: Any, default: int = DEFAULT_PAGE_SIZE, maximum: int = MAX_PAGE_SIZE) -> int:
    value = parse_int(limit)
    if value is None:
        value = default
    return min(maximum, max(1, value))


@dataclass(frozen=True)
class PageRequest:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_params(cls, page: Any = None, limit: Any = None,
                    max_limit: int = MAX_PAGE_SIZE) -> "PageRequest":
        page_number = parse_int(page)
        page_size = clamp_limit(limit, maximum=max_limit)
        last_page = MAX_SKIP // page_size + 1
        return cls(
            page=min(last_page, max(1, page_number if page_number is not None else 1)),
            limit=page_size,
        )

    def pagination(self, total: int) -> Dict[str, Any]:
        total_pages = math.ceil(total / self.limit) if total else 0
        return {
            "currentPage": self.page,
            "totalPages": total_pages,
            "totalMovies": total,
            "hasNext": self.page < total_pages,
            "hasPrev": self.page > 1,
            "limit": self.limit,
        }
