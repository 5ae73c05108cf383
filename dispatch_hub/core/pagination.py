"""Page slicing for list endpoints, with a hard cap on page size."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, Sequence, TypeVar

from fastapi import Response

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_PAGE_SIZE = 500


def max_page_size() -> int:
    """Cap from ``API_MAX_PAGE_SIZE``, read per request so it can be tuned live."""
    try:
        cap = int(os.getenv("API_MAX_PAGE_SIZE", ""))
    except ValueError:
        return DEFAULT_MAX_PAGE_SIZE
    return cap if cap >= 1 else DEFAULT_MAX_PAGE_SIZE


def clamp_page_size(page_size: int) -> int:
    return max(1, min(page_size, max_page_size()))


@dataclass
class Page(Generic[T]):
    items: List[T]
    total: int
    page: int
    page_size: int

    def apply_headers(self, response: Optional[Response]) -> None:
        if response is None:
            return
        response.headers["X-Total-Count"] = str(self.total)
        response.headers["X-Page"] = str(self.page)
        response.headers["X-Page-Size"] = str(self.page_size)

    def body(self, render: Callable[[T], Any]) -> dict:
        return {
            "items": [render(item) for item in self.items],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
        }


def paginate(rows: Sequence[T], page: int, page_size: int) -> Page[T]:
    """Slice ``rows`` to one page; ``page_size`` is clamped first."""
    page = max(1, page)
    page_size = clamp_page_size(page_size)
    start = (page - 1) * page_size
    return Page(items=list(rows[start:start + page_size]), total=len(rows), page=page, page_size=page_size)
