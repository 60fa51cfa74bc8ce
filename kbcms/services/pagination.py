"""Pagination for listings and search results."""

import math
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Pagination:
    current_page: int
    total_pages: int
    total_items: int
    per_page: int

    @property
    def offset(self) -> int:
        return (self.current_page - 1) * self.per_page

    @property
    def has_previous(self) -> bool:
        return self.current_page > 1

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def previous_page(self) -> Optional[int]:
        return self.current_page - 1 if self.has_previous else None

    @property
    def next_page(self) -> Optional[int]:
        return self.current_page + 1 if self.has_next else None


def paginate(page: int, total_items: int, per_page: int) -> Pagination:
    """Clamp ``page`` to ``[1, total_pages]``. An empty listing has zero pages and
    reports page 1."""
    if per_page < 1:
        raise ValueError("per_page must be at least 1")
    total_items = max(0, total_items)
    total_pages = math.ceil(total_items / per_page)
    current = max(1, min(page, total_pages))
    return Pagination(
        current_page=current,
        total_pages=total_pages,
        total_items=total_items,
        per_page=per_page,
    )
