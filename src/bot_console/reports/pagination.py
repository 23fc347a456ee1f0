"""Fixed-size paging over a reconciled session list."""

from __future__ import annotations

import math
from typing import Generic, Sequence, TypeVar

T = TypeVar("T")


class Paginator(Generic[T]):
    """1-based pages; changing the page size always returns to page 1."""

    def __init__(self, items: Sequence[T], page_size: int = 10):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self._items = items
        self._page_size = page_size
        self._page = 1

    @property
    def page(self) -> int:
        return self._page

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def total_items(self) -> int:
        return len(self._items)

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(len(self._items) / self._page_size))

    def set_items(self, items: Sequence[T]) -> None:
        self._items = items
        self._page = min(self._page, self.total_pages)

    def set_page_size(self, page_size: int) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self._page_size = page_size
        self._page = 1

    def go_to(self, page: int) -> int:
        self._page = min(max(1, page), self.total_pages)
        return self._page

    def next(self) -> int:
        return self.go_to(self._page + 1)

    def previous(self) -> int:
        return self.go_to(self._page - 1)

    @property
    def items(self) -> list[T]:
        start = (self._page - 1) * self._page_size
        return list(self._items[start:start + self._page_size])

    @property
    def showing(self) -> tuple[int, int]:
        """1-based (first, last) positions shown on the current page; (0, 0) when empty."""
        if not self._items:
            return (0, 0)
        first = (self._page - 1) * self._page_size + 1
        return (first, min(first + self._page_size - 1, len(self._items)))
