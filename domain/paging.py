from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Generic, List, TypeVar

T = TypeVar("T")
U = TypeVar("U")

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class PageRequest:
    page: int = 0
    size: int = 20

    def __post_init__(self):
        if self.page < 0:
            raise ValueError("page must be >= 0")
        if not 1 <= self.size <= MAX_PAGE_SIZE:
            raise ValueError(f"size must be between 1 and {MAX_PAGE_SIZE}")

    @property
    def offset(self) -> int:
        return self.page * self.size


@dataclass(frozen=True)
class Page(Generic[T]):
    content: List[T]
    total_elements: int
    page: int
    size: int

    @property
    def has_next(self) -> bool:
        return self.page * self.size + len(self.content) < self.total_elements

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_elements / self.size) if self.size else 0

    @property
    def is_empty(self) -> bool:
        return not self.content

    def map(self, func: Callable[[T], U]) -> "Page[U]":
        return Page(
            content=[func(item) for item in self.content],
            total_elements=self.total_elements,
            page=self.page,
            size=self.size,
        )
