"""Paged query results."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Generic, Iterable, TypeVar

T = TypeVar("T")


def _plain(item: Any) -> Any:
    to_dict = getattr(item, "to_dict", None)
    return to_dict() if callable(to_dict) else item


@dataclass
class QueryResult(Generic[T]):
    """One page of query results with the total count."""

    items: list[T]
    total: int
    page: int
    rows_per_page: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [_plain(item) for item in self.items],
            "total": self.total,
            "page": self.page,
            "rowsPerPage": self.rows_per_page,
        }

    def encode(self) -> tuple[bytes, str]:
        data = json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)
        return data.encode(), "application/json"


def new_result(items: Iterable[T], total: int, page: Any) -> QueryResult[T]:
    """Build a result from items, the total count and a page with number and rows_per_page."""
    return QueryResult(
        items=list(items),
        total=total,
        page=page.number,
        rows_per_page=page.rows_per_page,
    )