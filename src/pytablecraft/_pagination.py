"""Offset pagination."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from pytablecraft.config import PaginationConfig


@dataclass(frozen=True)
class Pagination:
    """Resolved page window; ``limit`` is None when pagination is disabled."""

    limit: int | None
    offset: int
    page: int
    page_size: int | None


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def build_pagination(
    config: PaginationConfig | None,
    page: Any = None,
    page_size: Any = None,
) -> Pagination:
    """Clamp ``page`` to >= 1 and ``page_size`` to ``[1, max_page_size]``."""
    config = config or PaginationConfig()
    if not config.enabled:
        return Pagination(limit=None, offset=0, page=1, page_size=None)

    p = _as_int(page)
    if p is None or p < 1:
        p = 1
    size = _as_int(page_size)
    if size is None or size < 1:
        size = config.default_page_size
    size = min(size, config.max_page_size)

    return Pagination(limit=size, offset=(p - 1) * size, page=p, page_size=size)


def build_meta(total: int, pagination: Pagination) -> dict[str, Any]:
    if pagination.page_size is None:
        total_pages = 1 if total else 0
    else:
        total_pages = math.ceil(total / pagination.page_size)
    return {
        "total": total,
        "page": pagination.page,
        "pageSize": pagination.page_size if pagination.page_size is not None else total,
        "totalPages": total_pages,
    }
