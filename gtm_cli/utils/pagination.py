"""Pagination helpers for Tag Manager list endpoints."""

from __future__ import annotations

import math
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

from gtm_cli.config.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


def list_all_pages(
    fetch_page: Callable[[str | None], dict[str, Any]],
    *,
    items_field: str,
) -> list[dict[str, Any]]:
    """Collect all items across a paginated GTM list endpoint.

    Args:
        fetch_page: Function that accepts an optional page token and returns a
            parsed response payload from the GTM API.
        items_field: Response field containing list items (e.g., "tag").

    Returns:
        All items from all pages, in received order.
    """
    items: list[dict[str, Any]] = []
    page_token: str | None = None

    while True:
        page = fetch_page(page_token)
        raw_items = page.get(items_field) or []
        if isinstance(raw_items, list):
            items.extend(x for x in raw_items if isinstance(x, dict))
        page_token = page.get("nextPageToken")
        if not page_token:
            break

    return items


class PaginatedResult(BaseModel):
    """One client-side page of an already fetched list."""

    items: list[Any]
    page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


def paginate(
    items: list[Any],
    page: int | None = None,
    page_size: int | None = None,
) -> PaginatedResult:
    """Slice ``items`` into a page, clamping page and page size."""
    page = max(1, page or 1)
    page_size = min(MAX_PAGE_SIZE, max(1, page_size or DEFAULT_PAGE_SIZE))

    total_items = len(items)
    total_pages = math.ceil(total_items / page_size)
    start = (page - 1) * page_size

    return PaginatedResult(
        items=items[start : start + page_size],
        page=page,
        page_size=page_size,
        total_items=total_items,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )


def with_pagination_info(result: PaginatedResult) -> dict[str, Any]:
    """Split a page into ``{"data": [...], "pagination": {...}}`` for JSON output."""
    return {
        "data": result.items,
        "pagination": result.model_dump(exclude={"items"}),
    }


__all__ = [
    "list_all_pages",
    "PaginatedResult",
    "paginate",
    "with_pagination_info",
]
