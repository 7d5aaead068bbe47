"""Pure pagination and filtering over session item collections."""
from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence, Tuple

from .models import Item, PagedView


def matches(item: Item, query: Optional[str]) -> bool:
    """Case-insensitive substring match over the item's indexed fields."""

    if not query:
        return True
    needle = query.strip().casefold()
    if not needle:
        return True
    return any(needle in str(value).casefold() for value in item.search_fields)


def filter_items(items: Iterable[Item], query: Optional[str]) -> Tuple[Item, ...]:
    return tuple(item for item in items if matches(item, query))


def count_pages(count: int, page_size: int) -> int:
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")
    return max(1, math.ceil(count / page_size))


def clamp_page(page_index: int, total_pages: int) -> int:
    return max(0, min(page_index, total_pages - 1))


def paginate(
    items: Sequence[Item],
    filter_query: Optional[str],
    page_index: int,
    page_size: int,
) -> PagedView:
    """Filter, then slice out one page.

    ``page_index`` is used as given; callers clamp it with :func:`clamp_page`
    against the filtered page count first.
    """

    filtered = filter_items(items, filter_query)
    total_pages = count_pages(len(filtered), page_size)
    start = page_index * page_size
    return PagedView(
        visible_items=filtered[start : start + page_size],
        total_pages=total_pages,
        current_page=page_index,
        filtered_count=len(filtered),
    )


def page_for(
    items: Sequence[Item],
    filter_query: Optional[str],
    requested_page: int,
    page_size: int,
) -> PagedView:
    """Clamp ``requested_page`` for the current filter, then paginate."""

    filtered_count = len(filter_items(items, filter_query))
    page = clamp_page(requested_page, count_pages(filtered_count, page_size))
    return paginate(items, filter_query, page, page_size)


__all__ = ["clamp_page", "count_pages", "filter_items", "matches", "page_for", "paginate"]
