"""Filtering and pagination over the fully merged, classified item list."""

import math
from typing import List, Optional, Sequence, Tuple

from reconciliation.models import MergedItemRow, MergedLocationRow


def matches_search(item: MergedItemRow, search: str) -> bool:
    needle = search.lower()
    return needle in (item.item_code or "").lower() or needle in (item.item_name or "").lower()


def matches_location(location: MergedLocationRow, query: str) -> bool:
    """Code match (either side's code) or display-name substring."""
    needle = query.lower()
    if location.location_code.lower() == needle:
        return True
    if any(code.lower() == needle for code in location.source_a_codes):
        return True
    return needle in (location.location_name or "").lower()


def filter_items(
    items: Sequence[MergedItemRow],
    search: Optional[str] = None,
    location: Optional[str] = None,
) -> List[MergedItemRow]:
    """Apply the free-text filter, then the location filter.

    An item passes the location filter if any of its merged locations
    matches. Blank filters are ignored.
    """
    filtered = list(items)

    if search and search.strip():
        term = search.strip()
        filtered = [item for item in filtered if matches_search(item, term)]

    if location and location.strip():
        term = location.strip()
        filtered = [
            item for item in filtered
            if any(matches_location(loc, term) for loc in item.locations)
        ]

    return filtered


def paginate(items: Sequence[MergedItemRow], page: int, limit: int) -> Tuple[List[MergedItemRow], int]:
    """Offset/limit slice. Returns (page_items, total_matching_items)."""
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if limit < 1:
        raise ValueError(f"limit must be > 0, got {limit}")

    offset = (page - 1) * limit
    return list(items[offset:offset + limit]), len(items)


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit > 0 else 0
