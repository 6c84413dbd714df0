"""
Pagination helpers.
"""

import math
from typing import Any


def get_pagination(page: int = 1, limit: int = 10) -> tuple[int, int]:
    """Return (offset, limit) for a 1-based page number."""
    page = max(page, 1)
    limit = max(limit, 1)
    return (page - 1) * limit, limit


def pagination_meta(total: int, page: int, limit: int) -> dict[str, Any]:
    """Build pagination metadata for a listing response."""
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
        "has_next_page": page < total_pages,
        "has_previous_page": page > 1,
    }
