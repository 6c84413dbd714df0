"""
Search API Endpoints.
"""

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query

from tfootwear.api.deps import get_search_service
from tfootwear.api.serializers import product_summary
from tfootwear.core.exceptions import ValidationError
from tfootwear.modules.shop import SearchService
from tfootwear.modules.shop.search import SORT_OPTIONS

router = APIRouter()


@router.get("")
async def search_products(
    q: str | None = Query(None, description="Name or description contains"),
    category: str | None = Query(None, description="Category name"),
    min_price: Decimal | None = Query(None, alias="minPrice", ge=0),
    max_price: Decimal | None = Query(None, alias="maxPrice", ge=0),
    in_stock: bool | None = Query(None, alias="inStock"),
    sort_by: str = Query("newest", alias="sortBy"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: SearchService = Depends(get_search_service),
) -> dict[str, Any]:
    """
    Search products with filters and sorting.

    Sort options: newest, price_asc, price_desc, best_selling.
    """
    if sort_by not in SORT_OPTIONS:
        raise ValidationError(f"Invalid sort option: {sort_by}")

    result = await search.search_products(
        q=q,
        category=category,
        min_price=min_price,
        max_price=max_price,
        in_stock=in_stock,
        sort_by=sort_by,
        page=page,
        limit=limit,
    )
    return {
        **result,
        "items": [product_summary(p, with_category=True) for p in result["items"]],
    }


@router.get("/suggestions")
async def get_suggestions(
    q: str | None = Query(None),
    limit: int = Query(5, ge=1, le=20),
    search: SearchService = Depends(get_search_service),
) -> list[dict[str, Any]]:
    """Suggestions as the user types."""
    return await search.suggestions(q, limit)


@router.get("/filters")
async def get_filters(
    search: SearchService = Depends(get_search_service),
) -> dict[str, Any]:
    """Available categories, price range and stock counts."""
    return await search.filters()
