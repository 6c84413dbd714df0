"""
Search Service - Product search, suggestions and filter facets.
"""

import math
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tfootwear.core.pagination import get_pagination
from tfootwear.models.shop import Category, OrderItem, Product

SORT_OPTIONS = ("newest", "price_asc", "price_desc", "best_selling")


class SearchService:
    """
    Read-only product search.

    Usage:
        search = SearchService(db_session)
        results = await search.search_products(q="sneaker", sort_by="price_asc")
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def _text_filter(self, q: str):
        pattern = f"%{q.lower()}%"
        return or_(
            func.lower(Product.name).like(pattern),
            func.lower(func.coalesce(Product.description, "")).like(pattern),
        )

    def _apply_filters(
        self,
        query: Select,
        q: str | None,
        category: str | None,
        min_price: Decimal | None,
        max_price: Decimal | None,
        in_stock: bool | None,
    ) -> Select:
        if q:
            query = query.where(self._text_filter(q))
        if category:
            query = query.join(Product.category).where(
                func.lower(Category.name) == category.lower()
            )
        if min_price is not None:
            query = query.where(Product.price >= min_price)
        if max_price is not None:
            query = query.where(Product.price <= max_price)
        if in_stock is not None:
            query = query.where(Product.stock > 0 if in_stock else Product.stock == 0)
        return query

    async def search_products(
        self,
        q: str | None = None,
        category: str | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
        in_stock: bool | None = None,
        sort_by: str = "newest",
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        """
        Search products.

        Args:
            q: Case-insensitive match on name or description
            category: Exact category name, case-insensitive
            min_price: Lowest price
            max_price: Highest price
            in_stock: True for in stock only, False for sold out only
            sort_by: newest, price_asc, price_desc or best_selling
            page: 1-based page
            limit: Page size

        Returns:
            items, total, page, limit and total_pages
        """
        offset, limit = get_pagination(page, limit)
        filters = (q, category, min_price, max_price, in_stock)

        count_query = self._apply_filters(select(func.count(Product.id)), *filters)
        total = await self.db.scalar(count_query) or 0

        query = self._apply_filters(
            select(Product).options(selectinload(Product.category)), *filters
        )

        if sort_by == "price_asc":
            query = query.order_by(Product.price.asc(), Product.id)
        elif sort_by == "price_desc":
            query = query.order_by(Product.price.desc(), Product.id)
        elif sort_by == "best_selling":
            sold = (
                select(OrderItem.product_id, func.count(OrderItem.id).label("sold"))
                .group_by(OrderItem.product_id)
                .subquery()
            )
            query = query.outerjoin(sold, sold.c.product_id == Product.id).order_by(
                func.coalesce(sold.c.sold, 0).desc(), Product.id
            )
        else:
            query = query.order_by(Product.created_at.desc(), Product.id.desc())

        result = await self.db.execute(query.offset(offset).limit(limit))

        return {
            "items": list(result.scalars().all()),
            "total": total,
            "page": max(page, 1),
            "limit": limit,
            "total_pages": math.ceil(total / limit),
        }

    async def suggestions(self, q: str | None, limit: int = 5) -> list[dict[str, Any]]:
        """Newest products matching a partial query."""
        if not q:
            return []

        query = (
            select(Product)
            .options(selectinload(Product.category))
            .where(self._text_filter(q))
            .order_by(Product.created_at.desc(), Product.id.desc())
            .limit(limit)
        )
        result = await self.db.execute(query)

        return [
            {
                "id": p.id,
                "name": p.name,
                "category": p.category.name,
                "price": float(p.price),
                "image_url": p.image_url,
            }
            for p in result.scalars().all()
        ]

    async def filters(self) -> dict[str, Any]:
        """Category names, price range and stock counts for the search UI."""
        categories = await self.db.execute(select(Category.name).order_by(Category.name))
        min_price, max_price = (
            await self.db.execute(select(func.min(Product.price), func.max(Product.price)))
        ).one()
        in_stock = await self.db.scalar(select(func.count(Product.id)).where(Product.stock > 0))
        out_of_stock = await self.db.scalar(
            select(func.count(Product.id)).where(Product.stock == 0)
        )

        return {
            "categories": list(categories.scalars().all()),
            "price_range": {
                "min": float(min_price or 0),
                "max": float(max_price or 0),
            },
            "stock_status": {
                "in_stock": in_stock or 0,
                "out_of_stock": out_of_stock or 0,
            },
        }
