"""
Catalog Service - Category tree, products and stock.
"""

from decimal import Decimal
from typing import Any
from uuid import uuid4

from loguru import logger
from slugify import slugify
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tfootwear.core.database import atomic
from tfootwear.core.exceptions import (
    AlreadyExistsError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tfootwear.models.shop import Category, OrderItem, Product

PRODUCT_FIELDS = {"name", "description", "price", "image_url", "stock", "category_id"}


class CatalogService:
    """
    Service for managing categories, products and stock levels.

    Usage:
        catalog = CatalogService(db_session)
        tree = await catalog.get_category_tree()
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize catalog service with database session."""
        self.db = db

    # ==================== Categories ====================

    async def _category_by_name(self, name: str, exclude_id: int | None = None) -> Category | None:
        query = select(Category).where(func.lower(Category.name) == name.strip().lower())
        if exclude_id is not None:
            query = query.where(Category.id != exclude_id)
        result = await self.db.execute(query)
        return result.scalars().first()

    async def get_category(self, category_id: int) -> Category:
        """Get category by ID."""
        category = await self.db.get(Category, category_id)
        if not category:
            raise NotFoundError("Category not found")
        return category

    async def create_category(
        self,
        name: str,
        description: str | None = None,
        parent_id: int | None = None,
    ) -> Category:
        """Create new category. Names are unique regardless of case."""
        async with atomic(self.db):
            if await self._category_by_name(name):
                raise AlreadyExistsError("Category already exists")

            if parent_id is not None and not await self.db.get(Category, parent_id):
                raise NotFoundError("Parent category not found")

            category = Category(
                name=name.strip(),
                slug=slugify(name),
                description=description,
                parent_id=parent_id,
            )
            self.db.add(category)
            await self.db.flush()

        logger.info(f"Category created: {category.name} ({category.id})")
        return category

    async def get_category_tree(self) -> list[dict[str, Any]]:
        """
        Get all categories as a tree.

        Returns:
            Root categories, each with nested ``sub_categories`` and
            a ``product_count``
        """
        counts_query = select(Product.category_id, func.count(Product.id)).group_by(
            Product.category_id
        )
        counts = dict((await self.db.execute(counts_query)).all())

        result = await self.db.execute(select(Category).order_by(Category.name))
        categories = list(result.scalars().all())

        nodes: dict[int, dict[str, Any]] = {
            c.id: {
                "id": c.id,
                "name": c.name,
                "slug": c.slug,
                "description": c.description,
                "parent_id": c.parent_id,
                "product_count": counts.get(c.id, 0),
                "sub_categories": [],
            }
            for c in categories
        }

        roots = []
        for category in categories:
            node = nodes[category.id]
            parent = nodes.get(category.parent_id) if category.parent_id else None
            if parent:
                parent["sub_categories"].append(node)
            else:
                roots.append(node)
        return roots

    async def get_category_products(self, category_id: int) -> list[Product]:
        """Get products in a category."""
        await self.get_category(category_id)
        result = await self.db.execute(
            select(Product).where(Product.category_id == category_id).order_by(Product.name)
        )
        return list(result.scalars().all())

    async def _ancestor_ids(self, category_id: int) -> set[int]:
        """Ids on the path from a category up to its root, inclusive."""
        seen: set[int] = set()
        current: int | None = category_id
        while current is not None and current not in seen:
            seen.add(current)
            current = await self.db.scalar(
                select(Category.parent_id).where(Category.id == current)
            )
        return seen

    async def update_category(self, category_id: int, **data: Any) -> Category:
        """Update name, description or parent of a category."""
        async with atomic(self.db):
            category = await self.get_category(category_id)

            name = data.get("name")
            if name:
                if await self._category_by_name(name, exclude_id=category_id):
                    raise AlreadyExistsError("Category name already exists")
                category.name = name.strip()
                category.slug = slugify(name)

            if "description" in data:
                category.description = data["description"]

            if "parent_id" in data:
                parent_id = data["parent_id"]
                if parent_id is not None:
                    if parent_id == category_id:
                        raise ValidationError("Category cannot be its own parent")
                    if not await self.db.get(Category, parent_id):
                        raise NotFoundError("Parent category not found")
                    if category_id in await self._ancestor_ids(parent_id):
                        raise ValidationError("Category cannot be moved under its own sub-category")
                category.parent_id = parent_id

            await self.db.flush()
        return category

    async def delete_category(self, category_id: int) -> None:
        """Delete a category that has no products and no sub-categories."""
        async with atomic(self.db):
            category = await self.get_category(category_id)

            products = await self.db.scalar(
                select(func.count(Product.id)).where(Product.category_id == category_id)
            )
            if products:
                raise InvalidStateError("Cannot delete category with existing products")

            children = await self.db.scalar(
                select(func.count(Category.id)).where(Category.parent_id == category_id)
            )
            if children:
                raise InvalidStateError("Cannot delete category with existing sub-categories")

            await self.db.delete(category)

        logger.info(f"Category deleted: {category_id}")

    async def delete_all_categories(self) -> None:
        """Delete every category, refused while any category has products."""
        async with atomic(self.db):
            products = await self.db.scalar(select(func.count(Product.id)))
            if products:
                raise InvalidStateError("Cannot delete categories with existing products")

            # Children before parents
            await self.db.execute(update(Category).values(parent_id=None))
            await self.db.execute(delete(Category))

        logger.info("All categories deleted")

    # ==================== Products ====================

    async def _unique_slug(self, name: str) -> str:
        slug = slugify(name)
        taken = await self.db.scalar(select(Product.id).where(Product.slug == slug))
        if taken:
            slug = f"{slug}-{uuid4().hex[:6]}"
        return slug

    def _validate_product_values(self, data: dict[str, Any]) -> None:
        price = data.get("price")
        if price is not None and Decimal(str(price)) <= 0:
            raise ValidationError("Price must be greater than zero")
        stock = data.get("stock")
        if stock is not None and stock < 0:
            raise ValidationError("Stock cannot be negative")

    async def create_product(
        self,
        name: str,
        price: Decimal,
        category_id: int,
        stock: int = 0,
        description: str | None = None,
        image_url: str | None = None,
    ) -> Product:
        """Create new product in an existing category."""
        self._validate_product_values({"price": price, "stock": stock})

        async with atomic(self.db):
            await self.get_category(category_id)

            product = Product(
                name=name,
                slug=await self._unique_slug(name),
                description=description,
                price=Decimal(str(price)),
                image_url=image_url,
                stock=stock,
                category_id=category_id,
            )
            self.db.add(product)
            await self.db.flush()

        logger.info(f"Product created: {product.slug} ({product.id})")
        return await self.get_product(product.id)

    async def get_product(self, product_id: int) -> Product:
        """Get product by ID with its category."""
        query = (
            select(Product)
            .options(selectinload(Product.category))
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        product = result.scalar_one_or_none()
        if not product:
            raise NotFoundError("Product not found")
        return product

    async def get_products_grouped(self) -> list[dict[str, Any]]:
        """Get all products grouped by category."""
        query = (
            select(Product)
            .options(selectinload(Product.category))
            .order_by(Product.category_id, Product.name)
        )
        result = await self.db.execute(query)

        groups: dict[int, dict[str, Any]] = {}
        for product in result.scalars().all():
            group = groups.setdefault(
                product.category_id,
                {
                    "category_id": product.category_id,
                    "category_name": product.category.name,
                    "products": [],
                },
            )
            group["products"].append(product)
        return list(groups.values())

    async def update_product(self, product_id: int, **data: Any) -> Product:
        """Update product fields."""
        changes = {k: v for k, v in data.items() if k in PRODUCT_FIELDS}
        self._validate_product_values(changes)

        async with atomic(self.db):
            product = await self.get_product(product_id)

            if "category_id" in changes:
                await self.get_category(changes["category_id"])
            if "name" in changes and changes["name"] != product.name:
                product.slug = await self._unique_slug(changes["name"])
            if "price" in changes:
                changes["price"] = Decimal(str(changes["price"]))

            for field, value in changes.items():
                setattr(product, field, value)
            await self.db.flush()

        return await self.get_product(product_id)

    async def delete_product(self, product_id: int) -> None:
        """Delete a product that no order references."""
        async with atomic(self.db):
            product = await self.get_product(product_id)

            ordered = await self.db.scalar(
                select(func.count(OrderItem.id)).where(OrderItem.product_id == product_id)
            )
            if ordered:
                raise InvalidStateError("Cannot delete product referenced by existing orders")

            await self.db.delete(product)

        logger.info(f"Product deleted: {product_id}")

    # ==================== Stock ====================

    async def check_stock(self, product_id: int, quantity: int) -> bool:
        """Check if enough stock is available."""
        stock = await self.db.scalar(select(Product.stock).where(Product.id == product_id))
        return stock is not None and stock >= quantity

    async def decrement_stock(self, product_id: int, quantity: int) -> None:
        """
        Atomically take stock.

        A single guarded UPDATE, so concurrent orders cannot drive
        stock below zero.

        Raises:
            InsufficientStockError: If fewer than ``quantity`` units remain
        """
        result = await self.db.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
        )
        if result.rowcount != 1:
            raise InsufficientStockError(f"Insufficient stock for product {product_id}")

    async def increment_stock(self, product_id: int, quantity: int) -> None:
        """Atomically return stock."""
        await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity)
        )
