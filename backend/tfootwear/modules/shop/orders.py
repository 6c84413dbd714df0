"""
Order Service - Checkout, status transitions and cancellation.
"""

from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tfootwear.core.database import atomic
from tfootwear.core.exceptions import (
    InsufficientStockError,
    InvalidTransitionError,
    NotCancellableError,
    NotFoundError,
    ValidationError,
)
from tfootwear.models.shop import Order, OrderItem, OrderStatus, Product
from tfootwear.modules.shop.cart import CartService
from tfootwear.modules.shop.catalog import CatalogService


class OrderService:
    """
    Order workflow.

    Orders are immutable snapshots of a checkout: prices are frozen on
    the order items and the total is computed once. Taking stock,
    writing the order and clearing the cart happen in one unit of work.

    Usage:
        orders = OrderService(db_session, CartService(db_session))
        order = await orders.create_order(user_id, [{"product_id": 1, "quantity": 2}])
    """

    def __init__(
        self,
        db: AsyncSession,
        cart: CartService,
        catalog: CatalogService | None = None,
    ) -> None:
        self.db = db
        self.cart = cart
        self.catalog = catalog or CatalogService(db)

    def _order_query(self):
        return select(Order).options(
            selectinload(Order.items).selectinload(OrderItem.product),
            selectinload(Order.user),
            selectinload(Order.payments),
            selectinload(Order.shipping),
        )

    # ==================== Queries ====================

    async def get_order_by_id(self, order_id: int, user_id: int | None = None) -> Order:
        """
        Get order by ID.

        Args:
            order_id: Order ID
            user_id: When given, only an order owned by this user is found

        Raises:
            NotFoundError: No such order visible to the caller
        """
        query = self._order_query().where(Order.id == order_id)
        if user_id is not None:
            query = query.where(Order.user_id == user_id)

        result = await self.db.execute(query.execution_options(populate_existing=True))
        order = result.scalar_one_or_none()
        if not order:
            raise NotFoundError("Order not found")
        return order

    async def get_user_orders(self, user_id: int) -> list[Order]:
        """Get a user's orders, newest first."""
        query = (
            self._order_query()
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_all_orders(
        self,
        status: OrderStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Order]:
        """Get orders with optional status filter, newest first."""
        query = self._order_query()
        if status:
            query = query.where(Order.status == status)

        query = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_orders(self, status: OrderStatus | None = None) -> int:
        query = select(func.count(Order.id))
        if status:
            query = query.where(Order.status == status)
        return await self.db.scalar(query) or 0

    # ==================== Workflow ====================

    async def create_order(self, user_id: int, items: list[dict[str, Any]]) -> Order:
        """
        Create new order.

        Args:
            user_id: Customer user ID
            items: List of {product_id, quantity}

        Returns:
            Created order with items

        Raises:
            ValidationError: No items or a non-positive quantity
            NotFoundError: A product does not exist
            InsufficientStockError: A product has too little stock
        """
        quantities: dict[int, int] = {}
        for item in items:
            quantity = int(item.get("quantity", 0))
            if quantity < 1:
                raise ValidationError("Quantity must be at least 1")
            product_id = int(item["product_id"])
            quantities[product_id] = quantities.get(product_id, 0) + quantity

        if not quantities:
            raise ValidationError("Order must contain at least one item")

        async with atomic(self.db):
            result = await self.db.execute(
                select(Product)
                .where(Product.id.in_(list(quantities)))
                .execution_options(populate_existing=True)
            )
            products = {p.id: p for p in result.scalars().all()}

            total = Decimal("0")
            order_items = []

            for product_id, quantity in quantities.items():
                product = products.get(product_id)
                if not product:
                    raise NotFoundError(f"Product {product_id} not found")
                if product.stock < quantity:
                    raise InsufficientStockError(f"Insufficient stock for product {product.name}")

                try:
                    await self.catalog.decrement_stock(product_id, quantity)
                except InsufficientStockError:
                    raise InsufficientStockError(
                        f"Insufficient stock for product {product.name}"
                    ) from None

                total += product.price * quantity
                order_items.append(
                    OrderItem(product_id=product_id, quantity=quantity, price=product.price)
                )

            order = Order(
                user_id=user_id,
                status=OrderStatus.PENDING,
                total=total,
                items=order_items,
            )
            self.db.add(order)
            await self.db.flush()

            await self.cart.clear(user_id)

        logger.info(f"Order {order.id} created for user {user_id}: total {total}")
        return await self.get_order_by_id(order.id)

    async def _restore_stock(self, order: Order) -> None:
        for item in order.items:
            await self.catalog.increment_stock(item.product_id, item.quantity)

    async def cancel_order(self, order_id: int, user_id: int) -> Order:
        """
        Cancel a pending order owned by the user and return its stock.

        Raises:
            NotCancellableError: Order missing, not owned or not pending
        """
        async with atomic(self.db):
            # Only one cancel can move the order out of pending
            result = await self.db.execute(
                update(Order)
                .where(
                    Order.id == order_id,
                    Order.user_id == user_id,
                    Order.status == OrderStatus.PENDING,
                )
                .values(status=OrderStatus.CANCELLED)
            )
            if result.rowcount != 1:
                logger.warning(f"Cancel refused for order {order_id} (user {user_id})")
                raise NotCancellableError()

            order = await self.get_order_by_id(order_id)
            await self._restore_stock(order)

        logger.info(f"Order {order_id} cancelled by user {user_id}")
        return await self.get_order_by_id(order_id)

    async def update_order_status(self, order_id: int, status: OrderStatus) -> Order:
        """
        Administrative status change.

        Cancelled and delivered orders are final. Moving an order to
        cancelled returns its stock in the same unit of work.

        Raises:
            NotFoundError: No such order
            InvalidTransitionError: Order is already cancelled or delivered
        """
        async with atomic(self.db):
            order = await self.get_order_by_id(order_id)

            if order.status.is_terminal:
                logger.warning(
                    f"Status change refused for order {order_id}: "
                    f"{order.status.value} -> {status.value}"
                )
                raise InvalidTransitionError(
                    f"Cannot update status of a {order.status.value} order"
                )

            previous = order.status
            result = await self.db.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == previous)
                .values(status=status)
            )
            if result.rowcount != 1:
                logger.warning(f"Order {order_id} left {previous.value} before the update")
                raise InvalidTransitionError("Order status changed, reload and retry")

            if status == OrderStatus.CANCELLED:
                await self._restore_stock(order)

        logger.info(f"Order {order_id} status: {previous.value} -> {status.value}")
        return await self.get_order_by_id(order_id)

    async def delete_order(self, order_id: int) -> None:
        """Delete an order with its items, payments and shipping."""
        async with atomic(self.db):
            order = await self.get_order_by_id(order_id)
            await self.db.delete(order)

        logger.info(f"Order {order_id} deleted")

    async def delete_all_orders(self) -> int:
        """Delete every order. Returns the number removed."""
        async with atomic(self.db):
            result = await self.db.execute(self._order_query())
            orders = list(result.scalars().all())
            for order in orders:
                await self.db.delete(order)

        logger.info(f"Deleted {len(orders)} orders")
        return len(orders)
