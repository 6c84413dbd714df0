"""
Cart Service - Per-user shopping cart stored in the database.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tfootwear.core.database import atomic
from tfootwear.core.exceptions import EmptyCartError, InsufficientStockError, NotFoundError
from tfootwear.models.shop import Cart, CartItem, Product

if TYPE_CHECKING:
    from tfootwear.modules.shop.orders import OrderService


class CartService:
    """
    Shopping cart service.

    A cart is created lazily on first use. Stock is only checked here,
    never reserved; it is taken when the cart is checked out.

    Usage:
        cart = CartService(db_session)
        await cart.add_item(user_id, product_id, quantity=2)
        total = await cart.compute_total(user_id)
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize cart service with database session."""
        self.db = db

    async def _find_cart(self, user_id: int) -> Cart | None:
        query = (
            select(Cart)
            .options(selectinload(Cart.items).selectinload(CartItem.product))
            .where(Cart.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create_cart(self, user_id: int) -> Cart:
        """Get user's cart, creating an empty one if needed."""
        cart = await self._find_cart(user_id)
        if cart:
            return cart

        try:
            async with atomic(self.db):
                self.db.add(Cart(user_id=user_id))
                await self.db.flush()
            logger.debug(f"Cart created for user {user_id}")
        except IntegrityError:
            # Another request created it first
            logger.debug(f"Cart for user {user_id} already created concurrently")

        return await self._find_cart(user_id)

    async def get_cart(self, user_id: int) -> Cart:
        """Get user's cart with items and their products."""
        return await self.get_or_create_cart(user_id)

    async def add_item(self, user_id: int, product_id: int, quantity: int) -> CartItem:
        """
        Add product to cart, summing quantities for a product already present.

        Args:
            user_id: Cart owner
            product_id: Product to add
            quantity: Units to add

        Returns:
            The cart line for the product

        Raises:
            NotFoundError: Product does not exist
            InsufficientStockError: Combined quantity exceeds stock
        """
        cart = await self.get_or_create_cart(user_id)
        product = await self.db.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found")

        existing = next((i for i in cart.items if i.product_id == product_id), None)
        wanted = quantity + (existing.quantity if existing else 0)

        if wanted > product.stock:
            raise InsufficientStockError()

        async with atomic(self.db):
            if existing:
                existing.quantity = wanted
                item = existing
            else:
                item = CartItem(cart_id=cart.id, product_id=product_id, quantity=quantity)
                self.db.add(item)
            await self.db.flush()

        await self.db.refresh(item, ["product"])
        return item

    async def update_item(self, user_id: int, item_id: int, quantity: int) -> CartItem:
        """
        Set the quantity of a cart line.

        Raises:
            NotFoundError: Item absent or in another user's cart
            InsufficientStockError: Quantity exceeds current stock
        """
        cart = await self.get_or_create_cart(user_id)
        item = next((i for i in cart.items if i.id == item_id), None)
        if not item:
            raise NotFoundError("Cart item not found")

        if quantity > item.product.stock:
            raise InsufficientStockError()

        async with atomic(self.db):
            item.quantity = quantity
            await self.db.flush()
        return item

    async def remove_item(self, user_id: int, item_id: int) -> None:
        """Remove a line from the cart. Removing an absent line is a no-op."""
        async with atomic(self.db):
            await self.db.execute(
                delete(CartItem).where(
                    CartItem.id == item_id,
                    CartItem.cart_id.in_(select(Cart.id).where(Cart.user_id == user_id)),
                )
            )

    async def clear(self, user_id: int) -> None:
        """Remove every line from the cart. An empty or missing cart is left as is."""
        async with atomic(self.db):
            await self.db.execute(
                delete(CartItem).where(
                    CartItem.cart_id.in_(select(Cart.id).where(Cart.user_id == user_id))
                )
            )

    async def compute_total(self, user_id: int) -> Decimal:
        """Sum of quantity x current product price."""
        cart = await self.get_or_create_cart(user_id)
        return sum(
            (item.product.price * item.quantity for item in cart.items),
            Decimal("0"),
        )

    async def initiate_checkout(self, user_id: int, orders: "OrderService") -> dict[str, Any]:
        """
        Turn the cart into an order.

        Args:
            user_id: Cart owner
            orders: Order workflow that takes the stock and clears the cart

        Returns:
            order_id and total of the created order

        Raises:
            EmptyCartError: Cart has no items
        """
        cart = await self.get_or_create_cart(user_id)
        if not cart.items:
            raise EmptyCartError()

        items = [
            {"product_id": item.product_id, "quantity": item.quantity}
            for item in cart.items
        ]
        order = await orders.create_order(user_id, items)

        logger.info(f"Checkout completed for user {user_id}: order {order.id}")
        return {"order_id": order.id, "total": float(order.total)}
