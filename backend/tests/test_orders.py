"""
Order workflow tests: atomic checkout, cancellation and status guards.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tfootwear.core.exceptions import (
    InsufficientStockError,
    InvalidTransitionError,
    NotCancellableError,
    NotFoundError,
    ValidationError,
)
from tfootwear.models.shop import Order, OrderStatus, Product
from tfootwear.modules.shop import CartService, OrderService


async def order_count(db) -> int:
    return await db.scalar(select(func.count(Order.id)))


async def test_create_order_snapshots_price(db, orders, customer, sneaker):
    order = await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 2}])

    assert order.status == OrderStatus.PENDING
    assert order.total == Decimal("5000.00")
    assert order.items[0].price == Decimal("2500.00")

    sneaker.price = Decimal("9999.00")
    await db.commit()

    again = await orders.get_order_by_id(order.id)
    assert again.items[0].price == Decimal("2500.00")
    assert again.total == Decimal("5000.00")


async def test_create_order_merges_duplicate_lines(db, orders, customer, sneaker):
    order = await orders.create_order(
        customer.id,
        [
            {"product_id": sneaker.id, "quantity": 1},
            {"product_id": sneaker.id, "quantity": 2},
        ],
    )

    assert len(order.items) == 1
    assert order.items[0].quantity == 3
    await db.refresh(sneaker)
    assert sneaker.stock == 2


async def test_insufficient_stock_leaves_everything_unchanged(db, orders, customer, sneaker, boot):
    with pytest.raises(InsufficientStockError) as exc:
        await orders.create_order(
            customer.id,
            [
                {"product_id": sneaker.id, "quantity": 2},
                {"product_id": boot.id, "quantity": 3},
            ],
        )

    assert "Trail Boot" in exc.value.detail
    await db.refresh(sneaker)
    await db.refresh(boot)
    assert sneaker.stock == 5
    assert boot.stock == 2
    assert await order_count(db) == 0


async def test_create_order_keeps_cart_when_it_fails(db, cart, orders, customer, sneaker, boot):
    user_id = customer.id
    await cart.add_item(user_id, sneaker.id, 1)

    with pytest.raises(NotFoundError):
        await orders.create_order(
            user_id,
            [{"product_id": sneaker.id, "quantity": 1}, {"product_id": 404, "quantity": 1}],
        )

    assert len((await cart.get_cart(user_id)).items) == 1
    await db.refresh(sneaker)
    assert sneaker.stock == 5


async def test_create_order_rejects_bad_quantities(orders, customer, sneaker):
    with pytest.raises(ValidationError):
        await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 0}])
    with pytest.raises(ValidationError):
        await orders.create_order(customer.id, [])


async def test_cancel_restores_stock_once(db, orders, customer, sneaker, boot):
    order = await orders.create_order(
        customer.id,
        [{"product_id": sneaker.id, "quantity": 2}, {"product_id": boot.id, "quantity": 2}],
    )

    cancelled = await orders.cancel_order(order.id, customer.id)
    assert cancelled.status == OrderStatus.CANCELLED

    await db.refresh(sneaker)
    await db.refresh(boot)
    assert (sneaker.stock, boot.stock) == (5, 2)

    with pytest.raises(NotCancellableError):
        await orders.cancel_order(order.id, customer.id)

    await db.refresh(sneaker)
    assert sneaker.stock == 5


async def test_cancel_other_users_order(orders, customer, other_customer, sneaker):
    order = await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 1}])

    with pytest.raises(NotCancellableError):
        await orders.cancel_order(order.id, other_customer.id)


async def test_cancelled_order_status_is_final(orders, customer, sneaker):
    order = await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 1}])
    await orders.cancel_order(order.id, customer.id)

    with pytest.raises(InvalidTransitionError):
        await orders.update_order_status(order.id, OrderStatus.SHIPPED)


async def test_admin_cancel_restores_stock(db, orders, customer, sneaker):
    order = await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 3}])

    await orders.update_order_status(order.id, OrderStatus.SHIPPED)
    updated = await orders.update_order_status(order.id, OrderStatus.CANCELLED)

    assert updated.status == OrderStatus.CANCELLED
    await db.refresh(sneaker)
    assert sneaker.stock == 5


async def cancel_in_other_session(database, order_id: int, user_id: int) -> None:
    async with database.session() as session:
        await OrderService(session, CartService(session)).cancel_order(order_id, user_id)


async def stock_of(db, product_id: int) -> int:
    return await db.scalar(select(Product.stock).where(Product.id == product_id))


async def test_cancel_after_parallel_cancel_restores_stock_once(
    database, db, orders, customer, sneaker, monkeypatch
):
    order = await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 2}])
    order_id, customer_id, sneaker_id = order.id, customer.id, sneaker.id
    read_while_pending = await orders.get_order_by_id(order_id, customer_id)

    await cancel_in_other_session(database, order_id, customer_id)

    async def stale_read(*args, **kwargs):
        return read_while_pending

    monkeypatch.setattr(orders, "get_order_by_id", stale_read)

    with pytest.raises(NotCancellableError):
        await orders.cancel_order(order_id, customer_id)

    assert await stock_of(db, sneaker_id) == 5


async def test_admin_cancel_after_customer_cancel_restores_stock_once(
    database, db, orders, customer, sneaker, monkeypatch
):
    order = await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 2}])
    order_id, customer_id, sneaker_id = order.id, customer.id, sneaker.id
    read_while_pending = await orders.get_order_by_id(order_id)

    await cancel_in_other_session(database, order_id, customer_id)

    async def stale_read(*args, **kwargs):
        return read_while_pending

    monkeypatch.setattr(orders, "get_order_by_id", stale_read)

    with pytest.raises(InvalidTransitionError):
        await orders.update_order_status(order_id, OrderStatus.CANCELLED)

    assert await stock_of(db, sneaker_id) == 5


async def test_update_status_unknown_order(orders):
    with pytest.raises(NotFoundError):
        await orders.update_order_status(123, OrderStatus.SHIPPED)


async def test_get_order_by_id_filters_by_owner(orders, customer, other_customer, sneaker):
    order = await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 1}])

    assert (await orders.get_order_by_id(order.id, customer.id)).id == order.id
    with pytest.raises(NotFoundError):
        await orders.get_order_by_id(order.id, other_customer.id)


async def test_listings_are_newest_first(orders, customer, other_customer, sneaker):
    first = await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 1}])
    second = await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 1}])
    third = await orders.create_order(
        other_customer.id, [{"product_id": sneaker.id, "quantity": 1}]
    )

    assert [o.id for o in await orders.get_user_orders(customer.id)] == [second.id, first.id]
    assert [o.id for o in await orders.get_all_orders()][0] == third.id


async def test_delete_all_orders(db, orders, customer, sneaker):
    await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 1}])
    await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 1}])

    assert await orders.delete_all_orders() == 2
    assert await order_count(db) == 0
