"""
Cart service tests.
"""

from decimal import Decimal

import pytest

from tfootwear.core.exceptions import EmptyCartError, InsufficientStockError, NotFoundError


async def test_get_or_create_cart_is_idempotent(cart, customer):
    first = await cart.get_or_create_cart(customer.id)
    second = await cart.get_or_create_cart(customer.id)

    assert first.id == second.id
    assert first.items == []


def miss_first_lookup(cart, monkeypatch) -> None:
    """Make the first cart lookup miss, as when a parallel request inserts the cart."""
    find = cart._find_cart
    calls = []

    async def find_cart(user_id):
        calls.append(user_id)
        if len(calls) == 1:
            return None
        return await find(user_id)

    monkeypatch.setattr(cart, "_find_cart", find_cart)


async def test_get_or_create_cart_when_created_in_parallel(cart, customer, monkeypatch):
    customer_id = customer.id
    existing_id = (await cart.get_or_create_cart(customer_id)).id
    miss_first_lookup(cart, monkeypatch)

    again = await cart.get_or_create_cart(customer_id)

    assert again.id == existing_id


async def test_add_item_when_cart_created_in_parallel(cart, customer, sneaker, monkeypatch):
    customer_id, sneaker_id = customer.id, sneaker.id
    await cart.get_or_create_cart(customer_id)
    miss_first_lookup(cart, monkeypatch)

    item = await cart.add_item(customer_id, sneaker_id, 2)

    assert item.quantity == 2
    assert item.product.name == "Air Runner"


async def test_add_item_sums_quantities(cart, customer, sneaker):
    await cart.add_item(customer.id, sneaker.id, 1)
    item = await cart.add_item(customer.id, sneaker.id, 2)

    assert item.quantity == 3
    current = await cart.get_cart(customer.id)
    assert len(current.items) == 1


async def test_add_item_checks_combined_quantity_against_stock(cart, customer, sneaker):
    await cart.add_item(customer.id, sneaker.id, 4)

    with pytest.raises(InsufficientStockError):
        await cart.add_item(customer.id, sneaker.id, 2)

    current = await cart.get_cart(customer.id)
    assert current.items[0].quantity == 4


async def test_add_unknown_product(cart, customer):
    with pytest.raises(NotFoundError):
        await cart.add_item(customer.id, 999, 1)


async def test_add_item_does_not_touch_stock(db, cart, customer, sneaker):
    await cart.add_item(customer.id, sneaker.id, 3)

    await db.refresh(sneaker)
    assert sneaker.stock == 5


async def test_update_item(cart, customer, sneaker):
    item = await cart.add_item(customer.id, sneaker.id, 1)

    updated = await cart.update_item(customer.id, item.id, 5)
    assert updated.quantity == 5

    with pytest.raises(InsufficientStockError):
        await cart.update_item(customer.id, item.id, 6)


async def test_update_item_in_another_users_cart(cart, customer, other_customer, sneaker):
    item = await cart.add_item(customer.id, sneaker.id, 1)

    with pytest.raises(NotFoundError):
        await cart.update_item(other_customer.id, item.id, 2)


async def test_remove_and_clear_are_idempotent(cart, customer, sneaker):
    item = await cart.add_item(customer.id, sneaker.id, 1)

    await cart.remove_item(customer.id, item.id)
    await cart.remove_item(customer.id, item.id)
    await cart.clear(customer.id)
    await cart.clear(customer.id)

    current = await cart.get_cart(customer.id)
    assert current.items == []


async def test_remove_item_of_other_user_is_ignored(cart, customer, other_customer, sneaker):
    item = await cart.add_item(customer.id, sneaker.id, 1)

    await cart.remove_item(other_customer.id, item.id)

    current = await cart.get_cart(customer.id)
    assert len(current.items) == 1


async def test_compute_total_uses_current_price(db, cart, customer, sneaker, boot):
    await cart.add_item(customer.id, sneaker.id, 2)
    await cart.add_item(customer.id, boot.id, 1)
    assert await cart.compute_total(customer.id) == Decimal("9000.00")

    sneaker.price = Decimal("3000.00")
    await db.commit()

    assert await cart.compute_total(customer.id) == Decimal("10000.00")


async def test_checkout_empty_cart(cart, orders, customer):
    with pytest.raises(EmptyCartError):
        await cart.initiate_checkout(customer.id, orders)


async def test_checkout_creates_order_and_empties_cart(db, cart, orders, customer, sneaker):
    await cart.add_item(customer.id, sneaker.id, 2)

    result = await cart.initiate_checkout(customer.id, orders)

    assert result["total"] == 5000.0
    order = await orders.get_order_by_id(result["order_id"], customer.id)
    assert order.total == Decimal("5000.00")
    assert [(i.product_id, i.quantity) for i in order.items] == [(sneaker.id, 2)]

    await db.refresh(sneaker)
    assert sneaker.stock == 3
    assert (await cart.get_cart(customer.id)).items == []
