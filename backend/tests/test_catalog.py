"""
Catalog tests: category tree, products and stock guards.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tfootwear.core.exceptions import (
    AlreadyExistsError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tfootwear.models.shop import Category, Product


async def test_create_category_slug_and_uniqueness(catalog):
    category = await catalog.create_category("Running Shoes", "For the road")

    assert category.slug == "running-shoes"
    with pytest.raises(AlreadyExistsError):
        await catalog.create_category("running shoes")


async def test_create_category_with_unknown_parent(catalog):
    with pytest.raises(NotFoundError):
        await catalog.create_category("Kids", parent_id=999)


async def test_category_tree(catalog, category, sneaker, boot):
    sneakers_id = category.id
    kids = await catalog.create_category("Kids", parent_id=sneakers_id)
    await catalog.create_category("Boots")

    tree = await catalog.get_category_tree()

    assert [node["name"] for node in tree] == ["Boots", "Sneakers"]
    sneakers = tree[1]
    assert sneakers["product_count"] == 2
    assert [child["id"] for child in sneakers["sub_categories"]] == [kids.id]
    assert sneakers["sub_categories"][0]["product_count"] == 0


async def test_category_cannot_be_its_own_parent(catalog, category):
    category_id = category.id

    with pytest.raises(ValidationError):
        await catalog.update_category(category_id, parent_id=category_id)

    renamed = await catalog.update_category(category_id, name="Trainers")
    assert renamed.slug == "trainers"


async def test_category_cannot_move_under_its_descendant(catalog):
    shoes = await catalog.create_category("Shoes")
    shoes_id = shoes.id
    sport = await catalog.create_category("Sport", parent_id=shoes_id)
    running = await catalog.create_category("Running", parent_id=sport.id)
    running_id = running.id

    with pytest.raises(ValidationError):
        await catalog.update_category(shoes_id, parent_id=running_id)

    tree = await catalog.get_category_tree()
    assert [node["name"] for node in tree] == ["Shoes"]
    assert tree[0]["sub_categories"][0]["sub_categories"][0]["id"] == running_id


async def test_category_can_move_to_another_branch(catalog):
    shoes = await catalog.create_category("Shoes")
    boots = await catalog.create_category("Boots")
    sport = await catalog.create_category("Sport", parent_id=shoes.id)

    moved = await catalog.update_category(sport.id, parent_id=boots.id)

    assert moved.parent_id == boots.id


async def test_delete_category_with_products_is_refused(db, catalog, category, sneaker):
    category_id = category.id

    with pytest.raises(InvalidStateError) as exc:
        await catalog.delete_category(category_id)

    assert exc.value.detail == "Cannot delete category with existing products"
    assert await db.scalar(select(func.count(Product.id))) == 1
    assert (await catalog.get_category(category_id)).name == "Sneakers"


async def test_delete_category_with_children_is_refused(catalog, category):
    category_id = category.id
    await catalog.create_category("Kids", parent_id=category_id)

    with pytest.raises(InvalidStateError):
        await catalog.delete_category(category_id)


async def test_delete_empty_category(db, catalog):
    category = await catalog.create_category("Sandals")
    category_id = category.id

    await catalog.delete_category(category_id)

    with pytest.raises(NotFoundError):
        await catalog.get_category(category_id)


async def test_delete_all_categories(db, catalog, category):
    await catalog.create_category("Kids", parent_id=category.id)

    await catalog.delete_all_categories()

    assert await db.scalar(select(func.count(Category.id))) == 0


async def test_delete_all_categories_refused_with_products(catalog, sneaker):
    with pytest.raises(InvalidStateError):
        await catalog.delete_all_categories()


async def test_create_product(catalog, category):
    product = await catalog.create_product(
        "Air Runner", Decimal("2500"), category.id, stock=3, description="Light"
    )

    assert product.slug == "air-runner"
    assert product.category.name == "Sneakers"
    assert product.is_in_stock

    twin = await catalog.create_product("Air Runner", Decimal("2600"), category.id)
    assert twin.slug != product.slug
    assert twin.slug.startswith("air-runner-")


@pytest.mark.parametrize("price, stock", [(Decimal("0"), 1), (Decimal("-5"), 1), (Decimal("10"), -1)])
async def test_create_product_rejects_bad_values(catalog, category, price, stock):
    with pytest.raises(ValidationError):
        await catalog.create_product("Broken", price, category.id, stock=stock)


async def test_create_product_in_unknown_category(catalog):
    with pytest.raises(NotFoundError):
        await catalog.create_product("Lost", Decimal("100"), 404)


async def test_update_product(catalog, sneaker):
    updated = await catalog.update_product(sneaker.id, price="2750.50", stock=9, slug="ignored")

    assert updated.price == Decimal("2750.50")
    assert updated.stock == 9
    assert updated.slug == "air-runner"


async def test_products_grouped_by_category(catalog, category, sneaker, boot):
    other = await catalog.create_category("Boots")
    await catalog.create_product("Chelsea", Decimal("5000"), other.id, stock=1)

    groups = await catalog.get_products_grouped()

    by_name = {group["category_name"]: group for group in groups}
    assert [p.name for p in by_name["Sneakers"]["products"]] == ["Air Runner", "Trail Boot"]
    assert [p.name for p in by_name["Boots"]["products"]] == ["Chelsea"]


async def test_delete_ordered_product_is_refused(catalog, orders, customer, sneaker):
    product_id = sneaker.id
    await orders.create_order(customer.id, [{"product_id": product_id, "quantity": 1}])

    with pytest.raises(InvalidStateError):
        await catalog.delete_product(product_id)

    assert (await catalog.get_product(product_id)).id == product_id


async def test_delete_product(catalog, boot):
    product_id = boot.id

    await catalog.delete_product(product_id)

    with pytest.raises(NotFoundError):
        await catalog.get_product(product_id)


async def test_stock_guards(db, catalog, boot):
    product_id = boot.id

    assert await catalog.check_stock(product_id, 2)
    assert not await catalog.check_stock(product_id, 3)
    assert not await catalog.check_stock(404, 1)

    with pytest.raises(InsufficientStockError):
        await catalog.decrement_stock(product_id, 3)

    await catalog.decrement_stock(product_id, 2)
    await catalog.increment_stock(product_id, 1)
    await db.commit()

    assert (await catalog.get_product(product_id)).stock == 1
