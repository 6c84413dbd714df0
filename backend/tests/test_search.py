"""
Product search, suggestions and facets.
"""

from decimal import Decimal

import pytest

from tfootwear.modules.shop import SearchService

from conftest import make_product


@pytest.fixture
def search(db) -> SearchService:
    return SearchService(db)


@pytest.fixture
async def sold_out(db, category):
    return await make_product(db, category, "Court Classic", "1800.00", 0)


async def test_text_search_is_case_insensitive(search, sneaker, boot):
    result = await search.search_products(q="RUNNER")

    assert [p.name for p in result["items"]] == ["Air Runner"]
    assert result["total"] == 1

    by_description = await search.search_products(q="boot shoe")
    assert [p.name for p in by_description["items"]] == ["Trail Boot"]


async def test_filters_combine(search, sneaker, boot, sold_out):
    result = await search.search_products(
        category="sneakers", min_price=Decimal("2000"), max_price=Decimal("3000")
    )
    assert [p.name for p in result["items"]] == ["Air Runner"]

    in_stock = await search.search_products(in_stock=True, sort_by="price_asc")
    assert [p.name for p in in_stock["items"]] == ["Air Runner", "Trail Boot"]

    out = await search.search_products(in_stock=False)
    assert [p.name for p in out["items"]] == ["Court Classic"]


async def test_unknown_category_matches_nothing(search, sneaker):
    result = await search.search_products(category="Sandals")

    assert result["items"] == []
    assert result["total"] == 0
    assert result["total_pages"] == 0


async def test_sorting(search, sneaker, boot, sold_out):
    ascending = await search.search_products(sort_by="price_asc")
    descending = await search.search_products(sort_by="price_desc")
    newest = await search.search_products(sort_by="newest")

    assert [p.name for p in ascending["items"]] == ["Court Classic", "Air Runner", "Trail Boot"]
    assert [p.name for p in descending["items"]] == ["Trail Boot", "Air Runner", "Court Classic"]
    assert [p.name for p in newest["items"]][0] == "Court Classic"


async def test_best_selling(search, orders, customer, other_customer, sneaker, boot):
    await orders.create_order(customer.id, [{"product_id": boot.id, "quantity": 1}])
    await orders.create_order(other_customer.id, [{"product_id": boot.id, "quantity": 1}])
    await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 1}])

    result = await search.search_products(sort_by="best_selling")

    assert [p.name for p in result["items"]] == ["Trail Boot", "Air Runner"]


async def test_pagination(search, sneaker, boot, sold_out):
    first = await search.search_products(sort_by="price_asc", page=1, limit=2)
    second = await search.search_products(sort_by="price_asc", page=2, limit=2)

    assert first["total"] == 3
    assert first["total_pages"] == 2
    assert [p.name for p in first["items"]] == ["Court Classic", "Air Runner"]
    assert [p.name for p in second["items"]] == ["Trail Boot"]
    assert second["page"] == 2


async def test_suggestions(search, sneaker, boot):
    suggestions = await search.suggestions("tr")

    assert [s["name"] for s in suggestions] == ["Trail Boot"]
    assert suggestions[0]["category"] == "Sneakers"
    assert suggestions[0]["price"] == 4000.0
    assert await search.suggestions("") == []


async def test_facets(search, sneaker, boot, sold_out):
    facets = await search.filters()

    assert facets["categories"] == ["Sneakers"]
    assert facets["price_range"] == {"min": 1800.0, "max": 4000.0}
    assert facets["stock_status"] == {"in_stock": 2, "out_of_stock": 1}


async def test_facets_on_empty_catalog(search):
    facets = await search.filters()

    assert facets["price_range"] == {"min": 0.0, "max": 0.0}
    assert facets["stock_status"] == {"in_stock": 0, "out_of_stock": 0}
