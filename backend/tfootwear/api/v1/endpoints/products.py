"""
Product API Endpoints.

Reads are public; mutations require the admin role.
"""

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field

from tfootwear.api.deps import get_catalog_service, require_admin
from tfootwear.api.serializers import product_summary
from tfootwear.models.user import User
from tfootwear.modules.shop import CatalogService

router = APIRouter()


# ==================== Schemas ====================


class ProductRequest(BaseModel):
    """New product."""

    name: str = Field(..., min_length=1, max_length=255)
    price: Decimal
    category_id: int
    stock: int = 0
    description: str | None = None
    image_url: str | None = None


class UpdateProductRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    price: Decimal | None = None
    category_id: int | None = None
    stock: int | None = None
    description: str | None = None
    image_url: str | None = None


# ==================== Endpoints ====================


@router.get("")
async def get_products(
    catalog: CatalogService = Depends(get_catalog_service),
) -> list[dict[str, Any]]:
    """All products grouped by category."""
    groups = await catalog.get_products_grouped()
    return [
        {
            "category_id": group["category_id"],
            "category_name": group["category_name"],
            "products": [product_summary(p) for p in group["products"]],
        }
        for group in groups
    ]


@router.post("", status_code=201)
async def create_product(
    data: ProductRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service),
) -> dict[str, Any]:
    product = await catalog.create_product(**data.model_dump())
    return product_summary(product, with_category=True)


@router.get("/{product_id}")
async def get_product(
    product_id: int,
    catalog: CatalogService = Depends(get_catalog_service),
) -> dict[str, Any]:
    product = await catalog.get_product(product_id)
    return product_summary(product, with_category=True)


@router.get("/{product_id}/stock")
async def check_stock(
    product_id: int,
    quantity: int = Query(1, ge=1),
    catalog: CatalogService = Depends(get_catalog_service),
) -> dict[str, Any]:
    """Whether ``quantity`` units can be ordered."""
    await catalog.get_product(product_id)
    return {
        "product_id": product_id,
        "quantity": quantity,
        "available": await catalog.check_stock(product_id, quantity),
    }


@router.patch("/{product_id}")
async def update_product(
    product_id: int,
    data: UpdateProductRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service),
) -> dict[str, Any]:
    product = await catalog.update_product(
        product_id, **data.model_dump(exclude_unset=True, exclude_none=True)
    )
    return product_summary(product, with_category=True)


@router.delete("/{product_id}", status_code=204)
async def delete_product(
    product_id: int,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service),
) -> Response:
    await catalog.delete_product(product_id)
    return Response(status_code=204)
