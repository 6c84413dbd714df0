"""
Category API Endpoints.

Reads are public; mutations require the admin role.
"""

from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from tfootwear.api.deps import get_catalog_service, require_admin
from tfootwear.api.serializers import category_summary, product_summary
from tfootwear.models.user import User
from tfootwear.modules.shop import CatalogService

router = APIRouter()


# ==================== Schemas ====================


class CategoryRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    parent_id: int | None = None


class UpdateCategoryRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    parent_id: int | None = None


# ==================== Endpoints ====================


@router.get("")
async def get_categories(
    catalog: CatalogService = Depends(get_catalog_service),
) -> list[dict[str, Any]]:
    """Category tree with product counts."""
    return await catalog.get_category_tree()


@router.post("", status_code=201)
async def create_category(
    data: CategoryRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service),
) -> dict[str, Any]:
    category = await catalog.create_category(data.name, data.description, data.parent_id)
    return category_summary(category)


@router.delete("")
async def delete_all_categories(
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service),
) -> dict[str, str]:
    """Delete every category, refused while products exist."""
    await catalog.delete_all_categories()
    return {"message": "All categories deleted"}


@router.get("/{category_id}")
async def get_category(
    category_id: int,
    catalog: CatalogService = Depends(get_catalog_service),
) -> dict[str, Any]:
    category = await catalog.get_category(category_id)
    return category_summary(category)


@router.get("/{category_id}/products")
async def get_category_products(
    category_id: int,
    catalog: CatalogService = Depends(get_catalog_service),
) -> list[dict[str, Any]]:
    return [product_summary(p) for p in await catalog.get_category_products(category_id)]


@router.patch("/{category_id}")
async def update_category(
    category_id: int,
    data: UpdateCategoryRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service),
) -> dict[str, Any]:
    category = await catalog.update_category(
        category_id, **data.model_dump(exclude_unset=True)
    )
    return category_summary(category)


@router.delete("/{category_id}", status_code=204)
async def delete_category(
    category_id: int,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service),
) -> Response:
    """Delete a category with no products and no sub-categories."""
    await catalog.delete_category(category_id)
    return Response(status_code=204)
