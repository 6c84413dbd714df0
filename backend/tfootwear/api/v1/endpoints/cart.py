"""
Cart API Endpoints.

Every route acts on the authenticated user's own cart.
"""

from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from tfootwear.api.deps import get_cart_service, get_current_user, get_order_service
from tfootwear.api.serializers import cart_item_summary, cart_summary
from tfootwear.models.user import User
from tfootwear.modules.shop import CartService, OrderService

router = APIRouter()


# ==================== Schemas ====================


class AddToCartRequest(BaseModel):
    """Add item to cart."""

    product_id: int
    quantity: int = Field(1, ge=1)


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(..., ge=1)


# ==================== Endpoints ====================


@router.get("")
async def get_cart(
    user: User = Depends(get_current_user),
    cart: CartService = Depends(get_cart_service),
) -> dict[str, Any]:
    """Cart with items and current total."""
    return cart_summary(await cart.get_cart(user.id))


@router.post("", status_code=201)
async def add_to_cart(
    data: AddToCartRequest,
    user: User = Depends(get_current_user),
    cart: CartService = Depends(get_cart_service),
) -> dict[str, Any]:
    """Add a product, summing with any quantity already in the cart."""
    item = await cart.add_item(user.id, data.product_id, data.quantity)
    return cart_item_summary(item)


@router.delete("", status_code=204)
async def clear_cart(
    user: User = Depends(get_current_user),
    cart: CartService = Depends(get_cart_service),
) -> Response:
    await cart.clear(user.id)
    return Response(status_code=204)


@router.patch("/items/{item_id}")
async def update_cart_item(
    item_id: int,
    data: UpdateCartItemRequest,
    user: User = Depends(get_current_user),
    cart: CartService = Depends(get_cart_service),
) -> dict[str, Any]:
    item = await cart.update_item(user.id, item_id, data.quantity)
    return cart_item_summary(item)


@router.delete("/items/{item_id}", status_code=204)
async def remove_cart_item(
    item_id: int,
    user: User = Depends(get_current_user),
    cart: CartService = Depends(get_cart_service),
) -> Response:
    await cart.remove_item(user.id, item_id)
    return Response(status_code=204)


@router.post("/checkout", status_code=201)
async def checkout(
    user: User = Depends(get_current_user),
    cart: CartService = Depends(get_cart_service),
    orders: OrderService = Depends(get_order_service),
) -> dict[str, Any]:
    """Turn the cart into a pending order."""
    return await cart.initiate_checkout(user.id, orders)
