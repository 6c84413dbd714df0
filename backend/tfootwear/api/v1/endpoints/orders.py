"""
Order API Endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from tfootwear.api.deps import get_current_user, get_order_service, require_admin
from tfootwear.api.serializers import order_summary, user_summary
from tfootwear.models.shop import OrderStatus
from tfootwear.models.user import User
from tfootwear.modules.shop import OrderService

router = APIRouter()


# ==================== Schemas ====================


class OrderItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(..., ge=1)


class CreateOrderRequest(BaseModel):
    """Create order directly from a list of items."""

    items: list[OrderItemRequest] = Field(..., min_length=1)


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus


# ==================== Endpoints ====================


@router.post("", status_code=201)
async def create_order(
    data: CreateOrderRequest,
    user: User = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
) -> dict[str, Any]:
    order = await orders.create_order(user.id, [i.model_dump() for i in data.items])
    return order_summary(order)


@router.delete("", status_code=204)
async def delete_all_orders(
    admin: User = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
) -> Response:
    await orders.delete_all_orders()
    return Response(status_code=204)


@router.get("/all")
async def get_all_orders(
    admin: User = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
) -> list[dict[str, Any]]:
    """Every order, newest first."""
    return [
        {**order_summary(o), "user": user_summary(o.user)}
        for o in await orders.get_all_orders()
    ]


@router.get("/my-orders")
async def get_my_orders(
    user: User = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
) -> list[dict[str, Any]]:
    return [order_summary(o) for o in await orders.get_user_orders(user.id)]


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    user: User = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
) -> dict[str, Any]:
    """Get an order; customers only see their own."""
    order = await orders.get_order_by_id(order_id, None if user.is_admin else user.id)
    return order_summary(order)


@router.patch("/{order_id}/status")
async def update_order_status(
    order_id: int,
    data: UpdateOrderStatusRequest,
    admin: User = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
) -> dict[str, Any]:
    order = await orders.update_order_status(order_id, data.status)
    return order_summary(order)


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    user: User = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
) -> dict[str, Any]:
    """Cancel a pending order and return its stock."""
    order = await orders.cancel_order(order_id, user.id)
    return order_summary(order)


@router.delete("/{order_id}", status_code=204)
async def delete_order(
    order_id: int,
    admin: User = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
) -> Response:
    await orders.delete_order(order_id)
    return Response(status_code=204)
