"""
Shipping API Endpoints.

Customers manage shipping for their own orders; status changes and
cross-order listings are admin-only.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel

from tfootwear.api.deps import get_current_user, get_shipping_service, require_admin
from tfootwear.api.serializers import shipping_summary
from tfootwear.models.shipping import ShippingStatus
from tfootwear.models.user import User
from tfootwear.modules.shipping import ShippingService
from tfootwear.modules.shipping.service import calculate_shipping_cost

router = APIRouter()


# ==================== Schemas ====================


class CreateShippingRequest(BaseModel):
    order_id: int
    address: str
    city: str
    postal_code: str
    phone: str
    estimated_delivery: datetime | None = None


class UpdateShippingRequest(BaseModel):
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    phone: str | None = None
    estimated_delivery: datetime | None = None


class UpdateShippingStatusRequest(BaseModel):
    status: ShippingStatus
    tracking_number: str | None = None


def _owner(user: User) -> int | None:
    return None if user.is_admin else user.id


# ==================== Admin ====================


@router.get("")
async def get_all_shipping(
    admin: User = Depends(require_admin),
    shipping: ShippingService = Depends(get_shipping_service),
) -> list[dict[str, Any]]:
    return [shipping_summary(s) for s in await shipping.get_all_shipping()]


@router.get("/rates")
async def get_shipping_rate(city: str = Query(..., min_length=1)) -> dict[str, Any]:
    """Delivery cost quote for a city."""
    return {"city": city, "cost": float(calculate_shipping_cost(city))}


@router.get("/status/{status}")
async def get_shipping_by_status(
    status: ShippingStatus,
    admin: User = Depends(require_admin),
    shipping: ShippingService = Depends(get_shipping_service),
) -> list[dict[str, Any]]:
    return [shipping_summary(s) for s in await shipping.get_shipping_by_status(status)]


@router.patch("/status/{shipping_id}")
async def update_shipping_status(
    shipping_id: int,
    data: UpdateShippingStatusRequest,
    admin: User = Depends(require_admin),
    shipping: ShippingService = Depends(get_shipping_service),
) -> dict[str, Any]:
    """Advance the shipping status by one step."""
    record = await shipping.update_shipping_status(
        shipping_id, data.status, data.tracking_number
    )
    return shipping_summary(record)


# ==================== Customer ====================


@router.post("", status_code=201)
async def create_shipping(
    data: CreateShippingRequest,
    user: User = Depends(get_current_user),
    shipping: ShippingService = Depends(get_shipping_service),
) -> dict[str, Any]:
    record = await shipping.create_shipping(
        data.order_id,
        _owner(user),
        address=data.address,
        city=data.city,
        postal_code=data.postal_code,
        phone=data.phone,
        estimated_delivery=data.estimated_delivery,
    )
    return shipping_summary(record)


@router.get("/{order_id}")
async def get_shipping_details(
    order_id: int,
    user: User = Depends(get_current_user),
    shipping: ShippingService = Depends(get_shipping_service),
) -> dict[str, Any]:
    record = await shipping.get_shipping_details(order_id, _owner(user))
    return shipping_summary(record)


@router.patch("/{order_id}")
async def update_shipping_details(
    order_id: int,
    data: UpdateShippingRequest,
    user: User = Depends(get_current_user),
    shipping: ShippingService = Depends(get_shipping_service),
) -> dict[str, Any]:
    """Change the address while the order has not shipped."""
    record = await shipping.update_shipping_details(
        order_id, _owner(user), **data.model_dump(exclude_unset=True)
    )
    return shipping_summary(record)


@router.delete("/{order_id}", status_code=204)
async def delete_shipping(
    order_id: int,
    user: User = Depends(get_current_user),
    shipping: ShippingService = Depends(get_shipping_service),
) -> Response:
    await shipping.delete_shipping(order_id, _owner(user))
    return Response(status_code=204)
