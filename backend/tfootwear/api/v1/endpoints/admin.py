"""
Admin API Endpoints.

All routes require the admin role.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from tfootwear.api.deps import get_admin_service, require_admin
from tfootwear.api.serializers import order_summary, user_summary
from tfootwear.models.shop import OrderStatus
from tfootwear.models.user import User, UserRole
from tfootwear.modules.accounts import AdminService

router = APIRouter()


# ==================== Schemas ====================


class UpdateRoleRequest(BaseModel):
    role: UserRole


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus


# ==================== Users ====================


@router.get("/users")
async def get_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> dict[str, Any]:
    """Paginated user list."""
    result = await service.get_users(page, limit)
    return {**result, "users": [user_summary(u) for u in result["users"]]}


@router.get("/admins")
async def get_admins(
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> list[dict[str, Any]]:
    return [user_summary(u) for u in await service.get_admin_users()]


@router.patch("/users/{user_id}/role")
async def update_user_role(
    user_id: int,
    data: UpdateRoleRequest,
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> dict[str, Any]:
    """Grant or revoke the admin role."""
    user = await service.update_user_role(user_id, data.role)
    return user_summary(user)


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: int,
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> dict[str, str]:
    """Delete a customer without orders."""
    await service.delete_user(admin, user_id)
    return {"message": f"User {user_id} deleted"}


# ==================== Orders ====================


@router.get("/orders")
async def get_orders(
    status: OrderStatus | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> dict[str, Any]:
    """Paginated order list, optionally filtered by status."""
    result = await service.get_orders(status, page, limit)
    return {
        **result,
        "orders": [
            {**order_summary(o), "user": user_summary(o.user)} for o in result["orders"]
        ],
    }


@router.patch("/orders/{order_id}/status")
async def update_order_status(
    order_id: int,
    data: UpdateOrderStatusRequest,
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> dict[str, Any]:
    order = await service.update_order_status(order_id, data.status)
    return order_summary(order)


# ==================== Dashboard ====================


@router.get("/dashboard")
async def get_dashboard(
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> dict[str, Any]:
    """Users, orders, revenue and recent activity."""
    stats = await service.get_dashboard_stats()
    return {
        "total_users": stats["total_users"],
        "total_orders": stats["total_orders"],
        "total_revenue": float(stats["total_revenue"]),
        "recent_orders": [
            {**order_summary(o), "user": user_summary(o.user)} for o in stats["recent_orders"]
        ],
    }
