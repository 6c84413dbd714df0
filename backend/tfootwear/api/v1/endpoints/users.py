"""
User API Endpoints.

Customers may read and change their own account; admins any account.
"""

from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, EmailStr

from tfootwear.api.deps import get_current_user, get_user_service, require_admin
from tfootwear.api.serializers import user_summary
from tfootwear.models.user import User, UserRole
from tfootwear.modules.accounts import UserService

router = APIRouter()


# ==================== Schemas ====================


class CreateUserRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    role: UserRole = UserRole.CUSTOMER


class ReplaceUserRequest(BaseModel):
    """Full update: every field required."""

    name: str
    email: EmailStr
    password: str


class PatchUserRequest(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    password: str | None = None
    role: UserRole | None = None


# ==================== Endpoints ====================


@router.get("")
async def get_users(
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> list[dict[str, Any]]:
    """List all users with their order counts."""
    return [
        {**user_summary(row["user"]), "order_count": row["order_count"]}
        for row in await users.get_all_users()
    ]


@router.post("", status_code=201)
async def create_user(
    data: CreateUserRequest,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> dict[str, Any]:
    """Create an account."""
    user = await users.create_user(data.name, data.email, data.password, data.role)
    return user_summary(user)


@router.delete("", status_code=204)
async def delete_all_users(
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> Response:
    """Delete every customer account."""
    await users.delete_all_users()
    return Response(status_code=204)


@router.get("/me")
async def get_me(user: User = Depends(get_current_user)) -> dict[str, Any]:
    """Current account."""
    return user_summary(user)


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    actor: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> dict[str, Any]:
    """Get an account."""
    users.authorize(actor, user_id)
    user = await users.get_user(user_id)
    return {**user_summary(user), "order_count": await users.order_count(user_id)}


@router.put("/{user_id}")
async def replace_user(
    user_id: int,
    data: ReplaceUserRequest,
    actor: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> dict[str, Any]:
    """Replace name, email and password."""
    user = await users.update_user(actor, user_id, partial=False, **data.model_dump())
    return user_summary(user)


@router.patch("/{user_id}")
async def patch_user(
    user_id: int,
    data: PatchUserRequest,
    actor: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> dict[str, Any]:
    """Update some account fields."""
    user = await users.update_user(actor, user_id, **data.model_dump(exclude_unset=True))
    return user_summary(user)


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: int,
    actor: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> Response:
    """Delete an account without orders."""
    await users.delete_user(actor, user_id)
    return Response(status_code=204)
