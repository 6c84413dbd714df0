"""
Auth API Endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field

from tfootwear.api.deps import get_auth_service, get_current_user, get_token
from tfootwear.models.user import User
from tfootwear.modules.accounts import AuthService

router = APIRouter()


# ==================== Schemas ====================


class RegisterRequest(BaseModel):
    """New customer account."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


# ==================== Endpoints ====================


@router.post("/register", status_code=201)
async def register(
    data: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
) -> dict[str, Any]:
    """Create a customer account and return an access token."""
    return await auth.register(data.name, data.email, data.password)


@router.post("/login")
async def login(
    data: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> dict[str, Any]:
    """Exchange email and password for an access token."""
    return await auth.login(data.email, data.password)


@router.post("/logout")
async def logout(
    token: str = Depends(get_token),
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> dict[str, str]:
    """Invalidate the current token."""
    await auth.logout(token)
    return {"message": "Logged out successfully"}


@router.post("/forgot-password")
async def forgot_password(
    data: ForgotPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
) -> dict[str, str]:
    """Send a password reset link."""
    await auth.request_password_reset(data.email)
    return {"message": "Password reset link sent to your email"}


@router.post("/reset-password")
async def reset_password(
    data: ResetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
) -> dict[str, str]:
    """Set a new password with a reset token."""
    await auth.reset_password(data.token, data.new_password)
    return {"message": "Password has been reset"}
