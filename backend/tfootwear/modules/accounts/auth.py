"""
Auth Service - Registration, login, logout and password reset.
"""

from datetime import datetime, timedelta
from typing import Any

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tfootwear.core.config import settings
from tfootwear.core.database import atomic
from tfootwear.core.exceptions import (
    AlreadyExistsError,
    AuthenticationError,
    NotFoundError,
    ValidationError,
)
from tfootwear.core.security import (
    TokenDenylist,
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)
from tfootwear.models.user import User, UserRole

MIN_PASSWORD_LENGTH = 8
RESET_PURPOSE = "password_reset"


def validate_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def user_payload(user: User) -> dict[str, Any]:
    """Public view of an account."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


class AuthService:
    """
    Account authentication.

    Usage:
        auth = AuthService(db_session, TokenDenylist(redis_client))
        result = await auth.login("ann@example.com", "secret-password")
    """

    def __init__(self, db: AsyncSession, denylist: TokenDenylist) -> None:
        self.db = db
        self.denylist = denylist

    async def get_user_by_email(self, email: str) -> User | None:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def register(self, name: str, email: str, password: str) -> dict[str, Any]:
        """
        Create a customer account.

        Returns:
            user and access token

        Raises:
            ValidationError: Password too short
            AlreadyExistsError: Email already registered
        """
        validate_password(password)

        async with atomic(self.db):
            if await self.get_user_by_email(email):
                raise AlreadyExistsError("Email already registered")

            user = User(
                name=name.strip(),
                email=email.strip().lower(),
                hashed_password=get_password_hash(password),
                role=UserRole.CUSTOMER,
            )
            self.db.add(user)
            await self.db.flush()

        logger.info(f"User registered: {user.email} ({user.id})")
        return {"user": user_payload(user), "token": create_access_token(user.id)}

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """
        Exchange credentials for an access token.

        Raises:
            AuthenticationError: Unknown email or wrong password
        """
        user = await self.get_user_by_email(email)
        if not user or not verify_password(password, user.hashed_password):
            logger.warning(f"Failed login for {email}")
            raise AuthenticationError("Invalid credentials")

        logger.info(f"User logged in: {user.id}")
        return {"user": user_payload(user), "token": create_access_token(user.id)}

    async def logout(self, token: str) -> None:
        """Invalidate a token for the rest of its lifetime."""
        if not await self.denylist.add(token):
            logger.debug("Logout with an already expired token")

    async def request_password_reset(self, email: str) -> str:
        """
        Issue a short-lived reset token and hand the link to the mailer.

        Returns:
            The reset token

        Raises:
            NotFoundError: No account with that email
        """
        async with atomic(self.db):
            user = await self.get_user_by_email(email)
            if not user:
                raise NotFoundError("User not found")

            token = create_access_token(
                user.id,
                expires_minutes=settings.password_reset_expire_minutes,
                purpose=RESET_PURPOSE,
            )
            user.reset_token = token
            user.reset_token_expiry = datetime.utcnow() + timedelta(
                minutes=settings.password_reset_expire_minutes
            )

        reset_link = f"{settings.frontend_url}/reset-password?token={token}"
        logger.info(f"Password reset requested for user {user.id}: {reset_link}")
        return token

    async def reset_password(self, token: str, new_password: str) -> None:
        """
        Set a new password using a reset token.

        Raises:
            ValidationError: Token invalid, already used or expired, or
                password too short
        """
        validate_password(new_password)

        claims = decode_access_token(token)
        if not claims or claims.get("purpose") != RESET_PURPOSE:
            raise ValidationError("Invalid or expired reset token")

        async with atomic(self.db):
            user = await self.db.get(User, int(claims["sub"]))
            if (
                not user
                or user.reset_token != token
                or not user.reset_token_expiry
                or user.reset_token_expiry < datetime.utcnow()
            ):
                raise ValidationError("Invalid or expired reset token")

            user.hashed_password = get_password_hash(new_password)
            user.reset_token = None
            user.reset_token_expiry = None

        logger.info(f"Password reset for user {user.id}")
