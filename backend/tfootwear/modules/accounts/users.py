"""
User Service - Account CRUD with self-or-admin access.
"""

from typing import Any

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tfootwear.core.database import atomic
from tfootwear.core.exceptions import (
    AlreadyExistsError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tfootwear.core.security import get_password_hash
from tfootwear.models.shop import Cart, Order
from tfootwear.models.user import User, UserRole
from tfootwear.modules.accounts.auth import validate_password

USER_FIELDS = {"name", "email", "password", "role"}


class UserService:
    """
    Manage user accounts.

    Methods taking an ``actor`` enforce that customers only touch
    their own account and never change roles.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ==================== Access ====================

    def authorize(self, actor: User, user_id: int) -> None:
        if not actor.is_admin and actor.id != user_id:
            raise ForbiddenError("Not allowed to access this account")

    # ==================== Queries ====================

    async def get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def get_all_users(self) -> list[dict[str, Any]]:
        """All users with their order counts."""
        counts = (
            select(Order.user_id, func.count(Order.id).label("orders"))
            .group_by(Order.user_id)
            .subquery()
        )
        result = await self.db.execute(
            select(User, func.coalesce(counts.c.orders, 0))
            .outerjoin(counts, counts.c.user_id == User.id)
            .order_by(User.id)
        )
        return [{"user": user, "order_count": count} for user, count in result.all()]

    async def order_count(self, user_id: int) -> int:
        return await self.db.scalar(
            select(func.count(Order.id)).where(Order.user_id == user_id)
        ) or 0

    # ==================== Mutations ====================

    async def _email_taken(self, email: str, exclude_id: int | None = None) -> bool:
        query = select(User.id).where(func.lower(User.email) == email.strip().lower())
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        return await self.db.scalar(query) is not None

    async def create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: UserRole = UserRole.CUSTOMER,
    ) -> User:
        validate_password(password)

        async with atomic(self.db):
            if await self._email_taken(email):
                raise AlreadyExistsError("Email already registered")

            user = User(
                name=name.strip(),
                email=email.strip().lower(),
                hashed_password=get_password_hash(password),
                role=role,
            )
            self.db.add(user)
            await self.db.flush()

        logger.info(f"User created: {user.email} ({user.id})")
        return user

    async def update_user(
        self,
        actor: User,
        user_id: int,
        partial: bool = True,
        **data: Any,
    ) -> User:
        """
        Update an account.

        Args:
            actor: Caller
            user_id: Account to change
            partial: False requires name, email and password (full update)
            **data: name, email, password, role

        Raises:
            ForbiddenError: Customer changing another account or a role
            ValidationError: Missing fields on a full update, short password
            AlreadyExistsError: Email used by another account
        """
        self.authorize(actor, user_id)
        changes = {k: v for k, v in data.items() if k in USER_FIELDS and v is not None}

        if not partial and not {"name", "email", "password"} <= changes.keys():
            raise ValidationError("Name, email and password are required")
        if "role" in changes and not actor.is_admin:
            raise ForbiddenError("Only admins can change roles")

        async with atomic(self.db):
            user = await self.get_user(user_id)

            if "email" in changes:
                if await self._email_taken(changes["email"], exclude_id=user_id):
                    raise AlreadyExistsError("Email already registered")
                user.email = changes["email"].strip().lower()
            if "name" in changes:
                user.name = changes["name"].strip()
            if "password" in changes:
                validate_password(changes["password"])
                user.hashed_password = get_password_hash(changes["password"])
            if "role" in changes:
                user.role = UserRole(changes["role"])

            await self.db.flush()

        return user

    async def delete_user(self, actor: User, user_id: int) -> None:
        """
        Delete an account that has no orders.

        Raises:
            ForbiddenError: Customer deleting another account
            NotFoundError: No such user
            InvalidStateError: User has orders
        """
        self.authorize(actor, user_id)

        async with atomic(self.db):
            result = await self.db.execute(
                select(User)
                .options(
                    selectinload(User.cart).selectinload(Cart.items),
                    selectinload(User.orders),
                )
                .where(User.id == user_id)
            )
            user = result.scalar_one_or_none()
            if not user:
                raise NotFoundError("User not found")
            if await self.order_count(user_id):
                raise InvalidStateError("Cannot delete user with existing orders")

            await self.db.delete(user)

        logger.info(f"User {user_id} deleted by {actor.id}")

    async def delete_all_users(self) -> int:
        """
        Delete every customer account.

        Admin accounts are kept. Refused while any customer has orders.
        """
        async with atomic(self.db):
            with_orders = await self.db.scalar(
                select(func.count(Order.id))
                .join(Order.user)
                .where(User.role == UserRole.CUSTOMER)
            )
            if with_orders:
                raise InvalidStateError("Cannot delete users with existing orders")

            result = await self.db.execute(
                select(User)
                .options(
                    selectinload(User.cart).selectinload(Cart.items),
                    selectinload(User.orders),
                )
                .where(User.role == UserRole.CUSTOMER)
            )
            users = list(result.scalars().all())
            for user in users:
                await self.db.delete(user)

        logger.info(f"Deleted {len(users)} customer accounts")
        return len(users)
