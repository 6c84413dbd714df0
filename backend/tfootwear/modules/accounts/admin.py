"""
Admin Service - Role management, order oversight and dashboard stats.
"""

from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tfootwear.core.database import atomic
from tfootwear.core.exceptions import InvalidStateError, NotFoundError
from tfootwear.core.pagination import get_pagination, pagination_meta
from tfootwear.core.security import get_password_hash
from tfootwear.models.payment import Payment, PaymentStatus
from tfootwear.models.shop import Order, OrderStatus
from tfootwear.models.user import User, UserRole
from tfootwear.modules.accounts.auth import validate_password
from tfootwear.modules.accounts.users import UserService
from tfootwear.modules.shop.orders import OrderService


class AdminService:
    """
    Administrative operations across accounts and orders.

    Usage:
        admin = AdminService(db_session, users, orders)
        stats = await admin.get_dashboard_stats()
    """

    def __init__(self, db: AsyncSession, users: UserService, orders: OrderService) -> None:
        self.db = db
        self.users = users
        self.orders = orders

    # ==================== Users ====================

    async def get_users(self, page: int = 1, limit: int = 10) -> dict[str, Any]:
        offset, limit = get_pagination(page, limit)
        total = await self.db.scalar(select(func.count(User.id))) or 0
        result = await self.db.execute(
            select(User).order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit)
        )
        return {"users": list(result.scalars().all()), **pagination_meta(total, page, limit)}

    async def get_admin_users(self) -> list[User]:
        result = await self.db.execute(
            select(User).where(User.role == UserRole.ADMIN).order_by(User.id)
        )
        return list(result.scalars().all())

    async def update_user_role(self, user_id: int, role: UserRole) -> User:
        async with atomic(self.db):
            user = await self.users.get_user(user_id)
            previous = user.role
            user.role = role

        logger.info(f"User {user_id} role: {previous.value} -> {role.value}")
        return user

    async def delete_user(self, actor: User, user_id: int) -> None:
        """
        Delete a customer account.

        Raises:
            NotFoundError: No such user
            InvalidStateError: Target is an admin or has orders
        """
        user = await self.users.get_user(user_id)
        if user.is_admin:
            raise InvalidStateError("Cannot delete admin user")
        await self.users.delete_user(actor, user_id)

    # ==================== Orders ====================

    async def get_orders(
        self,
        status: OrderStatus | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        offset, limit = get_pagination(page, limit)
        orders = await self.orders.get_all_orders(status=status, limit=limit, offset=offset)
        total = await self.orders.count_orders(status)
        return {"orders": orders, **pagination_meta(total, page, limit)}

    async def update_order_status(self, order_id: int, status: OrderStatus) -> Order:
        return await self.orders.update_order_status(order_id, status)

    # ==================== Dashboard ====================

    async def get_dashboard_stats(self) -> dict[str, Any]:
        """
        Summary figures for the admin dashboard.

        Returns:
            total_users, total_orders, total_revenue from completed
            payments, and the five most recent orders
        """
        total_users = await self.db.scalar(select(func.count(User.id))) or 0
        total_orders = await self.orders.count_orders()
        revenue = await self.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(
                Payment.status == PaymentStatus.COMPLETED
            )
        )

        return {
            "total_users": total_users,
            "total_orders": total_orders,
            "total_revenue": Decimal(str(revenue or 0)),
            "recent_orders": await self.orders.get_all_orders(limit=5),
        }


async def ensure_admin(db: AsyncSession, name: str, email: str, password: str) -> User:
    """
    Create an admin account, or promote the existing account with that email.

    Used by the ``create_admin`` script to bootstrap the first admin.
    """
    validate_password(password)

    async with atomic(db):
        result = await db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        user = result.scalar_one_or_none()

        if user:
            if user.role != UserRole.ADMIN:
                user.role = UserRole.ADMIN
                logger.info(f"User {user.email} promoted to admin")
        else:
            user = User(
                name=name,
                email=email.strip().lower(),
                hashed_password=get_password_hash(password),
                role=UserRole.ADMIN,
            )
            db.add(user)
            await db.flush()
            logger.info(f"Admin user created: {user.email}")

    return user
