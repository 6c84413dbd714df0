"""
Shipping Service - One delivery record per order with forward-only tracking.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tfootwear.core.database import atomic
from tfootwear.core.exceptions import (
    AlreadyExistsError,
    InvalidStateError,
    InvalidTransitionError,
    LockedError,
    NotFoundError,
    ValidationError,
)
from tfootwear.models.shipping import Shipping, ShippingStatus
from tfootwear.models.shop import Order, OrderStatus

# Each status may only move to the next one
TRANSITIONS: dict[ShippingStatus, list[ShippingStatus]] = {
    ShippingStatus.PENDING: [ShippingStatus.SHIPPED],
    ShippingStatus.SHIPPED: [ShippingStatus.OUT_FOR_DELIVERY],
    ShippingStatus.OUT_FOR_DELIVERY: [ShippingStatus.DELIVERED],
    ShippingStatus.DELIVERED: [],
}

# KES per delivery
SHIPPING_RATES: dict[str, Decimal] = {
    "nairobi": Decimal("200"),
    "mombasa": Decimal("500"),
    "kisumu": Decimal("450"),
}
DEFAULT_SHIPPING_RATE = Decimal("600")

PHONE_PATTERN = re.compile(r"^(?:\+254|0)[17]\d{8}$")
POSTAL_CODE_PATTERN = re.compile(r"^\d{5}$")

ADDRESS_FIELDS = {"address", "city", "postal_code", "phone", "estimated_delivery"}


def calculate_shipping_cost(city: str | None) -> Decimal:
    """Delivery cost for a city."""
    return SHIPPING_RATES.get((city or "").strip().lower(), DEFAULT_SHIPPING_RATE)


def clean_phone(phone: str) -> str:
    """Drop spaces and dashes from a phone number."""
    return re.sub(r"[\s-]", "", phone)


def validate_address(data: dict[str, Any]) -> None:
    """
    Check the address fields present in ``data``.

    Raises:
        ValidationError: Empty address or city, bad phone or postal code
    """
    for field in ("address", "city"):
        if field in data and not str(data[field] or "").strip():
            raise ValidationError(f"{field.replace('_', ' ').capitalize()} is required")

    phone = data.get("phone")
    if phone is not None and not PHONE_PATTERN.match(clean_phone(phone)):
        raise ValidationError("Invalid phone number, expected +2547XXXXXXXX or 07XXXXXXXX")

    postal_code = data.get("postal_code")
    if postal_code is not None and not POSTAL_CODE_PATTERN.match(postal_code.strip()):
        raise ValidationError("Postal code must be 5 digits")


class ShippingService:
    """
    Shipping records and their status machine.

    ``user_id`` arguments restrict access to the owner's orders; admin
    callers pass None.

    Usage:
        shipping = ShippingService(db_session)
        record = await shipping.create_shipping(order_id, user_id, address=..., ...)
        await shipping.update_shipping_status(record.id, ShippingStatus.SHIPPED)
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def _shipping_query(self):
        return select(Shipping).options(selectinload(Shipping.order))

    async def _get_for_order(self, order_id: int, user_id: int | None) -> Shipping:
        query = (
            self._shipping_query()
            .join(Shipping.order)
            .where(Shipping.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        if user_id is not None:
            query = query.where(Order.user_id == user_id)

        result = await self.db.execute(query)
        shipping = result.scalar_one_or_none()
        if not shipping:
            raise NotFoundError("Shipping details not found")
        return shipping

    async def create_shipping(
        self,
        order_id: int,
        user_id: int | None,
        address: str,
        city: str,
        postal_code: str,
        phone: str,
        estimated_delivery: datetime | None = None,
    ) -> Shipping:
        """
        Create the shipping record for an order.

        Raises:
            ValidationError: Bad address fields
            NotFoundError: Order missing or not owned
            InvalidStateError: Order is cancelled
            AlreadyExistsError: Order already has shipping details
        """
        validate_address(
            {"address": address, "city": city, "postal_code": postal_code, "phone": phone}
        )

        async with atomic(self.db):
            query = select(Order).where(Order.id == order_id)
            if user_id is not None:
                query = query.where(Order.user_id == user_id)
            order = (await self.db.execute(query)).scalar_one_or_none()
            if not order:
                raise NotFoundError("Order not found")

            if order.status == OrderStatus.CANCELLED:
                raise InvalidStateError("Cannot ship a cancelled order")

            existing = await self.db.scalar(
                select(Shipping.id).where(Shipping.order_id == order_id)
            )
            if existing:
                raise AlreadyExistsError("Shipping details already exist for this order")

            shipping = Shipping(
                order_id=order_id,
                address=address.strip(),
                city=city.strip(),
                postal_code=postal_code.strip(),
                phone=clean_phone(phone),
                cost=calculate_shipping_cost(city),
                status=ShippingStatus.PENDING,
                estimated_delivery=estimated_delivery,
            )
            self.db.add(shipping)
            await self.db.flush()

        logger.info(f"Shipping {shipping.id} created for order {order_id} to {shipping.city}")
        return shipping

    async def get_shipping_details(self, order_id: int, user_id: int | None = None) -> Shipping:
        """Get shipping for an order visible to the caller."""
        return await self._get_for_order(order_id, user_id)

    async def update_shipping_details(
        self,
        order_id: int,
        user_id: int | None,
        **data: Any,
    ) -> Shipping:
        """
        Change the delivery address while the parcel has not left.

        Raises:
            NotFoundError: No shipping for the order
            LockedError: Status is past pending
        """
        changes = {k: v for k, v in data.items() if k in ADDRESS_FIELDS and v is not None}
        validate_address(changes)

        async with atomic(self.db):
            shipping = await self._get_for_order(order_id, user_id)
            if shipping.status != ShippingStatus.PENDING:
                raise LockedError("Cannot update shipping details after order has been shipped")

            for field, value in changes.items():
                if field == "phone":
                    value = clean_phone(value)
                elif isinstance(value, str):
                    value = value.strip()
                setattr(shipping, field, value)
            if "city" in changes:
                shipping.cost = calculate_shipping_cost(shipping.city)
            await self.db.flush()

        return shipping

    async def update_shipping_status(
        self,
        shipping_id: int,
        status: ShippingStatus,
        tracking_number: str | None = None,
    ) -> Shipping:
        """
        Advance the shipping status by exactly one step.

        Raises:
            NotFoundError: No such shipping record
            InvalidTransitionError: Target is not the next status
        """
        async with atomic(self.db):
            result = await self.db.execute(
                self._shipping_query()
                .where(Shipping.id == shipping_id)
                .execution_options(populate_existing=True)
            )
            shipping = result.scalar_one_or_none()
            if not shipping:
                raise NotFoundError("Shipping details not found")

            if status not in TRANSITIONS[shipping.status]:
                logger.warning(
                    f"Shipping {shipping_id}: refused {shipping.status.value} -> {status.value}"
                )
                raise InvalidTransitionError(
                    f"Invalid status transition from {shipping.status.value} to {status.value}"
                )

            previous = shipping.status
            shipping.status = status
            if tracking_number:
                shipping.tracking_number = tracking_number
            await self.db.flush()

        logger.info(f"Shipping {shipping_id}: {previous.value} -> {status.value}")
        return shipping

    async def delete_shipping(self, order_id: int, user_id: int | None = None) -> None:
        """
        Remove shipping details that have not been acted on.

        Raises:
            NotFoundError: No shipping for the order
            LockedError: Status is past pending
        """
        async with atomic(self.db):
            shipping = await self._get_for_order(order_id, user_id)
            if shipping.status != ShippingStatus.PENDING:
                raise LockedError("Cannot delete shipping details after order has been shipped")
            await self.db.delete(shipping)

        logger.info(f"Shipping for order {order_id} deleted")

    async def get_shipping_by_status(self, status: ShippingStatus) -> list[Shipping]:
        result = await self.db.execute(
            self._shipping_query()
            .where(Shipping.status == status)
            .order_by(Shipping.created_at.desc(), Shipping.id.desc())
        )
        return list(result.scalars().all())

    async def get_all_shipping(self) -> list[Shipping]:
        result = await self.db.execute(
            self._shipping_query().order_by(Shipping.created_at.desc(), Shipping.id.desc())
        )
        return list(result.scalars().all())
