"""
Payment Service - Initiation and reconciliation of Pesapal and M-Pesa payments.

Payment and order status always change together inside one unit of
work, so an order is never ``paid`` while its payment is still
``pending``. Reconciliation entry points (webhook, callback) only act
on pending payments, so a replayed notification changes nothing.
"""

import math
from datetime import datetime
from typing import Any
from uuid import uuid4

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tfootwear.core.config import settings
from tfootwear.core.database import atomic
from tfootwear.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tfootwear.models.payment import Payment, PaymentMethod, PaymentStatus
from tfootwear.models.shop import Order, OrderStatus
from tfootwear.modules.payments.mpesa import MpesaClient, normalize_phone, parse_callback
from tfootwear.modules.payments.pesapal import (
    FAILURE_STATUSES,
    SUCCESS_STATUSES,
    PesapalClient,
)
from tfootwear.modules.shop.orders import OrderService

PAYABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.PAYMENT_FAILED)


class PaymentService:
    """
    Bridges orders to the payment providers.

    Usage:
        payments = PaymentService(db_session, orders, pesapal, mpesa)
        result = await payments.initiate_payment(order_id, user_id, billing)
        # ... later, from the provider
        await payments.handle_webhook({"order_tracking_id": "..."})
    """

    def __init__(
        self,
        db: AsyncSession,
        orders: OrderService,
        pesapal: PesapalClient,
        mpesa: MpesaClient,
    ) -> None:
        self.db = db
        self.orders = orders
        self.pesapal = pesapal
        self.mpesa = mpesa

    # ==================== Lookups ====================

    def _payment_query(self):
        return select(Payment).options(selectinload(Payment.order).selectinload(Order.user))

    async def _payment_by_transaction(self, transaction_id: str) -> Payment:
        result = await self.db.execute(
            self._payment_query()
            .where(Payment.transaction_id == transaction_id)
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError("Payment not found")
        return payment

    async def _latest_payment(self, order_id: int) -> Payment | None:
        result = await self.db.execute(
            self._payment_query()
            .where(Payment.order_id == order_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _payable_order(self, order_id: int, user_id: int) -> Order:
        order = await self.orders.get_order_by_id(order_id, user_id)
        if order.status != OrderStatus.PENDING:
            logger.warning(
                f"Payment refused for order {order_id} in status {order.status.value}"
            )
            raise InvalidStateError("Order is not in pending status")
        return order

    # ==================== Initiation ====================

    async def initiate_payment(
        self,
        order_id: int,
        user_id: int,
        billing: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """
        Start a Pesapal payment for a pending order.

        Args:
            order_id: Order to pay
            user_id: Caller, must own the order
            billing: Optional email, phone and name (defaults from the account)

        Returns:
            payment_id, order_tracking_id and the redirect_url to send the
            customer to

        Raises:
            NotFoundError: Order missing or not owned
            InvalidStateError: Order is not pending
            GatewayError: Pesapal refused or failed
        """
        order = await self._payable_order(order_id, user_id)

        billing = {
            "email": order.user.email,
            "name": order.user.name,
            **(billing or {}),
        }
        merchant_reference = f"{order.id}-{uuid4().hex[:8]}"

        submitted = await self.pesapal.submit_order(
            merchant_reference=merchant_reference,
            amount=order.total,
            description=f"Payment for order #{order.id}",
            billing=billing,
        )

        async with atomic(self.db):
            payment = Payment(
                order_id=order.id,
                amount=order.total,
                currency=settings.shop_currency,
                status=PaymentStatus.PENDING,
                payment_method=PaymentMethod.PESAPAL,
                transaction_id=submitted.order_tracking_id,
                merchant_reference=submitted.merchant_reference,
            )
            self.db.add(payment)
            await self.db.flush()

        logger.info(
            f"Pesapal payment {payment.id} initiated for order {order.id}: "
            f"{submitted.order_tracking_id}"
        )
        return {
            "payment_id": payment.id,
            "order_tracking_id": submitted.order_tracking_id,
            "merchant_reference": submitted.merchant_reference,
            "redirect_url": submitted.redirect_url,
        }

    async def initiate_mpesa_payment(
        self,
        order_id: int,
        user_id: int,
        phone: str,
    ) -> dict[str, Any]:
        """
        Start an M-Pesa STK push for a pending order.

        The amount is the order total rounded up to a whole shilling.

        Raises:
            ValidationError: Phone number is not a Kenyan mobile number
            NotFoundError: Order missing or not owned
            InvalidStateError: Order is not pending
            GatewayError: Daraja refused or failed
        """
        msisdn = normalize_phone(phone)
        order = await self._payable_order(order_id, user_id)
        amount = math.ceil(order.total)

        result = await self.mpesa.stk_push(msisdn, amount, order_id=order.id)

        async with atomic(self.db):
            payment = Payment(
                order_id=order.id,
                amount=order.total,
                currency=settings.shop_currency,
                status=PaymentStatus.PENDING,
                payment_method=PaymentMethod.MPESA,
                transaction_id=result.checkout_request_id,
                merchant_reference=result.merchant_request_id,
            )
            self.db.add(payment)
            await self.db.flush()

        logger.info(
            f"M-Pesa payment {payment.id} initiated for order {order.id}: "
            f"{result.checkout_request_id}"
        )
        return {
            "payment_id": payment.id,
            "checkout_request_id": result.checkout_request_id,
            "customer_message": result.customer_message,
        }

    # ==================== Reconciliation ====================

    async def _mark_completed(self, payment: Payment, description: str | None) -> None:
        payment.status = PaymentStatus.COMPLETED
        payment.status_description = description
        payment.paid_at = datetime.utcnow()

        order = payment.order
        if not await self._move_order(order, PAYABLE_STATUSES, OrderStatus.PAID):
            logger.warning(
                f"Payment {payment.id} completed for order {order.id} "
                f"in status {order.status.value}, order left unchanged"
            )

        await self.orders.cart.clear(order.user_id)
        await self.db.flush()

    async def _mark_failed(self, payment: Payment, description: str | None) -> None:
        payment.status = PaymentStatus.FAILED
        payment.status_description = description

        await self._move_order(payment.order, (OrderStatus.PENDING,), OrderStatus.PAYMENT_FAILED)
        await self.db.flush()

    async def _move_order(
        self,
        order: Order,
        allowed: tuple[OrderStatus, ...],
        status: OrderStatus,
    ) -> bool:
        """Set the order status only if the stored status is still one of ``allowed``."""
        result = await self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status.in_(allowed))
            .values(status=status)
        )
        await self.db.refresh(order, ["status"])
        return result.rowcount == 1

    async def _reconcile(
        self,
        transaction_id: str,
        succeeded: bool | None,
        description: str | None,
    ) -> Payment:
        """
        Apply a provider outcome to a pending payment.

        Args:
            transaction_id: Provider reference stored on the payment
            succeeded: True, False, or None while the provider is still pending
            description: Provider status text
        """
        async with atomic(self.db):
            payment = await self._payment_by_transaction(transaction_id)

            if payment.status != PaymentStatus.PENDING:
                logger.info(
                    f"Payment {payment.id} already {payment.status.value}, "
                    f"ignoring repeated notification"
                )
                return payment

            if succeeded is True:
                await self._mark_completed(payment, description)
            elif succeeded is False:
                await self._mark_failed(payment, description)

        if succeeded is None:
            logger.info(f"Payment {payment.id} still pending at provider")
        else:
            logger.info(
                f"Payment {payment.id} reconciled: {payment.status.value}, "
                f"order {payment.order_id} {payment.order.status.value}"
            )
        return payment

    async def handle_webhook(self, payload: dict[str, Any]) -> Payment:
        """
        Reconcile a Pesapal notification.

        Only the tracking id is taken from the payload. The outcome
        always comes from Pesapal's transaction status, never from the
        notification itself.

        Raises:
            ValidationError: No tracking id in the payload
            NotFoundError: No payment with that tracking id
        """
        tracking_id = payload.get("order_tracking_id") or payload.get("OrderTrackingId")
        if not tracking_id:
            raise ValidationError("Missing order tracking id")

        payment = await self._payment_by_transaction(tracking_id)
        if payment.status != PaymentStatus.PENDING:
            logger.info(f"Webhook for settled payment {payment.id} ignored")
            return payment

        if payload.get("payment_status"):
            logger.debug(f"Ignoring notified status for {tracking_id}, querying Pesapal")

        result = await self.pesapal.get_transaction_status(tracking_id)
        status = result.status
        description = result.description

        if status in SUCCESS_STATUSES:
            outcome = True
        elif status in FAILURE_STATUSES:
            outcome = False
        else:
            outcome = None

        return await self._reconcile(tracking_id, outcome, description or status)

    async def handle_mpesa_callback(self, payload: dict[str, Any]) -> Payment:
        """
        Reconcile a Daraja STK callback.

        Raises:
            ValidationError: Body is not an STK callback
            NotFoundError: No payment with that CheckoutRequestID
        """
        callback = parse_callback(payload)
        description = callback.result_desc
        if callback.receipt_number:
            description = f"{description} ({callback.receipt_number})"

        return await self._reconcile(
            callback.checkout_request_id,
            callback.is_success,
            description,
        )

    async def confirm_payment(self, payment_id: int, user_id: int) -> Payment:
        """
        Manually confirm a pending payment.

        Raises:
            NotFoundError: No such payment
            ForbiddenError: Payment's order belongs to someone else
            InvalidStateError: Payment is not pending
        """
        async with atomic(self.db):
            result = await self.db.execute(
                self._payment_query()
                .where(Payment.id == payment_id)
                .execution_options(populate_existing=True)
            )
            payment = result.scalar_one_or_none()
            if not payment:
                raise NotFoundError("Payment not found")
            if payment.order.user_id != user_id:
                raise ForbiddenError("Unauthorized to confirm this payment")
            if payment.status != PaymentStatus.PENDING:
                raise InvalidStateError("Payment is not in pending status")

            await self._mark_completed(payment, "confirmed")

        logger.info(f"Payment {payment_id} confirmed by user {user_id}")
        return payment

    # ==================== Queries & Refunds ====================

    async def get_payment_status(self, order_id: int, user_id: int | None = None) -> Payment:
        """Latest payment for an order visible to the caller."""
        await self.orders.get_order_by_id(order_id, user_id)
        payment = await self._latest_payment(order_id)
        if not payment:
            raise NotFoundError("Payment not found")
        return payment

    async def get_all_payments(self) -> list[Payment]:
        """All payments with their orders and owners, newest first."""
        result = await self.db.execute(
            self._payment_query().order_by(Payment.created_at.desc(), Payment.id.desc())
        )
        return list(result.scalars().all())

    async def process_refund(
        self,
        order_id: int,
        reason: str,
        user_id: int | None = None,
    ) -> Payment:
        """
        Mark the order's completed payment as refunded.

        The order status is left as is; returning goods is handled
        outside the payment flow.

        Raises:
            NotFoundError: No order or no payment
            InvalidStateError: Payment is not completed
        """
        async with atomic(self.db):
            payment = await self.get_payment_status(order_id, user_id)
            if payment.status != PaymentStatus.COMPLETED:
                raise InvalidStateError("Only completed payments can be refunded")

            payment.status = PaymentStatus.REFUNDED
            payment.refund_reason = reason
            await self.db.flush()

        logger.info(f"Payment {payment.id} for order {order_id} refunded: {reason}")
        return payment
