"""
Payment API Endpoints.

Handles customer-initiated payments and provider notifications:
- Pesapal (redirect checkout + IPN webhook)
- M-Pesa (STK push + Daraja callback)
"""

from typing import Any

from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel, EmailStr, Field

from tfootwear.api.deps import get_current_user, get_payment_service, require_admin
from tfootwear.api.serializers import payment_summary
from tfootwear.core.exceptions import ValidationError
from tfootwear.models.user import User
from tfootwear.modules.payments import PaymentService

router = APIRouter()


# ==================== Schemas ====================


class BillingDetails(BaseModel):
    email: EmailStr | None = None
    phone: str | None = None
    name: str | None = None


class InitiatePaymentRequest(BaseModel):
    """Start a Pesapal checkout."""

    order_id: int
    billing: BillingDetails | None = None


class MpesaPaymentRequest(BaseModel):
    """Start an M-Pesa STK push."""

    order_id: int
    phone: str


class RefundRequest(BaseModel):
    reason: str = Field(..., min_length=1)


# ==================== Customer ====================


@router.post("/initiate", status_code=201)
async def initiate_payment(
    data: InitiatePaymentRequest,
    user: User = Depends(get_current_user),
    payments: PaymentService = Depends(get_payment_service),
) -> dict[str, Any]:
    """Returns the Pesapal redirect URL for the customer."""
    billing = data.billing.model_dump(exclude_none=True) if data.billing else None
    return await payments.initiate_payment(data.order_id, user.id, billing)


@router.post("/confirm/{payment_id}")
async def confirm_payment(
    payment_id: int,
    user: User = Depends(get_current_user),
    payments: PaymentService = Depends(get_payment_service),
) -> dict[str, Any]:
    payment = await payments.confirm_payment(payment_id, user.id)
    return payment_summary(payment)


@router.get("/status/{order_id}")
async def get_payment_status(
    order_id: int,
    user: User = Depends(get_current_user),
    payments: PaymentService = Depends(get_payment_service),
) -> dict[str, Any]:
    """Latest payment for the order."""
    payment = await payments.get_payment_status(order_id, None if user.is_admin else user.id)
    return payment_summary(payment)


@router.post("/mpesa/initiate", status_code=201)
async def initiate_mpesa_payment(
    data: MpesaPaymentRequest,
    user: User = Depends(get_current_user),
    payments: PaymentService = Depends(get_payment_service),
) -> dict[str, Any]:
    """Prompt the customer's phone for payment."""
    return await payments.initiate_mpesa_payment(data.order_id, user.id, data.phone)


# ==================== Provider notifications ====================


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationError("Invalid JSON body") from e
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON body")
    return body


@router.api_route("/webhook", methods=["GET", "POST"])
async def pesapal_webhook(
    request: Request,
    payments: PaymentService = Depends(get_payment_service),
) -> dict[str, Any]:
    """
    Pesapal IPN endpoint.

    Pesapal notifies with the tracking id either as query parameters
    (GET) or a JSON body (POST).
    """
    if request.method == "GET":
        payload: dict[str, Any] = dict(request.query_params)
    else:
        payload = await _json_body(request)

    logger.info(f"Received Pesapal notification: {payload}")
    payment = await payments.handle_webhook(payload)

    return {
        "orderNotificationType": payload.get("OrderNotificationType", "IPNCHANGE"),
        "orderTrackingId": payment.transaction_id,
        "orderMerchantReference": payment.merchant_reference,
        "status": 200,
        "payment_status": payment.status.value,
    }


@router.post("/mpesa/callback")
async def mpesa_callback(
    request: Request,
    payments: PaymentService = Depends(get_payment_service),
) -> dict[str, Any]:
    """Daraja STK push result."""
    payload = await _json_body(request)
    logger.info("Received M-Pesa callback")

    payment = await payments.handle_mpesa_callback(payload)
    return {"ResultCode": 0, "ResultDesc": "Accepted", "payment_status": payment.status.value}


# ==================== Admin ====================


@router.get("/all")
async def get_all_payments(
    admin: User = Depends(require_admin),
    payments: PaymentService = Depends(get_payment_service),
) -> list[dict[str, Any]]:
    return [payment_summary(p, with_order=True) for p in await payments.get_all_payments()]


@router.post("/refund/{order_id}")
async def refund_payment(
    order_id: int,
    data: RefundRequest,
    admin: User = Depends(require_admin),
    payments: PaymentService = Depends(get_payment_service),
) -> dict[str, Any]:
    """Mark the order's completed payment as refunded."""
    payment = await payments.process_refund(order_id, data.reason)
    return payment_summary(payment)
