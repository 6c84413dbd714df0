"""
Payment initiation and reconciliation against mocked Pesapal and Daraja.
"""

from decimal import Decimal

import httpx
import pytest
from sqlalchemy import func, select

from tfootwear.core.exceptions import (
    ForbiddenError,
    GatewayError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tfootwear.models.payment import Payment, PaymentMethod, PaymentStatus
from tfootwear.models.shop import OrderStatus


async def payment_count(db) -> int:
    return await db.scalar(select(func.count(Payment.id)))


@pytest.fixture
async def order(orders, customer, sneaker):
    return await orders.create_order(customer.id, [{"product_id": sneaker.id, "quantity": 2}])


def stk_callback(checkout_request_id: str, result_code: int) -> dict:
    callback = {
        "MerchantRequestID": "merchant-1",
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": "The service request is processed successfully."
        if result_code == 0
        else "Request cancelled by user",
    }
    if result_code == 0:
        callback["CallbackMetadata"] = {
            "Item": [
                {"Name": "Amount", "Value": 5000},
                {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
                {"Name": "PhoneNumber", "Value": 254712345678},
            ]
        }
    return {"Body": {"stkCallback": callback}}


# ==================== Pesapal ====================


async def test_initiate_creates_pending_payment(db, payments, order, customer):
    result = await payments.initiate_payment(order.id, customer.id)

    assert result["order_tracking_id"].startswith(f"track-{order.id}-")
    assert result["redirect_url"].startswith("https://pay.pesapal.test/")

    payment = await payments.get_payment_status(order.id, customer.id)
    assert payment.id == result["payment_id"]
    assert payment.status == PaymentStatus.PENDING
    assert payment.payment_method == PaymentMethod.PESAPAL
    assert payment.amount == Decimal("5000.00")


async def test_initiate_refused_for_paid_order(db, payments, order, customer):
    result = await payments.initiate_payment(order.id, customer.id)
    await payments.handle_webhook({"order_tracking_id": result["order_tracking_id"]})

    with pytest.raises(InvalidStateError):
        await payments.initiate_payment(order.id, customer.id)

    assert await payment_count(db) == 1


async def test_initiate_for_other_users_order(payments, order, other_customer):
    with pytest.raises(NotFoundError):
        await payments.initiate_payment(order.id, other_customer.id)


async def test_rejected_submission_stores_nothing(db, payments, order, customer, fake_pesapal):
    fake_pesapal.submit_response = httpx.Response(400, json={"error": {"message": "bad"}})

    with pytest.raises(GatewayError):
        await payments.initiate_payment(order.id, customer.id)

    assert await payment_count(db) == 0


async def test_webhook_completes_payment_and_is_idempotent(
    db, payments, cart, order, customer, sneaker
):
    await cart.add_item(customer.id, sneaker.id, 1)
    result = await payments.initiate_payment(order.id, customer.id)
    tracking_id = result["order_tracking_id"]

    payment = await payments.handle_webhook(
        {"order_tracking_id": tracking_id, "payment_status": "COMPLETED"}
    )
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.paid_at is not None
    assert payment.order.status == OrderStatus.PAID
    assert (await cart.get_cart(customer.id)).items == []

    replay = await payments.handle_webhook(
        {"order_tracking_id": tracking_id, "payment_status": "FAILED"}
    )
    assert replay.status == PaymentStatus.COMPLETED
    assert replay.order.status == OrderStatus.PAID
    assert await payment_count(db) == 1


async def test_webhook_queries_pesapal_for_the_outcome(payments, order, customer, fake_pesapal):
    result = await payments.initiate_payment(order.id, customer.id)

    payment = await payments.handle_webhook({"OrderTrackingId": result["order_tracking_id"]})

    assert any(path.endswith("GetTransactionStatus") for path in fake_pesapal.calls)
    assert payment.status == PaymentStatus.COMPLETED


async def test_webhook_ignores_status_claimed_by_caller(payments, order, customer, fake_pesapal):
    fake_pesapal.status = "Pending"
    result = await payments.initiate_payment(order.id, customer.id)

    payment = await payments.handle_webhook(
        {"order_tracking_id": result["order_tracking_id"], "payment_status": "COMPLETED"}
    )

    assert payment.status == PaymentStatus.PENDING
    assert payment.order.status == OrderStatus.PENDING


async def test_webhook_failure_marks_order(payments, order, customer, fake_pesapal):
    fake_pesapal.status = "Failed"
    result = await payments.initiate_payment(order.id, customer.id)

    payment = await payments.handle_webhook({"order_tracking_id": result["order_tracking_id"]})

    assert payment.status == PaymentStatus.FAILED
    assert payment.order.status == OrderStatus.PAYMENT_FAILED


async def test_payment_completed_after_cancel_keeps_order_cancelled(
    payments, orders, order, customer
):
    order_id, customer_id = order.id, customer.id
    result = await payments.initiate_payment(order_id, customer_id)
    await orders.cancel_order(order_id, customer_id)

    payment = await payments.handle_webhook({"order_tracking_id": result["order_tracking_id"]})

    assert payment.status == PaymentStatus.COMPLETED
    assert payment.order.status == OrderStatus.CANCELLED


async def test_webhook_pending_status_changes_nothing(payments, order, customer, fake_pesapal):
    fake_pesapal.status = "Pending"
    result = await payments.initiate_payment(order.id, customer.id)

    payment = await payments.handle_webhook({"order_tracking_id": result["order_tracking_id"]})

    assert payment.status == PaymentStatus.PENDING
    assert payment.order.status == OrderStatus.PENDING


async def test_webhook_validation(payments):
    with pytest.raises(ValidationError):
        await payments.handle_webhook({})
    with pytest.raises(NotFoundError):
        await payments.handle_webhook({"order_tracking_id": "unknown"})


# ==================== Confirmation & refunds ====================


async def test_confirm_payment(payments, order, customer, other_customer):
    user_id = customer.id
    result = await payments.initiate_payment(order.id, user_id)

    with pytest.raises(ForbiddenError):
        await payments.confirm_payment(result["payment_id"], other_customer.id)

    payment = await payments.confirm_payment(result["payment_id"], user_id)
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.order.status == OrderStatus.PAID

    with pytest.raises(InvalidStateError):
        await payments.confirm_payment(result["payment_id"], user_id)


async def test_confirm_unknown_payment(payments, customer):
    with pytest.raises(NotFoundError):
        await payments.confirm_payment(999, customer.id)


async def test_refund_requires_completed_payment(payments, order, customer):
    order_id, user_id = order.id, customer.id
    result = await payments.initiate_payment(order_id, user_id)

    with pytest.raises(InvalidStateError):
        await payments.process_refund(order_id, "changed mind")

    await payments.confirm_payment(result["payment_id"], user_id)
    payment = await payments.process_refund(order_id, "wrong size")

    assert payment.status == PaymentStatus.REFUNDED
    assert payment.refund_reason == "wrong size"
    assert payment.order.status == OrderStatus.PAID


async def test_payment_status_without_payment(payments, order, customer):
    with pytest.raises(NotFoundError):
        await payments.get_payment_status(order.id, customer.id)


# ==================== M-Pesa ====================


async def test_mpesa_initiate_normalizes_phone(payments, order, customer, fake_daraja):
    result = await payments.initiate_mpesa_payment(order.id, customer.id, "0712 345 678")

    assert result["checkout_request_id"] == "ws_CO_1"
    request = fake_daraja.requests[0]
    assert request["PhoneNumber"] == "254712345678"
    assert request["PartyA"] == "254712345678"
    assert request["Amount"] == 5000
    assert request["AccountReference"] == f"Order-{order.id}"

    payment = await payments.get_payment_status(order.id)
    assert payment.payment_method == PaymentMethod.MPESA
    assert payment.transaction_id == "ws_CO_1"


async def test_mpesa_rejects_bad_phone(db, payments, order, customer, fake_daraja):
    with pytest.raises(ValidationError):
        await payments.initiate_mpesa_payment(order.id, customer.id, "12345")

    assert fake_daraja.requests == []
    assert await payment_count(db) == 0


async def test_mpesa_callback_success(payments, order, customer):
    result = await payments.initiate_mpesa_payment(order.id, customer.id, "+254712345678")

    payment = await payments.handle_mpesa_callback(stk_callback(result["checkout_request_id"], 0))

    assert payment.status == PaymentStatus.COMPLETED
    assert "NLJ7RT61SV" in payment.status_description
    assert payment.order.status == OrderStatus.PAID

    replay = await payments.handle_mpesa_callback(stk_callback(result["checkout_request_id"], 1032))
    assert replay.status == PaymentStatus.COMPLETED


async def test_mpesa_callback_failure(payments, order, customer):
    result = await payments.initiate_mpesa_payment(order.id, customer.id, "0712345678")

    payment = await payments.handle_mpesa_callback(
        stk_callback(result["checkout_request_id"], 1032)
    )

    assert payment.status == PaymentStatus.FAILED
    assert payment.order.status == OrderStatus.PAYMENT_FAILED


async def test_mpesa_callback_malformed(payments):
    with pytest.raises(ValidationError):
        await payments.handle_mpesa_callback({"Body": {}})
