"""
M-Pesa Daraja client (Lipa na M-Pesa Online / STK push).

Daraja Documentation:
https://developer.safaricom.co.ke/APIs/MpesaExpressSimulate
"""

import base64
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx
from loguru import logger

from tfootwear.core.config import settings
from tfootwear.core.exceptions import GatewayError, ValidationError
from tfootwear.modules.payments.gateway import GatewayClient

PHONE_PATTERN = re.compile(r"^(?:\+?254|0)([17]\d{8})$")


@dataclass
class STKPushResult:
    """Acknowledgement of an STK push request."""

    merchant_request_id: str
    checkout_request_id: str
    response_code: str
    response_description: str
    customer_message: str


@dataclass
class STKCallback:
    """Parsed STK push callback."""

    merchant_request_id: str | None
    checkout_request_id: str
    result_code: int
    result_desc: str
    metadata: dict[str, Any]

    @property
    def is_success(self) -> bool:
        return self.result_code == 0

    @property
    def receipt_number(self) -> str | None:
        return self.metadata.get("MpesaReceiptNumber")


def normalize_phone(phone: str) -> str:
    """
    Convert a Kenyan mobile number to the 2547XXXXXXXX form Daraja expects.

    Raises:
        ValidationError: If the number is not a Kenyan mobile number
    """
    cleaned = re.sub(r"[\s-]", "", phone or "")
    match = PHONE_PATTERN.match(cleaned)
    if not match:
        raise ValidationError("Invalid phone number, expected 07XXXXXXXX or +2547XXXXXXXX")
    return f"254{match.group(1)}"


def parse_callback(payload: dict[str, Any]) -> STKCallback:
    """
    Extract the result from a Daraja callback body.

    Raises:
        ValidationError: If the body is not an STK callback
    """
    try:
        callback = payload["Body"]["stkCallback"]
        checkout_request_id = callback["CheckoutRequestID"]
        result_code = int(callback["ResultCode"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError("Malformed M-Pesa callback") from e

    items = (callback.get("CallbackMetadata") or {}).get("Item") or []
    metadata = {item.get("Name"): item.get("Value") for item in items if item.get("Name")}

    return STKCallback(
        merchant_request_id=callback.get("MerchantRequestID"),
        checkout_request_id=checkout_request_id,
        result_code=result_code,
        result_desc=callback.get("ResultDesc", ""),
        metadata=metadata,
    )


class MpesaClient(GatewayClient):
    """
    Async client for the Safaricom Daraja API.

    Usage:
        mpesa = MpesaClient()
        result = await mpesa.stk_push("254712345678", 1500, order_id=42)
    """

    name = "mpesa"

    def __init__(
        self,
        consumer_key: str | None = None,
        consumer_secret: str | None = None,
        passkey: str | None = None,
        shortcode: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            base_url or settings.mpesa_api_url,
            transport=transport,
            **kwargs,
        )
        self.consumer_key = consumer_key or settings.mpesa_consumer_key
        self.consumer_secret = consumer_secret or settings.mpesa_consumer_secret
        self.passkey = passkey or settings.mpesa_passkey
        self.shortcode = shortcode or settings.mpesa_shortcode

        if not self.consumer_key or not self.shortcode:
            logger.warning("M-Pesa credentials not configured")

    async def get_access_token(self) -> str:
        """Get an OAuth access token, reusing the cached one while valid."""
        if cached := self._cached_token():
            return cached

        data = await self._request(
            "GET",
            "/oauth/v1/generate",
            retry=True,
            params={"grant_type": "client_credentials"},
            auth=(self.consumer_key, self.consumer_secret),
        )

        token = data.get("access_token")
        if not token:
            raise GatewayError("Could not authenticate with mpesa")

        self._store_token(token, float(data.get("expires_in", 3599)))
        return token

    @staticmethod
    def timestamp(now: datetime | None = None) -> str:
        """Timestamp in the YYYYMMDDHHMMSS format Daraja requires."""
        return (now or datetime.now()).strftime("%Y%m%d%H%M%S")

    def password(self, timestamp: str) -> str:
        """STK password: base64(shortcode + passkey + timestamp)."""
        raw = f"{self.shortcode}{self.passkey}{timestamp}"
        return base64.b64encode(raw.encode()).decode()

    async def stk_push(
        self,
        phone: str,
        amount: int,
        order_id: int,
        callback_url: str | None = None,
    ) -> STKPushResult:
        """
        Prompt the customer's phone for payment. Never retried.

        Args:
            phone: Normalised 2547XXXXXXXX number
            amount: Whole shillings
            order_id: Order being paid
            callback_url: Result URL (default from settings)
        """
        token = await self.get_access_token()
        timestamp = self.timestamp()

        data = await self._request(
            "POST",
            "/mpesa/stkpush/v1/processrequest",
            json={
                "BusinessShortCode": self.shortcode,
                "Password": self.password(timestamp),
                "Timestamp": timestamp,
                "TransactionType": "CustomerPayBillOnline",
                "Amount": amount,
                "PartyA": phone,
                "PartyB": self.shortcode,
                "PhoneNumber": phone,
                "CallBackURL": callback_url or settings.mpesa_callback_url,
                "AccountReference": f"Order-{order_id}",
                "TransactionDesc": f"Payment for order {order_id}",
            },
            headers={"Authorization": f"Bearer {token}"},
        )

        if str(data.get("ResponseCode")) != "0" or not data.get("CheckoutRequestID"):
            logger.error(f"STK push rejected: {data}")
            raise GatewayError("mpesa rejected the payment request")

        return STKPushResult(
            merchant_request_id=data.get("MerchantRequestID", ""),
            checkout_request_id=data["CheckoutRequestID"],
            response_code=str(data.get("ResponseCode")),
            response_description=data.get("ResponseDescription", ""),
            customer_message=data.get("CustomerMessage", ""),
        )
