"""
Pesapal API v3 client.

Pesapal Documentation:
https://developer.pesapal.com/how-to-integrate/e-commerce/api-30-json/api-reference

Flow:
1. Request a bearer token with the consumer key/secret
2. Submit an order request, receive a tracking id and redirect URL
3. Pesapal notifies the IPN URL; the status is confirmed with
   GetTransactionStatus
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx
from loguru import logger

from tfootwear.core.config import settings
from tfootwear.core.exceptions import GatewayError
from tfootwear.modules.payments.gateway import GatewayClient

# Pesapal tokens are valid for five minutes
TOKEN_LIFETIME_SECONDS = 5 * 60

SUCCESS_STATUSES = {"completed"}
FAILURE_STATUSES = {"failed", "invalid", "reversed"}


@dataclass
class PesapalOrder:
    """Result of submitting an order request."""

    order_tracking_id: str
    redirect_url: str
    merchant_reference: str


@dataclass
class PesapalTransactionStatus:
    """Normalised result of a status query."""

    order_tracking_id: str
    status: str
    description: str | None
    payment_method: str | None
    amount: Decimal | None

    @property
    def is_success(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def is_failure(self) -> bool:
        return self.status in FAILURE_STATUSES


class PesapalClient(GatewayClient):
    """
    Async client for Pesapal.

    Usage:
        pesapal = PesapalClient()
        order = await pesapal.submit_order(
            merchant_reference="42-ab12cd34",
            amount=Decimal("1500.00"),
            description="Payment for order #42",
            billing={"email": "a@b.co", "phone": "0712345678", "name": "Ann"},
        )
    """

    name = "pesapal"

    def __init__(
        self,
        consumer_key: str | None = None,
        consumer_secret: str | None = None,
        base_url: str | None = None,
        ipn_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            base_url or settings.pesapal_api_url,
            transport=transport,
            **kwargs,
        )
        self.consumer_key = consumer_key or settings.pesapal_consumer_key
        self.consumer_secret = consumer_secret or settings.pesapal_consumer_secret
        self.ipn_id = ipn_id or settings.pesapal_ipn_id

        if not self.consumer_key or not self.consumer_secret:
            logger.warning("Pesapal credentials not configured")

    async def request_token(self) -> str:
        """Get a bearer token, reusing the cached one while valid."""
        if cached := self._cached_token():
            return cached

        data = await self._request(
            "POST",
            "/api/Auth/RequestToken",
            retry=True,
            json={
                "consumer_key": self.consumer_key,
                "consumer_secret": self.consumer_secret,
            },
            headers={"Accept": "application/json"},
        )

        token = data.get("token")
        if not token:
            logger.error(f"Pesapal token request failed: {data.get('error') or data}")
            raise GatewayError("Could not authenticate with pesapal")

        self._store_token(token, TOKEN_LIFETIME_SECONDS)
        return token

    async def _auth_headers(self) -> dict[str, str]:
        token = await self.request_token()
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def submit_order(
        self,
        merchant_reference: str,
        amount: Decimal,
        description: str,
        billing: dict[str, str],
        currency: str | None = None,
        callback_url: str | None = None,
    ) -> PesapalOrder:
        """
        Submit an order request. Never retried, to avoid duplicate charges.

        Args:
            merchant_reference: Unique reference for this attempt
            amount: Amount to charge
            description: Shown to the customer
            billing: email, phone and name of the payer
            currency: ISO currency (default from settings)
            callback_url: Redirect after payment (default webhook URL)

        Returns:
            Tracking id and redirect URL
        """
        headers = await self._auth_headers()
        payload = {
            "id": merchant_reference,
            "currency": currency or settings.shop_currency,
            "amount": float(amount),
            "description": description[:100],
            "callback_url": callback_url or settings.pesapal_callback_url,
            "notification_id": self.ipn_id,
            "billing_address": {
                "email_address": billing.get("email", ""),
                "phone_number": billing.get("phone", ""),
                "country_code": settings.shop_country_code,
                "first_name": billing.get("name", ""),
                "last_name": "",
            },
        }

        data = await self._request(
            "POST",
            "/api/Transactions/SubmitOrderRequest",
            json=payload,
            headers=headers,
        )

        tracking_id = data.get("order_tracking_id")
        redirect_url = data.get("redirect_url")
        if not tracking_id or not redirect_url:
            logger.error(f"Pesapal order submission rejected: {data.get('error') or data}")
            raise GatewayError("pesapal rejected the payment request")

        return PesapalOrder(
            order_tracking_id=tracking_id,
            redirect_url=redirect_url,
            merchant_reference=data.get("merchant_reference", merchant_reference),
        )

    async def get_transaction_status(self, order_tracking_id: str) -> PesapalTransactionStatus:
        """Query the final state of a transaction."""
        headers = await self._auth_headers()
        data = await self._request(
            "GET",
            "/api/Transactions/GetTransactionStatus",
            retry=True,
            params={"orderTrackingId": order_tracking_id},
            headers=headers,
        )

        amount = data.get("amount")
        return PesapalTransactionStatus(
            order_tracking_id=order_tracking_id,
            status=str(data.get("payment_status_description", "")).lower(),
            description=data.get("description"),
            payment_method=data.get("payment_method"),
            amount=Decimal(str(amount)) if amount is not None else None,
        )
