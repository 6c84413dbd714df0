"""
Base HTTP client for payment providers.

Every call is bounded by a timeout. Idempotent calls (token fetch,
status query) are retried with exponential backoff; payment submissions
are sent exactly once.
"""

import asyncio
import time
from typing import Any

import httpx
from loguru import logger

from tfootwear.core.config import settings
from tfootwear.core.exceptions import GatewayError, GatewayTimeoutError


class GatewayClient:
    """
    Async HTTP client shared by the Pesapal and M-Pesa integrations.

    Usage:
        async with PesapalClient() as pesapal:
            token = await pesapal.request_token()
    """

    name = "gateway"

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize gateway client.

        Args:
            base_url: Provider API root
            timeout: Per-request timeout in seconds (default from settings)
            max_retries: Attempts for idempotent calls (default from settings)
            backoff: Initial retry delay in seconds, doubled per attempt
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.gateway_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.gateway_max_retries
        self.backoff = backoff if backoff is not None else settings.gateway_retry_backoff_seconds
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
        )
        self._token: str | None = None
        self._token_expires_at: float = 0.0

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    def _cached_token(self) -> str | None:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        return None

    def _store_token(self, token: str, lifetime_seconds: float) -> None:
        # Refresh a little before the provider's expiry
        self._token = token
        self._token_expires_at = time.monotonic() + max(lifetime_seconds - 30, 0)

    async def _send(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send one request and decode the JSON body."""
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"{self.name} {method} {path} timed out after {self.timeout}s")
            raise GatewayTimeoutError() from e
        except httpx.RequestError as e:
            logger.error(f"{self.name} {method} {path} transport error: {e}")
            raise GatewayError(f"Could not reach {self.name}") from e

        if response.is_error:
            logger.error(
                f"{self.name} {method} {path} returned {response.status_code}: {response.text[:200]}"
            )
            raise GatewayError(
                f"{self.name} rejected the request",
                upstream_status=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{self.name} {method} {path} returned invalid JSON")
            raise GatewayError(f"Invalid response from {self.name}") from e

    async def _request(
        self,
        method: str,
        path: str,
        retry: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Make a request to the provider.

        Args:
            method: HTTP method
            path: Path relative to base_url
            retry: Retry on timeouts, transport errors and 5xx responses
            **kwargs: Extra httpx request arguments

        Returns:
            Decoded JSON body

        Raises:
            GatewayTimeoutError: Provider did not answer in time
            GatewayError: Provider unreachable or returned an error
        """
        attempts = max(self.max_retries, 1) if retry else 1
        delay = self.backoff

        for attempt in range(1, attempts + 1):
            try:
                return await self._send(method, path, **kwargs)
            except GatewayError as e:
                retryable = e.upstream_status is None or e.upstream_status >= 500
                if attempt >= attempts or not retryable:
                    raise
                logger.warning(
                    f"{self.name} {method} {path} attempt {attempt}/{attempts} failed, "
                    f"retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                delay *= 2

        raise GatewayError()
