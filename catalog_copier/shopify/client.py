"""
Shopify GraphQL Admin API client for the destination shop.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ..config import settings

logger = logging.getLogger(__name__)


class ShopifyClientError(Exception):
    """Base exception for destination API errors."""
    pass


class ShopifyAuthError(ShopifyClientError):
    """The access token was rejected."""
    pass


class ShopifyRateLimitError(ShopifyClientError):
    """Request was throttled."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


def clean_domain(shop_domain: str) -> str:
    """Strip scheme and trailing slash from a shop domain."""
    domain = shop_domain.strip().lower()
    if domain.startswith("https://"):
        domain = domain[8:]
    elif domain.startswith("http://"):
        domain = domain[7:]
    return domain.rstrip("/")


def _never_sent(error: httpx.RequestError) -> bool:
    """True when the request failed before reaching the server."""
    return isinstance(error, (httpx.ConnectError, httpx.ConnectTimeout))


class ShopifyClient:
    """
    Async HTTP client for the GraphQL Admin API of one destination shop.

    Throttled and failed-to-send requests are retried with exponential
    backoff; authentication and GraphQL errors are raised immediately.
    """

    MAX_RETRIES = 5
    BASE_RETRY_DELAY = 1.0  # seconds
    LOW_POINTS_WARNING = 100

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: Optional[str] = None,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            shop_domain: Store domain (e.g., "mystore.myshopify.com")
            access_token: Admin API access token
            api_version: Admin API version, defaults to settings
            timeout: Per-request timeout in seconds
            http_client: Preconfigured client, mainly for tests
        """
        self.shop_domain = clean_domain(shop_domain)
        self.access_token = access_token
        self.api_version = api_version or settings.shopify_api_version
        self.timeout = timeout
        self.graphql_url = (
            f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"
        )
        # Query cost points left in the bucket after the last call
        self.available_points: Optional[float] = None

        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _check_status(self, response: httpx.Response) -> None:
        if response.status_code in (401, 403):
            raise ShopifyAuthError(f"Access token rejected by {self.shop_domain}")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise ShopifyRateLimitError(
                f"HTTP 429 from {self.shop_domain}",
                retry_after=float(retry_after) if retry_after else None,
            )

        if not response.is_success:
            raise ShopifyClientError(f"HTTP {response.status_code} from {self.shop_domain}")

    def _read_body(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise ShopifyClientError(f"Invalid JSON from {self.shop_domain}") from e

        messages = [e.get("message", str(e)) for e in body.get("errors") or []]
        if messages:
            if any("throttl" in m.lower() for m in messages):
                raise ShopifyRateLimitError(f"Throttled by {self.shop_domain}: {messages}")
            raise ShopifyClientError(f"GraphQL errors: {messages}")

        throttle = ((body.get("extensions") or {}).get("cost") or {}).get("throttleStatus") or {}
        if "currentlyAvailable" in throttle:
            self.available_points = throttle["currentlyAvailable"]
            if self.available_points < self.LOW_POINTS_WARNING:
                logger.warning(
                    f"{self.shop_domain}: only {self.available_points} query points left"
                )

        return body.get("data") or {}

    async def execute(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        retry_on_request_error: bool = True,
    ) -> Dict[str, Any]:
        """
        Run a query or mutation.

        Field-level problems of mutations come back as ``userErrors`` inside
        the returned data and are left to the caller.

        Args:
            query: GraphQL document
            variables: Query variables
            retry_on_request_error: Resend after transport errors where the
                request may have reached Shopify (read timeouts, dropped
                connections). Pass False for mutations that are not
                idempotent; connection failures are still retried.

        Returns:
            The 'data' portion of the GraphQL response

        Raises:
            ShopifyAuthError: If the access token is rejected
            ShopifyRateLimitError: If still throttled after all retries
            ShopifyClientError: For other errors
        """
        client = await self._get_client()
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables
        headers = {"X-Shopify-Access-Token": self.access_token}

        last_error: Optional[ShopifyClientError] = None

        for attempt in range(self.MAX_RETRIES):
            backoff = self.BASE_RETRY_DELAY * (2 ** attempt)
            try:
                response = await client.post(self.graphql_url, json=payload, headers=headers)
                self._check_status(response)
                return self._read_body(response)
            except ShopifyRateLimitError as e:
                last_error = e
                delay = e.retry_after if e.retry_after is not None else backoff
            except httpx.RequestError as e:
                last_error = ShopifyClientError(f"Request to {self.shop_domain} failed: {e}")
                if not (retry_on_request_error or _never_sent(e)):
                    raise last_error from e
                delay = backoff

            logger.warning(
                f"{last_error}; retrying in {delay:.1f}s "
                f"(attempt {attempt + 1}/{self.MAX_RETRIES})"
            )
            await asyncio.sleep(delay)

        raise last_error or ShopifyClientError("Max retries exceeded")
