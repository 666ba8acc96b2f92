"""Insert Affiliate API client.

WHAT:
    Thin async wrapper over httpx for the five attribution endpoints.
    Every call returns a TransportResult instead of raising, so callers
    decide per endpoint how to recover.

WHY:
    - Link conversion needs to fall back to the raw referral on ANY failure
    - Enrichment, events and expected transactions are fire-and-forget
    Neither wants exceptions leaking out of the transport.

HOW:
    GET/POST with a JSON content type against a single base URL. A fresh
    AsyncClient per call, no retries; the configured timeout is the only
    timeout.

REFERENCES:
    - affiliate_attribution/services/link_resolver.py
    - affiliate_attribution/services/enrichment_fetcher.py
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..config import AttributionConfig
from ..errors import TransportError

logger = logging.getLogger(__name__)

CONVERT_DEEP_LINK_PATH = "/V1/convert-deep-link-to-short-link"
OFFER_CODE_PATH = "/v1/affiliateReturnOfferCode"
CHECK_AFFILIATE_EXISTS_PATH = "/V1/checkAffiliateExists"
TRACK_EVENT_PATH = "/v1/trackEvent"
EXPECTED_TRANSACTION_PATH = "/v1/api/app-store-webhook/create-expected-transaction"

DEFAULT_HEADERS = {"Content-Type": "application/json"}


@dataclass(frozen=True)
class TransportResult:
    """Outcome of one HTTP round trip.

    status_code is None when no response arrived (DNS, connect, timeout).
    """

    success: bool
    status_code: Optional[int] = None
    body: str = ""
    error: Optional[str] = None

    def raise_for_result(self) -> "TransportResult":
        """Raise TransportError unless the call succeeded."""
        if not self.success:
            raise TransportError(
                self.error or f"HTTP {self.status_code}",
                status_code=self.status_code,
            )
        return self


class AttributionApiClient:
    """Async client for api.insertaffiliate.com.

    Usage:
        ```python
        client = AttributionApiClient(config)
        result = await client.convert_deep_link("https://example.com/promo?x=1")
        if result.success:
            print(result.body)
        ```

    Tests pass an httpx.MockTransport as `transport`.
    """

    def __init__(
        self,
        config: AttributionConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.api_base_url,
            headers=DEFAULT_HEADERS,
            timeout=self.config.request_timeout_seconds,
            transport=self.transport,
        )

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> TransportResult:
        try:
            async with self._client() as client:
                response = await client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            logger.warning(f"[ATTRIBUTION_API] Timeout on {method} {path}: {e}")
            return TransportResult(success=False, error=f"Timeout: {e}")
        except httpx.RequestError as e:
            logger.warning(f"[ATTRIBUTION_API] Network error on {method} {path}: {e}")
            return TransportResult(success=False, error=f"Network error: {e}")

        success = response.is_success
        if not success:
            logger.warning(f"[ATTRIBUTION_API] {method} {path} returned {response.status_code}")

        return TransportResult(
            success=success,
            status_code=response.status_code,
            body=response.text,
            error=None if success else f"HTTP {response.status_code}",
        )

    async def convert_deep_link(self, deep_link: str) -> TransportResult:
        return await self._send(
            "GET",
            CONVERT_DEEP_LINK_PATH,
            params={"companyId": self.config.company_code, "deepLinkUrl": deep_link},
        )

    async def fetch_offer_code(self, code: str) -> TransportResult:
        return await self._send("GET", f"{OFFER_CODE_PATH}/{quote(code, safe='')}")

    async def check_affiliate_exists(self, payload: Dict[str, Any]) -> TransportResult:
        return await self._send("POST", CHECK_AFFILIATE_EXISTS_PATH, json=payload)

    async def track_event(self, payload: Dict[str, Any]) -> TransportResult:
        return await self._send("POST", TRACK_EVENT_PATH, json=payload)

    async def create_expected_transaction(self, payload: Dict[str, Any]) -> TransportResult:
        return await self._send("POST", EXPECTED_TRANSACTION_PATH, json=payload)
