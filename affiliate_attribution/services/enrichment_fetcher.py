"""Affiliate enrichment.

WHAT:
    Fetches auxiliary data for a confirmed short code:
    - fetch_offer_code: promotional offer code tied to the affiliate
    - fetch_affiliate_metadata: affiliate name / short code, and confirmation
      that the affiliate exists at all

WHY:
    The offer code lets the host pre-fill a store promotion. The affiliate
    lookup is what makes manual short-code entry safe: a typed code is only
    stored as the attribution identifier after the backend confirms it.

CONSTRAINTS:
    - One request per call, no retries
    - Failures never propagate; they are logged and the record stays absent
"""

import logging
import re
from typing import Optional

from pydantic import ValidationError

from ..config import AttributionConfig
from ..errors import TransportError
from ..schemas import AffiliateExistsResponse, AffiliateLookupRequest
from ..telemetry.sentry import capture_exception
from .attribution_api_client import AttributionApiClient
from .attribution_store import AttributionStore

logger = logging.getLogger(__name__)

_OFFER_CODE_STRIP = re.compile(r"[^A-Za-z0-9_]")

# Sanitized bodies the backend sends instead of an offer code
OFFER_CODE_NOT_FOUND_MARKERS = ("error", "notfound", "Routenotfound")


def sanitize_offer_code(raw: str) -> str:
    """Strip everything except letters, digits and underscore."""
    return _OFFER_CODE_STRIP.sub("", raw.strip())


def is_offer_code_missing(sanitized: str) -> bool:
    return not sanitized or any(marker in sanitized for marker in OFFER_CODE_NOT_FOUND_MARKERS)


class EnrichmentFetcher:
    """Offer code and affiliate metadata lookups."""

    def __init__(
        self,
        api_client: AttributionApiClient,
        attribution_store: AttributionStore,
        config: AttributionConfig,
    ):
        self.api_client = api_client
        self.attribution_store = attribution_store
        self.config = config

    async def fetch_offer_code(self, code: str) -> Optional[str]:
        """Fetch and persist the offer code for code.

        Returns:
            The stored offer code, or None if there is none
        """
        result = await self.api_client.fetch_offer_code(code)
        if not result.success:
            logger.debug(f"[ENRICHMENT] No offer code found for: {code} ({result.error})")
            return None

        offer_code = sanitize_offer_code(result.body)
        if is_offer_code_missing(offer_code):
            logger.debug(f"[ENRICHMENT] Offer code not found for: {code}")
            return None

        if not self.attribution_store.set_offer_code(offer_code):
            return None

        logger.info(f"[ENRICHMENT] Offer code stored: {offer_code}")
        return offer_code

    async def fetch_affiliate_metadata(self, code: str) -> Optional[str]:
        """Confirm the affiliate exists, persist its metadata, then store code.

        Returns:
            The attribution identifier if the affiliate exists, else None
        """
        payload = AffiliateLookupRequest(companyId=self.config.company_code, affiliateCode=code)
        result = await self.api_client.check_affiliate_exists(payload.model_dump())

        try:
            result.raise_for_result()
            lookup = AffiliateExistsResponse.model_validate_json(result.body)
        except TransportError as e:
            if e.status_code == 404:
                logger.warning(f"[ENRICHMENT] Affiliate lookup endpoint not found for {code}")
            else:
                logger.error(f"[ENRICHMENT] Affiliate lookup failed for {code}: {e}")
            return None
        except ValidationError as e:
            logger.error(f"[ENRICHMENT] Failed to parse affiliate lookup response: {e}")
            capture_exception(e, extra={"code": code, "body": result.body[:500]})
            return None

        if not lookup.exists or lookup.affiliate is None:
            logger.warning(f"[ENRICHMENT] Affiliate {code} does not exist, not storing")
            return None

        affiliate = lookup.affiliate
        self.attribution_store.save_affiliate_metadata(
            affiliate_name=affiliate.affiliateName,
            affiliate_short_code=affiliate.affiliateShortCode,
            raw_payload=result.body,
        )
        logger.info(f"[ENRICHMENT] Affiliate confirmed: {affiliate.affiliateName} ({affiliate.affiliateShortCode})")

        return self.attribution_store.store(code)
