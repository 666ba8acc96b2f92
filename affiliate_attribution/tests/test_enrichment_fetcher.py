"""Unit tests for EnrichmentFetcher.

WHAT: Offer code sanitizing/gating and the affiliate-exists lookup
WHY: Error pages must never be saved as offer codes, and a manually typed
     code must only become the identifier once the backend confirms it
"""

import httpx
import pytest

from affiliate_attribution.services import storage_keys
from affiliate_attribution.services.attribution_api_client import (
    CHECK_AFFILIATE_EXISTS_PATH,
    OFFER_CODE_PATH,
    AttributionApiClient,
)
from affiliate_attribution.services.enrichment_fetcher import (
    EnrichmentFetcher,
    is_offer_code_missing,
    sanitize_offer_code,
)

from .conftest import FakeAttributionApi

AFFILIATE_BODY = {
    "exists": True,
    "affiliate": {
        "affiliateName": "Jane Doe",
        "affiliateShortCode": "JANE1",
        "deeplinkurl": "https://acme.insertaffiliate.link/V1/ABC123/JANE1",
    },
}


@pytest.fixture
def fetcher(config, fake_api, attribution_store) -> EnrichmentFetcher:
    return EnrichmentFetcher(AttributionApiClient(config, transport=fake_api.transport), attribution_store, config)


def test_sanitize_strips_everything_but_word_characters():
    assert sanitize_offer_code(' "SPRING_25!"\n') == "SPRING_25"


@pytest.mark.parametrize("body", ["error", "notfound", "Routenotfound", "someerrorhere", ""])
def test_not_found_markers(body):
    assert is_offer_code_missing(body) is True


class TestFetchOfferCode:
    @pytest.mark.asyncio
    async def test_stores_sanitized_offer_code(self, fetcher, fake_api, attribution_store):
        fake_api.text("GET", f"{OFFER_CODE_PATH}/PROMO99", '"SPRING_25"')

        assert await fetcher.fetch_offer_code("PROMO99") == "SPRING_25"
        assert attribution_store.offer_code == "SPRING_25"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        ['{"error": "bad"}', '{"message": "notfound"}', '{"message": "Route not found"}'],
    )
    async def test_error_bodies_are_not_stored(self, fetcher, fake_api, memory_store, body):
        fake_api.text("GET", f"{OFFER_CODE_PATH}/PROMO99", body)

        assert await fetcher.fetch_offer_code("PROMO99") is None
        assert not memory_store.has(storage_keys.OFFER_CODE)

    @pytest.mark.asyncio
    async def test_transport_failure_is_a_no_op(self, fetcher, memory_store):
        # Unrouted -> 404
        assert await fetcher.fetch_offer_code("PROMO99") is None
        assert not memory_store.has(storage_keys.OFFER_CODE)


class TestFetchAffiliateMetadata:
    @pytest.mark.asyncio
    async def test_existing_affiliate_is_persisted_and_stored(
        self, fetcher, fake_api, attribution_store, device_identity
    ):
        fake_api.json("POST", CHECK_AFFILIATE_EXISTS_PATH, AFFILIATE_BODY)

        identifier = await fetcher.fetch_affiliate_metadata("JANE1")

        assert identifier == f"JANE1-{device_identity.get_or_create()}"
        assert attribution_store.get_current() == identifier
        record = attribution_store.enrichment_record()
        assert record.affiliate_name == "Jane Doe"
        assert record.affiliate_short_code == "JANE1"
        assert '"Jane Doe"' in record.raw_payload

        [request] = fake_api.requests_to(CHECK_AFFILIATE_EXISTS_PATH)
        assert FakeAttributionApi.body(request) == {"companyId": "ABC123", "affiliateCode": "JANE1"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [{"exists": False}, {"exists": True}, {"exists": False, "affiliate": AFFILIATE_BODY["affiliate"]}],
        ids=["not-exists", "exists-without-affiliate", "affiliate-but-not-exists"],
    )
    async def test_unconfirmed_affiliate_is_not_stored(self, fetcher, fake_api, attribution_store, payload):
        fake_api.json("POST", CHECK_AFFILIATE_EXISTS_PATH, payload)

        assert await fetcher.fetch_affiliate_metadata("JANE1") is None
        assert attribution_store.get_current() is None
        assert attribution_store.enrichment_record().affiliate_name is None

    @pytest.mark.asyncio
    async def test_404_is_a_no_op(self, fetcher, attribution_store):
        assert await fetcher.fetch_affiliate_metadata("JANE1") is None
        assert attribution_store.get_current() is None

    @pytest.mark.asyncio
    async def test_malformed_body_is_a_no_op(self, fetcher, fake_api, attribution_store):
        fake_api.add("POST", CHECK_AFFILIATE_EXISTS_PATH, httpx.Response(200, text="<html>oops</html>"))

        assert await fetcher.fetch_affiliate_metadata("JANE1") is None
        assert attribution_store.get_current() is None
