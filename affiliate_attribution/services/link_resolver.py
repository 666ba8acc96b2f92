"""Deep link -> short code resolution.

WHAT:
    Turns a raw referral (free-form deep link or short code) into the
    canonical code embedded in the attribution identifier, then stores it.

WHY:
    A referral must never be lost. When the backend can't convert the link
    (network down, 5xx, garbage body, empty answer) the raw referral itself
    becomes the canonical code, so attribution still happens and the
    backend can reconcile it later.

HOW:
    1. Short-code-shaped input -> store as-is, no network
    2. Otherwise GET /V1/convert-deep-link-to-short-link
    3. Parse the body into ParsedAsObject | ParsedAsPlainString | ParseFailed
    4. Store the short link, or the raw referral on any failure
    Exactly one AttributionStore.store() call happens on every path.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from ..errors import ResponseParseError, TransportError
from ..telemetry.sentry import capture_exception
from .attribution_api_client import AttributionApiClient
from .attribution_store import AttributionStore
from .referral_classifier import is_short_code_shaped

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedAsObject:
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ParsedAsPlainString:
    text: str


@dataclass(frozen=True)
class ParseFailed:
    reason: str


ParsedResponse = Union[ParsedAsObject, ParsedAsPlainString, ParseFailed]


def parse_conversion_body(body: str) -> ParsedResponse:
    """Classify a conversion response body.

    A body starting with "{" must be a JSON object; anything else is a bare
    (possibly quoted) string.
    """
    if body.startswith("{"):
        try:
            decoded = json.loads(body)
        except json.JSONDecodeError as e:
            return ParseFailed(reason=f"Invalid JSON: {e}")
        if not isinstance(decoded, dict):
            return ParseFailed(reason="JSON body is not an object")
        return ParsedAsObject(fields=decoded)

    return ParsedAsPlainString(text=body.strip(' "\n\r'))


def extract_short_link(parsed: ParsedResponse) -> str:
    """Pull the short link out of a parsed body.

    Raises:
        ResponseParseError: for ParseFailed or a non-string shortLink
    """
    if isinstance(parsed, ParseFailed):
        raise ResponseParseError(parsed.reason)

    if isinstance(parsed, ParsedAsObject):
        value = parsed.fields.get("shortLink")
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ResponseParseError(f"shortLink has unexpected type {type(value).__name__}")
        return value

    return parsed.text


@dataclass(frozen=True)
class ResolutionOutcome:
    """Result of one resolve() call.

    short_link is None when the backend conversion failed, even though
    identifier was still stored from the raw referral.
    """

    canonical_code: str
    identifier: str
    short_link: Optional[str]


class LinkResolver:
    """Best-effort remote conversion with raw-input fallback."""

    def __init__(self, api_client: AttributionApiClient, attribution_store: AttributionStore):
        self.api_client = api_client
        self.attribution_store = attribution_store

    async def resolve(self, raw_referral: str) -> ResolutionOutcome:
        if is_short_code_shaped(raw_referral):
            logger.debug(f"[LINK_RESOLVER] Referring link is already a short code: {raw_referral}")
            identifier = self.attribution_store.store(raw_referral)
            return ResolutionOutcome(
                canonical_code=raw_referral,
                identifier=identifier,
                short_link=raw_referral,
            )

        short_link = await self._convert(raw_referral)

        if short_link:
            logger.debug(f"[LINK_RESOLVER] Short link received: {short_link}")
            identifier = self.attribution_store.store(short_link)
            return ResolutionOutcome(canonical_code=short_link, identifier=identifier, short_link=short_link)

        identifier = self.attribution_store.store(raw_referral)
        return ResolutionOutcome(canonical_code=raw_referral, identifier=identifier, short_link=None)

    async def _convert(self, raw_referral: str) -> Optional[str]:
        """Ask the backend for a short link. None means fall back."""
        result = await self.api_client.convert_deep_link(raw_referral)

        try:
            result.raise_for_result()
            logger.debug(f"[LINK_RESOLVER] Raw API response: {result.body}")
            short_link = extract_short_link(parse_conversion_body(result.body))
        except TransportError as e:
            logger.error(f"[LINK_RESOLVER] Error converting link, storing original: {e}")
            return None
        except ResponseParseError as e:
            logger.error(f"[LINK_RESOLVER] Failed to parse response, storing original: {e}")
            logger.error(f"[LINK_RESOLVER] Response text: {result.body}")
            capture_exception(e, extra={"body": result.body[:500]})
            return None

        if not short_link:
            logger.warning("[LINK_RESOLVER] Empty response, storing original link")
            return None

        return short_link
