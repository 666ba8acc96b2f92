"""Attribution Resolution Engine.

WHAT:
    Public surface of the package. Turns referrals into a persisted
    attribution identifier, keeps it consistent with the device id, expires
    it on read after the attribution window, and reports events and
    expected App Store transactions against it.

WHY:
    Hosts deal with one object and one lifecycle (initialize once, then call
    in). Everything that can fail (network, parsing, storage, bad input) is
    recovered here or below and turned into a log line plus a None/False
    result; the host application never sees an exception.

HOW:
    initialize()  -> freeze config, build components, ensure device id
    set_from_referral(raw)      -> LinkResolver (convert or passthrough) -> store
    set_from_short_code(code)   -> validate -> affiliate lookup -> store if it exists
    handle_deep_link_url(url)   -> parse Insert Links URL -> set_from_short_code in background
    store (any path)            -> notify listeners -> offer code fetch in background

Usage:
    ```python
    engine = AttributionResolutionEngine(kv=JsonFileStore("attribution.json"))
    engine.initialize("ACME", attribution_window_seconds=7 * 24 * 3600)
    engine.subscribe(lambda identifier: print("now attributed to", identifier))

    await engine.set_from_referral("https://example.com/promo?ref=abc")
    identifier = engine.get_current_identifier()
    await engine.track_event("signup_completed")
    ```

REFERENCES:
    - affiliate_attribution/services/link_resolver.py
    - affiliate_attribution/services/enrichment_fetcher.py
    - affiliate_attribution/services/attribution_store.py
"""

import logging
import uuid
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from ..config import (
    DEFAULT_API_BASE_URL,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    AttributionConfig,
    AttributionSettings,
    get_settings,
)
from ..errors import ConfigurationError, ShortCodeValidationError
from ..schemas import ExpectedTransactionRequest, TrackEventRequest
from ..telemetry.logging import configure_logging
from ..telemetry.sentry import capture_message, init_sentry
from ..telemetry.sentry import is_enabled as sentry_enabled
from .account_token_service import AccountTokenService
from .attribution_api_client import AttributionApiClient
from .attribution_store import AttributionStore, EnrichmentRecord, utc_now
from .device_identity import DeviceIdentity
from .enrichment_fetcher import EnrichmentFetcher
from .insert_links import parse_insert_link
from .key_value_store import KeyValueStore, build_store
from .link_resolver import LinkResolver
from .notifications import IdentifierChangeNotifier, IdentifierListener
from .referral_classifier import validate_short_code
from .task_runner import BackgroundTaskRunner

logger = logging.getLogger(__name__)

ResultCallback = Callable[[Optional[str]], None]


def _invoke_callback(callback: Optional[ResultCallback], value: Optional[str]) -> None:
    if callback is None:
        return
    try:
        callback(value)
    except Exception as e:
        logger.exception(f"[ENGINE] Host callback raised: {e}")


class AttributionResolutionEngine:
    """Orchestrates referral resolution, persistence and reporting.

    State machine over one flag: uninitialized -> initialized, exactly once.
    Every operation except subscriptions is a logged no-op before that.
    """

    def __init__(
        self,
        kv: Optional[KeyValueStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utc_now,
        uuid_factory: Callable[[], uuid.UUID] = uuid.uuid4,
        runner: Optional[BackgroundTaskRunner] = None,
    ):
        self.kv = kv
        self.transport = transport
        self.clock = clock
        self.uuid_factory = uuid_factory
        self.runner = runner or BackgroundTaskRunner()
        self.notifier = IdentifierChangeNotifier()

        self._config: Optional[AttributionConfig] = None
        self._device_identity: Optional[DeviceIdentity] = None
        self._attribution_store: Optional[AttributionStore] = None
        self._api_client: Optional[AttributionApiClient] = None
        self._link_resolver: Optional[LinkResolver] = None
        self._enrichment: Optional[EnrichmentFetcher] = None
        self._account_tokens: Optional[AccountTokenService] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._config is not None

    @property
    def config(self) -> Optional[AttributionConfig]:
        return self._config

    def initialize(
        self,
        company_code: str,
        *,
        verbose_logging: bool = False,
        insert_links_enabled: bool = False,
        attribution_window_seconds: Optional[float] = None,
        api_base_url: str = DEFAULT_API_BASE_URL,
        request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> bool:
        """Configure the engine. Only the first successful call has any effect.

        Returns:
            True if this call initialized the engine
        """
        if self.is_initialized:
            logger.warning("[ENGINE] SDK is already initialized")
            return False

        try:
            if not company_code or not company_code.strip():
                raise ConfigurationError("Company code cannot be empty")
            config = AttributionConfig(
                company_code=company_code,
                verbose_logging=verbose_logging,
                insert_links_enabled=insert_links_enabled,
                attribution_window_seconds=attribution_window_seconds,
                api_base_url=api_base_url,
                request_timeout_seconds=request_timeout_seconds,
            )
        except ConfigurationError as e:
            logger.error(f"[ENGINE] {e.message}")
            return False
        except ValidationError as e:
            logger.error(f"[ENGINE] Invalid configuration: {e}")
            return False

        self._apply_config(config)
        return True

    def initialize_from_settings(self, settings: Optional[AttributionSettings] = None) -> bool:
        """Initialize from environment / .env settings.

        Also picks the storage backend (unless one was injected) and turns on
        Sentry when a DSN is configured.
        """
        settings = settings or get_settings()

        if self.is_initialized:
            logger.warning("[ENGINE] SDK is already initialized")
            return False

        if not settings.company_code or not settings.company_code.strip():
            logger.error("[ENGINE] Company code cannot be empty (set INSERT_AFFILIATE_COMPANY_CODE)")
            return False

        try:
            config = settings.to_config()
        except ValidationError as e:
            logger.error(f"[ENGINE] Invalid configuration: {e}")
            return False

        if self.kv is None:
            self.kv = build_store(settings)

        # Sentry is process-global; a second engine reuses the first init
        if not sentry_enabled():
            init_sentry(settings.sentry_dsn, settings.environment)
        self._apply_config(config)
        return True

    def _apply_config(self, config: AttributionConfig) -> None:
        configure_logging(config.verbose_logging)

        if self.kv is None:
            self.kv = build_store(get_settings())

        self._device_identity = DeviceIdentity(self.kv, uuid_factory=self.uuid_factory)
        self._api_client = AttributionApiClient(config, transport=self.transport)
        self._attribution_store = AttributionStore(
            self.kv,
            self._device_identity,
            config,
            notifier=self.notifier,
            on_short_code_stored=self._schedule_offer_code,
            clock=self.clock,
        )
        self._link_resolver = LinkResolver(self._api_client, self._attribution_store)
        self._enrichment = EnrichmentFetcher(self._api_client, self._attribution_store, config)
        self._account_tokens = AccountTokenService(self.kv, uuid_factory=self.uuid_factory)

        self._config = config

        # Device id must exist before the first attribution write
        device_id = self._device_identity.get_or_create()

        logger.info(f"[ENGINE] SDK initialized with company code: {config.company_code}")
        logger.debug(f"[ENGINE] Device id: {device_id}")
        logger.debug(f"[ENGINE] Insert Links enabled: {config.insert_links_enabled}")
        window = config.attribution_window_seconds
        logger.debug(f"[ENGINE] Attribution timeout: {f'{window}s' if window is not None else 'None'}")

    def _check_initialized(self, operation: str) -> bool:
        if self.is_initialized:
            return True
        error = ConfigurationError(f"SDK not initialized, call initialize() before {operation}()")
        logger.error(f"[ENGINE] {error.message}")
        return False

    async def drain(self) -> None:
        """Wait for background work (enrichment, deep link handling) on this loop."""
        await self.runner.drain()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        self.runner.shutdown(wait=wait, timeout=timeout)

    def _schedule_offer_code(self, code: str) -> None:
        if self._enrichment is None:
            return
        self.runner.spawn(self._enrichment.fetch_offer_code(code), name=f"offer-code-{code}")

    # ------------------------------------------------------------------
    # Referral entry points
    # ------------------------------------------------------------------

    async def set_from_referral(
        self,
        referring_link: str,
        callback: Optional[ResultCallback] = None,
    ) -> Optional[str]:
        """Resolve a referral and store it as the attribution identifier.

        A short-code-shaped referral is stored before this coroutine first
        yields. Anything else costs one conversion request; if that fails the
        raw referral is stored instead.

        Args:
            referring_link: Deep link URL or short code
            callback: Receives the resolved short link, or None if conversion failed

        Returns:
            Same value the callback receives
        """
        if not self._check_initialized("set_from_referral"):
            _invoke_callback(callback, None)
            return None

        if not referring_link:
            logger.warning("[ENGINE] Referring link is empty")
            _invoke_callback(callback, None)
            return None

        outcome = await self._link_resolver.resolve(referring_link)
        _invoke_callback(callback, outcome.short_link)
        return outcome.short_link

    async def set_from_short_code(self, short_code: str) -> Optional[str]:
        """Accept a manually entered short code once the backend confirms it.

        Returns:
            The stored attribution identifier, or None if the code was
            malformed or the affiliate does not exist
        """
        if not self._check_initialized("set_from_short_code"):
            return None

        try:
            normalized = validate_short_code(short_code)
        except ShortCodeValidationError as e:
            logger.error(f"[ENGINE] {e.message} (got {short_code!r})")
            return None

        identifier = await self._enrichment.fetch_affiliate_metadata(normalized)
        if identifier:
            logger.info(f"[ENGINE] Short code set: {normalized}")
        return identifier

    def handle_deep_link_url(self, url: str) -> bool:
        """Dispatch an Insert Links URL delivered by the host.

        Returns:
            True if the URL was recognized; the lookup then runs in the
            background. False for unrecognized URLs (no side effects).
        """
        if not self.is_initialized:
            logger.warning("[ENGINE] SDK not initialized")
            return False

        if not self._config.insert_links_enabled:
            logger.debug("[ENGINE] Insert Links is disabled")
            return False

        logger.debug(f"[ENGINE] Handling Insert Links URL: {url}")

        link = parse_insert_link(url)
        if link is None:
            logger.debug(f"[ENGINE] Not an Insert Links URL: {url}")
            return False

        if link.company_code and link.company_code.lower() != self._config.company_code.lower():
            logger.warning(
                f"[ENGINE] Link company code {link.company_code} does not match "
                f"initialized company code {self._config.company_code}"
            )
            capture_message(
                "Insert Links company code mismatch",
                level="warning",
                extra={"link_company_code": link.company_code, "company_code": self._config.company_code},
            )

        self.runner.spawn(self.set_from_short_code(link.short_code), name=f"insert-link-{link.short_code}")
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_current_identifier(self, ignore_window: bool = False) -> Optional[str]:
        if not self._check_initialized("get_current_identifier"):
            return None
        return self._attribution_store.get_current(ignore_window=ignore_window)

    def is_attribution_valid(self) -> bool:
        if not self._check_initialized("is_attribution_valid"):
            return False
        return self._attribution_store.is_valid()

    def get_stored_date(self) -> Optional[datetime]:
        if not self._check_initialized("get_stored_date"):
            return None
        return self._attribution_store.get_stored_date()

    @property
    def offer_code(self) -> Optional[str]:
        if not self.is_initialized:
            return None
        return self._attribution_store.offer_code

    def enrichment_record(self) -> Optional[EnrichmentRecord]:
        if not self._check_initialized("enrichment_record"):
            return None
        return self._attribution_store.enrichment_record()

    @property
    def device_id(self) -> Optional[str]:
        if not self.is_initialized:
            return None
        return self._device_identity.get_or_create()

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: IdentifierListener) -> Callable[[], None]:
        """Listen for identifier changes. Returns an unsubscribe function."""
        return self.notifier.subscribe(listener)

    def set_identifier_changed_callback(self, callback: Optional[IdentifierListener]) -> None:
        """Single-slot callback, always delivered before subscribers."""
        self.notifier.set_primary(callback)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def track_event(self, event_name: str) -> bool:
        """Report a host event against the current (non-expired) identifier.

        Returns:
            True if the backend accepted the event
        """
        if not self._check_initialized("track_event"):
            return False

        if not event_name:
            logger.warning("[ENGINE] Event name cannot be empty")
            return False

        identifier = self._attribution_store.get_current()
        if not identifier:
            logger.warning("[ENGINE] No valid affiliate identifier found or attribution expired")
            return False

        payload = TrackEventRequest(
            eventName=event_name,
            deepLinkParam=identifier,
            companyId=self._config.company_code,
        )
        result = await self._api_client.track_event(payload.model_dump())

        if not result.success:
            logger.error(f"[ENGINE] Failed to track event {event_name}: {result.error}")
            return False

        logger.debug(f"[ENGINE] Event tracked successfully: {event_name}")
        return True

    @staticmethod
    def set_account_token_override(token: Optional[str]) -> None:
        """Process-wide account token override for tests and QA builds."""
        AccountTokenService.set_static_override(token)

    async def get_or_create_account_token_and_record_expected_transaction(
        self,
        callback: Optional[ResultCallback] = None,
        override_token: Optional[str] = None,
    ) -> Optional[str]:
        """Resolve the App Store account token and register the expected purchase.

        The expected-transaction POST is only sent while attribution is valid,
        and its outcome never changes what the callback receives.

        Returns:
            The account token (same value as the callback)
        """
        if not self._check_initialized("get_or_create_account_token_and_record_expected_transaction"):
            _invoke_callback(callback, None)
            return None

        token = self._account_tokens.get_or_create(override_token)

        identifier = self._attribution_store.get_current()
        if identifier:
            payload = ExpectedTransactionRequest(
                companyId=self._config.company_code,
                affiliateIdentifier=identifier,
                appAccountToken=token,
            )
            result = await self._api_client.create_expected_transaction(payload.model_dump())
            if result.success:
                logger.debug(f"[ENGINE] Expected transaction recorded for token {token}")
            else:
                logger.error(f"[ENGINE] Failed to record expected transaction: {result.error}")
        else:
            logger.debug("[ENGINE] No valid affiliate identifier, skipping expected transaction")

        _invoke_callback(callback, token)
        return token


@lru_cache()
def get_engine() -> AttributionResolutionEngine:
    """Process-wide engine for hosts that don't manage their own instance."""
    return AttributionResolutionEngine()
