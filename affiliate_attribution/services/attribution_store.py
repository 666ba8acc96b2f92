"""Attribution identifier persistence.

WHAT:
    Owns the persisted attribution identifier, its stored timestamp, and the
    enrichment record (offer code + affiliate metadata).

WHY:
    The identifier is the unit of truth shared with purchase and event
    tracking. It must only change when the value actually changes, so the
    attribution window is measured from the first time a referral was seen,
    not from the last time the same link was reopened.

HOW:
    store():
        1. Compose "{code}-{device_id}"
        2. Same as persisted value -> return it, nothing else happens
        3. Otherwise persist identifier + UTC timestamp, notify listeners,
           and hand short-code-shaped codes to the enrichment hook
    get_current():
        Lazy expiry. A stale identifier stays on disk; reads just stop
        returning it once now - stored_date > window.

CONSTRAINTS:
    - Identifier and timestamp are separate keys, written in that order.
      A crash between the two writes can leave them out of sync.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from ..config import AttributionConfig
from ..errors import StorageError
from ..telemetry.sentry import capture_exception
from . import storage_keys
from .device_identity import DeviceIdentity
from .key_value_store import KeyValueStore
from .notifications import IdentifierChangeNotifier
from .referral_classifier import is_short_code_shaped

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_stored_date(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Raises:
        ValueError: if value is not ISO-8601
    """
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class EnrichmentRecord:
    """Derived affiliate metadata. Not subject to the attribution window."""

    offer_code: Optional[str] = None
    affiliate_name: Optional[str] = None
    affiliate_short_code: Optional[str] = None
    company_name: Optional[str] = None
    raw_payload: Optional[str] = None


class AttributionStore:
    """Identifier persistence with idempotent writes and lazy expiry."""

    def __init__(
        self,
        kv: KeyValueStore,
        device_identity: DeviceIdentity,
        config: AttributionConfig,
        notifier: Optional[IdentifierChangeNotifier] = None,
        on_short_code_stored: Optional[Callable[[str], None]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.kv = kv
        self.device_identity = device_identity
        self.config = config
        self.notifier = notifier or IdentifierChangeNotifier()
        self.on_short_code_stored = on_short_code_stored
        self.clock = clock
        self._write_lock = threading.Lock()

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.kv.get(key)
        except StorageError as e:
            logger.error(f"[ATTRIBUTION_STORE] Failed to read {key}: {e}")
            capture_exception(e, extra={"key": key})
            return None

    def _write(self, key: str, value: str) -> bool:
        try:
            self.kv.set(key, value)
            return True
        except StorageError as e:
            logger.error(f"[ATTRIBUTION_STORE] Failed to write {key}: {e}")
            capture_exception(e, extra={"key": key})
            return False

    # ------------------------------------------------------------------
    # Identifier
    # ------------------------------------------------------------------

    def compose_identifier(self, code: str) -> str:
        return f"{code}-{self.device_identity.get_or_create()}"

    def store(self, code: str) -> str:
        """Persist "{code}-{device_id}" if it differs from the current value.

        Args:
            code: Canonical code (short code, converted link, or raw fallback)

        Returns:
            The composed identifier, whether or not anything was written
        """
        candidate = self.compose_identifier(code)

        with self._write_lock:
            current = self._read(storage_keys.IDENTIFIER) or ""

            if candidate == current:
                logger.debug(f"[ATTRIBUTION_STORE] Same affiliate identifier already stored: {candidate}")
                return candidate

            if not self._write(storage_keys.IDENTIFIER, candidate):
                # Nothing changed durably, so nobody is told about it
                return candidate

            stored_at = self.clock().isoformat()
            self._write(storage_keys.STORED_DATE, stored_at)

        if current:
            logger.info(f"[ATTRIBUTION_STORE] Replaced identifier: {current} -> {candidate}")
        else:
            logger.info(f"[ATTRIBUTION_STORE] Stored new identifier: {candidate}")
        logger.debug(f"[ATTRIBUTION_STORE] Stored date: {stored_at}")

        self.notifier.notify(candidate)

        if is_short_code_shaped(code) and self.on_short_code_stored is not None:
            self.on_short_code_stored(code)

        return candidate

    def get_current(self, ignore_window: bool = False) -> Optional[str]:
        """Current identifier, or None if absent or past the attribution window.

        Args:
            ignore_window: Return the stored value regardless of its age
        """
        identifier = self._read(storage_keys.IDENTIFIER)
        if not identifier:
            return None

        if ignore_window:
            return identifier

        window = self.config.attribution_window_seconds
        if window is None:
            return identifier

        stored_date_raw = self._read(storage_keys.STORED_DATE)
        if not stored_date_raw:
            logger.warning("[ATTRIBUTION_STORE] No stored date for identifier, treating attribution as active")
            return identifier

        try:
            stored_date = parse_stored_date(stored_date_raw)
        except ValueError as e:
            logger.warning(f"[ATTRIBUTION_STORE] Failed to parse stored date {stored_date_raw!r}: {e}")
            return identifier

        elapsed = (self.clock() - stored_date).total_seconds()
        if elapsed > window:
            logger.debug(f"[ATTRIBUTION_STORE] Attribution expired ({elapsed:.0f}s > {window}s)")
            return None

        return identifier

    def is_valid(self) -> bool:
        return self.get_current() is not None

    def get_stored_date(self) -> Optional[datetime]:
        raw = self._read(storage_keys.STORED_DATE)
        if not raw:
            return None
        try:
            return parse_stored_date(raw)
        except ValueError:
            return None

    # ------------------------------------------------------------------
    # Enrichment record
    # ------------------------------------------------------------------

    @property
    def offer_code(self) -> Optional[str]:
        return self._read(storage_keys.OFFER_CODE) or None

    def set_offer_code(self, offer_code: str) -> bool:
        return self._write(storage_keys.OFFER_CODE, offer_code)

    def save_affiliate_metadata(
        self,
        affiliate_name: str,
        affiliate_short_code: str,
        raw_payload: str,
        company_name: str = "",
    ) -> None:
        """Persist the affiliate lookup result.

        company_name is written empty today; the backend does not return it.
        """
        self._write(storage_keys.AFFILIATE_NAME, affiliate_name)
        self._write(storage_keys.AFFILIATE_SHORT_CODE, affiliate_short_code)
        self._write(storage_keys.COMPANY_NAME, company_name)
        self._write(storage_keys.DEEP_LINK_DATA, raw_payload)

    def enrichment_record(self) -> EnrichmentRecord:
        return EnrichmentRecord(
            offer_code=self.offer_code,
            affiliate_name=self._read(storage_keys.AFFILIATE_NAME) or None,
            affiliate_short_code=self._read(storage_keys.AFFILIATE_SHORT_CODE) or None,
            company_name=self._read(storage_keys.COMPANY_NAME) or None,
            raw_payload=self._read(storage_keys.DEEP_LINK_DATA) or None,
        )
