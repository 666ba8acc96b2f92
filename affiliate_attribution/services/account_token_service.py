"""App account token resolution.

WHAT:
    Resolves the UUID the host attaches to App Store purchases
    (appAccountToken). App Store server notifications echo it back, which is
    how the backend ties a purchase webhook to this install's affiliate.

HOW:
    Precedence, first match wins and is persisted:
        1. override passed to the call
        2. process-wide override (tests, QA builds)
        3. persisted token
        4. freshly generated UUID
"""

import logging
import uuid
from typing import Callable, ClassVar, Optional

from ..errors import StorageError
from . import storage_keys
from .key_value_store import KeyValueStore

logger = logging.getLogger(__name__)


def normalize_token(value: Optional[str]) -> Optional[str]:
    """Canonical lowercase UUID string, or None if value isn't a UUID."""
    if not value:
        return None
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        return None


class AccountTokenService:
    """Get-or-create for the app account token."""

    _static_override: ClassVar[Optional[str]] = None

    def __init__(
        self,
        kv: KeyValueStore,
        uuid_factory: Callable[[], uuid.UUID] = uuid.uuid4,
    ):
        self.kv = kv
        self.uuid_factory = uuid_factory

    @classmethod
    def set_static_override(cls, token: Optional[str]) -> None:
        """Force every resolution in this process to use token (None clears)."""
        if token is not None and normalize_token(token) is None:
            logger.warning(f"[ACCOUNT_TOKEN] Ignoring override that is not a UUID: {token!r}")
            return
        cls._static_override = normalize_token(token)

    @classmethod
    def static_override(cls) -> Optional[str]:
        return cls._static_override

    def _persist(self, token: str) -> None:
        try:
            self.kv.set(storage_keys.APP_ACCOUNT_TOKEN, token)
        except StorageError as e:
            logger.error(f"[ACCOUNT_TOKEN] Failed to persist account token: {e}")

    def get_or_create(self, override_token: Optional[str] = None) -> str:
        if override_token is not None:
            token = normalize_token(override_token)
            if token:
                logger.debug(f"[ACCOUNT_TOKEN] Using override token: {token}")
                self._persist(token)
                return token
            logger.warning(f"[ACCOUNT_TOKEN] Override token is not a UUID, ignoring: {override_token!r}")

        if self._static_override:
            logger.debug(f"[ACCOUNT_TOKEN] Using process-wide override token: {self._static_override}")
            self._persist(self._static_override)
            return self._static_override

        try:
            stored = normalize_token(self.kv.get(storage_keys.APP_ACCOUNT_TOKEN))
        except StorageError as e:
            logger.error(f"[ACCOUNT_TOKEN] Failed to read account token: {e}")
            stored = None

        if stored:
            return stored

        token = str(self.uuid_factory())
        self._persist(token)
        logger.debug(f"[ACCOUNT_TOKEN] Generated new account token: {token}")
        return token
