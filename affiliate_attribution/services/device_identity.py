"""Per-install device identity.

WHAT:
    A short (6 uppercase hex chars) identifier generated once per install
    and appended to every attribution identifier.

WHY:
    Lets the backend tell two installs that clicked the same affiliate link
    apart without collecting anything that identifies the user.

HOW:
    1. Return the persisted id if there is one
    2. Otherwise hash a random UUID, reduce modulo 0xFFFFFF, format as %06X
    3. Persist it (best effort) and cache it for this process
"""

import logging
import uuid
from typing import Callable, Optional

from ..errors import StorageError
from ..telemetry.sentry import capture_exception
from . import storage_keys
from .key_value_store import KeyValueStore

logger = logging.getLogger(__name__)

DEVICE_ID_MODULUS = 0xFFFFFF


def generate_device_id(uuid_factory: Callable[[], uuid.UUID] = uuid.uuid4) -> str:
    """Derive a 6 hex character id from a fresh random UUID."""
    seed = str(uuid_factory())
    return f"{abs(hash(seed)) % DEVICE_ID_MODULUS:06X}"


class DeviceIdentity:
    """Lazily created, never mutated device id."""

    def __init__(
        self,
        kv: KeyValueStore,
        uuid_factory: Callable[[], uuid.UUID] = uuid.uuid4,
    ):
        self.kv = kv
        self.uuid_factory = uuid_factory
        self._cached: Optional[str] = None

    def get_or_create(self) -> str:
        if self._cached:
            return self._cached

        try:
            existing = self.kv.get(storage_keys.DEVICE_ID)
        except StorageError as e:
            logger.error(f"[DEVICE_ID] Failed to read device id: {e}")
            capture_exception(e, extra={"key": storage_keys.DEVICE_ID})
            existing = None

        if existing:
            self._cached = existing
            return existing

        device_id = generate_device_id(self.uuid_factory)

        try:
            self.kv.set(storage_keys.DEVICE_ID, device_id)
        except StorageError as e:
            # Still usable for this process; a new id is generated next launch
            logger.error(f"[DEVICE_ID] Failed to persist device id {device_id}: {e}")
            capture_exception(e, extra={"key": storage_keys.DEVICE_ID})

        logger.debug(f"[DEVICE_ID] Generated short unique device id: {device_id}")
        self._cached = device_id
        return device_id
