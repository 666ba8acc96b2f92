"""Key-value persistence backends.

WHAT:
    String-keyed, string-valued stores the engine persists its state in:
    - InMemoryStore: process-local dict (tests, ephemeral hosts)
    - JsonFileStore: single JSON document on disk, durable across restarts
    - RedisStore: shared Redis instance, durable and multi-process

WHY:
    The engine only needs get/set/has/delete. Keeping the boundary this small
    lets hosts plug in whatever the platform offers while the engine logic
    stays the same.

HOW:
    Every backend wraps its native failures (OSError, RedisError, bad JSON)
    in StorageError so callers handle one exception type.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol, Union, runtime_checkable

from redis import Redis, RedisError

from ..config import AttributionSettings
from ..errors import StorageError

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Persistence boundary consumed by the engine."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def has(self, key: str) -> bool: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    """Dict-backed store. Not durable across restarts."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        """Copy of the current contents (debugging and tests)."""
        with self._lock:
            return dict(self._data)


class JsonFileStore:
    """Store persisted as one JSON object in a file.

    Writes go to a temp file in the same directory and are moved into place
    with os.replace, so a crash mid-write leaves the previous document intact.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Cannot read store file {self.path}: {e}") from e

        if not raw.strip():
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Store file {self.path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"Store file {self.path} must contain a JSON object")

        return {str(k): str(v) for k, v in data.items()}

    def _flush(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self._data, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Cannot write store file {self.path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()


class RedisStore:
    """Store backed by Redis string keys under a namespace prefix."""

    def __init__(self, client: Redis, namespace: str = "affiliate_attribution:"):
        self.client = client
        self.namespace = namespace

    @classmethod
    def from_url(cls, url: str, namespace: str = "affiliate_attribution:") -> "RedisStore":
        return cls(Redis.from_url(url, decode_responses=True), namespace=namespace)

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            value = self.client.get(self._key(key))
        except RedisError as e:
            raise StorageError(f"Redis GET failed for {key}: {e}") from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self.client.set(self._key(key), value)
        except RedisError as e:
            raise StorageError(f"Redis SET failed for {key}: {e}") from e

    def has(self, key: str) -> bool:
        try:
            return bool(self.client.exists(self._key(key)))
        except RedisError as e:
            raise StorageError(f"Redis EXISTS failed for {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except RedisError as e:
            raise StorageError(f"Redis DEL failed for {key}: {e}") from e


def build_store(settings: AttributionSettings) -> KeyValueStore:
    """Pick a backend from settings.

    Priority: redis_url > storage_path > in-memory.
    """
    if settings.redis_url:
        logger.info("[KV_STORE] Using Redis store")
        return RedisStore.from_url(settings.redis_url)

    if settings.storage_path:
        logger.info(f"[KV_STORE] Using JSON file store at {settings.storage_path}")
        return JsonFileStore(settings.storage_path)

    logger.warning("[KV_STORE] No storage configured, using in-memory store (attribution will not survive restarts)")
    return InMemoryStore()
