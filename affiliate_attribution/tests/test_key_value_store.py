"""Unit tests for the key-value backends.

WHAT: InMemoryStore, JsonFileStore, RedisStore and build_store selection
WHY: Attribution only survives a restart if the backend really persists,
     and every backend must surface failures as StorageError
"""

from unittest.mock import MagicMock

import pytest
from redis import RedisError

from affiliate_attribution.config import AttributionSettings
from affiliate_attribution.errors import StorageError
from affiliate_attribution.services.key_value_store import (
    InMemoryStore,
    JsonFileStore,
    KeyValueStore,
    RedisStore,
    build_store,
)


def test_in_memory_store_basics():
    store = InMemoryStore({"a": "1"})

    store.set("b", "2")
    store.delete("a")
    store.delete("missing")

    assert store.get("a") is None
    assert store.has("b")
    assert store.snapshot() == {"b": "2"}
    assert isinstance(store, KeyValueStore)


class TestJsonFileStore:
    def test_values_survive_reopen(self, tmp_path):
        path = tmp_path / "state" / "attribution.json"
        JsonFileStore(path).set("InsertAffiliate_Identifier", "PROMO99-0A0B0C")

        reopened = JsonFileStore(path)

        assert reopened.get("InsertAffiliate_Identifier") == "PROMO99-0A0B0C"
        assert reopened.has("InsertAffiliate_Identifier")

    def test_delete_is_persisted(self, tmp_path):
        path = tmp_path / "attribution.json"
        store = JsonFileStore(path)
        store.set("k", "v")
        store.delete("k")

        assert JsonFileStore(path).get("k") is None

    def test_no_temp_files_left_behind(self, tmp_path):
        store = JsonFileStore(tmp_path / "attribution.json")
        store.set("k", "v")

        assert [p.name for p in tmp_path.iterdir()] == ["attribution.json"]

    def test_empty_file_is_an_empty_store(self, tmp_path):
        path = tmp_path / "attribution.json"
        path.write_text("")

        assert JsonFileStore(path).get("k") is None

    @pytest.mark.parametrize("content", ["{not json", '["a", "b"]'])
    def test_corrupt_file_raises_storage_error(self, tmp_path, content):
        path = tmp_path / "attribution.json"
        path.write_text(content)

        with pytest.raises(StorageError):
            JsonFileStore(path)


class TestRedisStore:
    def test_keys_are_namespaced(self):
        client = MagicMock()
        client.get.return_value = b"PROMO99-0A0B0C"
        client.exists.return_value = 1
        store = RedisStore(client, namespace="test:")

        store.set("InsertAffiliate_Identifier", "PROMO99-0A0B0C")

        client.set.assert_called_once_with("test:InsertAffiliate_Identifier", "PROMO99-0A0B0C")
        assert store.get("InsertAffiliate_Identifier") == "PROMO99-0A0B0C"
        assert store.has("InsertAffiliate_Identifier") is True

    @pytest.mark.parametrize("operation", ["get", "has", "delete"])
    def test_redis_errors_become_storage_errors(self, operation):
        client = MagicMock()
        client.get.side_effect = RedisError("connection refused")
        client.exists.side_effect = RedisError("connection refused")
        client.delete.side_effect = RedisError("connection refused")
        store = RedisStore(client)

        with pytest.raises(StorageError):
            getattr(store, operation)("k")

    def test_set_error_becomes_storage_error(self):
        client = MagicMock()
        client.set.side_effect = RedisError("read only replica")

        with pytest.raises(StorageError):
            RedisStore(client).set("k", "v")


class TestBuildStore:
    def test_redis_wins(self, tmp_path):
        settings = AttributionSettings(
            _env_file=None,
            redis_url="redis://localhost:6379/0",
            storage_path=str(tmp_path / "attribution.json"),
        )

        assert isinstance(build_store(settings), RedisStore)

    def test_file_store_when_path_set(self, tmp_path):
        settings = AttributionSettings(_env_file=None, storage_path=str(tmp_path / "attribution.json"))

        assert isinstance(build_store(settings), JsonFileStore)

    def test_falls_back_to_memory(self, caplog):
        settings = AttributionSettings(_env_file=None)

        assert isinstance(build_store(settings), InMemoryStore)
        assert "in-memory store" in caplog.text
