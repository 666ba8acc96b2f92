"""
Affiliate Attribution
=====================

Durable affiliate attribution identity for an installed app instance,
resolved against the Insert Affiliate API.

Usage:
    from affiliate_attribution import AttributionResolutionEngine, JsonFileStore

    engine = AttributionResolutionEngine(kv=JsonFileStore("attribution.json"))
    engine.initialize("ACME", attribution_window_seconds=30 * 24 * 3600)
    await engine.set_from_referral(deep_link)
"""

from .config import AttributionConfig, AttributionSettings, get_settings
from .errors import (
    AttributionError,
    ConfigurationError,
    ResponseParseError,
    ShortCodeValidationError,
    StorageError,
    TransportError,
)
from .services import (
    AttributionResolutionEngine,
    EnrichmentRecord,
    InMemoryStore,
    JsonFileStore,
    KeyValueStore,
    RedisStore,
    get_engine,
)

__version__ = "0.1.0"

__all__ = [
    "AttributionConfig",
    "AttributionSettings",
    "get_settings",
    "AttributionError",
    "ConfigurationError",
    "ResponseParseError",
    "ShortCodeValidationError",
    "StorageError",
    "TransportError",
    "AttributionResolutionEngine",
    "EnrichmentRecord",
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "RedisStore",
    "get_engine",
]
