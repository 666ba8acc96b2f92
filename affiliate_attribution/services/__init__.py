"""Attribution services: identity, persistence, resolution, enrichment."""

from .account_token_service import AccountTokenService
from .attribution_api_client import AttributionApiClient, TransportResult
from .attribution_store import AttributionStore, EnrichmentRecord
from .device_identity import DeviceIdentity, generate_device_id
from .enrichment_fetcher import EnrichmentFetcher
from .insert_links import InsertLink, parse_insert_link
from .key_value_store import InMemoryStore, JsonFileStore, KeyValueStore, RedisStore, build_store
from .link_resolver import LinkResolver, ResolutionOutcome
from .notifications import IdentifierChangeNotifier
from .referral_classifier import is_short_code_shaped, validate_short_code
from .resolution_engine import AttributionResolutionEngine, get_engine
from .task_runner import BackgroundTaskRunner

__all__ = [
    "AccountTokenService",
    "AttributionApiClient",
    "TransportResult",
    "AttributionStore",
    "EnrichmentRecord",
    "DeviceIdentity",
    "generate_device_id",
    "EnrichmentFetcher",
    "InsertLink",
    "parse_insert_link",
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "RedisStore",
    "build_store",
    "LinkResolver",
    "ResolutionOutcome",
    "IdentifierChangeNotifier",
    "is_short_code_shaped",
    "validate_short_code",
    "AttributionResolutionEngine",
    "get_engine",
    "BackgroundTaskRunner",
]
