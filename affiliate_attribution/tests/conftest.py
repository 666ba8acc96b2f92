"""Pytest configuration for attribution engine tests

WHAT: Shared fixtures for the store, clock, fake attribution API and engine
WHY: Every test runs against an in-memory store and an httpx.MockTransport,
     so no test touches the network or the filesystem unless it asks to
REFERENCES:
    - affiliate_attribution/services/resolution_engine.py: Engine under test
    - affiliate_attribution/services/attribution_api_client.py: Transport boundary
"""

import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from affiliate_attribution.config import AttributionConfig
from affiliate_attribution.errors import StorageError
from affiliate_attribution.services.account_token_service import AccountTokenService
from affiliate_attribution.services.attribution_store import AttributionStore
from affiliate_attribution.services.device_identity import DeviceIdentity
from affiliate_attribution.services.key_value_store import InMemoryStore
from affiliate_attribution.services.resolution_engine import AttributionResolutionEngine

COMPANY_CODE = "ABC123"


# ============================================================================
# Clock
# ============================================================================

class FakeClock:
    """Callable UTC clock that only moves when told to."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Storage
# ============================================================================

class FailingStore(InMemoryStore):
    """In-memory store whose writes (and optionally reads) always fail."""

    def __init__(self, fail_reads: bool = False):
        super().__init__()
        self.fail_reads = fail_reads

    def get(self, key: str) -> Optional[str]:
        if self.fail_reads:
            raise StorageError(f"read failed for {key}")
        return super().get(key)

    def set(self, key: str, value: str) -> None:
        raise StorageError(f"write failed for {key}")


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def config() -> AttributionConfig:
    return AttributionConfig(company_code=COMPANY_CODE, api_base_url="https://api.test")


@pytest.fixture
def windowed_config() -> AttributionConfig:
    return AttributionConfig(
        company_code=COMPANY_CODE,
        api_base_url="https://api.test",
        attribution_window_seconds=60,
    )


@pytest.fixture
def device_identity(memory_store) -> DeviceIdentity:
    return DeviceIdentity(memory_store)


@pytest.fixture
def attribution_store(memory_store, device_identity, config, clock) -> AttributionStore:
    return AttributionStore(memory_store, device_identity, config, clock=clock)


# ============================================================================
# Fake attribution API
# ============================================================================

Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class FakeAttributionApi:
    """Route table behind an httpx.MockTransport.

    Unrouted requests get a 404, which the engine treats as a transport failure.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Responder] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, responder: Responder) -> None:
        self.routes[(method.upper(), path)] = responder

    def json(self, method: str, path: str, payload: Any, status_code: int = 200) -> None:
        self.add(method, path, httpx.Response(status_code, json=payload))

    def text(self, method: str, path: str, body: str, status_code: int = 200) -> None:
        self.add(method, path, httpx.Response(status_code, text=body))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get((request.method, request.url.path))
        if responder is None:
            return httpx.Response(404, json={"message": "Route not found"})
        if callable(responder):
            return responder(request)
        return responder

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @staticmethod
    def body(request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content.decode("utf-8"))


@pytest.fixture
def fake_api() -> FakeAttributionApi:
    return FakeAttributionApi()


# ============================================================================
# Engine
# ============================================================================

@pytest.fixture
def uuid_sequence():
    """Deterministic uuid4 replacement."""
    counter = {"n": 0}

    def factory() -> uuid.UUID:
        counter["n"] += 1
        return uuid.UUID(int=counter["n"])

    return factory


@pytest.fixture
def make_engine(memory_store, fake_api, clock, uuid_sequence):
    """Build an engine wired to the in-memory store and fake API."""

    def _make(initialize: bool = True, **init_kwargs) -> AttributionResolutionEngine:
        engine = AttributionResolutionEngine(
            kv=memory_store,
            transport=fake_api.transport,
            clock=clock,
            uuid_factory=uuid_sequence,
        )
        if initialize:
            init_kwargs.setdefault("api_base_url", "https://api.test")
            engine.initialize(COMPANY_CODE, **init_kwargs)
        return engine

    return _make


@pytest.fixture
def engine(make_engine) -> AttributionResolutionEngine:
    return make_engine()


@pytest.fixture(autouse=True)
def reset_account_token_override():
    """The account token override is process-wide; never leak it between tests."""
    AccountTokenService.set_static_override(None)
    yield
    AccountTokenService.set_static_override(None)
