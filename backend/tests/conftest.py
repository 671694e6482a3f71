"""
Shared fixtures for all tests.
"""
import pytest
from datetime import date
from typing import Any, Dict, List, Optional
from fastapi import Depends
from fastapi.testclient import TestClient
from app.auth import get_access_token
from app.main import app
from app.models import (
    Ad,
    AdAccount,
    AdSet,
    Campaign,
    EntityStatus,
    InsightRow,
    InsightsOptions,
)
from app.routers.meta import get_meta_client
from app.services.base import AdPlatformClient
from app.services.cache import ResponseCache
from app.services.orchestrator import InsightsOrchestrator

TODAY = date(2026, 3, 15)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMetaClient(AdPlatformClient):
    """
    In-memory platform client.

    ``insights`` may be a list of rows, an exception to raise, or a callable
    taking the options and returning either.
    """

    def __init__(
        self,
        campaigns: Any = None,
        ad_sets: Any = None,
        ads: Any = None,
        insights: Any = None,
        accounts: Any = None,
    ):
        self.campaigns = campaigns if campaigns is not None else []
        self.ad_sets = ad_sets if ad_sets is not None else []
        self.ads = ads if ads is not None else []
        self.insights = insights if insights is not None else []
        self.accounts = accounts if accounts is not None else []
        self.insights_calls: List[InsightsOptions] = []
        self.status_updates: List[tuple] = []
        self.closed = False

    @staticmethod
    def _resolve(value: Any, *args) -> Any:
        if callable(value) and not isinstance(value, list):
            value = value(*args)
        if isinstance(value, Exception):
            raise value
        return value

    async def list_ad_accounts(self) -> List[AdAccount]:
        return self._resolve(self.accounts)

    async def list_campaigns(self, account_id: str) -> List[Campaign]:
        return self._resolve(self.campaigns)

    async def list_ad_sets(self, campaign_id: str) -> List[AdSet]:
        return self._resolve(self.ad_sets)

    async def list_ads(self, ad_set_id: str) -> List[Ad]:
        return self._resolve(self.ads)

    async def get_insights(self, account_id: str, options: InsightsOptions) -> List[InsightRow]:
        self.insights_calls.append(options)
        return self._resolve(self.insights, options)

    async def update_status(self, entity_id: str, status: EntityStatus) -> Dict[str, Any]:
        status = EntityStatus(status)
        if status not in (EntityStatus.ACTIVE, EntityStatus.PAUSED):
            raise ValueError(f"Status must be ACTIVE or PAUSED, got {status.value}")
        self.status_updates.append((entity_id, status))
        return {"success": True}

    def get_platform_name(self) -> str:
        return "fake"

    async def close(self) -> None:
        self.closed = True


def build_row(
    entity_id: Optional[str] = None,
    level: str = "campaign",
    spend: float = 0,
    impressions: int = 0,
    clicks: int = 0,
    reach: int = 0,
    cpm: float = 0,
    cpc: float = 0,
    ctr: float = 0,
    frequency: float = 0,
    purchases: Optional[int] = None,
    purchase_value: Optional[float] = None,
    **extra: Any,
) -> InsightRow:
    """Insight row in the Graph API wire shape (numbers as strings)."""
    payload: Dict[str, Any] = {
        "spend": str(spend),
        "impressions": str(impressions),
        "clicks": str(clicks),
        "reach": str(reach),
        "cpm": str(cpm),
        "cpc": str(cpc),
        "ctr": str(ctr),
        "frequency": str(frequency),
    }
    if entity_id is not None:
        payload[f"{level}_id"] = entity_id
    if purchases is not None:
        payload["actions"] = [{"action_type": "purchase", "value": str(purchases)}]
    if purchase_value is not None:
        payload["action_values"] = [{"action_type": "purchase", "value": str(purchase_value)}]
    payload.update(extra)
    return InsightRow.model_validate(payload)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResponseCache(max_entries=100, clock=clock)


@pytest.fixture
def orchestrator(cache):
    return InsightsOrchestrator(cache, deadline=5, today=lambda: TODAY)


@pytest.fixture
def sample_campaigns():
    return [
        Campaign(id="c1", name="A", account_id="999", status="ACTIVE"),
        Campaign(id="c2", name="B", account_id="999", status="PAUSED"),
    ]


@pytest.fixture
def fake_client(sample_campaigns):
    return FakeMetaClient(campaigns=sample_campaigns)


@pytest.fixture
def client(fake_client, orchestrator, cache):
    """FastAPI test client with the Meta client replaced by a fake."""
    async def override_meta_client(access_token: str = Depends(get_access_token)):
        yield fake_client

    app.dependency_overrides[get_meta_client] = override_meta_client
    with TestClient(app) as c:
        # Lifespan has built the real cache; swap in the test instances
        app.state.cache = cache
        app.state.orchestrator = orchestrator
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Headers carrying a test access token and ad account."""
    return {"Authorization": "Bearer test-token", "X-Account-Id": "999"}


@pytest.fixture
def make_row():
    """Factory fixture building insight rows."""
    return build_row


@pytest.fixture
def make_client():
    """Factory fixture building fake platform clients."""
    return FakeMetaClient
