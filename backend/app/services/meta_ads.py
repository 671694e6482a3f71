"""
Meta Marketing API client: entity listing and insights.
"""
import logging
from typing import Any, Dict, List
from app.models import (
    Ad,
    AdAccount,
    AdSet,
    Campaign,
    EntityStatus,
    InsightRow,
    InsightsOptions,
)
from app.services.base import AdPlatformClient
from app.services.http_client import RateLimitAwareHttpClient

logger = logging.getLogger(__name__)

ACCOUNT_PREFIX = "act_"

ACCOUNT_FIELDS = "id,account_id,name,currency,timezone_name,account_status,amount_spent"
CAMPAIGN_FIELDS = (
    "id,name,account_id,objective,status,effective_status,daily_budget,"
    "lifetime_budget,buying_type,start_time,stop_time"
)
ADSET_FIELDS = (
    "id,name,campaign_id,status,effective_status,daily_budget,lifetime_budget,"
    "optimization_goal,billing_event,start_time,end_time"
)
AD_FIELDS = "id,name,adset_id,campaign_id,status,effective_status,creative{id,name,title,body,image_url}"

UPDATABLE_STATUSES = {EntityStatus.ACTIVE, EntityStatus.PAUSED}


def normalize_account_id(account_id: str) -> str:
    """Prefix an ad account id with act_ unless it already carries it."""
    account_id = str(account_id).strip()
    if account_id.startswith(ACCOUNT_PREFIX):
        return account_id
    return f"{ACCOUNT_PREFIX}{account_id}"


class MetaAdsClient(AdPlatformClient):
    """Typed facade over the Graph API entity and insights endpoints."""

    def __init__(self, http: RateLimitAwareHttpClient):
        self.http = http

    async def __aenter__(self) -> "MetaAdsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self.http.close()

    def get_platform_name(self) -> str:
        return "meta_ads"

    async def list_ad_accounts(self) -> List[AdAccount]:
        rows = await self.http.get_all("/me/adaccounts", {"fields": ACCOUNT_FIELDS})
        return [AdAccount.model_validate(row) for row in rows]

    async def get_ad_account(self, account_id: str) -> AdAccount:
        payload = await self.http.get(f"/{normalize_account_id(account_id)}", {"fields": ACCOUNT_FIELDS})
        return AdAccount.model_validate(payload)

    async def list_campaigns(self, account_id: str) -> List[Campaign]:
        rows = await self.http.get_all(
            f"/{normalize_account_id(account_id)}/campaigns",
            {"fields": CAMPAIGN_FIELDS},
        )
        return [Campaign.model_validate(row) for row in rows]

    async def list_ad_sets(self, campaign_id: str) -> List[AdSet]:
        rows = await self.http.get_all(f"/{campaign_id}/adsets", {"fields": ADSET_FIELDS})
        return [
            AdSet.model_validate({**row, "campaign_id": row.get("campaign_id") or campaign_id})
            for row in rows
        ]

    async def list_ads(self, ad_set_id: str) -> List[Ad]:
        rows = await self.http.get_all(f"/{ad_set_id}/ads", {"fields": AD_FIELDS})
        return [
            Ad.model_validate({**row, "adset_id": row.get("adset_id") or ad_set_id})
            for row in rows
        ]

    async def get_insights(self, account_id: str, options: InsightsOptions) -> List[InsightRow]:
        account_id = normalize_account_id(account_id)
        rows = await self.http.get_all(f"/{account_id}/insights", options.to_params())
        logger.info(
            f"Fetched {len(rows)} insight rows for {account_id} "
            f"(level={options.level.value}, window={options.window_token}, "
            f"breakdowns={','.join(options.breakdowns) or '-'})"
        )
        return [InsightRow.model_validate(row) for row in rows]

    async def update_status(self, entity_id: str, status: EntityStatus) -> Dict[str, Any]:
        """
        Switch a campaign, ad set or ad between ACTIVE and PAUSED.

        Raises:
            ValueError: If the status cannot be set through the API
        """
        status = EntityStatus(status)
        if status not in UPDATABLE_STATUSES:
            raise ValueError(f"Status must be ACTIVE or PAUSED, got {status.value}")
        logger.info(f"Setting status of {entity_id} to {status.value}")
        return await self.http.post(f"/{entity_id}", {"status": status.value})


def create_meta_client(access_token: str) -> MetaAdsClient:
    """Create a Meta Ads client for the given access token using app settings."""
    return MetaAdsClient(RateLimitAwareHttpClient(access_token))
