"""
Meta Ads API endpoints: ad entities with merged insights, account insights
and breakdowns.
"""
import hashlib
import logging
import math
from datetime import date
from typing import AsyncIterator, List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel, Field, ValidationError
from app.auth import get_access_token, get_account_id
from app.models import (
    AccountInsightsResult,
    AdAccount,
    BreakdownsResult,
    DateRange,
    EntityInsightsRequest,
    EntityStatus,
    ReportingLevel,
)
from app.services.base import AdPlatformClient
from app.services.cache import CacheTTL, ResponseCache
from app.services.errors import (
    MetaApiError,
    RateLimitError,
    RequestError,
    TokenExpiredError,
    TransientError,
)
from app.services.meta_ads import create_meta_client, normalize_account_id
from app.services.orchestrator import InsightsOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/meta", tags=["meta"])


class StatusUpdate(BaseModel):
    """Requested delivery status of a campaign, ad set or ad."""
    status: EntityStatus = Field(..., description="ACTIVE or PAUSED")


class StatusUpdateResponse(BaseModel):
    success: bool
    id: str
    status: EntityStatus
    invalidated: int = Field(0, description="Cached responses dropped for the account")


async def get_meta_client(access_token: str = Depends(get_access_token)) -> AsyncIterator[AdPlatformClient]:
    """Per-request Meta client, closed once the response is sent."""
    client = create_meta_client(access_token)
    try:
        yield client
    finally:
        await client.close()


def get_cache(request: Request) -> ResponseCache:
    return request.app.state.cache


def get_orchestrator(request: Request) -> InsightsOrchestrator:
    return request.app.state.orchestrator


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def get_insights_request(
    account_id: str = Depends(get_account_id),
    date_range: DateRange = Query(DateRange.LAST_7_DAYS, alias="dateRange"),
    custom_date_start: Optional[date] = Query(None, alias="customDateStart"),
    custom_date_end: Optional[date] = Query(None, alias="customDateEnd"),
    breakdowns: Optional[str] = Query(None, description="Comma-separated breakdowns"),
    campaign_ids: Optional[str] = Query(None, alias="campaignIds", description="Comma-separated campaign ids"),
    entity_ids: Optional[str] = Query(None, alias="entityIds", description="Comma-separated entity ids"),
) -> EntityInsightsRequest:
    """Build the insights request from the caller's query parameters."""
    try:
        return EntityInsightsRequest(
            account_id=account_id,
            date_range=date_range,
            custom_since=custom_date_start,
            custom_until=custom_date_end,
            breakdowns=_split(breakdowns),
            entity_ids=_split(entity_ids) or _split(campaign_ids),
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={"kind": RequestError.kind, "message": e.errors()[0]["msg"]},
        )


def meta_error_response(error: MetaApiError) -> HTTPException:
    """
    Translate a classified Meta API failure into an HTTP error.

    Rate limits become 429 with a Retry-After header, rejected requests 400
    (401 for an expired token) and transient failures 503 (504 on timeout).
    """
    headers = None
    if isinstance(error, RateLimitError):
        status_code = 429
        if error.retry_after:
            headers = {"Retry-After": str(math.ceil(error.retry_after))}
    elif isinstance(error, TokenExpiredError):
        status_code = 401
    elif isinstance(error, RequestError):
        status_code = 400
    elif isinstance(error, TransientError):
        status_code = 504 if error.timed_out else 503
    else:
        status_code = 502
    return HTTPException(status_code=status_code, detail=error.to_dict(), headers=headers)


def _require(value: Optional[str], name: str) -> str:
    if not value or not value.strip():
        raise HTTPException(
            status_code=400,
            detail={"kind": RequestError.kind, "message": f"{name} is required"},
        )
    return value.strip()


@router.get("/accounts", response_model=List[AdAccount])
async def list_accounts(
    access_token: str = Depends(get_access_token),
    client: AdPlatformClient = Depends(get_meta_client),
    cache: ResponseCache = Depends(get_cache),
):
    """
    List the ad accounts visible to the access token.

    Cached per token (by digest) for the longest tier.
    """
    key = f"accounts:{hashlib.sha256(access_token.encode()).hexdigest()[:16]}"
    cached = cache.get(key)
    if cached is not None:
        return cached
    try:
        accounts = await client.list_ad_accounts()
    except MetaApiError as e:
        logger.warning(f"Listing ad accounts failed: {type(e).__name__}: {e}")
        raise meta_error_response(e) from e
    cache.set(key, accounts, CacheTTL.VERY_LONG)
    return accounts


@router.get("/campaigns")
async def get_campaigns(
    insights_request: EntityInsightsRequest = Depends(get_insights_request),
    client: AdPlatformClient = Depends(get_meta_client),
    orchestrator: InsightsOrchestrator = Depends(get_orchestrator),
):
    """
    Campaigns of the account, each with its performance for the window.

    Returns:
        entities, cache_hit, and partial/insights_error when insights were
        unavailable and every campaign carries a zero snapshot
    """
    try:
        return await orchestrator.campaigns_with_insights(client, insights_request)
    except MetaApiError as e:
        raise meta_error_response(e) from e


@router.get("/adsets")
async def get_adsets(
    campaign_id: Optional[str] = Query(None, alias="campaignId"),
    insights_request: EntityInsightsRequest = Depends(get_insights_request),
    client: AdPlatformClient = Depends(get_meta_client),
    orchestrator: InsightsOrchestrator = Depends(get_orchestrator),
):
    """Ad sets of a campaign with their performance."""
    campaign_id = _require(campaign_id, "campaignId")
    try:
        return await orchestrator.adsets_with_insights(client, insights_request, campaign_id)
    except MetaApiError as e:
        raise meta_error_response(e) from e


@router.get("/ads")
async def get_ads(
    ad_set_id: Optional[str] = Query(None, alias="adSetId"),
    insights_request: EntityInsightsRequest = Depends(get_insights_request),
    client: AdPlatformClient = Depends(get_meta_client),
    orchestrator: InsightsOrchestrator = Depends(get_orchestrator),
):
    """Ads of an ad set with their performance."""
    ad_set_id = _require(ad_set_id, "adSetId")
    try:
        return await orchestrator.ads_with_insights(client, insights_request, ad_set_id)
    except MetaApiError as e:
        raise meta_error_response(e) from e


@router.get("/insights", response_model=AccountInsightsResult)
async def get_insights(
    level: ReportingLevel = Query(ReportingLevel.ACCOUNT),
    compare: bool = Query(False, description="Include the previous period's daily series"),
    insights_request: EntityInsightsRequest = Depends(get_insights_request),
    client: AdPlatformClient = Depends(get_meta_client),
    orchestrator: InsightsOrchestrator = Depends(get_orchestrator),
):
    """
    Account summary and daily series for the window.

    With a breakdown, a per-day series by dimension value is included;
    with compare=true, the previous period's daily series as well.
    """
    try:
        return await orchestrator.account_insights(client, insights_request, level=level, compare=compare)
    except MetaApiError as e:
        raise meta_error_response(e) from e


@router.get("/insights/breakdowns", response_model=BreakdownsResult)
async def get_breakdowns(
    level: ReportingLevel = Query(ReportingLevel.ACCOUNT),
    insights_request: EntityInsightsRequest = Depends(get_insights_request),
    client: AdPlatformClient = Depends(get_meta_client),
    orchestrator: InsightsOrchestrator = Depends(get_orchestrator),
):
    """Age, gender, device, placement and hourly performance."""
    try:
        return await orchestrator.breakdowns(client, insights_request, level=level)
    except MetaApiError as e:
        raise meta_error_response(e) from e


@router.post("/adsets/{entity_id}/status", response_model=StatusUpdateResponse)
async def update_status(
    entity_id: str,
    update: StatusUpdate,
    account_id: Optional[str] = Query(None, alias="accountId"),
    x_account_id: Optional[str] = Header(None),
    client: AdPlatformClient = Depends(get_meta_client),
    cache: ResponseCache = Depends(get_cache),
):
    """
    Pause or activate an ad set (or a campaign or ad, by id).

    When the account is known, its cached responses are dropped so the next
    read shows the new status.
    """
    try:
        await client.update_status(entity_id, update.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"kind": RequestError.kind, "message": str(e)})
    except MetaApiError as e:
        raise meta_error_response(e) from e

    invalidated = 0
    account = account_id or x_account_id
    if account:
        invalidated = cache.invalidate_account(normalize_account_id(account))
    return StatusUpdateResponse(success=True, id=entity_id, status=update.status, invalidated=invalidated)


@router.get("/cache/stats")
async def cache_stats(cache: ResponseCache = Depends(get_cache)):
    """Response cache size and hit/miss counters."""
    return cache.stats()
