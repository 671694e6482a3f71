"""
Request orchestration: cache lookup, concurrent fetches, merge and store.

Entity listing and insights are fetched concurrently and settled together,
each branch bounded by the deadline on its own.
A failed entity fetch fails the request; a failed insights fetch degrades
to zero-valued snapshots and the degraded result is not cached.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union
from app.config import settings
from app.models import (
    AccountInsightsResult,
    AdEntity,
    BreakdownsResult,
    EntityInsightsRequest,
    EntityInsightsResult,
    ErrorInfo,
    InsightRow,
    InsightsOptions,
    ReportingLevel,
)
from app.services.base import AdPlatformClient
from app.services.cache import ResponseCache, build_cache_key
from app.services.date_ranges import previous_period, resolve_options, ttl_for
from app.services.errors import MetaApiError, PartialDataError, TransientError
from app.services.insights_merger import (
    HOURLY_BREAKDOWN,
    aggregate_breakdown,
    aggregate_daily,
    aggregate_hourly,
    aggregate_rows,
    merge_insights,
)

logger = logging.getLogger(__name__)

# Result field -> platform breakdown
BREAKDOWN_DIMENSIONS = {
    "age": "age",
    "gender": "gender",
    "device": "device_platform",
    "placement": "publisher_platform",
    "hourly": HOURLY_BREAKDOWN,
}


@dataclass(frozen=True)
class Ok:
    value: Any


@dataclass(frozen=True)
class Err:
    error: Exception


Settled = Union[Ok, Err]


async def settle(*aws: Awaitable[Any]) -> List[Settled]:
    """
    Await every branch and report each outcome as Ok or Err.

    Unlike a plain gather, one failing branch never hides the others.
    Cancellation and other BaseExceptions still propagate.
    """
    outcomes = await asyncio.gather(*aws, return_exceptions=True)
    settled: List[Settled] = []
    for outcome in outcomes:
        if isinstance(outcome, Exception):
            settled.append(Err(outcome))
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            settled.append(Ok(outcome))
    return settled


def error_info(error: Exception) -> ErrorInfo:
    """Structured description of a failure for degraded results."""
    if isinstance(error, MetaApiError):
        return ErrorInfo.model_validate(error.to_dict())
    return ErrorInfo(kind=TransientError.kind, message=str(error) or type(error).__name__)


class InsightsOrchestrator:
    """
    Serves entity and account insights through the shared response cache.

    Args:
        cache: Process-wide response cache
        deadline: Overall time budget of one request in seconds
        today: Date source, replaceable in tests
    """

    def __init__(
        self,
        cache: ResponseCache,
        deadline: float = settings.meta_request_deadline_seconds,
        today: Callable[[], date] = date.today,
    ):
        self.cache = cache
        self.deadline = deadline
        self._today = today

    async def campaigns_with_insights(
        self,
        client: AdPlatformClient,
        request: EntityInsightsRequest,
    ) -> EntityInsightsResult:
        return await self._entities_with_insights(
            client,
            request,
            scope="campaigns",
            level=ReportingLevel.CAMPAIGN,
            list_entities=lambda: client.list_campaigns(request.account_id),
        )

    async def adsets_with_insights(
        self,
        client: AdPlatformClient,
        request: EntityInsightsRequest,
        campaign_id: str,
    ) -> EntityInsightsResult:
        return await self._entities_with_insights(
            client,
            request,
            scope="adsets",
            level=ReportingLevel.ADSET,
            list_entities=lambda: client.list_ad_sets(campaign_id),
            parent_id=campaign_id,
        )

    async def ads_with_insights(
        self,
        client: AdPlatformClient,
        request: EntityInsightsRequest,
        ad_set_id: str,
    ) -> EntityInsightsResult:
        return await self._entities_with_insights(
            client,
            request,
            scope="ads",
            level=ReportingLevel.AD,
            list_entities=lambda: client.list_ads(ad_set_id),
            parent_id=ad_set_id,
        )

    async def account_insights(
        self,
        client: AdPlatformClient,
        request: EntityInsightsRequest,
        level: ReportingLevel = ReportingLevel.ACCOUNT,
        compare: bool = False,
    ) -> AccountInsightsResult:
        """
        Account summary with a daily series.

        Filtering by campaign ids needs campaign_id on every row, so an
        account-level request with ids is fetched at campaign level. With
        ``compare`` the previous period's daily series is added; its failure
        is logged and leaves ``previous_daily`` empty.
        """
        if request.entity_ids and level == ReportingLevel.ACCOUNT:
            level = ReportingLevel.CAMPAIGN
        options = self._options(request, level)
        options.time_increment = 1
        key = build_cache_key("insights", request.account_id, options)
        if compare:
            key = f"{key}:compare"

        cached = self._cached(key)
        if cached is not None:
            return cached

        branches = [client.get_insights(request.account_id, options)]
        previous = None
        if compare:
            previous = previous_period(
                request.date_range, request.custom_since, request.custom_until, today=self._today()
            )
        if previous is not None:
            branches.append(client.get_insights(
                request.account_id,
                options.model_copy(update={"date_preset": None, "time_range": previous}),
            ))

        outcomes = await self._settle_with_deadline(branches, request.account_id, "insights")
        current = outcomes[0]
        if isinstance(current, Err):
            self._log_failure(current.error, request, options, "Account insights")
            raise current.error

        rows = self._filter_campaigns(current.value, request.entity_ids)
        result = AccountInsightsResult(
            summary=aggregate_rows(rows),
            daily=aggregate_daily(rows),
        )
        cacheable = True
        if compare:
            result.previous_daily = []
            if len(outcomes) > 1:
                if isinstance(outcomes[1], Ok):
                    previous_rows = self._filter_campaigns(outcomes[1].value, request.entity_ids)
                    result.previous_daily = aggregate_daily(previous_rows)
                else:
                    self._log_failure(outcomes[1].error, request, options, "Previous period insights")
                    cacheable = False
        if options.breakdowns:
            dimension = options.breakdowns[0]
            result.breakdown_type = dimension
            result.breakdown = aggregate_breakdown(rows, dimension, by_date=True)

        if cacheable:
            self._store(key, result, request)
        return result

    async def breakdowns(
        self,
        client: AdPlatformClient,
        request: EntityInsightsRequest,
        level: ReportingLevel = ReportingLevel.ACCOUNT,
    ) -> BreakdownsResult:
        """
        Age, gender, device, placement and hourly breakdowns.

        Each breakdown is its own request and fails on its own; failed ones
        are listed in ``failed``. As with account insights, ids on an
        account-level request switch the fetch to campaign level. If every breakdown fails the first error
        is raised so a rate limit never shows up as empty charts.
        """
        if request.entity_ids and level == ReportingLevel.ACCOUNT:
            level = ReportingLevel.CAMPAIGN
        base = self._options(request, level)
        key = build_cache_key("breakdowns", request.account_id, base)
        cached = self._cached(key)
        if cached is not None:
            return cached

        names = list(BREAKDOWN_DIMENSIONS)
        outcomes = await self._settle_with_deadline(
            [
                client.get_insights(
                    request.account_id,
                    base.model_copy(update={"breakdowns": [BREAKDOWN_DIMENSIONS[name]]}),
                )
                for name in names
            ],
            request.account_id,
            "breakdowns",
        )

        errors = [outcome.error for outcome in outcomes if isinstance(outcome, Err)]
        if len(errors) == len(outcomes):
            self._log_failure(errors[0], request, base, "Breakdowns")
            raise errors[0]

        result = BreakdownsResult()
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, Err):
                self._log_failure(outcome.error, request, base, f"{name.capitalize()} breakdown")
                result.failed.append(name)
                continue
            rows = self._filter_entities(outcome.value, level, request.entity_ids)
            if name == "hourly":
                result.hourly = aggregate_hourly(rows)
            else:
                setattr(result, name, aggregate_breakdown(rows, BREAKDOWN_DIMENSIONS[name]))

        if not result.failed:
            self._store(key, result, request)
        return result

    async def _entities_with_insights(
        self,
        client: AdPlatformClient,
        request: EntityInsightsRequest,
        scope: str,
        level: ReportingLevel,
        list_entities: Callable[[], Awaitable[Sequence[AdEntity]]],
        parent_id: Optional[str] = None,
    ) -> EntityInsightsResult:
        options = self._options(request, level)
        key = build_cache_key(scope, request.account_id, options)
        if parent_id is not None:
            key = f"{key}:{parent_id}"

        cached = self._cached(key)
        if cached is not None:
            return cached

        entities_outcome, insights_outcome = await self._settle_with_deadline(
            [list_entities(), client.get_insights(request.account_id, options)],
            request.account_id,
            scope,
        )

        if isinstance(entities_outcome, Err):
            self._log_failure(entities_outcome.error, request, options, f"Listing {scope}")
            raise entities_outcome.error

        entities = list(entities_outcome.value)
        if request.entity_ids:
            wanted = set(request.entity_ids)
            entities = [entity for entity in entities if entity.id in wanted]

        if isinstance(insights_outcome, Err):
            self._log_failure(insights_outcome.error, request, options, f"Insights for {scope}")
            degraded = PartialDataError(f"Insights unavailable for {scope}", cause=insights_outcome.error)
            return EntityInsightsResult(
                entities=merge_insights(entities, [], level),
                partial=True,
                insights_error=error_info(degraded),
            )

        result = EntityInsightsResult(entities=merge_insights(entities, insights_outcome.value, level))
        self._store(key, result, request)
        logger.debug(f"Cached {len(result.entities)} {scope} under {key}")
        return result

    async def _settle_with_deadline(
        self,
        aws: List[Awaitable[Any]],
        account_id: str,
        scope: str,
    ) -> List[Settled]:
        """Settle all branches, each bounded by the deadline on its own."""
        return await settle(*(self._bounded(aw, account_id, scope) for aw in aws))

    async def _bounded(self, aw: Awaitable[Any], account_id: str, scope: str) -> Any:
        # A slow branch times out alone; its siblings keep their results
        try:
            return await asyncio.wait_for(aw, timeout=self.deadline)
        except asyncio.TimeoutError:
            logger.error(f"Request for {scope} of {account_id} exceeded {self.deadline}s deadline")
            raise TransientError(
                f"Meta API did not answer within {self.deadline:g} seconds",
                timed_out=True,
            )

    def _store(self, key: str, result: Any, request: EntityInsightsRequest) -> None:
        # Callers own the returned result; the cache keeps its own copy
        self.cache.set(key, result.model_copy(deep=True), ttl_for(request.date_range, self._is_custom(request)))

    def _cached(self, key: str) -> Optional[Any]:
        cached = self.cache.get(key)
        if cached is None:
            return None
        logger.debug(f"Cache hit for {key}")
        return cached.model_copy(update={"cache_hit": True}, deep=True)

    def _options(self, request: EntityInsightsRequest, level: ReportingLevel) -> InsightsOptions:
        return resolve_options(
            request.date_range,
            level,
            custom_since=request.custom_since,
            custom_until=request.custom_until,
            breakdowns=request.breakdowns,
            entity_ids=request.entity_ids,
            today=self._today(),
        )

    @staticmethod
    def _is_custom(request: EntityInsightsRequest) -> bool:
        return request.custom_since is not None and request.custom_until is not None

    @staticmethod
    def _filter_campaigns(rows: List[InsightRow], campaign_ids: Sequence[str]) -> List[InsightRow]:
        if not campaign_ids:
            return rows
        wanted = set(campaign_ids)
        return [row for row in rows if row.campaign_id in wanted]

    @staticmethod
    def _filter_entities(
        rows: List[InsightRow],
        level: ReportingLevel,
        entity_ids: Sequence[str],
    ) -> List[InsightRow]:
        if not entity_ids or level == ReportingLevel.ACCOUNT:
            return rows
        wanted = set(entity_ids)
        return [row for row in rows if row.entity_id(level) in wanted]

    @staticmethod
    def _log_failure(
        error: Exception,
        request: EntityInsightsRequest,
        options: InsightsOptions,
        what: str,
    ) -> None:
        # Token never appears here: errors carry Graph API messages only
        logger.warning(
            f"{what} failed for {request.account_id} "
            f"(level={options.level.value}, window={options.window_token}, "
            f"breakdowns={','.join(options.breakdowns) or '-'}): "
            f"{type(error).__name__}: {error}"
        )

