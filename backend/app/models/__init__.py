from app.models.entities import (
    Ad,
    AdAccount,
    AdEntity,
    AdSet,
    Campaign,
    EntityStatus,
    PerformanceSnapshot,
    ReportingLevel,
)
from app.models.insights import (
    AccountInsightsResult,
    ActionValue,
    BreakdownPoint,
    BreakdownsResult,
    DailyPoint,
    DateRange,
    EntityInsightsRequest,
    EntityInsightsResult,
    ErrorInfo,
    HourlyPoint,
    InsightRow,
    InsightsOptions,
    TimeRange,
)

__all__ = [
    "AccountInsightsResult",
    "ActionValue",
    "Ad",
    "AdAccount",
    "AdEntity",
    "AdSet",
    "BreakdownPoint",
    "BreakdownsResult",
    "Campaign",
    "DailyPoint",
    "DateRange",
    "EntityInsightsRequest",
    "EntityInsightsResult",
    "EntityStatus",
    "ErrorInfo",
    "HourlyPoint",
    "InsightRow",
    "InsightsOptions",
    "PerformanceSnapshot",
    "ReportingLevel",
    "TimeRange",
]
