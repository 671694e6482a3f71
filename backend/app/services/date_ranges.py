"""
Date window handling: dashboard labels, platform presets and cache tiers.
"""
from datetime import date, timedelta
from typing import Iterable, Optional
from dateutil.relativedelta import relativedelta
from app.models import DateRange, InsightsOptions, ReportingLevel, TimeRange
from app.services.cache import CacheTTL

DATE_PRESETS = {
    DateRange.TODAY: "today",
    DateRange.YESTERDAY: "yesterday",
    DateRange.LAST_7_DAYS: "last_7d",
    DateRange.LAST_14_DAYS: "last_14d",
    DateRange.LAST_30_DAYS: "last_30d",
    DateRange.LAST_90_DAYS: "last_90d",
    DateRange.THIS_MONTH: "this_month",
    DateRange.LAST_MONTH: "last_month",
    DateRange.THIS_YEAR: "this_year",
    DateRange.LAST_YEAR: "last_year",
}

# The platform has no all-time preset; Maximum means this many years back
MAXIMUM_LOOKBACK_YEARS = 2

LAST_N_DAYS = {
    DateRange.LAST_7_DAYS: 7,
    DateRange.LAST_14_DAYS: 14,
    DateRange.LAST_30_DAYS: 30,
    DateRange.LAST_90_DAYS: 90,
}


def maximum_time_range(today: Optional[date] = None) -> TimeRange:
    today = today or date.today()
    return TimeRange(since=today - relativedelta(years=MAXIMUM_LOOKBACK_YEARS), until=today)


def resolve_options(
    date_range: DateRange,
    level: ReportingLevel,
    custom_since: Optional[date] = None,
    custom_until: Optional[date] = None,
    breakdowns: Iterable[str] = (),
    entity_ids: Iterable[str] = (),
    today: Optional[date] = None,
) -> InsightsOptions:
    """
    Build insights options for a dashboard window.

    An explicit custom window wins over the label. Maximum becomes an
    explicit two-year time range; every other label maps to its preset.
    """
    date_preset = None
    time_range = None
    if custom_since and custom_until:
        time_range = TimeRange(since=custom_since, until=custom_until)
    elif date_range == DateRange.MAXIMUM:
        time_range = maximum_time_range(today)
    else:
        date_preset = DATE_PRESETS[DateRange(date_range)]

    return InsightsOptions(
        date_preset=date_preset,
        time_range=time_range,
        level=level,
        breakdowns=[b.strip() for b in breakdowns if b and b.strip()],
        entity_ids=[i.strip() for i in entity_ids if i and i.strip()],
    )


def ttl_for(date_range: DateRange, custom: bool = False) -> CacheTTL:
    """Pick the cache tier: today's data churns, wide windows barely move."""
    if custom:
        return CacheTTL.MEDIUM
    if date_range == DateRange.TODAY:
        return CacheTTL.SHORT
    if date_range in (DateRange.LAST_90_DAYS, DateRange.MAXIMUM):
        return CacheTTL.LONG
    return CacheTTL.MEDIUM


def previous_period(
    date_range: DateRange,
    custom_since: Optional[date] = None,
    custom_until: Optional[date] = None,
    today: Optional[date] = None,
) -> Optional[TimeRange]:
    """
    The window of equal length immediately before the requested one.

    Calendar presets (months, years) and Maximum have no comparison window.
    """
    today = today or date.today()

    if custom_since and custom_until:
        length = (custom_until - custom_since).days + 1
        until = custom_since - timedelta(days=1)
        return TimeRange(since=until - timedelta(days=length - 1), until=until)

    if date_range == DateRange.TODAY:
        day = today - timedelta(days=1)
        return TimeRange(since=day, until=day)

    if date_range == DateRange.YESTERDAY:
        day = today - timedelta(days=2)
        return TimeRange(since=day, until=day)

    days = LAST_N_DAYS.get(date_range)
    if days:
        # last_Nd covers the N full days before today
        return TimeRange(
            since=today - timedelta(days=2 * days),
            until=today - timedelta(days=days + 1),
        )

    return None
