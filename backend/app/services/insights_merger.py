"""
Joins insight rows onto ad entities and aggregates them for charts.

The platform can return several rows for one entity (daily slices or
breakdown buckets). Rows are folded into a single snapshot: additive counts
are summed, reach takes the maximum, cpm/cpc are weighted averages and
ctr/roas/cost_per_result are recomputed from the totals.
"""
import re
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TypeVar
from app.models import (
    ActionValue,
    AdEntity,
    BreakdownPoint,
    DailyPoint,
    HourlyPoint,
    InsightRow,
    PerformanceSnapshot,
    ReportingLevel,
)

# Priority order: the first type present in a row wins
CONVERSION_ACTION_TYPES = (
    "purchase",
    "omni_purchase",
    "offsite_conversion.fb_pixel_purchase",
)

HOURLY_BREAKDOWN = "hourly_stats_aggregated_by_advertiser_time_zone"
UNKNOWN_DIMENSION = "Unknown"

E = TypeVar("E", bound=AdEntity)

_HOUR_PATTERN = re.compile(r"^\s*(\d{1,2})")


def find_conversion_action(
    actions: Iterable[ActionValue],
    priority: Sequence[str] = CONVERSION_ACTION_TYPES,
) -> Optional[ActionValue]:
    """Return the highest-priority conversion action of a row, if any."""
    by_type: Dict[str, ActionValue] = {}
    for action in actions:
        by_type.setdefault(action.action_type, action)
    for action_type in priority:
        if action_type in by_type:
            return by_type[action_type]
    return None


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


class InsightsAccumulator:
    """Folds any number of insight rows for one key into a snapshot."""

    def __init__(self):
        self.rows = 0
        self.spend = 0.0
        self.impressions = 0
        self.clicks = 0
        self.reach = 0
        self.frequency = 0.0
        self.cpm = 0.0
        self.cpc = 0.0
        self.ctr = 0.0
        self.results = 0
        self.purchase_value = 0.0

    def add(self, row: InsightRow) -> None:
        action = find_conversion_action(row.actions)
        action_value = find_conversion_action(row.action_values)
        results = int(action.value) if action else 0
        purchase_value = action_value.value if action_value else 0.0

        if self.rows == 0:
            self.spend = row.spend
            self.impressions = row.impressions
            self.clicks = row.clicks
            self.reach = row.reach
            self.frequency = row.frequency
            self.cpm = row.cpm
            self.cpc = row.cpc
            self.ctr = row.ctr
            self.results = results
            self.purchase_value = purchase_value
        else:
            impressions = self.impressions + row.impressions
            clicks = self.clicks + row.clicks
            self.cpm = _ratio(self.cpm * self.impressions + row.cpm * row.impressions, impressions)
            self.cpc = _ratio(self.cpc * self.clicks + row.cpc * row.clicks, clicks)
            self.ctr = _ratio(clicks, impressions) * 100
            self.impressions = impressions
            self.clicks = clicks
            self.spend += row.spend
            self.results += results
            self.purchase_value += purchase_value
            # Reach is a unique-user estimate and cannot be added up
            self.reach = max(self.reach, row.reach)
            self.frequency = _ratio(self.impressions, self.reach)

        self.rows += 1

    def snapshot(self) -> PerformanceSnapshot:
        return PerformanceSnapshot(
            spend=self.spend,
            impressions=self.impressions,
            clicks=self.clicks,
            reach=self.reach,
            frequency=self.frequency,
            cpm=self.cpm,
            cpc=self.cpc,
            ctr=self.ctr,
            results=self.results,
            purchase_value=self.purchase_value,
            cost_per_result=_ratio(self.spend, self.results),
            roas=_ratio(self.purchase_value, self.spend),
        )


def aggregate_by(
    rows: Iterable[InsightRow],
    key: Callable[[InsightRow], Optional[str]],
) -> Dict[str, InsightsAccumulator]:
    """Group rows by ``key`` (rows keyed None are skipped), first-seen order."""
    groups: Dict[str, InsightsAccumulator] = {}
    for row in rows:
        group = key(row)
        if group is None:
            continue
        accumulator = groups.get(group)
        if accumulator is None:
            accumulator = groups[group] = InsightsAccumulator()
        accumulator.add(row)
    return groups


def merge_insights(
    entities: Sequence[E],
    rows: Iterable[InsightRow],
    level: ReportingLevel,
) -> List[E]:
    """
    Attach a performance snapshot to every entity.

    Entities without a matching row get a zero snapshot. Input order is kept.
    """
    groups = aggregate_by(rows, lambda row: row.entity_id(level))
    merged = []
    for entity in entities:
        accumulator = groups.get(entity.id)
        snapshot = accumulator.snapshot() if accumulator else PerformanceSnapshot.zero()
        merged.append(entity.with_performance(snapshot))
    return merged


def aggregate_rows(rows: Iterable[InsightRow]) -> PerformanceSnapshot:
    """Fold every row into one account-wide snapshot."""
    accumulator = InsightsAccumulator()
    for row in rows:
        accumulator.add(row)
    return accumulator.snapshot()


def aggregate_daily(rows: Iterable[InsightRow]) -> List[DailyPoint]:
    """One point per ``date_start``, ascending."""
    groups = aggregate_by(rows, lambda row: row.date_start)
    return [
        DailyPoint(date=day, **groups[day].snapshot().model_dump())
        for day in sorted(groups)
    ]


def aggregate_breakdown(
    rows: Iterable[InsightRow],
    dimension: str,
    by_date: bool = False,
) -> List[BreakdownPoint]:
    """
    One point per dimension value (per day as well when ``by_date``).

    Sorted by spend, highest first; dated points are ordered by date first.
    """
    def key(row: InsightRow) -> Optional[str]:
        value = row.dimension(dimension) or UNKNOWN_DIMENSION
        if by_date:
            if not row.date_start:
                return None
            return f"{row.date_start}|{value}"
        return value

    points = []
    for group, accumulator in aggregate_by(rows, key).items():
        day, _, value = group.partition("|") if by_date else (None, "", group)
        points.append(BreakdownPoint(dimension=value, date=day, **accumulator.snapshot().model_dump()))

    points.sort(key=lambda p: p.spend, reverse=True)
    if by_date:
        points.sort(key=lambda p: p.date)
    return points


def parse_hour(value: Optional[str]) -> Optional[int]:
    """Hour of day from an hourly stats bucket such as ``"13:00:00 - 13:59:59"``."""
    if not value:
        return None
    match = _HOUR_PATTERN.match(value)
    if not match:
        return None
    hour = int(match.group(1))
    return hour if 0 <= hour < 24 else None


def aggregate_hourly(rows: Iterable[InsightRow]) -> List[HourlyPoint]:
    """One point per hour of day in the advertiser's time zone, ascending."""
    def key(row: InsightRow) -> Optional[str]:
        hour = parse_hour(row.dimension(HOURLY_BREAKDOWN))
        return None if hour is None else f"{hour:02d}"

    groups = aggregate_by(rows, key)
    points = []
    for hour in sorted(groups):
        snapshot = groups[hour].snapshot()
        points.append(HourlyPoint(
            hour=int(hour),
            spend=snapshot.spend,
            impressions=snapshot.impressions,
            clicks=snapshot.clicks,
            results=snapshot.results,
            purchase_value=snapshot.purchase_value,
            ctr=snapshot.ctr,
            roas=snapshot.roas,
        ))
    return points
