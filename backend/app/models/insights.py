"""
Pydantic models for insight rows, reporting options and API results.
"""
import json
from datetime import date as DateType
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializeAsAny,
    field_validator,
    model_validator,
)
from app.models.entities import AdEntity, PerformanceSnapshot, ReportingLevel

INSIGHT_FIELDS = [
    "account_id",
    "campaign_id",
    "campaign_name",
    "adset_id",
    "adset_name",
    "ad_id",
    "ad_name",
    "date_start",
    "date_stop",
    "impressions",
    "clicks",
    "spend",
    "cpm",
    "cpc",
    "ctr",
    "reach",
    "frequency",
    "actions",
    "action_values",
]


class DateRange(str, Enum):
    """Date windows offered by the dashboard, keyed by their display label."""
    TODAY = "Today"
    YESTERDAY = "Yesterday"
    LAST_7_DAYS = "Last 7 Days"
    LAST_14_DAYS = "Last 14 Days"
    LAST_30_DAYS = "Last 30 Days"
    LAST_90_DAYS = "Last 90 Days"
    THIS_MONTH = "This Month"
    LAST_MONTH = "Last Month"
    THIS_YEAR = "This Year"
    LAST_YEAR = "Last Year"
    MAXIMUM = "Maximum"


class ActionValue(BaseModel):
    """One (action_type, value) pair from an insight row's actions list."""
    action_type: str
    value: float = 0.0

    @field_validator("value", mode="before")
    @classmethod
    def _blank_is_zero(cls, value: Any) -> Any:
        return 0.0 if value in (None, "") else value


class InsightRow(BaseModel):
    """
    Raw insight record for one entity and one date/breakdown slice.

    Numbers arrive as strings from the Graph API and are coerced here.
    Breakdown dimension values (age, gender, ...) are kept as extra fields.
    """
    account_id: Optional[str] = None
    campaign_id: Optional[str] = None
    campaign_name: Optional[str] = None
    adset_id: Optional[str] = None
    adset_name: Optional[str] = None
    ad_id: Optional[str] = None
    ad_name: Optional[str] = None
    date_start: Optional[str] = None
    date_stop: Optional[str] = None
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    reach: int = 0
    frequency: float = 0.0
    cpm: float = 0.0
    cpc: float = 0.0
    ctr: float = 0.0
    actions: List[ActionValue] = Field(default_factory=list)
    action_values: List[ActionValue] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    @field_validator("account_id", "campaign_id", "adset_id", "ad_id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        return str(value) if value not in (None, "") else None

    @field_validator("spend", "frequency", "cpm", "cpc", "ctr", mode="before")
    @classmethod
    def _decimal(cls, value: Any) -> Any:
        return 0.0 if value in (None, "") else value

    @field_validator("impressions", "clicks", "reach", mode="before")
    @classmethod
    def _count(cls, value: Any) -> Any:
        if value in (None, ""):
            return 0
        return int(float(value))

    @field_validator("actions", "action_values", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return value or []

    def entity_id(self, level: ReportingLevel) -> Optional[str]:
        return getattr(self, level.id_field)

    def dimension(self, name: str) -> Optional[str]:
        value = (self.model_extra or {}).get(name)
        return str(value) if value not in (None, "") else None


class TimeRange(BaseModel):
    since: DateType
    until: DateType

    @model_validator(mode="after")
    def _ordered(self) -> "TimeRange":
        if self.since > self.until:
            raise ValueError("time_range.since must not be after time_range.until")
        return self

    def to_param(self) -> str:
        return json.dumps({"since": self.since.isoformat(), "until": self.until.isoformat()})


class InsightsOptions(BaseModel):
    """
    Options of one insights query. Exactly one of ``date_preset`` or
    ``time_range`` selects the window.
    """
    date_preset: Optional[str] = None
    time_range: Optional[TimeRange] = None
    level: ReportingLevel = ReportingLevel.ACCOUNT
    breakdowns: List[str] = Field(default_factory=list)
    entity_ids: List[str] = Field(default_factory=list)
    time_increment: Optional[int] = Field(None, description="Split rows into N-day buckets")

    @model_validator(mode="after")
    def _one_window(self) -> "InsightsOptions":
        if bool(self.date_preset) == bool(self.time_range):
            raise ValueError("exactly one of date_preset or time_range is required")
        return self

    @property
    def window_token(self) -> str:
        if self.time_range:
            return f"{self.time_range.since.isoformat()}-{self.time_range.until.isoformat()}"
        return self.date_preset or ""

    def to_params(self) -> Dict[str, str]:
        params = {
            "fields": ",".join(INSIGHT_FIELDS),
            "level": self.level.value,
        }
        if self.time_range:
            params["time_range"] = self.time_range.to_param()
        else:
            params["date_preset"] = self.date_preset
        if self.breakdowns:
            params["breakdowns"] = ",".join(self.breakdowns)
        if self.time_increment:
            params["time_increment"] = str(self.time_increment)
        return params


class EntityInsightsRequest(BaseModel):
    """Caller-facing request for entities annotated with insights."""
    account_id: str
    date_range: DateRange = DateRange.LAST_7_DAYS
    custom_since: Optional[DateType] = None
    custom_until: Optional[DateType] = None
    breakdowns: List[str] = Field(default_factory=list)
    entity_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _custom_pair(self) -> "EntityInsightsRequest":
        if (self.custom_since is None) != (self.custom_until is None):
            raise ValueError("customDateStart and customDateEnd must be given together")
        if self.custom_since and self.custom_since > self.custom_until:
            raise ValueError("customDateStart must not be after customDateEnd")
        return self


class ErrorInfo(BaseModel):
    """Structured error returned to callers instead of a generic failure."""
    kind: str
    message: str
    retry_after: Optional[float] = None
    usage_percent: Optional[float] = None


class EntityInsightsResult(BaseModel):
    entities: List[SerializeAsAny[AdEntity]] = Field(default_factory=list)
    cache_hit: bool = False
    partial: bool = False
    insights_error: Optional[ErrorInfo] = None


class DailyPoint(PerformanceSnapshot):
    date: str


class BreakdownPoint(PerformanceSnapshot):
    dimension: str
    date: Optional[str] = None


class HourlyPoint(BaseModel):
    hour: int
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    results: int = 0
    purchase_value: float = 0.0
    ctr: float = 0.0
    roas: float = 0.0


class AccountInsightsResult(BaseModel):
    summary: PerformanceSnapshot
    daily: List[DailyPoint] = Field(default_factory=list)
    previous_daily: Optional[List[DailyPoint]] = None
    breakdown: Optional[List[BreakdownPoint]] = None
    breakdown_type: Optional[str] = None
    cache_hit: bool = False


class BreakdownsResult(BaseModel):
    age: List[BreakdownPoint] = Field(default_factory=list)
    gender: List[BreakdownPoint] = Field(default_factory=list)
    device: List[BreakdownPoint] = Field(default_factory=list)
    placement: List[BreakdownPoint] = Field(default_factory=list)
    hourly: List[HourlyPoint] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list, description="Breakdowns that could not be fetched")
    cache_hit: bool = False
