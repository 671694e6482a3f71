"""
Pydantic models for Meta ad entities and their performance snapshots.
"""
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class EntityStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    DELETED = "DELETED"
    ARCHIVED = "ARCHIVED"
    # Effective (delivery) statuses
    IN_PROCESS = "IN_PROCESS"
    WITH_ISSUES = "WITH_ISSUES"
    CAMPAIGN_PAUSED = "CAMPAIGN_PAUSED"
    CAMPAIGN_GROUP_PAUSED = "CAMPAIGN_GROUP_PAUSED"
    ADSET_PAUSED = "ADSET_PAUSED"
    PENDING_REVIEW = "PENDING_REVIEW"
    DISAPPROVED = "DISAPPROVED"
    PREAPPROVED = "PREAPPROVED"
    PENDING_BILLING_INFO = "PENDING_BILLING_INFO"
    UNKNOWN = "UNKNOWN"


class ReportingLevel(str, Enum):
    ACCOUNT = "account"
    CAMPAIGN = "campaign"
    ADSET = "adset"
    AD = "ad"

    @property
    def id_field(self) -> str:
        """Insight row field carrying the entity id at this level."""
        return f"{self.value}_id"


def _coerce_status(value: Any) -> Any:
    if value is None or isinstance(value, EntityStatus):
        return value
    try:
        return EntityStatus(str(value).upper())
    except ValueError:
        return EntityStatus.UNKNOWN


class PerformanceSnapshot(BaseModel):
    """Performance metrics attached to an entity once insights are merged."""
    spend: float = Field(0.0, description="Amount spent in the account currency")
    impressions: int = Field(0, description="Impression count")
    clicks: int = Field(0, description="Click count")
    reach: int = Field(0, description="Estimated unique users reached")
    frequency: float = Field(0.0, description="Average impressions per reached user")
    cpm: float = Field(0.0, description="Cost per 1,000 impressions")
    cpc: float = Field(0.0, description="Cost per click")
    ctr: float = Field(0.0, description="Click-through rate in percent")
    results: int = Field(0, description="Count of the designated conversion action")
    purchase_value: float = Field(0.0, description="Monetary value of the conversion action")
    cost_per_result: float = Field(0.0, description="spend / results, 0 when there are no results")
    roas: float = Field(0.0, description="purchase_value / spend, 0 when nothing was spent")

    @classmethod
    def zero(cls) -> "PerformanceSnapshot":
        return cls()


class AdAccount(BaseModel):
    id: str = Field(..., description="Prefixed account id (act_...)")
    account_id: Optional[str] = Field(None, description="Numeric account id")
    name: Optional[str] = None
    currency: Optional[str] = None
    timezone_name: Optional[str] = None
    account_status: Optional[int] = None
    amount_spent: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="ignore")


class AdEntity(BaseModel):
    """
    Common shape of campaigns, ad sets and ads.

    Entities are immutable values fetched fresh per request; merging insights
    produces a copy with ``performance`` populated.
    """
    id: str = Field(..., description="Platform-assigned entity id")
    name: str = Field("", description="Display name")
    status: EntityStatus = Field(EntityStatus.UNKNOWN, description="Configured lifecycle status")
    effective_status: Optional[EntityStatus] = Field(None, description="Actual delivery status")
    performance: Optional[PerformanceSnapshot] = None

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("status", "effective_status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Any:
        return _coerce_status(value)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @property
    def parent_id(self) -> Optional[str]:
        return None

    def with_performance(self, snapshot: PerformanceSnapshot) -> "AdEntity":
        return self.model_copy(update={"performance": snapshot})


class Campaign(AdEntity):
    account_id: Optional[str] = None
    objective: Optional[str] = None
    daily_budget: Optional[str] = None
    lifetime_budget: Optional[str] = None
    buying_type: Optional[str] = None
    start_time: Optional[str] = None
    stop_time: Optional[str] = None

    @property
    def parent_id(self) -> Optional[str]:
        return self.account_id


class AdSet(AdEntity):
    campaign_id: Optional[str] = None
    daily_budget: Optional[str] = None
    lifetime_budget: Optional[str] = None
    optimization_goal: Optional[str] = None
    billing_event: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @property
    def parent_id(self) -> Optional[str]:
        return self.campaign_id


class Ad(AdEntity):
    adset_id: Optional[str] = None
    campaign_id: Optional[str] = None
    creative: Optional[Dict[str, Any]] = None

    @property
    def parent_id(self) -> Optional[str]:
        return self.adset_id
