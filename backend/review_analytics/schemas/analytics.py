"""Analytics request/response schemas."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

Severity = Literal["good", "warn", "bad"]
MetricKey = Literal["review_count", "avg_rating", "neg_share", "reply_rate", "timeseries"]

VIEWS = ("overview", "timeseries", "drivers", "quality", "drilldown", "compare", "insights")


class Insight(BaseModel):
    """One insight card."""

    model_config = ConfigDict(extra="ignore")

    title: str
    detail: str
    severity: Severity
    metric_keys: List[MetricKey] = Field(default_factory=list)


class AIInsightItem(BaseModel):
    """One insight as returned by the AI provider. Every field is required."""

    model_config = ConfigDict(extra="forbid")

    title: StrictStr = Field(min_length=1)
    detail: StrictStr = Field(min_length=1)
    severity: Severity
    metric_keys: List[MetricKey]


class InsightsResponse(BaseModel):
    mode: Literal["ai", "basic"]
    used_ai: bool
    insights: List[Insight] = Field(default_factory=list, max_length=7)


class AnalyticsQuery(BaseModel):
    """Query string of the analytics endpoint, aliases already resolved."""

    view: str = "overview"
    preset: Optional[str] = None
    location_id: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    tz: Optional[str] = None
    granularity: Optional[str] = None
    mode: str = "auto"
    tag: Optional[str] = None
    source: Optional[Literal["ai", "manual"]] = None
    tag_ids: Optional[str] = None
    offset: Optional[int] = None
    limit: Optional[int] = None

    @field_validator("view", mode="before")
    @classmethod
    def default_view(cls, v):
        """Unknown views fall back to overview."""
        value = (v or "").strip().lower()
        return value if value in VIEWS else "overview"

    @field_validator("mode", mode="before")
    @classmethod
    def default_mode(cls, v):
        value = (v or "").strip().lower()
        return value if value in ("auto", "ai", "basic") else "auto"

    @field_validator("source", mode="before")
    @classmethod
    def known_source(cls, v):
        value = (v or "").strip().lower()
        return value if value in ("ai", "manual") else None

    @field_validator("location_id", "tag", "tag_ids", "preset", "tz", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v
