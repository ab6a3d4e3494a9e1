"""Insight generation: deterministic rules, optionally rewritten by an LLM.

The rule-based list is always computed first and kept as the fallback.
When an AI provider is configured (and the caller did not ask for "basic")
the generator walks a small state machine:

    RULES_ONLY                      AI not eligible, rules are returned
    AI_REQUESTED -> DONE_AI         first answer validates
    AI_REQUESTED -> REPAIR_REQUESTED -> DONE_AI | DONE_BASIC

Any provider failure (timeout, transport error, non-2xx, unusable output)
ends in DONE_BASIC with the rule-based list. AI failures are logged, never
raised to the caller.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Callable, Dict, List, Optional, Protocol, Union

import httpx
from pydantic import Field, TypeAdapter, ValidationError

from review_analytics.core.config import Settings
from review_analytics.core.errors import AIProtocolError
from review_analytics.schemas.analytics import AIInsightItem, Insight, InsightsResponse

logger = logging.getLogger(__name__)

MAX_INSIGHTS = 7
MIN_AI_INSIGHTS = 4
AI_TIMEOUT_SECONDS = 8.0

SYSTEM_PROMPT = (
    "You are an analyst writing short insights about customer reviews of a business. "
    "Use only the numbers given in the context; never invent figures, causes or events. "
    "Reply with strict JSON only, no markdown and no prose: an array of 4 to 7 objects, "
    'each {"title": string, "detail": string, "severity": "good"|"warn"|"bad", '
    '"metric_keys": array}. metric_keys may only contain '
    '"review_count", "avg_rating", "neg_share", "reply_rate", "timeseries".'
)

REPAIR_PROMPT = (
    "Your previous answer was not valid for the required format ({error}). "
    "Previous answer:\n{output}\n\n"
    "Return the corrected insights as a JSON array only, following the same rules."
)

_insight_list = TypeAdapter(
    Annotated[List[AIInsightItem], Field(min_length=MIN_AI_INSIGHTS, max_length=MAX_INSIGHTS)]
)


# =============================================================================
# Rule-based insights
# =============================================================================

def _pct(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value * 100:.0f}%"


def _signed(value: float, digits: int = 1) -> str:
    return f"{value:+.{digits}f}"


def reply_rate_insight(rate: Optional[float]) -> Insight:
    if rate is None:
        severity, detail = "warn", "No review with text in this period, reply rate unavailable."
    elif rate < 0.50:
        severity, detail = "bad", f"Only {_pct(rate)} of reviews with text received a reply."
    elif rate < 0.70:
        severity, detail = "warn", f"{_pct(rate)} of reviews with text received a reply."
    else:
        severity, detail = "good", f"{_pct(rate)} of reviews with text received a reply."
    return Insight(title="Reply rate", detail=detail, severity=severity, metric_keys=["reply_rate"])


def negative_share_insight(share: Optional[float]) -> Insight:
    if share is None:
        severity, detail = "warn", "No review in this period, negative share unavailable."
    elif share >= 0.15:
        severity, detail = "bad", f"{_pct(share)} of reviews are negative (2 stars or less)."
    elif share >= 0.08:
        severity, detail = "warn", f"{_pct(share)} of reviews are negative (2 stars or less)."
    else:
        severity, detail = "good", f"Only {_pct(share)} of reviews are negative."
    return Insight(title="Negative reviews", detail=detail, severity=severity, metric_keys=["neg_share"])


def rating_trend_insight(delta: Optional[float]) -> Insight:
    if delta is None:
        severity, detail = "warn", "Not enough rated reviews to compare the average rating."
    elif delta <= -0.4:
        severity, detail = "bad", f"Average rating dropped by {_signed(delta, 2)} points vs previous period."
    elif delta <= -0.2:
        severity, detail = "warn", f"Average rating slipped by {_signed(delta, 2)} points vs previous period."
    elif delta >= 0.2:
        severity, detail = "good", f"Average rating improved by {_signed(delta, 2)} points vs previous period."
    else:
        severity, detail = "warn", "Average rating is stable vs previous period."
    return Insight(title="Average rating", detail=detail, severity=severity, metric_keys=["avg_rating"])


def volume_insight(delta_pct: Optional[float]) -> Insight:
    if delta_pct is None:
        severity, detail = "warn", "No reviews in the previous period to compare volume with."
    elif delta_pct <= -0.3:
        severity, detail = "warn", f"Review volume fell {_pct(abs(delta_pct))} vs previous period."
    elif delta_pct >= 0.3:
        severity, detail = "good", f"Review volume grew {_pct(delta_pct)} vs previous period."
    else:
        severity, detail = "warn", "Review volume is close to the previous period."
    return Insight(title="Review volume", detail=detail, severity=severity, metric_keys=["review_count"])


def recent_trend_insight(points: List[Dict[str, Any]]) -> Optional[Insight]:
    """Compare the average rating of the last two series points."""
    if len(points) < 2:
        return None
    before, last = points[-2]["avg_rating"], points[-1]["avg_rating"]
    if before is None or last is None:
        return None
    change = last - before
    if change >= 0.2:
        severity = "good"
    elif change <= -0.2:
        severity = "bad"
    else:
        severity = "warn"
    detail = f"Latest average rating {last:.1f} vs {before:.1f} ({_signed(change)}) on {points[-1]['date']}."
    return Insight(title="Recent trend", detail=detail, severity=severity, metric_keys=["timeseries", "avg_rating"])


def strength_insight(positives: List[Dict[str, Any]]) -> Optional[Insight]:
    if not positives:
        return None
    top = positives[0]
    return Insight(
        title=f"Strength: {top['label']}",
        detail=f"\"{top['label']}\" is the most mentioned strength ({top['count']} reviews).",
        severity="good",
        metric_keys=["review_count"],
    )


def build_rule_insights(
    comparison: Dict[str, Any],
    points: List[Dict[str, Any]],
    positives: List[Dict[str, Any]],
) -> List[Insight]:
    """Deterministic insights from fixed thresholds."""
    metrics = comparison["metrics"]
    insights = [
        reply_rate_insight(metrics["reply_rate"]["a"]),
        negative_share_insight(metrics["neg_share"]["a"]),
        rating_trend_insight(metrics["avg_rating"]["delta"]),
        volume_insight(metrics["review_count"]["delta_pct"]),
    ]
    trend = recent_trend_insight(points)
    if trend is not None:
        insights.append(trend)
    if not any(insight.severity == "good" for insight in insights):
        strength = strength_insight(positives)
        if strength is not None:
            insights.append(strength)
    return insights[:MAX_INSIGHTS]


# =============================================================================
# AI provider
# =============================================================================

class AIClient(Protocol):
    def complete(self, messages: List[Dict[str, str]], timeout: Optional[float] = None) -> str:
        """Send chat messages, return the output text. Raises AIProtocolError.

        ``timeout`` is the time left for the whole call, in seconds.
        """
        ...


def extract_output_text(payload: Any) -> Optional[str]:
    """``output_text`` if present, else the joined ``output[].content[].text``."""
    if not isinstance(payload, dict):
        return None
    text = payload.get("output_text")
    if isinstance(text, str) and text.strip():
        return text
    chunks = []
    for item in payload.get("output") or []:
        if not isinstance(item, dict):
            continue
        for content in item.get("content") or []:
            if isinstance(content, dict) and isinstance(content.get("text"), str) and content["text"]:
                chunks.append(content["text"])
    return "\n".join(chunks) if chunks else None


class OpenAIResponsesClient:
    """OpenAI Responses API over httpx."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = AI_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._api_key = api_key
        self._model = model
        self._url = f"{base_url.rstrip('/')}/responses"
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> Optional["OpenAIResponsesClient"]:
        """None when no API key is configured."""
        if not settings.ai_enabled:
            return None
        return cls(
            api_key=settings.openai_api_key.strip(),
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout=settings.ai_insights_timeout_seconds,
            **kwargs,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def complete(self, messages: List[Dict[str, str]], timeout: Optional[float] = None) -> str:
        budget = self._timeout if timeout is None else min(timeout, self._timeout)
        if budget <= 0:
            raise AIProtocolError("AI deadline exceeded before the request was sent")
        deadline = time.monotonic() + budget

        body = {"model": self._model, "input": messages}
        content = bytearray()
        try:
            with httpx.Client(timeout=httpx.Timeout(budget), transport=self._transport) as client:
                with client.stream("POST", self._url, json=body, headers=self._headers()) as resp:
                    # httpx timeouts are per read, the deadline covers the whole body
                    for chunk in resp.iter_bytes():
                        content.extend(chunk)
                        if time.monotonic() > deadline:
                            raise AIProtocolError(f"AI response exceeded {budget:.1f}s")
        except httpx.TimeoutException as e:
            raise AIProtocolError("AI request timed out") from e
        except httpx.HTTPError as e:
            raise AIProtocolError(f"AI request failed: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise AIProtocolError(
                f"AI provider returned {resp.status_code}: {content[:200].decode(errors='replace')}",
                status_code=resp.status_code,
            )
        try:
            payload = json.loads(content)
        except ValueError as e:
            raise AIProtocolError("AI provider returned a non-JSON body") from e

        text = extract_output_text(payload)
        if not text:
            raise AIProtocolError("AI response missing output")
        return text


# =============================================================================
# Response parsing
# =============================================================================

@dataclass(frozen=True)
class ValidInsights:
    insights: List[Insight]
    valid: bool = field(default=True, init=False)


@dataclass(frozen=True)
class InvalidInsights:
    output: str
    error: str
    valid: bool = field(default=False, init=False)


ParseResult = Union[ValidInsights, InvalidInsights]


def _strip_fences(text: str) -> str:
    raw = text.strip()
    if raw.startswith("```"):
        raw = raw.split("\n", 1)[1] if "\n" in raw else ""
        if raw.rstrip().endswith("```"):
            raw = raw.rstrip()[:-3]
    return raw.strip()


def parse_insights(text: str) -> ParseResult:
    """Validate a provider answer against the insight list schema."""
    try:
        data = json.loads(_strip_fences(text))
    except ValueError as e:
        return InvalidInsights(output=text, error=f"invalid JSON: {e}")
    try:
        items = _insight_list.validate_python(data)
    except ValidationError as e:
        return InvalidInsights(output=text, error=f"{e.error_count()} validation error(s)")
    return ValidInsights(insights=[Insight(**item.model_dump()) for item in items])


# =============================================================================
# Generator
# =============================================================================

class InsightState(str, Enum):
    RULES_ONLY = "rules_only"
    AI_REQUESTED = "ai_requested"
    REPAIR_REQUESTED = "repair_requested"
    DONE_AI = "done_ai"
    DONE_BASIC = "done_basic"


@dataclass
class InsightOutcome:
    state: InsightState
    mode: str
    insights: List[Insight]

    @property
    def used_ai(self) -> bool:
        return self.state == InsightState.DONE_AI

    def to_dict(self) -> Dict[str, Any]:
        response = InsightsResponse(mode=self.mode, used_ai=self.used_ai, insights=self.insights)
        return response.model_dump()


class InsightGenerator:
    """Runs the rules, then the AI path when eligible."""

    def __init__(
        self,
        client: Optional[AIClient],
        log: logging.Logger = logger,
        timeout: float = AI_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.log = log
        self.timeout = timeout
        self.clock = clock

    def _time_left(self, deadline: float) -> float:
        remaining = deadline - self.clock()
        if remaining <= 0:
            raise AIProtocolError(f"AI deadline of {self.timeout:.1f}s exceeded")
        return remaining

    def is_eligible(self, requested_mode: str) -> bool:
        return self.client is not None and requested_mode != "basic"

    def generate(
        self,
        context: Dict[str, Any],
        rule_insights: List[Insight],
        requested_mode: str = "auto",
    ) -> InsightOutcome:
        """Produce the insight list.

        ``mode`` is "ai" whenever the AI path was attempted, even if it fell
        back; ``used_ai`` tells whether the AI answer was used. The first
        request and the repair request share one ``timeout`` budget.
        """
        fallback = rule_insights[:MAX_INSIGHTS]
        if not self.is_eligible(requested_mode):
            return InsightOutcome(InsightState.RULES_ONLY, "basic", fallback)

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": self._user_prompt(context)},
        ]
        state = InsightState.AI_REQUESTED
        deadline = self.clock() + self.timeout
        try:
            result = parse_insights(self.client.complete(messages, timeout=self._time_left(deadline)))
            if isinstance(result, InvalidInsights):
                state = InsightState.REPAIR_REQUESTED
                self.log.info(f"AI insights invalid ({result.error}), requesting repair")
                messages = messages + [
                    {"role": "assistant", "content": result.output},
                    {
                        "role": "user",
                        "content": REPAIR_PROMPT.format(error=result.error, output=result.output),
                    },
                ]
                result = parse_insights(self.client.complete(messages, timeout=self._time_left(deadline)))
            if isinstance(result, InvalidInsights):
                raise AIProtocolError(f"AI insights still invalid after repair: {result.error}")
        except AIProtocolError as e:
            self.log.warning(f"AI insights unavailable in state {state.value}, using rules: {e}")
            return InsightOutcome(InsightState.DONE_BASIC, "ai", fallback)

        return InsightOutcome(InsightState.DONE_AI, "ai", result.insights)

    @staticmethod
    def _user_prompt(context: Dict[str, Any]) -> str:
        return (
            "Write insights for this review analytics context:\n"
            + json.dumps(context, ensure_ascii=False, default=str)
        )
