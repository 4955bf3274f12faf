"""
Cost recommendations for usage patterns.

Applies a fixed, ordered rule set to canonical usage rows and reports
actionable, severity-ranked findings. Code snippets are illustrative
advice, never applied automatically.
"""

import math
from collections import Counter, defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .catalog import ModelCatalog
from .models import UsageRow


class Severity(Enum):
    """Severity levels for recommendations, least severe first."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


@dataclass(frozen=True)
class Recommendation:
    """A triggered rule with advice for the account owner."""
    id: str
    severity: Severity
    title: str
    description: str
    impact: str
    action: str
    code_snippet: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "impact": self.impact,
            "action": self.action,
            "code_snippet": self.code_snippet,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Recommendation":
        return cls(
            id=record["id"],
            severity=Severity(record["severity"]),
            title=record["title"],
            description=record["description"],
            impact=record["impact"],
            action=record["action"],
            code_snippet=record.get("code_snippet"),
        )


# Policy constants
SMALL_REQUEST_TOKENS = 1000
SMALL_GPT4_MIN_COUNT = 100
SMALL_GPT4_SAVINGS = 0.90
BATCH_HOURLY_MIN_COUNT = 50
CACHE_BUCKET_TOKENS = 200
CACHE_BUCKET_MIN_COUNT = 20
CACHE_MIN_BUCKETS = 5
GPT4_SPEND_SHARE = 0.70
SLEDGEHAMMER_MAX_OUTPUT = 500
SLEDGEHAMMER_MIN_THINKING = 1000
THINKING_COST_FLOOR = 0.01
PREMIUM_TIER_SAVINGS = 0.90
PREMIUM_TIER_MODEL = "gpt-5-pro"
PREMIUM_TIER_ALTERNATIVE = "gpt-5.2"

Rule = Callable[[Sequence[UsageRow], ModelCatalog, float], List[Recommendation]]


def _is_gpt4(row: UsageRow) -> bool:
    return "gpt-4" in row.model_id


def _money(amount: float) -> str:
    # Sub-cent amounts would all print as $0.00
    if 0 < abs(amount) < 0.01:
        return f"${amount:.4f}"
    return f"${amount:,.2f}"


# Rule 1: small requests on GPT-4 class models (HIGH)
def _small_gpt4_rule(rows: Sequence[UsageRow], catalog: ModelCatalog,
                     total_spend: float) -> List[Recommendation]:
    small = [r for r in rows if _is_gpt4(r) and r.total_tokens < SMALL_REQUEST_TOKENS]
    if len(small) <= SMALL_GPT4_MIN_COUNT:
        return []
    savings = math.fsum(r.total_cost * SMALL_GPT4_SAVINGS for r in small)
    return [Recommendation(
        id="switch-small-gpt4",
        severity=Severity.HIGH,
        title="Move small GPT-4 calls to a lighter model",
        description=f"You have {len(small):,} requests under {SMALL_REQUEST_TOKENS:,} tokens using GPT-4 class models.",
        impact=f"Save ~{_money(savings)}/month",
        action=f"Route requests under {SMALL_REQUEST_TOKENS:,} tokens to gpt-5-mini",
        code_snippet=(
            f"if estimated_tokens < {SMALL_REQUEST_TOKENS}:\n"
            '    model = "gpt-5-mini"'
        ),
    )]


# Rule 2: bursts of individual requests within one hour (MEDIUM)
def _batching_rule(rows: Sequence[UsageRow], catalog: ModelCatalog,
                   total_spend: float) -> List[Recommendation]:
    hourly = Counter(r.hour for r in rows if r.hour)
    busy_hours = [hour for hour, count in hourly.items() if count > BATCH_HOURLY_MIN_COUNT]
    if not busy_hours:
        return []
    return [Recommendation(
        id="batch-requests",
        severity=Severity.MEDIUM,
        title="Implement request batching",
        description=f"Found {len(busy_hours):,} hours with more than {BATCH_HOURLY_MIN_COUNT} individual requests.",
        impact="Reduce API calls by ~40%",
        action="Buffer requests and send them every 5 seconds or 100 items, or use the Batch API for offline work",
        code_snippet=(
            "batch = []\n"
            "def enqueue(request):\n"
            "    batch.append(request)\n"
            "    if len(batch) >= 100:\n"
            "        process_batch(batch)\n"
            "        batch.clear()"
        ),
    )]


# Rule 3: many requests of the same model and similar size (MEDIUM)
def _caching_rule(rows: Sequence[UsageRow], catalog: ModelCatalog,
                  total_spend: float) -> List[Recommendation]:
    buckets = Counter((r.model_id, r.total_tokens // CACHE_BUCKET_TOKENS) for r in rows)
    repeated = [count for count in buckets.values() if count > CACHE_BUCKET_MIN_COUNT]
    if len(repeated) <= CACHE_MIN_BUCKETS:
        return []
    return [Recommendation(
        id="cache-prompts",
        severity=Severity.MEDIUM,
        title="Cache repeated prompts",
        description=(
            f"Many similar requests (same model, similar token size). "
            f"{sum(repeated):,} requests may be cacheable."
        ),
        impact="Reduce latency and cost for duplicate prompts",
        action="Add a cache keyed on model and prompt hash; reuse responses for identical inputs",
        code_snippet=(
            'key = f"{model}:{hashlib.sha256(prompt.encode()).hexdigest()}"\n'
            "cached = cache.get(key)\n"
            "if cached is not None:\n"
            "    return cached"
        ),
    )]


# Rule 4: spend concentrated on GPT-4 class models (MEDIUM)
def _diversification_rule(rows: Sequence[UsageRow], catalog: ModelCatalog,
                          total_spend: float) -> List[Recommendation]:
    if total_spend <= 0:
        return []
    gpt4_spend = math.fsum(r.total_cost for r in rows if _is_gpt4(r))
    share = gpt4_spend / total_spend
    if share <= GPT4_SPEND_SHARE:
        return []
    return [Recommendation(
        id="diversify-models",
        severity=Severity.MEDIUM,
        title="Diversify model usage",
        description=(
            f"{share:.0%} of spend is on GPT-4 class models. "
            "Consider lighter models for non-critical tasks."
        ),
        impact="Potential 30-50% cost reduction",
        action="Audit use cases and map them to gpt-5-mini or gpt-5-nano where quality allows",
    )]


# Rule 5: hidden thinking-token cost of reasoning models (HIGH / CRITICAL)
def _reasoning_audit_rule(rows: Sequence[UsageRow], catalog: ModelCatalog,
                          total_spend: float) -> List[Recommendation]:
    findings: List[Recommendation] = []
    reasoning_rows = 0
    thinking_cost = 0.0

    for index, row in enumerate(rows):
        if not row.is_reasoning_model:
            continue
        reasoning_rows += 1
        thinking_cost += row.thinking_cost
        spec = catalog.get(row.model_id)
        threshold = spec.thinking_ratio_alert_threshold if spec else None
        ratio = row.thinking_tokens / max(row.output_tokens, 1)

        if threshold is not None and ratio > threshold:
            share = row.thinking_cost / row.total_cost if row.total_cost else 0.0
            alternative = spec.alternative_model_id or "a standard model"
            findings.append(Recommendation(
                id=f"thinking-overkill-{index}",
                severity=Severity.HIGH,
                title="Thinking Overkill Detected",
                description=(
                    f"{row.model_id} spent {ratio:.1f}x more tokens thinking than answering "
                    f"(alert threshold {threshold:.1f}x)."
                ),
                impact=f"Thinking costs: {_money(row.thinking_cost)} ({share:.0%} of this request)",
                action=(
                    f"Switch to {alternative} for straightforward tasks. "
                    "Reserve reasoning models for complex multi-step problems."
                ),
            ))

        if row.output_tokens < SLEDGEHAMMER_MAX_OUTPUT and row.thinking_tokens > SLEDGEHAMMER_MIN_THINKING:
            findings.append(Recommendation(
                id=f"sledgehammer-{index}",
                severity=Severity.CRITICAL,
                title="Sledgehammer for a Nail",
                description=(
                    f"Short answer ({row.output_tokens:,} tokens) required "
                    f"{row.thinking_tokens:,} tokens of reasoning."
                ),
                impact=f"Paid {_money(row.thinking_cost)} of thinking for a short answer",
                action="Route simple Q&A to gpt-5-mini. Use reasoning models for coding, math or multi-step logic.",
            ))

    if thinking_cost <= THINKING_COST_FLOOR:
        return findings

    hidden_share = thinking_cost / total_spend if total_spend else 0.0
    summary = Recommendation(
        id="reasoning-model-audit",
        severity=Severity.HIGH,
        title="Reasoning Model Audit Required",
        description=f"Found {reasoning_rows:,} requests using reasoning models.",
        impact=f"Hidden thinking costs: {_money(thinking_cost)} ({hidden_share:.0%} of total bill)",
        action="Audit use cases and route tasks that do not need deep reasoning to gpt-5.2.",
        code_snippet=(
            "if task_complexity < 3:\n"
            '    model = "gpt-5.2"'
        ),
    )
    return [summary] + findings


# Rule 6: models that cost more than their modern replacement (HIGH)
def _legacy_model_rule(rows: Sequence[UsageRow], catalog: ModelCatalog,
                       total_spend: float) -> List[Recommendation]:
    spend: Dict[str, List[float]] = defaultdict(list)
    for row in rows:
        spec = catalog.get(row.model_id)
        if spec is not None and spec.is_legacy:
            spend[spec.model_id].append(row.total_cost)

    findings = []
    for model_id, costs in spend.items():
        spec = catalog.get(model_id)
        model_spend = math.fsum(costs)
        tax = model_spend * spec.legacy_tax_ratio
        alternative = spec.alternative_model_id or "a current model"
        findings.append(Recommendation(
            id=f"legacy-{model_id}",
            severity=Severity.HIGH,
            title=f"Legacy Model Alert: {model_id}",
            description=(
                f"Found {len(costs):,} requests using {model_id}, which costs "
                f"{spec.legacy_tax_ratio:.0%} more than {alternative}."
            ),
            impact=f"Save ~{_money(tax)}/month by migrating to {alternative}",
            action=f"Migrate {model_id} traffic to {alternative}.",
            code_snippet=(
                f'if model == "{model_id}":\n'
                f'    model = "{alternative}"'
            ),
        ))
    return findings


# Rule 7: research-tier model used for ordinary work (HIGH)
def _premium_tier_rule(rows: Sequence[UsageRow], catalog: ModelCatalog,
                       total_spend: float) -> List[Recommendation]:
    premium = [r for r in rows if PREMIUM_TIER_MODEL in r.model_id]
    if not premium:
        return []
    savings = math.fsum(r.total_cost for r in premium) * PREMIUM_TIER_SAVINGS
    return [Recommendation(
        id="downgrade-gpt5-pro",
        severity=Severity.HIGH,
        title="GPT-5 Pro detected: research tier",
        description=f"Found {len(premium):,} requests using GPT-5 Pro.",
        impact=f"Save ~{_money(savings)}/month by switching to {PREMIUM_TIER_ALTERNATIVE}",
        action=f"Downgrade to {PREMIUM_TIER_ALTERNATIVE} for standard agent tasks.",
        code_snippet=(
            f'if model == "{PREMIUM_TIER_MODEL}":\n'
            f'    model = "{PREMIUM_TIER_ALTERNATIVE}"'
        ),
    )]


RULES: Tuple[Rule, ...] = (
    _small_gpt4_rule,
    _batching_rule,
    _caching_rule,
    _diversification_rule,
    _reasoning_audit_rule,
    _legacy_model_rule,
    _premium_tier_rule,
)


def generate_recommendations(rows: Sequence[UsageRow], catalog: ModelCatalog) -> List[Recommendation]:
    """Run every rule over the usage rows.

    Rules run in a fixed order and are independent of each other:
    - Small GPT-4 requests (HIGH): more than 100 GPT-4 requests under 1k tokens
    - Batching (MEDIUM): an hour with more than 50 requests
    - Caching (MEDIUM): more than 5 model/size buckets with more than 20 requests
    - Diversification (MEDIUM): GPT-4 class models above 70% of spend
    - Reasoning audit (HIGH/CRITICAL): thinking overkill per request plus
      a summary when thinking cost exceeds $0.01
    - Legacy models (HIGH): one per legacy model present
    - Premium tier (HIGH): any GPT-5 Pro usage

    Args:
        rows: Canonical usage rows, in file order
        catalog: Model catalog with thresholds and alternatives

    Returns:
        Recommendations in rule order (empty if none triggered)
    """
    if not rows:
        return []
    total_spend = math.fsum(r.total_cost for r in rows)
    recommendations: List[Recommendation] = []
    for rule in RULES:
        recommendations.extend(rule(rows, catalog, total_spend))
    return recommendations


def sort_by_severity(recommendations: Sequence[Recommendation]) -> List[Recommendation]:
    """Most severe first; rule order is kept within a severity."""
    return sorted(recommendations, key=lambda r: -r.severity.rank)
