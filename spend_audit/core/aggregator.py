"""
Spend aggregation over canonical usage rows.

Reduces one upload's rows to total spend, per-model totals and
per-day totals.
"""

import math
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Sequence, Tuple

from .catalog import ModelCatalog
from .models import UsageRow
from .recommendations import Recommendation

TOP_MODELS_LIMIT = 10

# Rows without a timestamp are kept in their own bucket, ordered last
UNKNOWN_DATE = "unknown"


@dataclass(frozen=True)
class ModelBreakdown:
    """Spend and token totals for a single model."""
    model_id: str
    display_name: str
    cost: float
    tokens: int


@dataclass(frozen=True)
class DailySpend:
    """Spend total for a single calendar day."""
    date: str
    cost: float


@dataclass(frozen=True)
class AnalysisResult:
    """Aggregate analysis of one upload."""
    total_spend: float
    total_requests: int
    top_models: Tuple[ModelBreakdown, ...] = ()
    spend_by_day: Tuple[DailySpend, ...] = ()
    recommendations: Tuple[Recommendation, ...] = ()

    def with_recommendations(self, recommendations: Sequence[Recommendation]) -> "AnalysisResult":
        return replace(self, recommendations=tuple(recommendations))

    def to_record(self) -> Dict[str, Any]:
        """Plain structure suitable for JSON storage."""
        return {
            "total_spend": self.total_spend,
            "total_requests": self.total_requests,
            "top_models": [
                {
                    "model": m.model_id,
                    "display_name": m.display_name,
                    "cost": m.cost,
                    "tokens": m.tokens,
                }
                for m in self.top_models
            ],
            "spend_by_day": [{"date": d.date, "cost": d.cost} for d in self.spend_by_day],
            "recommendations": [r.to_record() for r in self.recommendations],
        }


def aggregate(rows: Sequence[UsageRow], catalog: ModelCatalog) -> AnalysisResult:
    """Compute spend aggregates for a sequence of usage rows.

    Empty input is valid and yields zero totals with empty sequences.

    Args:
        rows: Canonical usage rows of one upload
        catalog: Model catalog used for display names

    Returns:
        AnalysisResult without recommendations
    """
    return AnalysisResult(
        total_spend=math.fsum(row.total_cost for row in rows),
        total_requests=len(rows),
        top_models=tuple(top_models(rows, catalog)),
        spend_by_day=tuple(spend_by_day(rows)),
    )


def top_models(rows: Sequence[UsageRow], catalog: ModelCatalog,
               limit: int = TOP_MODELS_LIMIT) -> List[ModelBreakdown]:
    """Group rows by model, most expensive first."""
    costs: Dict[str, List[float]] = defaultdict(list)
    tokens: Dict[str, int] = defaultdict(int)
    for row in rows:
        costs[row.model_id].append(row.total_cost)
        tokens[row.model_id] += row.total_tokens

    breakdown = [
        ModelBreakdown(
            model_id=model_id,
            display_name=catalog.display_name(model_id),
            cost=math.fsum(model_costs),
            tokens=tokens[model_id],
        )
        for model_id, model_costs in costs.items()
    ]
    # Ties broken by id so the order does not depend on row order
    breakdown.sort(key=lambda m: (-m.cost, m.model_id))
    return breakdown[:limit]


def spend_by_day(rows: Sequence[UsageRow]) -> List[DailySpend]:
    """Sum spend per calendar day, oldest first."""
    by_day: Dict[str, List[float]] = defaultdict(list)
    for row in rows:
        by_day[row.date or UNKNOWN_DATE].append(row.total_cost)

    days = [DailySpend(date=date, cost=math.fsum(costs)) for date, costs in by_day.items()]
    days.sort(key=lambda d: (d.date == UNKNOWN_DATE, d.date))
    return days
