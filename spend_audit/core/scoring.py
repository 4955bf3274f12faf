"""
Efficiency scoring for an upload.

Condenses legacy tax, thinking waste and cheaper-alternative savings
into a single 0-100 score.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Sequence

from .catalog import ModelCatalog
from .models import CostSource, UsageRow

# Share of overkill thinking cost that a better routed request would save
THINKING_WASTE_RATIO = 0.7


class UndefinedScoreError(ValueError):
    """Raised when an upload has no spend to score against."""


class Grade(Enum):
    """Efficiency grade bands."""
    EXCELLENT = "Excellent"
    NEEDS_WORK = "Needs Work"
    POOR = "Poor"
    CRITICAL = "Critical"

    @classmethod
    def for_score(cls, score: float) -> "Grade":
        if score > 80:
            return cls.EXCELLENT
        if score > 60:
            return cls.NEEDS_WORK
        if score > 40:
            return cls.POOR
        return cls.CRITICAL


@dataclass(frozen=True)
class EfficiencyScore:
    """Efficiency score with the figures it was derived from."""
    score: int
    grade: Grade
    total_spend: float
    potential_savings: float
    legacy_spend: float
    thinking_waste: float
    optimized_spend: float

    def __post_init__(self):
        if not 0 <= self.score <= 100:
            raise ValueError("score must be between 0 and 100")

    def to_record(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "grade": self.grade.value,
            "total_spend": self.total_spend,
            "potential_savings": self.potential_savings,
            "legacy_spend": self.legacy_spend,
            "thinking_waste": self.thinking_waste,
            "optimized_spend": self.optimized_spend,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "EfficiencyScore":
        return cls(
            score=record["score"],
            grade=Grade(record["grade"]),
            total_spend=record["total_spend"],
            potential_savings=record["potential_savings"],
            legacy_spend=record["legacy_spend"],
            thinking_waste=record["thinking_waste"],
            optimized_spend=record["optimized_spend"],
        )


def _optimized_cost(row: UsageRow, catalog: ModelCatalog) -> float:
    """Cost of the same tokens on the row's cheaper alternative, if any."""
    if row.cost_source is not CostSource.CATALOG:
        return row.total_cost
    spec = catalog.get(row.model_id)
    alternative = catalog.alternative_for(spec) if spec else None
    if alternative is None:
        return row.total_cost
    return alternative.cost_for(row.usage).total_cost


def calculate_efficiency_score(rows: Sequence[UsageRow], catalog: ModelCatalog) -> EfficiencyScore:
    """Score how efficiently an upload spends on models.

    potential_savings = legacy_spend + thinking_waste + (total - optimized)
    score = clamp(100 - potential_savings / total * 100, 0, 100)

    Args:
        rows: Canonical usage rows of one upload
        catalog: Model catalog with legacy tax, thresholds and alternatives

    Returns:
        EfficiencyScore with the score rounded to an integer

    Raises:
        UndefinedScoreError: If total spend is zero
    """
    total_spend = math.fsum(row.total_cost for row in rows)
    if total_spend <= 0:
        raise UndefinedScoreError("Efficiency score is undefined for zero total spend")

    legacy = []
    waste = []
    optimized = []
    for row in rows:
        spec = catalog.get(row.model_id)
        if spec is not None and spec.is_legacy:
            legacy.append(row.total_cost * spec.legacy_tax_ratio)
        if (row.is_reasoning_model and spec is not None
                and spec.thinking_ratio_alert_threshold is not None
                and row.thinking_tokens > row.output_tokens * spec.thinking_ratio_alert_threshold):
            waste.append(row.thinking_cost * THINKING_WASTE_RATIO)
        optimized.append(_optimized_cost(row, catalog))

    legacy_spend = math.fsum(legacy)
    thinking_waste = math.fsum(waste)
    optimized_spend = math.fsum(optimized)
    potential_savings = legacy_spend + thinking_waste + (total_spend - optimized_spend)

    raw_score = max(0.0, min(100.0, 100 - (potential_savings / total_spend) * 100))
    return EfficiencyScore(
        score=int(round(raw_score)),
        grade=Grade.for_score(raw_score),
        total_spend=total_spend,
        potential_savings=potential_savings,
        legacy_spend=legacy_spend,
        thinking_waste=thinking_waste,
        optimized_spend=optimized_spend,
    )
