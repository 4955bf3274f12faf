"""
Canonical usage data structures.

Defines the normalized, schema-independent billing line every other
component consumes.
"""

from dataclasses import dataclass
from enum import Enum

from .token_counter import TokenUsage

UNKNOWN_MODEL = "unknown"

# Tolerance for the total_cost == input + output + thinking invariant
COST_TOLERANCE = 1e-6


class CostSource(Enum):
    """Where a row's cost figures came from."""
    CATALOG = "catalog"    # recomputed from token counts and catalog rates
    DECLARED = "declared"  # taken from the cost column of the export


@dataclass(frozen=True)
class UsageRow:
    """Immutable canonical record of one billing line.

    Derived once at parse time from a raw CSV record and never
    mutated afterwards.
    """
    model_id: str
    input_tokens: int
    output_tokens: int
    thinking_tokens: int
    is_reasoning_model: bool
    input_cost: float
    output_cost: float
    thinking_cost: float
    total_cost: float
    timestamp: str = ""
    request_type: str = "unknown"
    cost_source: CostSource = CostSource.DECLARED

    def __post_init__(self):
        """Validate counts, costs and the cost invariant."""
        for name in ("input_tokens", "output_tokens", "thinking_tokens"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        for name in ("input_cost", "output_cost", "thinking_cost", "total_cost"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if not self.is_reasoning_model and self.thinking_cost != 0:
            raise ValueError("thinking_cost must be 0 for non-reasoning models")
        parts = self.input_cost + self.output_cost + self.thinking_cost
        if abs(self.total_cost - parts) > COST_TOLERANCE:
            raise ValueError(
                f"total_cost {self.total_cost} does not equal the sum of its parts {parts}"
            )

    @property
    def usage(self) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            thinking_tokens=self.thinking_tokens,
        )

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output + thinking)."""
        return self.input_tokens + self.output_tokens + self.thinking_tokens

    @property
    def date(self) -> str:
        """Date portion (YYYY-MM-DD) of the timestamp, empty if unknown."""
        return self.timestamp[:10]

    @property
    def hour(self) -> str:
        """Hour bucket (YYYY-MM-DDTHH) of the timestamp, empty if unknown."""
        return self.timestamp[:13]
