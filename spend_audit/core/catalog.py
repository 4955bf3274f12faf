"""
Model catalog and cost computation.

Maps OpenAI model identifiers to per-million-token pricing, legacy-tax
flags and cheaper alternatives.
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional

from .token_counter import TokenUsage

TOKENS_PER_MILLION = 1_000_000

_SNAPSHOT_SUFFIX = re.compile(r"-\d{4}-\d{2}-\d{2}$")


def normalize_model_id(model_id: str) -> str:
    """Catalog keys are case-insensitive and trimmed."""
    return model_id.strip().lower()


@dataclass(frozen=True)
class CostBreakdown:
    """Cost of one billing line split by token kind."""
    input_cost: float
    output_cost: float
    thinking_cost: float = 0.0

    @property
    def total_cost(self) -> float:
        return self.input_cost + self.output_cost + self.thinking_cost


@dataclass(frozen=True)
class ModelSpec:
    """Pricing and audit metadata for a single model."""
    model_id: str
    display_name: str
    cost_per_million_input: float
    cost_per_million_output: float
    cost_per_million_thinking: Optional[float] = None
    has_thinking: bool = False
    is_legacy: bool = False
    legacy_tax_ratio: float = 0.0  # fractional overcharge vs. the modern equivalent
    alternative_model_id: Optional[str] = None
    thinking_ratio_alert_threshold: Optional[float] = None  # thinking / output

    def __post_init__(self):
        """Validate pricing values are consistent."""
        if self.cost_per_million_input < 0:
            raise ValueError(f"{self.model_id}: input rate cannot be negative")
        if self.cost_per_million_output < 0:
            raise ValueError(f"{self.model_id}: output rate cannot be negative")
        if self.cost_per_million_thinking is not None and self.cost_per_million_thinking < 0:
            raise ValueError(f"{self.model_id}: thinking rate cannot be negative")
        if self.has_thinking and self.cost_per_million_thinking is None:
            raise ValueError(f"{self.model_id}: thinking models require a thinking rate")
        if self.legacy_tax_ratio < 0:
            raise ValueError(f"{self.model_id}: legacy_tax_ratio cannot be negative")
        if (self.thinking_ratio_alert_threshold is not None
                and self.thinking_ratio_alert_threshold <= 0):
            raise ValueError(f"{self.model_id}: thinking_ratio_alert_threshold must be > 0")

    def cost_for(self, usage: TokenUsage) -> CostBreakdown:
        """Calculate the cost of token usage at this model's rates.

        Thinking tokens are only billed for models that think; for any
        other model they cost nothing.
        """
        input_cost = (usage.input_tokens / TOKENS_PER_MILLION) * self.cost_per_million_input
        output_cost = (usage.output_tokens / TOKENS_PER_MILLION) * self.cost_per_million_output
        thinking_cost = 0.0
        if self.has_thinking and usage.thinking_tokens:
            thinking_cost = (usage.thinking_tokens / TOKENS_PER_MILLION) * self.cost_per_million_thinking
        return CostBreakdown(
            input_cost=input_cost,
            output_cost=output_cost,
            thinking_cost=thinking_cost,
        )


@dataclass(frozen=True)
class ModelCatalog:
    """Read-only lookup table of model specs keyed by normalized id."""
    models: Mapping[str, ModelSpec] = field(default_factory=dict)

    def __post_init__(self):
        normalized = {normalize_model_id(key): spec for key, spec in self.models.items()}
        object.__setattr__(self, "models", MappingProxyType(normalized))

    @classmethod
    def from_specs(cls, specs: List[ModelSpec]) -> "ModelCatalog":
        return cls({spec.model_id: spec for spec in specs})

    def __contains__(self, model_id: object) -> bool:
        return isinstance(model_id, str) and normalize_model_id(model_id) in self.models

    def __len__(self) -> int:
        return len(self.models)

    def __iter__(self) -> Iterator[ModelSpec]:
        return iter(self.models.values())

    def model_ids(self) -> List[str]:
        return list(self.models.keys())

    def get(self, model_id: str) -> Optional[ModelSpec]:
        """Exact lookup on the normalized id."""
        return self.models.get(normalize_model_id(model_id))

    def resolve(self, model_id: str) -> Optional[ModelSpec]:
        """Look up a model, falling back to its undated name.

        Usage exports report snapshot ids such as ``gpt-4o-2024-08-06``;
        those resolve to the ``gpt-4o`` entry when no exact entry exists.

        Args:
            model_id: Raw model identifier from a usage row

        Returns:
            Matching ModelSpec, or None if the model is not in the catalog
        """
        key = normalize_model_id(model_id)
        spec = self.models.get(key)
        if spec is None:
            spec = self.models.get(_SNAPSHOT_SUFFIX.sub("", key))
        return spec

    def display_name(self, model_id: str) -> str:
        spec = self.get(model_id)
        return spec.display_name if spec else model_id

    def alternative_for(self, spec: ModelSpec) -> Optional[ModelSpec]:
        if not spec.alternative_model_id:
            return None
        return self.get(spec.alternative_model_id)


DEFAULT_CATALOG = ModelCatalog.from_specs([
    ModelSpec(
        model_id="gpt-5.2",
        display_name="GPT-5.2",
        cost_per_million_input=1.75,
        cost_per_million_output=14.00,
    ),
    ModelSpec(
        model_id="gpt-5-mini",
        display_name="GPT-5 Mini",
        cost_per_million_input=0.25,
        cost_per_million_output=1.00,
    ),
    ModelSpec(
        model_id="gpt-5-nano",
        display_name="GPT-5 Nano",
        cost_per_million_input=0.05,
        cost_per_million_output=0.40,
    ),
    # Legacy tax: older than gpt-5.2 and 40% more expensive
    ModelSpec(
        model_id="gpt-4o",
        display_name="GPT-4o",
        cost_per_million_input=2.50,
        cost_per_million_output=10.00,
        is_legacy=True,
        legacy_tax_ratio=0.40,
        alternative_model_id="gpt-5.2",
    ),
    # Reasoning models bill thinking tokens at the output rate or below
    ModelSpec(
        model_id="gpt-5-thinking",
        display_name="GPT-5 Thinking",
        cost_per_million_input=5.00,
        cost_per_million_output=20.00,
        cost_per_million_thinking=20.00,
        has_thinking=True,
        alternative_model_id="gpt-5.2",
        thinking_ratio_alert_threshold=3.0,
    ),
    ModelSpec(
        model_id="gpt-5.3-codex",
        display_name="GPT-5.3 Codex",
        cost_per_million_input=1.75,
        cost_per_million_output=14.00,
        cost_per_million_thinking=8.00,
        has_thinking=True,
        alternative_model_id="gpt-5.2",
        thinking_ratio_alert_threshold=5.0,
    ),
    ModelSpec(
        model_id="o3",
        display_name="o3",
        cost_per_million_input=10.00,
        cost_per_million_output=40.00,
        cost_per_million_thinking=40.00,
        has_thinking=True,
        alternative_model_id="gpt-5-thinking",
        thinking_ratio_alert_threshold=2.0,
    ),
    ModelSpec(
        model_id="o1",
        display_name="o1",
        cost_per_million_input=15.00,
        cost_per_million_output=60.00,
        cost_per_million_thinking=60.00,
        has_thinking=True,
        alternative_model_id="o3",
        thinking_ratio_alert_threshold=2.0,
    ),
])


def catalog_from_mapping(entries: Dict[str, ModelSpec], base: Optional[ModelCatalog] = None) -> ModelCatalog:
    """Build a catalog, optionally layering entries over a base catalog."""
    merged: Dict[str, ModelSpec] = dict(base.models) if base is not None else {}
    for model_id, spec in entries.items():
        merged[normalize_model_id(model_id)] = spec
    return ModelCatalog(merged)
