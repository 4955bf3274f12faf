"""
Unit tests for spend aggregation.

Tests totals, the per-model ranking and per-day grouping.
"""

import pytest

from spend_audit.core.aggregator import (
    TOP_MODELS_LIMIT,
    UNKNOWN_DATE,
    aggregate,
    spend_by_day,
    top_models,
)
from spend_audit.core.catalog import DEFAULT_CATALOG
from spend_audit.core.models import UsageRow


def make_row(model_id: str = "gpt-5.2", cost: float = 1.0, tokens: int = 100,
             timestamp: str = "2026-01-01T10:00:00Z") -> UsageRow:
    """Create a usage row with its whole cost booked as input."""
    return UsageRow(
        model_id=model_id,
        input_tokens=tokens,
        output_tokens=0,
        thinking_tokens=0,
        is_reasoning_model=False,
        input_cost=cost,
        output_cost=0.0,
        thinking_cost=0.0,
        total_cost=cost,
        timestamp=timestamp,
    )


class TestAggregate:
    """Test whole-upload aggregation."""

    def test_empty_input(self):
        """Verify empty input yields zero totals."""
        result = aggregate([], DEFAULT_CATALOG)
        assert result.total_spend == 0
        assert result.total_requests == 0
        assert result.top_models == ()
        assert result.spend_by_day == ()
        assert result.recommendations == ()

    def test_totals(self):
        rows = [make_row(cost=0.1), make_row(cost=0.2), make_row("gpt-4o", cost=0.3)]
        result = aggregate(rows, DEFAULT_CATALOG)
        assert result.total_spend == pytest.approx(0.6)
        assert result.total_requests == 3

    def test_total_equals_model_and_day_sums(self):
        """Every row lands in exactly one model and one day bucket."""
        rows = [
            make_row("gpt-5.2", 1.5, timestamp="2026-01-01T00:00:00Z"),
            make_row("gpt-4o", 2.25, timestamp="2026-01-02T00:00:00Z"),
            make_row("o3", 0.75, timestamp=""),
        ]
        result = aggregate(rows, DEFAULT_CATALOG)
        assert sum(m.cost for m in result.top_models) == pytest.approx(result.total_spend)
        assert sum(d.cost for d in result.spend_by_day) == pytest.approx(result.total_spend)

    def test_order_independence(self):
        """Verify row order does not change the aggregate."""
        rows = [
            make_row("gpt-5.2", 1.0, timestamp="2026-01-02T00:00:00Z"),
            make_row("gpt-4o", 1.0, timestamp="2026-01-01T00:00:00Z"),
            make_row("o3", 3.0, timestamp="2026-01-03T00:00:00Z"),
        ]
        forward = aggregate(rows, DEFAULT_CATALOG)
        backward = aggregate(list(reversed(rows)), DEFAULT_CATALOG)
        assert forward.top_models == backward.top_models
        assert forward.spend_by_day == backward.spend_by_day
        assert forward.total_spend == pytest.approx(backward.total_spend)

    def test_to_record(self):
        result = aggregate([make_row("gpt-4o", 2.0, tokens=10)], DEFAULT_CATALOG)
        record = result.to_record()
        assert record["top_models"] == [
            {"model": "gpt-4o", "display_name": "GPT-4o", "cost": 2.0, "tokens": 10}
        ]
        assert record["spend_by_day"] == [{"date": "2026-01-01", "cost": 2.0}]
        assert record["recommendations"] == []


class TestTopModels:
    """Test the per-model ranking."""

    def test_sorted_by_cost_descending(self):
        rows = [make_row("gpt-5.2", 1.0), make_row("o3", 5.0), make_row("gpt-4o", 3.0)]
        ranking = top_models(rows, DEFAULT_CATALOG)
        assert [m.model_id for m in ranking] == ["o3", "gpt-4o", "gpt-5.2"]

    def test_ties_broken_by_model_id(self):
        rows = [make_row("gpt-5.2", 1.0), make_row("gpt-4o", 1.0)]
        ranking = top_models(rows, DEFAULT_CATALOG)
        assert [m.model_id for m in ranking] == ["gpt-4o", "gpt-5.2"]

    def test_costs_and_tokens_summed_per_model(self):
        rows = [make_row("gpt-4o", 1.0, tokens=100), make_row("gpt-4o", 2.0, tokens=50)]
        ranking = top_models(rows, DEFAULT_CATALOG)
        assert len(ranking) == 1
        assert ranking[0].cost == pytest.approx(3.0)
        assert ranking[0].tokens == 150
        assert ranking[0].display_name == "GPT-4o"

    def test_limited_to_ten_models(self):
        """Verify only the most expensive models are kept."""
        rows = [make_row(f"custom-model-{i:02d}", cost=float(i + 1)) for i in range(15)]
        ranking = top_models(rows, DEFAULT_CATALOG)
        assert len(ranking) == TOP_MODELS_LIMIT
        assert ranking[0].model_id == "custom-model-14"
        assert ranking[-1].model_id == "custom-model-05"

    def test_unknown_model_uses_raw_id_as_display_name(self):
        ranking = top_models([make_row("gpt-4-turbo")], DEFAULT_CATALOG)
        assert ranking[0].display_name == "gpt-4-turbo"


class TestSpendByDay:
    """Test per-day grouping."""

    def test_grouped_by_date_ascending(self):
        rows = [
            make_row(cost=1.0, timestamp="2026-01-03T09:00:00Z"),
            make_row(cost=2.0, timestamp="2026-01-01T09:00:00Z"),
            make_row(cost=4.0, timestamp="2026-01-01T23:59:59Z"),
        ]
        days = spend_by_day(rows)
        assert [d.date for d in days] == ["2026-01-01", "2026-01-03"]
        assert days[0].cost == pytest.approx(6.0)

    def test_undated_rows_bucketed_last(self):
        """Verify rows without a timestamp are kept in the unknown bucket."""
        rows = [
            make_row(cost=1.0, timestamp=""),
            make_row(cost=2.0, timestamp="2026-01-01T00:00:00Z"),
        ]
        days = spend_by_day(rows)
        assert [d.date for d in days] == ["2026-01-01", UNKNOWN_DATE]
        assert days[-1].cost == pytest.approx(1.0)
