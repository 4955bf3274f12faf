"""
Tests for end-to-end analysis of a usage export.
"""

import os
import tempfile

import pytest

from spend_audit.core.catalog import DEFAULT_CATALOG
from spend_audit.core.csv_normalizer import MalformedCsvError
from spend_audit.core.pipeline import (
    NoValidRowsError,
    UploadTooLargeError,
    analyze_csv,
    read_csv_file,
)

SAMPLE_CSV = (
    "model,prompt_tokens,completion_tokens,reasoning_tokens,cost,timestamp\n"
    "gpt-4o,1000,500,0,0,2026-01-05T10:00:00Z\n"
    "gpt-5-thinking,100,200,1500,0,2026-01-05T11:00:00Z\n"
    "gpt-5.2,2000,1000,0,0,2026-01-06T09:00:00Z\n"
)


class TestAnalyzeCsv:
    """Test the full analysis pipeline."""

    def test_full_analysis(self):
        report = analyze_csv(SAMPLE_CSV, DEFAULT_CATALOG)
        result = report.result
        # 0.0075 + 0.0345 + 0.0175
        assert result.total_spend == pytest.approx(0.0595)
        assert result.total_requests == 3
        assert [m.model_id for m in result.top_models] == ["gpt-5-thinking", "gpt-5.2", "gpt-4o"]
        assert [d.date for d in result.spend_by_day] == ["2026-01-05", "2026-01-06"]
        rec_ids = {r.id for r in result.recommendations}
        assert {"legacy-gpt-4o", "thinking-overkill-1", "sledgehammer-1"} <= rec_ids
        assert report.score is not None
        assert report.diagnostics.valid_rows == 3

    def test_header_only_file(self):
        """Verify a file with no data rows is rejected."""
        with pytest.raises(NoValidRowsError, match="empty or contains no data rows") as exc_info:
            analyze_csv("model,tokens_used,cost\n", DEFAULT_CATALOG)
        assert exc_info.value.total_rows == 0

    def test_empty_file(self):
        with pytest.raises(NoValidRowsError):
            analyze_csv("", DEFAULT_CATALOG)

    def test_all_rows_invalid(self):
        """Verify the row count is reported when every row is invalid."""
        with pytest.raises(NoValidRowsError, match="No valid usage data found in 2 rows") as exc_info:
            analyze_csv("model,cost,timestamp\n,,2026-01-01\n,,2026-01-02\n", DEFAULT_CATALOG)
        assert exc_info.value.total_rows == 2

    def test_unrecognized_header(self):
        with pytest.raises(MalformedCsvError):
            analyze_csv("name,age\nalice,30\n", DEFAULT_CATALOG)

    def test_partially_invalid_file(self):
        """Valid rows are analyzed; invalid ones are only counted."""
        report = analyze_csv("model,cost\ngpt-4-turbo,1.50\n,\nbad,-3\n", DEFAULT_CATALOG)
        assert report.result.total_spend == pytest.approx(1.50)
        assert report.diagnostics.invalid_rows == 1
        assert report.diagnostics.total_rows == 2

    def test_zero_spend_has_no_score(self):
        """Verify zero spend yields an analysis without a score."""
        report = analyze_csv("model,cost\ngpt-4-turbo,0\n", DEFAULT_CATALOG)
        assert report.result.total_spend == 0
        assert report.score is None
        assert report.to_record()["efficiency"] is None

    def test_to_record(self):
        record = analyze_csv(SAMPLE_CSV, DEFAULT_CATALOG).to_record()
        assert set(record) == {
            "total_spend",
            "total_requests",
            "top_models",
            "spend_by_day",
            "recommendations",
            "efficiency",
            "diagnostics",
        }
        assert record["diagnostics"]["total_rows"] == 3


class TestReadCsvFile:
    """Test reading uploads from disk."""

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError, match="CSV file not found"):
            read_csv_file("/nonexistent/usage.csv")

    def test_reads_text(self):
        with tempfile.NamedTemporaryFile(mode="wb", suffix=".csv", delete=False) as f:
            f.write(b"\xef\xbb\xbfmodel,cost\ngpt-4o,1\n")
            path = f.name
        try:
            assert read_csv_file(path) == "model,cost\ngpt-4o,1\n"
        finally:
            os.unlink(path)

    def test_file_too_large(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".csv", delete=False) as f:
            f.write("model,cost\n" + "gpt-4o,1\n" * 10)
            path = f.name
        try:
            with pytest.raises(UploadTooLargeError) as exc_info:
                read_csv_file(path, max_bytes=50)
            assert exc_info.value.limit == 50
        finally:
            os.unlink(path)
