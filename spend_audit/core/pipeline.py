"""
End-to-end analysis of one usage export.

Parses, aggregates, recommends and scores a single upload. The pipeline
is pure apart from reading the file: persistence is left to the caller.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .aggregator import AnalysisResult, aggregate
from .catalog import ModelCatalog
from .csv_normalizer import ParseDiagnostics, decode_csv_bytes, parse_usage_csv
from .recommendations import generate_recommendations
from .scoring import EfficiencyScore, UndefinedScoreError, calculate_efficiency_score

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class NoValidRowsError(ValueError):
    """Raised when a file yields no usable usage rows."""

    def __init__(self, message: str, total_rows: int):
        super().__init__(message)
        self.total_rows = total_rows


class UploadTooLargeError(ValueError):
    """Raised when an upload exceeds the size ceiling."""

    def __init__(self, size: int, limit: int = MAX_UPLOAD_BYTES):
        super().__init__(f"File is {size:,} bytes; the limit is {limit:,} bytes")
        self.size = size
        self.limit = limit


@dataclass(frozen=True)
class AnalysisReport:
    """Everything computed for one upload."""
    result: AnalysisResult
    score: Optional[EfficiencyScore]
    diagnostics: ParseDiagnostics

    def to_record(self) -> Dict[str, Any]:
        record = self.result.to_record()
        record["efficiency"] = self.score.to_record() if self.score else None
        record["diagnostics"] = self.diagnostics.to_record()
        return record


def read_csv_file(path: str, max_bytes: int = MAX_UPLOAD_BYTES) -> str:
    """Read an uploaded CSV file as text.

    Args:
        path: Path to the CSV file
        max_bytes: Size ceiling for the upload

    Returns:
        Decoded file content

    Raises:
        FileNotFoundError: If the file doesn't exist
        UploadTooLargeError: If the file exceeds max_bytes
        MalformedCsvError: If the file is not UTF-8 text
    """
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {path}")
    size = csv_path.stat().st_size
    if size > max_bytes:
        raise UploadTooLargeError(size, max_bytes)
    return decode_csv_bytes(csv_path.read_bytes())


def analyze_csv(csv_text: str, catalog: ModelCatalog) -> AnalysisReport:
    """Run the full analysis for one usage export.

    Args:
        csv_text: CSV file content
        catalog: Model catalog to price and audit against

    Returns:
        AnalysisReport; its score is None when the upload has no spend

    Raises:
        MalformedCsvError: If the file cannot be parsed
        NoValidRowsError: If the file has no rows, or none of them are valid
    """
    parsed = parse_usage_csv(csv_text, catalog)
    diagnostics = parsed.diagnostics

    if diagnostics.total_rows == 0:
        raise NoValidRowsError("CSV file appears to be empty or contains no data rows", 0)
    if not parsed.rows:
        raise NoValidRowsError(
            f"No valid usage data found in {diagnostics.total_rows:,} rows. "
            "Please ensure your file contains model, token or cost information.",
            diagnostics.total_rows,
        )
    if diagnostics.invalid_rows:
        logger.warning(
            "%d of %d rows had invalid or missing data and were skipped",
            diagnostics.invalid_rows, diagnostics.total_rows,
        )

    rows = parsed.rows
    result = aggregate(rows, catalog).with_recommendations(
        generate_recommendations(rows, catalog)
    )

    try:
        score = calculate_efficiency_score(rows, catalog)
    except UndefinedScoreError:
        logger.info("Upload has zero total spend; efficiency score is undefined")
        score = None

    logger.info(
        "Analyzed %d rows: $%.2f across %d models, %d recommendations",
        result.total_requests, result.total_spend, len(result.top_models),
        len(result.recommendations),
    )
    return AnalysisReport(result=result, score=score, diagnostics=diagnostics)
