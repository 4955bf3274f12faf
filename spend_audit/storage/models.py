"""
Data models for storage layer.

Defines stored uploads and analysis results.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from spend_audit.core.aggregator import AnalysisResult, DailySpend, ModelBreakdown
from spend_audit.core.recommendations import Recommendation
from spend_audit.core.scoring import EfficiencyScore


class UploadStatus(Enum):
    """Processing state of an uploaded file."""
    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadRecord:
    """An uploaded usage export."""
    id: str
    filename: Optional[str]
    file_size: Optional[int]
    status: UploadStatus
    created_at: datetime
    provider: str = "openai"


@dataclass(frozen=True)
class StoredAnalysis:
    """Analysis results persisted for an upload, keyed by upload id."""
    upload_id: str
    result: AnalysisResult
    score: Optional[EfficiencyScore]
    diagnostics: Dict[str, int]
    created_at: datetime

    @classmethod
    def from_columns(
        cls,
        upload_id: str,
        total_spend: float,
        total_requests: int,
        top_models: List[Dict[str, Any]],
        spend_by_day: List[Dict[str, Any]],
        recommendations: List[Dict[str, Any]],
        efficiency: Optional[Dict[str, Any]],
        diagnostics: Dict[str, int],
        created_at: datetime,
    ) -> "StoredAnalysis":
        """Rebuild typed results from decoded JSON columns."""
        result = AnalysisResult(
            total_spend=total_spend,
            total_requests=total_requests,
            top_models=tuple(
                ModelBreakdown(
                    model_id=m["model"],
                    display_name=m["display_name"],
                    cost=m["cost"],
                    tokens=m["tokens"],
                )
                for m in top_models
            ),
            spend_by_day=tuple(DailySpend(date=d["date"], cost=d["cost"]) for d in spend_by_day),
            recommendations=tuple(Recommendation.from_record(r) for r in recommendations),
        )
        return cls(
            upload_id=upload_id,
            result=result,
            score=EfficiencyScore.from_record(efficiency) if efficiency else None,
            diagnostics=diagnostics,
            created_at=created_at,
        )
