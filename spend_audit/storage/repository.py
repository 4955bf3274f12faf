"""
Repository pattern for data access.

Handles persistence of uploads and their analysis results.
"""

import json
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from spend_audit.core.pipeline import AnalysisReport

from .db import DEFAULT_DB_PATH, get_connection
from .models import StoredAnalysis, UploadRecord, UploadStatus


class AnalysisRepository:
    """Repository for storing uploads and their analysis results.

    Each upload has at most one analysis; saving again replaces it.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def create_upload(
        self,
        filename: Optional[str],
        file_size: Optional[int],
        provider: str = "openai",
    ) -> UploadRecord:
        """Register a new upload in PENDING state.

        Args:
            filename: Original file name
            file_size: Size of the file in bytes
            provider: Billing provider of the export

        Returns:
            The stored upload record with its generated id
        """
        upload = UploadRecord(
            id=str(uuid.uuid4()),
            filename=filename,
            file_size=file_size,
            status=UploadStatus.PENDING,
            created_at=datetime.now(),
            provider=provider,
        )
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT INTO csv_uploads
                (id, filename, file_size, provider, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                upload.id,
                upload.filename,
                upload.file_size,
                upload.provider,
                upload.status.value,
                upload.created_at.isoformat(),
            ))
            conn.commit()
        finally:
            conn.close()
        return upload

    def update_status(self, upload_id: str, status: UploadStatus) -> None:
        """Move an upload to a new processing state.

        Raises:
            KeyError: If the upload does not exist
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "UPDATE csv_uploads SET status = ? WHERE id = ?",
                (status.value, upload_id),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Upload not found: {upload_id}")
            conn.commit()
        finally:
            conn.close()

    def save_analysis(self, upload_id: str, report: AnalysisReport) -> None:
        """Store the analysis for an upload and mark it completed.

        Replaces any earlier analysis of the same upload. Both writes
        happen in a single transaction.

        Args:
            upload_id: Upload the analysis belongs to
            report: Pipeline output to persist
        """
        result = report.result.to_record()
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN TRANSACTION")
            conn.execute("""
                INSERT INTO analysis_results
                (upload_id, total_spend, total_requests, top_models, spend_by_day,
                 recommendations, efficiency, diagnostics, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(upload_id) DO UPDATE SET
                    total_spend = excluded.total_spend,
                    total_requests = excluded.total_requests,
                    top_models = excluded.top_models,
                    spend_by_day = excluded.spend_by_day,
                    recommendations = excluded.recommendations,
                    efficiency = excluded.efficiency,
                    diagnostics = excluded.diagnostics,
                    created_at = excluded.created_at
            """, (
                upload_id,
                result["total_spend"],
                result["total_requests"],
                json.dumps(result["top_models"]),
                json.dumps(result["spend_by_day"]),
                json.dumps(result["recommendations"]),
                json.dumps(report.score.to_record()) if report.score else None,
                json.dumps(report.diagnostics.to_record()),
                datetime.now().isoformat(),
            ))
            conn.execute(
                "UPDATE csv_uploads SET status = ? WHERE id = ?",
                (UploadStatus.COMPLETED.value, upload_id),
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get_upload(self, upload_id: str) -> Optional[UploadRecord]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("""
                SELECT id, filename, file_size, provider, status, created_at
                FROM csv_uploads WHERE id = ?
            """, (upload_id,)).fetchone()
        finally:
            conn.close()
        return _upload_from_row(row) if row else None

    def get_analysis(self, upload_id: str) -> Optional[StoredAnalysis]:
        """Fetch the stored analysis for an upload.

        Returns:
            StoredAnalysis, or None if the upload has not been analyzed
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("""
                SELECT upload_id, total_spend, total_requests, top_models,
                       spend_by_day, recommendations, efficiency, diagnostics,
                       created_at
                FROM analysis_results WHERE upload_id = ?
            """, (upload_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return StoredAnalysis.from_columns(
            upload_id=row[0],
            total_spend=row[1],
            total_requests=row[2],
            top_models=json.loads(row[3]),
            spend_by_day=json.loads(row[4]),
            recommendations=json.loads(row[5]),
            efficiency=json.loads(row[6]) if row[6] else None,
            diagnostics=json.loads(row[7]),
            created_at=datetime.fromisoformat(row[8]),
        )

    def list_uploads(self, limit: int = 20) -> List[UploadRecord]:
        """List uploads, newest first."""
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute("""
                SELECT id, filename, file_size, provider, status, created_at
                FROM csv_uploads ORDER BY created_at DESC LIMIT ?
            """, (limit,)).fetchall()
        finally:
            conn.close()
        return [_upload_from_row(row) for row in rows]


def _upload_from_row(row) -> UploadRecord:
    return UploadRecord(
        id=row[0],
        filename=row[1],
        file_size=row[2],
        provider=row[3],
        status=UploadStatus(row[4]),
        created_at=datetime.fromisoformat(row[5]),
    )


# Repository instances by database path
_repositories: Dict[str, AnalysisRepository] = {}


def get_repository(db_path: str = DEFAULT_DB_PATH) -> AnalysisRepository:
    """Get a repository instance.

    Returns the same AnalysisRepository for repeated calls with one path.

    Args:
        db_path: Path to SQLite database file

    Returns:
        An instance of AnalysisRepository
    """
    if db_path not in _repositories:
        _repositories[db_path] = AnalysisRepository(db_path)
    return _repositories[db_path]


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the upload and analysis tables if they don't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS csv_uploads (
                id TEXT PRIMARY KEY,
                filename TEXT,
                file_size INTEGER,
                provider TEXT NOT NULL DEFAULT 'openai',
                status TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS analysis_results (
                upload_id TEXT PRIMARY KEY REFERENCES csv_uploads(id) ON DELETE CASCADE,
                total_spend REAL NOT NULL,
                total_requests INTEGER NOT NULL,
                top_models TEXT NOT NULL,
                spend_by_day TEXT NOT NULL,
                recommendations TEXT NOT NULL,
                efficiency TEXT,
                diagnostics TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()
