from typing import Any

from psycopg.rows import dict_row

from statement_ingest.database.connection import get_connection
from statement_ingest.database.models import ExtractionFailureRecord
from statement_ingest.pipeline.exceptions import FailureNotFoundError, RecordWriteError

_COLUMNS = """
    id, user_id, upload_id, filename, file_type, file_path, file_size_bytes,
    attempt_number, error_message, llm_mode, resolved_at, resolution_notes, created_at
"""


def row_to_failure(row: dict[str, Any]) -> ExtractionFailureRecord:
    return ExtractionFailureRecord(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        upload_id=str(row["upload_id"]),
        filename=row["filename"],
        file_type=row["file_type"],
        file_path=row["file_path"],
        file_size_bytes=row["file_size_bytes"],
        attempt_number=row["attempt_number"],
        error_message=row["error_message"],
        llm_mode=row["llm_mode"],
        resolved_at=row["resolved_at"],
        resolution_notes=row["resolution_notes"],
        created_at=row["created_at"],
    )


class ExtractionFailureRepository:
    """Write-once audit log of repeated extraction failures."""

    def create(
        self,
        user_id: str,
        upload_id: str,
        *,
        filename: str,
        file_type: str,
        file_path: str | None,
        file_size_bytes: int | None,
        attempt_number: int,
        error_message: str,
        llm_mode: str,
    ) -> ExtractionFailureRecord:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO extraction_failures (
                        user_id, upload_id, filename, file_type, file_path,
                        file_size_bytes, attempt_number, error_message, llm_mode
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_COLUMNS}
                    """,
                    (
                        user_id, upload_id, filename, file_type, file_path,
                        file_size_bytes, attempt_number, error_message, llm_mode,
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RecordWriteError(f"Extraction failure insert for upload {upload_id} returned no row")
        return row_to_failure(row)

    def list_for_user(
        self, user_id: str, include_resolved: bool = False
    ) -> list[ExtractionFailureRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS} FROM extraction_failures
                    WHERE user_id = %s AND (%s OR resolved_at IS NULL)
                    ORDER BY created_at DESC
                    """,
                    (user_id, include_resolved),
                )
                rows = cur.fetchall()
        return [row_to_failure(row) for row in rows]

    def resolve(self, user_id: str, failure_id: str, notes: str) -> ExtractionFailureRecord:
        """Mark a failure resolved. Only the resolution fields change.

        Raises:
            FailureNotFoundError: if the failure does not exist for this user.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE extraction_failures
                    SET resolved_at = NOW(), resolution_notes = %s
                    WHERE id = %s AND user_id = %s
                    RETURNING {_COLUMNS}
                    """,
                    (notes, failure_id, user_id),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise FailureNotFoundError(f"Extraction failure {failure_id} not found")
        return row_to_failure(row)
