from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from statement_ingest.database.connection import get_connection
from statement_ingest.database.models import REUSABLE_STATUSES, UploadRecord
from statement_ingest.pipeline.exceptions import (
    ProcessingConflictError,
    RecordWriteError,
    UploadNotFoundError,
)

_COLUMNS = """
    id, user_id, filename, file_path, file_type, mime_type, file_size_bytes,
    file_hash, parse_status, process_count, parse_error, parsed_at,
    extracted_data, raw_llm_response, detected_account_info, processing_settings,
    account_id, confirmed_at, statement_start_date, statement_end_date,
    transactions_created, positions_created, quality_check_id, qc_status_message,
    created_at
"""


def _optional_id(value: Any) -> str | None:
    return str(value) if value is not None else None


def row_to_upload(row: dict[str, Any]) -> UploadRecord:
    return UploadRecord(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        filename=row["filename"],
        file_path=row["file_path"],
        file_type=row["file_type"],
        mime_type=row["mime_type"],
        file_size_bytes=row["file_size_bytes"],
        file_hash=row["file_hash"],
        parse_status=row["parse_status"],
        process_count=row["process_count"],
        parse_error=row["parse_error"],
        parsed_at=row["parsed_at"],
        extracted_data=row["extracted_data"],
        raw_llm_response=row["raw_llm_response"],
        detected_account_info=row["detected_account_info"],
        processing_settings=row["processing_settings"],
        account_id=_optional_id(row["account_id"]),
        confirmed_at=row["confirmed_at"],
        statement_start_date=row["statement_start_date"],
        statement_end_date=row["statement_end_date"],
        transactions_created=row["transactions_created"],
        positions_created=row["positions_created"],
        quality_check_id=_optional_id(row["quality_check_id"]),
        qc_status_message=row["qc_status_message"],
        created_at=row["created_at"],
    )


def _jsonb(value: dict[str, Any] | None) -> Jsonb | None:
    return Jsonb(value) if value is not None else None


class UploadRepository:
    """Database operations for the uploaded_statements ledger.

    Every method is scoped by ``user_id``: a row owned by another user is
    reported as not found.
    """

    def find_by_id(self, user_id: str, upload_id: str) -> UploadRecord:
        """Raises UploadNotFoundError if the upload does not exist for this user."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM uploaded_statements WHERE id = %s AND user_id = %s",
                    (upload_id, user_id),
                )
                row = cur.fetchone()
        if row is None:
            raise UploadNotFoundError(f"Upload {upload_id} not found")
        return row_to_upload(row)

    def find_by_hash(self, user_id: str, file_hash: str) -> list[UploadRecord]:
        """Prior uploads of identical content, newest first."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS} FROM uploaded_statements
                    WHERE user_id = %s AND file_hash = %s
                    ORDER BY created_at DESC, id DESC
                    LIMIT 20
                    """,
                    (user_id, file_hash),
                )
                rows = cur.fetchall()
        return [row_to_upload(row) for row in rows]

    def create(
        self,
        *,
        user_id: str,
        filename: str,
        file_path: str,
        file_type: str,
        mime_type: str,
        file_size_bytes: int,
        file_hash: str,
        reuse_from: UploadRecord | None = None,
    ) -> UploadRecord:
        """Insert a ledger row, carrying over a prior extraction when given."""
        if reuse_from is not None and reuse_from.parse_status not in REUSABLE_STATUSES:
            raise ValueError(f"Cannot reuse extraction from a '{reuse_from.parse_status}' upload")
        carried = reuse_from or UploadRecord(
            id="", user_id=user_id, filename="", file_path="", file_type="",
            mime_type="", file_size_bytes=0, file_hash="",
        )
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO uploaded_statements (
                        user_id, filename, file_path, file_type, mime_type,
                        file_size_bytes, file_hash, parse_status, parsed_at,
                        extracted_data, raw_llm_response, detected_account_info,
                        statement_start_date, statement_end_date
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_COLUMNS}
                    """,
                    (
                        user_id, filename, file_path, file_type, mime_type,
                        file_size_bytes, file_hash,
                        carried.parse_status,
                        carried.parsed_at,
                        _jsonb(carried.extracted_data),
                        _jsonb(carried.raw_llm_response),
                        _jsonb(carried.detected_account_info),
                        carried.statement_start_date,
                        carried.statement_end_date,
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RecordWriteError(f"Upload insert for {filename} returned no row")
        return row_to_upload(row)

    def begin_processing(
        self,
        user_id: str,
        upload_id: str,
        processing_settings: dict[str, Any] | None = None,
    ) -> UploadRecord:
        """Claim the upload for a processing run.

        Locks the row, rejects a concurrent run, bumps ``process_count`` and
        clears the previous error and confirmation. The returned record keeps
        the pre-claim ``confirmed_at`` and ``account_id`` so the run can reuse
        a confirmed account link.

        Raises:
            UploadNotFoundError: if the upload does not exist for this user.
            ProcessingConflictError: if the upload is already processing.
        """
        with get_connection() as conn:
            with conn.transaction():
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"""
                        SELECT {_COLUMNS} FROM uploaded_statements
                        WHERE id = %s AND user_id = %s
                        FOR UPDATE
                        """,
                        (upload_id, user_id),
                    )
                    row = cur.fetchone()
                    if row is None:
                        raise UploadNotFoundError(f"Upload {upload_id} not found")
                    if row["parse_status"] == "processing":
                        raise ProcessingConflictError(f"Upload {upload_id} is already processing")
                    cur.execute(
                        """
                        UPDATE uploaded_statements
                        SET parse_status = 'processing',
                            process_count = process_count + 1,
                            parse_error = NULL,
                            confirmed_at = NULL,
                            processing_settings = COALESCE(%s, processing_settings),
                            updated_at = NOW()
                        WHERE id = %s AND user_id = %s
                        RETURNING process_count
                        """,
                        (_jsonb(processing_settings), upload_id, user_id),
                    )
                    updated = cur.fetchone()
                    if updated is None:
                        raise UploadNotFoundError(f"Upload {upload_id} not found")
        snapshot = row_to_upload(row)
        snapshot.process_count = updated["process_count"]
        snapshot.parse_status = "processing"
        return snapshot

    def save_extraction(
        self,
        user_id: str,
        upload_id: str,
        *,
        parse_status: str,
        extracted_data: dict[str, Any],
        raw_llm_response: dict[str, Any] | None,
        detected_account_info: dict[str, Any] | None,
        account_id: str | None,
        statement_start_date: str | None,
        statement_end_date: str | None,
        parse_error: str | None = None,
    ) -> None:
        """Persist the outcome of a successful extraction."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE uploaded_statements
                    SET parse_status = %s,
                        parsed_at = NOW(),
                        parse_error = %s,
                        extracted_data = %s,
                        raw_llm_response = %s,
                        detected_account_info = %s,
                        account_id = %s,
                        statement_start_date = %s,
                        statement_end_date = %s,
                        updated_at = NOW()
                    WHERE id = %s AND user_id = %s
                    """,
                    (
                        parse_status,
                        parse_error,
                        Jsonb(extracted_data),
                        _jsonb(raw_llm_response),
                        _jsonb(detected_account_info),
                        account_id,
                        statement_start_date,
                        statement_end_date,
                        upload_id,
                        user_id,
                    ),
                )
                if cur.rowcount == 0:
                    raise UploadNotFoundError(f"Upload {upload_id} not found")
            conn.commit()

    def mark_failed(self, user_id: str, upload_id: str, error_message: str) -> None:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE uploaded_statements
                    SET parse_status = 'failed', parse_error = %s, updated_at = NOW()
                    WHERE id = %s AND user_id = %s
                    """,
                    (error_message, upload_id, user_id),
                )
                if cur.rowcount == 0:
                    raise UploadNotFoundError(f"Upload {upload_id} not found")
            conn.commit()

    def transition_status(
        self,
        user_id: str,
        upload_id: str,
        *,
        from_statuses: tuple[str, ...],
        to_status: str,
        qc_status_message: str | None = None,
        quality_check_id: str | None = None,
    ) -> bool:
        """Move the upload to ``to_status`` only if it is currently in ``from_statuses``.

        ``quality_check_id`` is kept unchanged when None. Returns False when the
        upload exists but is in another state.

        Raises:
            UploadNotFoundError: if the upload does not exist for this user.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE uploaded_statements
                    SET parse_status = %s,
                        qc_status_message = %s,
                        quality_check_id = COALESCE(%s, quality_check_id),
                        updated_at = NOW()
                    WHERE id = %s AND user_id = %s AND parse_status = ANY(%s)
                    """,
                    (to_status, qc_status_message, quality_check_id, upload_id, user_id, list(from_statuses)),
                )
                changed = cur.rowcount > 0
                if not changed:
                    cur.execute(
                        "SELECT 1 FROM uploaded_statements WHERE id = %s AND user_id = %s",
                        (upload_id, user_id),
                    )
                    if cur.fetchone() is None:
                        raise UploadNotFoundError(f"Upload {upload_id} not found")
            conn.commit()
        return changed

    def replace_extraction(
        self,
        user_id: str,
        upload_id: str,
        *,
        extracted_data: dict[str, Any],
        raw_llm_response: dict[str, Any] | None,
        detected_account_info: dict[str, Any] | None,
        statement_start_date: str | None,
        statement_end_date: str | None,
    ) -> None:
        """Swap in the extraction produced by a successful fix pass."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE uploaded_statements
                    SET extracted_data = %s,
                        raw_llm_response = %s,
                        detected_account_info = %s,
                        statement_start_date = %s,
                        statement_end_date = %s,
                        parsed_at = NOW(),
                        updated_at = NOW()
                    WHERE id = %s AND user_id = %s
                    """,
                    (
                        Jsonb(extracted_data),
                        _jsonb(raw_llm_response),
                        _jsonb(detected_account_info),
                        statement_start_date,
                        statement_end_date,
                        upload_id,
                        user_id,
                    ),
                )
                if cur.rowcount == 0:
                    raise UploadNotFoundError(f"Upload {upload_id} not found")
            conn.commit()
