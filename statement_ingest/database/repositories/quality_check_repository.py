from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from statement_ingest.database.connection import get_connection
from statement_ingest.database.models import CHECK_TRANSITIONS, QualityCheckRecord
from statement_ingest.pipeline.exceptions import (
    InvalidStateError,
    QualityCheckNotFoundError,
    RecordWriteError,
)

_COLUMNS = """
    id, user_id, upload_id, check_status, checks, linked_account_id,
    fix_attempts, fix_count, resolution_notes, resolved_at, created_at
"""


def row_to_check(row: dict[str, Any]) -> QualityCheckRecord:
    return QualityCheckRecord(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        upload_id=str(row["upload_id"]),
        check_status=row["check_status"],
        checks=row["checks"] or {},
        linked_account_id=str(row["linked_account_id"]) if row["linked_account_id"] else None,
        fix_attempts=row["fix_attempts"] or [],
        fix_count=row["fix_count"],
        resolution_notes=row["resolution_notes"],
        resolved_at=row["resolved_at"],
        created_at=row["created_at"],
    )


class QualityCheckRepository:
    """Database operations for the quality_checks table.

    Status changes only move forward along CHECK_TRANSITIONS; a change from any
    other status raises InvalidStateError and leaves the row untouched.
    """

    def create(
        self,
        user_id: str,
        upload_id: str,
        *,
        check_status: str,
        checks: dict[str, Any],
        extraction_snapshot: dict[str, Any] | None,
        linked_account_id: str | None,
    ) -> QualityCheckRecord:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO quality_checks (
                        user_id, upload_id, check_status, checks,
                        extraction_snapshot, linked_account_id
                    )
                    VALUES (%s, %s, %s, %s, %s, %s)
                    RETURNING {_COLUMNS}
                    """,
                    (
                        user_id,
                        upload_id,
                        check_status,
                        Jsonb(checks),
                        Jsonb(extraction_snapshot) if extraction_snapshot is not None else None,
                        linked_account_id,
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RecordWriteError(f"Quality check insert for upload {upload_id} returned no row")
        return row_to_check(row)

    def find_by_id(self, user_id: str, check_id: str) -> QualityCheckRecord:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM quality_checks WHERE id = %s AND user_id = %s",
                    (check_id, user_id),
                )
                row = cur.fetchone()
        if row is None:
            raise QualityCheckNotFoundError(f"Quality check {check_id} not found")
        return row_to_check(row)

    def find_latest_for_upload(self, user_id: str, upload_id: str) -> QualityCheckRecord:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS} FROM quality_checks
                    WHERE user_id = %s AND upload_id = %s
                    ORDER BY created_at DESC, id DESC
                    LIMIT 1
                    """,
                    (user_id, upload_id),
                )
                row = cur.fetchone()
        if row is None:
            raise QualityCheckNotFoundError(f"No quality check found for upload {upload_id}")
        return row_to_check(row)

    def start_fix(
        self, user_id: str, check_id: str, attempt: dict[str, Any]
    ) -> QualityCheckRecord:
        """Move a failed check to ``fixing`` and append the attempt record."""
        return self._transition(
            user_id,
            check_id,
            "fixing",
            """
            fix_attempts = fix_attempts || jsonb_build_array(%(attempt)s::jsonb),
            fix_count = fix_count + 1
            """,
            {"attempt": Jsonb(attempt)},
        )

    def finish_fix(
        self,
        user_id: str,
        check_id: str,
        *,
        fixed: bool,
        attempt: dict[str, Any],
        checks: dict[str, Any] | None = None,
    ) -> QualityCheckRecord:
        """Close the latest attempt and land on ``fixed`` or ``unresolved``."""
        return self._transition(
            user_id,
            check_id,
            "fixed" if fixed else "unresolved",
            """
            fix_attempts = CASE
                WHEN jsonb_array_length(fix_attempts) = 0
                    THEN jsonb_build_array(%(attempt)s::jsonb)
                ELSE jsonb_set(
                    fix_attempts,
                    ARRAY[(jsonb_array_length(fix_attempts) - 1)::text],
                    %(attempt)s::jsonb
                )
            END,
            fix_count = GREATEST(fix_count, 1),
            checks = COALESCE(%(checks)s, checks),
            resolved_at = CASE WHEN %(fixed)s THEN NOW() ELSE resolved_at END
            """,
            {
                "attempt": Jsonb(attempt),
                "checks": Jsonb(checks) if checks is not None else None,
                "fixed": fixed,
            },
        )

    def resolve(self, user_id: str, check_id: str, notes: str) -> QualityCheckRecord:
        """Close a failed or unresolved check by hand."""
        return self._transition(
            user_id,
            check_id,
            "resolved",
            "resolution_notes = %(notes)s, resolved_at = NOW()",
            {"notes": notes},
        )

    def _transition(
        self,
        user_id: str,
        check_id: str,
        to_status: str,
        assignments: str,
        params: dict[str, Any],
    ) -> QualityCheckRecord:
        allowed = list(CHECK_TRANSITIONS[to_status])
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE quality_checks
                    SET check_status = %(to_status)s,
                        {assignments},
                        updated_at = NOW()
                    WHERE id = %(check_id)s
                      AND user_id = %(user_id)s
                      AND check_status = ANY(%(allowed)s)
                    RETURNING {_COLUMNS}
                    """,
                    {
                        **params,
                        "to_status": to_status,
                        "check_id": check_id,
                        "user_id": user_id,
                        "allowed": allowed,
                    },
                )
                row = cur.fetchone()
                if row is None:
                    cur.execute(
                        "SELECT check_status FROM quality_checks WHERE id = %s AND user_id = %s",
                        (check_id, user_id),
                    )
                    current = cur.fetchone()
            conn.commit()
        if row is None:
            if current is None:
                raise QualityCheckNotFoundError(f"Quality check {check_id} not found")
            raise InvalidStateError(
                f"Quality check {check_id} cannot move from "
                f"'{current['check_status']}' to '{to_status}'"
            )
        return row_to_check(row)
