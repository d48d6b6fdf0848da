from typing import Any

from psycopg.rows import dict_row

from statement_ingest.database.connection import get_connection
from statement_ingest.database.models import AccountRecord
from statement_ingest.matching.normalize import normalize_institution, number_hint_key
from statement_ingest.pipeline.exceptions import RecordWriteError

_COLUMNS = """
    id, user_id, institution_name, account_type, account_number_hint,
    account_nickname, account_group, entity_id, is_active, created_at
"""


def row_to_account(row: dict[str, Any]) -> AccountRecord:
    return AccountRecord(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        institution_name=row["institution_name"],
        account_type=row["account_type"],
        account_number_hint=row["account_number_hint"],
        account_nickname=row["account_nickname"],
        account_group=row["account_group"],
        entity_id=str(row["entity_id"]) if row["entity_id"] is not None else None,
        is_active=row["is_active"],
        created_at=row["created_at"],
    )


class AccountRepository:
    """Database operations for the accounts table."""

    def list_active(self, user_id: str) -> list[AccountRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS} FROM accounts
                    WHERE user_id = %s AND is_active
                    ORDER BY created_at DESC, id DESC
                    """,
                    (user_id,),
                )
                rows = cur.fetchall()
        return [row_to_account(row) for row in rows]

    def find_active(self, user_id: str, account_id: str) -> AccountRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM accounts WHERE id = %s AND user_id = %s AND is_active",
                    (account_id, user_id),
                )
                row = cur.fetchone()
        return row_to_account(row) if row is not None else None

    def create(
        self,
        user_id: str,
        *,
        institution_name: str,
        account_type: str | None,
        account_number_hint: str | None,
        account_nickname: str | None,
        account_group: str | None,
        entity_id: str | None,
    ) -> AccountRecord:
        """Insert an account, or return the existing one with the same identity.

        Identity is the normalized (institution, number hint) pair per user; an
        inactive account with that identity is reactivated.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO accounts (
                        user_id, institution_name, institution_key, account_type,
                        account_number_hint, number_hint_key, account_nickname,
                        account_group, entity_id
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (user_id, institution_key, number_hint_key)
                    DO UPDATE SET is_active = TRUE
                    RETURNING {_COLUMNS}
                    """,
                    (
                        user_id,
                        institution_name,
                        normalize_institution(institution_name),
                        account_type,
                        account_number_hint,
                        number_hint_key(account_number_hint),
                        account_nickname,
                        account_group,
                        entity_id,
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RecordWriteError(f"Account insert for {institution_name} returned no row")
        return row_to_account(row)
