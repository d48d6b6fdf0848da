from typing import Any

from psycopg.rows import dict_row

from statement_ingest.database.connection import get_connection
from statement_ingest.database.models import EntityRecord
from statement_ingest.pipeline.exceptions import RecordWriteError

_COLUMNS = "id, user_id, entity_name, entity_type, is_default, created_at"


def row_to_entity(row: dict[str, Any]) -> EntityRecord:
    return EntityRecord(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        entity_name=row["entity_name"],
        entity_type=row["entity_type"],
        is_default=row["is_default"],
        created_at=row["created_at"],
    )


class EntityRepository:
    """Database operations for the entities table."""

    def list_for_user(self, user_id: str) -> list[EntityRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS} FROM entities
                    WHERE user_id = %s
                    ORDER BY is_default DESC, created_at, id
                    """,
                    (user_id,),
                )
                rows = cur.fetchall()
        return [row_to_entity(row) for row in rows]

    def ensure_default(self, user_id: str, entity_name: str = "Personal") -> EntityRecord:
        """Return the user's default entity, creating it when missing.

        The partial unique index on (user_id) WHERE is_default makes concurrent
        callers converge on one row.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO entities (user_id, entity_name, entity_type, is_default)
                    VALUES (%s, %s, 'personal', TRUE)
                    ON CONFLICT (user_id) WHERE is_default DO NOTHING
                    RETURNING {_COLUMNS}
                    """,
                    (user_id, entity_name),
                )
                row = cur.fetchone()
                if row is None:
                    cur.execute(
                        f"SELECT {_COLUMNS} FROM entities WHERE user_id = %s AND is_default",
                        (user_id,),
                    )
                    row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RecordWriteError(f"Default entity for user {user_id} could not be created")
        return row_to_entity(row)
