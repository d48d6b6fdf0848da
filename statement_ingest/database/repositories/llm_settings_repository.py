from statement_ingest.database.connection import get_connection


class LlmSettingsRepository:
    """Per-user extraction mode preference."""

    def __init__(self, default_mode: str) -> None:
        self._default_mode = default_mode

    def get_mode(self, user_id: str) -> str:
        """Return the user's configured mode, or the default when unset."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT llm_mode FROM llm_settings WHERE user_id = %s", (user_id,))
                row = cur.fetchone()
        if row is None or not row[0]:
            return self._default_mode
        return str(row[0])

    def set_mode(self, user_id: str, mode: str) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO llm_settings (user_id, llm_mode)
                VALUES (%s, %s)
                ON CONFLICT (user_id) DO UPDATE SET llm_mode = EXCLUDED.llm_mode, updated_at = NOW()
                """,
                (user_id, mode),
            )
            conn.commit()
