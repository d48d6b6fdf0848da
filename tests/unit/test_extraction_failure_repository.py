from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from statement_ingest.database.repositories.extraction_failure_repository import (
    ExtractionFailureRepository,
)
from statement_ingest.database.repositories.llm_settings_repository import LlmSettingsRepository
from statement_ingest.pipeline.exceptions import FailureNotFoundError

_PATCH = "statement_ingest.database.repositories.extraction_failure_repository.get_connection"
_SETTINGS_PATCH = "statement_ingest.database.repositories.llm_settings_repository.get_connection"


def _make_row(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": "f1",
        "user_id": "u1",
        "upload_id": "up1",
        "filename": "jan.pdf",
        "file_type": "pdf",
        "file_path": "u1/1_jan.pdf",
        "file_size_bytes": 2048,
        "attempt_number": 2,
        "error_message": "provider down",
        "llm_mode": "api",
        "resolved_at": None,
        "resolution_notes": None,
        "created_at": datetime(2024, 2, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


def _mock_connection(mock_get_conn: MagicMock) -> tuple[MagicMock, MagicMock]:
    """Wire up a mock connection + cursor and return (mock_conn, mock_cursor)."""
    mock_cursor = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    mock_get_conn.return_value.__enter__ = MagicMock(return_value=mock_conn)
    mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
    return mock_conn, mock_cursor


class TestExtractionFailureRepository:
    @patch(_PATCH)
    def test_list_excludes_resolved_by_default(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchall.return_value = [_make_row()]

        failures = ExtractionFailureRepository().list_for_user("u1")

        assert [f.id for f in failures] == ["f1"]
        assert mock_cursor.execute.call_args.args[1] == ("u1", False)

    @patch(_PATCH)
    def test_resolve_sets_notes(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        resolved_at = datetime(2024, 2, 3, tzinfo=timezone.utc)
        mock_cursor.fetchone.return_value = _make_row(resolved_at=resolved_at, resolution_notes="rescanned")

        failure = ExtractionFailureRepository().resolve("u1", "f1", "rescanned")

        assert failure.resolved_at == resolved_at
        assert failure.resolution_notes == "rescanned"
        assert failure.error_message == "provider down"
        assert mock_cursor.execute.call_args.args[1] == ("rescanned", "f1", "u1")
        mock_conn.commit.assert_called_once()

    @patch(_PATCH)
    def test_resolve_missing_raises(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        with pytest.raises(FailureNotFoundError, match="f9 not found"):
            ExtractionFailureRepository().resolve("u1", "f9", "n/a")


class TestLlmSettingsRepository:
    @patch(_SETTINGS_PATCH)
    def test_returns_configured_mode(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = ("cli",)

        assert LlmSettingsRepository("api").get_mode("u1") == "cli"

    @patch(_SETTINGS_PATCH)
    def test_falls_back_to_default(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        assert LlmSettingsRepository("api").get_mode("u1") == "api"
