from datetime import date
from typing import Any
from unittest.mock import MagicMock

import pytest

from statement_ingest.database.models import LedgerCounts
from statement_ingest.extraction.models import (
    DetectedAccountInfo,
    ExtractedBalance,
    ExtractedPosition,
    ExtractionResult,
)
from statement_ingest.extraction.validator import validate_and_build
from statement_ingest.ledger.data_reverter import DataReverter
from statement_ingest.ledger.data_writer import DataWriter, external_transaction_id
from statement_ingest.pipeline.exceptions import RevertError


class TestDataWriter:
    def test_writes_all_rows_tagged_by_upload(self, extraction_payload: dict[str, Any]) -> None:
        repo = MagicMock()
        repo.replace_upload_rows.return_value = LedgerCounts(2, 2, 1)
        extraction = validate_and_build(extraction_payload)

        counts = DataWriter(repo).write("u1", "up1", "acc1", extraction)

        assert counts == LedgerCounts(2, 2, 1)
        args = repo.replace_upload_rows.call_args
        assert args.args == ("u1", "up1", "acc1")
        kwargs = args.kwargs
        assert [t["external_transaction_id"] for t in kwargs["transactions"]] == [
            "upload_up1_0",
            "upload_up1_1",
        ]
        assert kwargs["transactions"][1]["action"] == "buy"
        assert kwargs["positions"][0]["symbol"] == "AAPL"
        assert kwargs["balances"][0]["liquidation_value"] == 10000.0
        assert kwargs["statement_start_date"] == "2024-01-01"
        assert kwargs["statement_end_date"] == "2024-01-31"

    def test_external_ids_are_deterministic(self) -> None:
        assert external_transaction_id("up1", 3) == external_transaction_id("up1", 3)
        assert external_transaction_id("up1", 3) != external_transaction_id("up2", 3)

    def test_snapshot_date_falls_back_to_statement_end(self) -> None:
        repo = MagicMock()
        extraction = ExtractionResult(
            account_info=DetectedAccountInfo(),
            positions=[ExtractedPosition(symbol="AAPL", quantity=1)],
            balances=[ExtractedBalance(liquidation_value=5)],
            statement_end_date="2024-02-29",
        )
        DataWriter(repo).write("u1", "up1", "acc1", extraction)
        kwargs = repo.replace_upload_rows.call_args.kwargs
        assert kwargs["positions"][0]["snapshot_date"] == "2024-02-29"
        assert kwargs["balances"][0]["snapshot_date"] == "2024-02-29"

    def test_snapshot_date_falls_back_to_today(self) -> None:
        repo = MagicMock()
        extraction = ExtractionResult(
            account_info=DetectedAccountInfo(),
            balances=[ExtractedBalance(liquidation_value=5)],
        )
        DataWriter(repo).write("u1", "up1", "acc1", extraction)
        kwargs = repo.replace_upload_rows.call_args.kwargs
        assert kwargs["balances"][0]["snapshot_date"] == date.today().isoformat()


class TestDataReverter:
    def test_returns_removed_counts(self) -> None:
        repo = MagicMock()
        repo.revert_upload.return_value = LedgerCounts(3, 2, 1)
        counts = DataReverter(repo).revert("u1", "up1")
        assert counts.total == 6
        repo.revert_upload.assert_called_once_with("u1", "up1")

    def test_unconfirmed_upload_raises(self) -> None:
        repo = MagicMock()
        repo.revert_upload.side_effect = RevertError("Upload up1 has not been confirmed")
        with pytest.raises(RevertError, match="not been confirmed"):
            DataReverter(repo).revert("u1", "up1")
