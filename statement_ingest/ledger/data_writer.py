from datetime import date
from typing import Any

from statement_ingest.database.models import LedgerCounts
from statement_ingest.database.repositories.ledger_repository import LedgerRepository
from statement_ingest.extraction.models import ExtractionResult
from statement_ingest.logging.logger import Log


def external_transaction_id(upload_id: str, index: int) -> str:
    """Stable id for the index-th transaction of an upload."""
    return f"upload_{upload_id}_{index}"


class DataWriter:
    """Commits an extraction into the canonical tables for one upload.

    Re-running for the same upload replaces that upload's rows, so repeated
    writes never duplicate data.
    """

    def __init__(self, ledger_repo: LedgerRepository) -> None:
        self._ledger_repo = ledger_repo

    def write(
        self,
        user_id: str,
        upload_id: str,
        account_id: str,
        extraction: ExtractionResult,
    ) -> LedgerCounts:
        fallback_date = extraction.statement_end_date or date.today().isoformat()
        transactions = [
            {
                "external_transaction_id": external_transaction_id(upload_id, index),
                "transaction_date": txn.transaction_date,
                "settlement_date": txn.settlement_date,
                "symbol": txn.symbol,
                "description": txn.description,
                "action": txn.action,
                "quantity": txn.quantity,
                "price_per_share": txn.price_per_share,
                "total_amount": txn.total_amount,
                "fees": txn.fees,
                "commission": txn.commission,
            }
            for index, txn in enumerate(extraction.transactions)
        ]
        positions = [
            {
                "snapshot_date": position.snapshot_date or fallback_date,
                "symbol": position.symbol,
                "description": position.description,
                "quantity": position.quantity,
                "cost_basis": position.cost_basis,
                "market_value": position.market_value,
            }
            for position in extraction.positions
        ]
        balances: list[dict[str, Any]] = [
            {
                "snapshot_date": balance.snapshot_date or fallback_date,
                "liquidation_value": balance.liquidation_value,
                "cash_balance": balance.cash_balance,
                "equity": balance.equity,
                "buying_power": balance.buying_power,
            }
            for balance in extraction.balances
        ]
        counts = self._ledger_repo.replace_upload_rows(
            user_id,
            upload_id,
            account_id,
            transactions=transactions,
            positions=positions,
            balances=balances,
            statement_start_date=extraction.statement_start_date,
            statement_end_date=extraction.statement_end_date,
        )
        Log.info(
            f"Wrote upload {upload_id} to account {account_id}: {counts.transactions} transactions, "
            f"{counts.positions} positions, {counts.balances} balances"
        )
        return counts
