from statement_ingest.database.models import LedgerCounts
from statement_ingest.database.repositories.ledger_repository import LedgerRepository
from statement_ingest.logging.logger import Log


class DataReverter:
    """Undoes the canonical writes of a confirmed upload.

    The upload keeps its parse status and extraction so it can be
    reconfirmed or reprocessed.
    """

    def __init__(self, ledger_repo: LedgerRepository) -> None:
        self._ledger_repo = ledger_repo

    def revert(self, user_id: str, upload_id: str) -> LedgerCounts:
        """Raises RevertError for an unconfirmed upload."""
        counts = self._ledger_repo.revert_upload(user_id, upload_id)
        Log.info(
            f"Reverted upload {upload_id}: removed {counts.transactions} transactions, "
            f"{counts.positions} positions, {counts.balances} balances"
        )
        return counts
