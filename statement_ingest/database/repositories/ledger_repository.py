from decimal import Decimal
from typing import Any

from psycopg.rows import dict_row

from statement_ingest.database.connection import get_connection
from statement_ingest.database.models import LedgerCounts, UploadLedgerStats
from statement_ingest.pipeline.exceptions import RevertError, UploadNotFoundError

_TRANSACTION_INSERT = """
    INSERT INTO transactions (
        user_id, account_id, uploaded_statement_id, external_transaction_id,
        transaction_date, settlement_date, symbol, description, action,
        quantity, price_per_share, total_amount, fees, commission
    )
    VALUES (
        %(user_id)s, %(account_id)s, %(upload_id)s, %(external_transaction_id)s,
        %(transaction_date)s, %(settlement_date)s, %(symbol)s, %(description)s, %(action)s,
        %(quantity)s, %(price_per_share)s, %(total_amount)s, %(fees)s, %(commission)s
    )
"""

_POSITION_INSERT = """
    INSERT INTO position_snapshots (
        user_id, account_id, uploaded_statement_id, snapshot_date, snapshot_type,
        symbol, description, quantity, cost_basis, market_value
    )
    VALUES (
        %(user_id)s, %(account_id)s, %(upload_id)s, %(snapshot_date)s, 'manual',
        %(symbol)s, %(description)s, %(quantity)s, %(cost_basis)s, %(market_value)s
    )
"""

_BALANCE_INSERT = """
    INSERT INTO balance_snapshots (
        user_id, account_id, uploaded_statement_id, snapshot_date, snapshot_type,
        liquidation_value, cash_balance, equity, buying_power
    )
    VALUES (
        %(user_id)s, %(account_id)s, %(upload_id)s, %(snapshot_date)s, 'manual',
        %(liquidation_value)s, %(cash_balance)s, %(equity)s, %(buying_power)s
    )
"""

_LEDGER_TABLES = ("transactions", "position_snapshots", "balance_snapshots")
_NO_POSITIONS: dict[str, Any] = {"position_count": 0, "market_value_total": None, "orphaned": 0}
_NO_BALANCES: dict[str, Any] = {"balance_count": 0, "liquidation_total": None}


def _as_float(value: Decimal | float | None) -> float | None:
    return float(value) if value is not None else None


class LedgerRepository:
    """Canonical transaction, position and balance rows tagged by source upload.

    Writes and deletes for one upload run in a single transaction.
    """

    def replace_upload_rows(
        self,
        user_id: str,
        upload_id: str,
        account_id: str,
        *,
        transactions: list[dict[str, Any]],
        positions: list[dict[str, Any]],
        balances: list[dict[str, Any]],
        statement_start_date: str | None,
        statement_end_date: str | None,
    ) -> LedgerCounts:
        """Replace everything this upload previously wrote and confirm the upload.

        Raises:
            UploadNotFoundError: if the upload does not exist for this user.
        """
        scope = {"user_id": user_id, "account_id": account_id, "upload_id": upload_id}
        with get_connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(
                        "SELECT 1 FROM uploaded_statements WHERE id = %s AND user_id = %s FOR UPDATE",
                        (upload_id, user_id),
                    )
                    if cur.fetchone() is None:
                        raise UploadNotFoundError(f"Upload {upload_id} not found")
                    self._delete_rows(cur, user_id, upload_id)
                    if transactions:
                        cur.executemany(_TRANSACTION_INSERT, [{**scope, **row} for row in transactions])
                    if positions:
                        cur.executemany(_POSITION_INSERT, [{**scope, **row} for row in positions])
                    if balances:
                        cur.executemany(_BALANCE_INSERT, [{**scope, **row} for row in balances])
                    cur.execute(
                        """
                        UPDATE uploaded_statements
                        SET account_id = %s,
                            confirmed_at = NOW(),
                            transactions_created = %s,
                            positions_created = %s,
                            statement_start_date = %s,
                            statement_end_date = %s,
                            updated_at = NOW()
                        WHERE id = %s AND user_id = %s
                        """,
                        (
                            account_id,
                            len(transactions),
                            len(positions),
                            statement_start_date,
                            statement_end_date,
                            upload_id,
                            user_id,
                        ),
                    )
        return LedgerCounts(
            transactions=len(transactions),
            positions=len(positions),
            balances=len(balances),
        )

    def revert_upload(self, user_id: str, upload_id: str) -> LedgerCounts:
        """Delete this upload's rows and clear its confirmation and account link.

        Raises:
            UploadNotFoundError: if the upload does not exist for this user.
            RevertError: if the upload is not confirmed.
        """
        with get_connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        SELECT confirmed_at FROM uploaded_statements
                        WHERE id = %s AND user_id = %s
                        FOR UPDATE
                        """,
                        (upload_id, user_id),
                    )
                    row = cur.fetchone()
                    if row is None:
                        raise UploadNotFoundError(f"Upload {upload_id} not found")
                    if row[0] is None:
                        raise RevertError(f"Upload {upload_id} has not been confirmed")
                    counts = self._delete_rows(cur, user_id, upload_id)
                    cur.execute(
                        """
                        UPDATE uploaded_statements
                        SET confirmed_at = NULL,
                            account_id = NULL,
                            transactions_created = 0,
                            positions_created = 0,
                            updated_at = NOW()
                        WHERE id = %s AND user_id = %s
                        """,
                        (upload_id, user_id),
                    )
        return counts

    def load_stats(self, user_id: str, upload_id: str, account_id: str) -> UploadLedgerStats:
        """Summarize what the canonical tables hold for one upload."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT transaction_date FROM transactions
                    WHERE user_id = %s AND uploaded_statement_id = %s
                    ORDER BY transaction_date
                    """,
                    (user_id, upload_id),
                )
                transaction_dates = [row["transaction_date"] for row in cur.fetchall()]

                cur.execute(
                    """
                    SELECT COUNT(*) AS position_count,
                           COALESCE(SUM(p.market_value), 0) AS market_value_total,
                           COUNT(*) FILTER (
                               WHERE p.account_id <> %s::uuid
                                  OR a.id IS NULL
                                  OR NOT a.is_active
                           ) AS orphaned
                    FROM position_snapshots p
                    LEFT JOIN accounts a ON a.id = p.account_id AND a.user_id = p.user_id
                    WHERE p.user_id = %s AND p.uploaded_statement_id = %s
                    """,
                    (account_id, user_id, upload_id),
                )
                positions = cur.fetchone() or _NO_POSITIONS

                cur.execute(
                    """
                    SELECT COUNT(*) AS balance_count,
                           SUM(liquidation_value) FILTER (
                               WHERE snapshot_date = (
                                   SELECT MAX(snapshot_date) FROM balance_snapshots
                                   WHERE user_id = %s AND uploaded_statement_id = %s
                               )
                           ) AS liquidation_total
                    FROM balance_snapshots
                    WHERE user_id = %s AND uploaded_statement_id = %s
                    """,
                    (user_id, upload_id, user_id, upload_id),
                )
                balances = cur.fetchone() or _NO_BALANCES

        return UploadLedgerStats(
            transaction_count=len(transaction_dates),
            position_count=positions["position_count"],
            balance_count=balances["balance_count"],
            liquidation_total=_as_float(balances["liquidation_total"]),
            position_market_value_total=_as_float(positions["market_value_total"]) or 0.0,
            orphaned_position_count=positions["orphaned"],
            transaction_dates=transaction_dates,
        )

    @staticmethod
    def _delete_rows(cur: Any, user_id: str, upload_id: str) -> LedgerCounts:
        deleted: list[int] = []
        for table in _LEDGER_TABLES:
            cur.execute(
                f"DELETE FROM {table} WHERE user_id = %s AND uploaded_statement_id = %s",
                (user_id, upload_id),
            )
            deleted.append(max(cur.rowcount, 0))
        return LedgerCounts(transactions=deleted[0], positions=deleted[1], balances=deleted[2])
