"""Validation rules comparing an upload's canonical rows with its extraction."""

from datetime import date

from statement_ingest.database.models import UploadLedgerStats
from statement_ingest.extraction.models import ExtractedBalance, ExtractionResult
from statement_ingest.quality.models import HARD, SOFT, CheckReport, RuleResult

BALANCE_TOTAL_TOLERANCE = 0.05
BALANCE_SANITY_TOLERANCE = 0.02
POSITION_SUM_TOLERANCE = 0.10


def run_checks(extraction: ExtractionResult, stats: UploadLedgerStats) -> CheckReport:
    return CheckReport(
        rules=[
            check_transaction_count(extraction, stats),
            check_position_count(extraction, stats),
            check_balance_total(extraction, stats),
            check_balance_sanity(extraction),
            check_orphaned_positions(stats),
            check_position_sum(extraction, stats),
            check_transaction_date_range(extraction, stats),
        ]
    )


def _within(actual: float, expected: float, tolerance: float) -> bool:
    return abs(actual - expected) <= tolerance * max(abs(expected), 1.0)


def latest_balances(extraction: ExtractionResult) -> list[ExtractedBalance]:
    fallback = extraction.statement_end_date or ""
    if not extraction.balances:
        return []
    latest = max(balance.snapshot_date or fallback for balance in extraction.balances)
    return [b for b in extraction.balances if (b.snapshot_date or fallback) == latest]


def check_transaction_count(extraction: ExtractionResult, stats: UploadLedgerStats) -> RuleResult:
    expected = len(extraction.transactions)
    return RuleResult(
        name="transaction_count",
        severity=HARD,
        passed=stats.transaction_count == expected,
        message=f"{stats.transaction_count} of {expected} transactions written",
        expected=expected,
        actual=stats.transaction_count,
    )


def check_position_count(extraction: ExtractionResult, stats: UploadLedgerStats) -> RuleResult:
    expected = len(extraction.positions)
    return RuleResult(
        name="position_count",
        severity=HARD,
        passed=stats.position_count == expected,
        message=f"{stats.position_count} of {expected} positions written",
        expected=expected,
        actual=stats.position_count,
    )


def check_balance_total(extraction: ExtractionResult, stats: UploadLedgerStats) -> RuleResult:
    values = [b.liquidation_value for b in latest_balances(extraction) if b.liquidation_value is not None]
    if not values:
        return RuleResult("balance_total", HARD, True, "No liquidation value extracted")
    expected = sum(values)
    actual = stats.liquidation_total
    if actual is None:
        passed = False
    elif expected == 0:
        passed = actual == 0
    else:
        passed = abs(actual - expected) / abs(expected) <= BALANCE_TOTAL_TOLERANCE
    return RuleResult(
        name="balance_total",
        severity=HARD,
        passed=passed,
        message=f"Written total value {actual} vs extracted {expected}",
        expected=expected,
        actual=actual,
    )


def check_balance_sanity(extraction: ExtractionResult) -> RuleResult:
    """Cash plus equity must add up to the total value on each balance row."""
    for balance in extraction.balances:
        cash, equity, total = balance.cash_balance, balance.equity, balance.liquidation_value
        if cash is None or equity is None or total is None:
            continue
        components = cash + equity
        if not _within(components, total, BALANCE_SANITY_TOLERANCE):
            return RuleResult(
                name="balance_sanity",
                severity=HARD,
                passed=False,
                message=(
                    f"Cash {cash} + equity {equity} = {components} "
                    f"does not match total value {total} "
                    f"on {balance.snapshot_date or 'statement date'}"
                ),
                expected=total,
                actual=components,
            )
    return RuleResult("balance_sanity", HARD, True, "Balance components add up")


def check_orphaned_positions(stats: UploadLedgerStats) -> RuleResult:
    return RuleResult(
        name="orphaned_positions",
        severity=HARD,
        passed=stats.orphaned_position_count == 0,
        message=f"{stats.orphaned_position_count} positions outside the linked account",
        expected=0,
        actual=stats.orphaned_position_count,
    )


def check_position_sum(extraction: ExtractionResult, stats: UploadLedgerStats) -> RuleResult:
    equities = [b.equity for b in latest_balances(extraction) if b.equity is not None]
    if not equities or stats.position_count == 0:
        return RuleResult("position_sum", SOFT, True, "Nothing to compare")
    expected = sum(equities)
    actual = stats.position_market_value_total
    return RuleResult(
        name="position_sum",
        severity=SOFT,
        passed=_within(actual, expected, POSITION_SUM_TOLERANCE),
        message=f"Position market value {actual} vs balance equity {expected}",
        expected=expected,
        actual=actual,
    )


def check_transaction_date_range(extraction: ExtractionResult, stats: UploadLedgerStats) -> RuleResult:
    start, end = extraction.statement_start_date, extraction.statement_end_date
    if not start or not end or not stats.transaction_dates:
        return RuleResult("transaction_date_range", SOFT, True, "No statement period to compare")
    period_start, period_end = date.fromisoformat(start), date.fromisoformat(end)
    outside = [d for d in stats.transaction_dates if not period_start <= d <= period_end]
    return RuleResult(
        name="transaction_date_range",
        severity=SOFT,
        passed=not outside,
        message=(
            f"{len(outside)} transactions dated outside {start}..{end}"
            if outside
            else f"All transactions within {start}..{end}"
        ),
        expected=f"{start}..{end}",
        actual=len(outside),
    )
