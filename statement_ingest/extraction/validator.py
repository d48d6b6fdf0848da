"""Validates the oracle's parsed JSON and builds an ExtractionResult.

The oracle is asked for a fixed shape, but its output is not trusted:
numbers may arrive as strings, optional arrays may be missing and actions may
fall outside the ledger vocabulary. Recoverable deviations are coerced and
recorded in ``notes``; structural problems raise.
"""

import re
from datetime import date
from typing import Any

from statement_ingest.extraction.exceptions import ExtractionValidationError
from statement_ingest.extraction.models import (
    DetectedAccountInfo,
    ExtractedBalance,
    ExtractedPosition,
    ExtractedTransaction,
    ExtractionResult,
)

TRANSACTION_ACTIONS = frozenset({
    "buy", "sell", "buy_to_cover", "sell_short", "dividend",
    "capital_gain_long", "capital_gain_short", "interest",
    "transfer_in", "transfer_out", "fee", "commission", "stock_split",
    "merger", "spinoff", "reinvestment", "journal", "other",
})
CONFIDENCE_LEVELS = frozenset({"high", "medium", "low"})

_MAX_ROWS = 5000
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_NUMBER_CLEAN_RE = re.compile(r"[,$\s]")


def validate_and_build(data: dict[str, Any]) -> ExtractionResult:
    """Validate a parsed oracle response and build an ExtractionResult.

    Raises:
        ExtractionValidationError: when required structure is missing or malformed.
    """
    notes = _build_notes(data.get("notes"))
    account_info = _build_account_info(data.get("account_info"))
    transactions = [
        _build_transaction(item, i, notes)
        for i, item in enumerate(_require_list(data, "transactions"))
    ]
    positions = [
        _build_position(item, i) for i, item in enumerate(_require_list(data, "positions"))
    ]
    balances = [
        _build_balance(item, i) for i, item in enumerate(_require_list(data, "balances"))
    ]
    confidence = data.get("confidence")
    if confidence not in CONFIDENCE_LEVELS:
        confidence = "low"
    return ExtractionResult(
        account_info=account_info,
        transactions=transactions,
        positions=positions,
        balances=balances,
        confidence=confidence,
        notes=notes,
        statement_start_date=_optional_date(data.get("statement_start_date"), "statement_start_date"),
        statement_end_date=_optional_date(data.get("statement_end_date"), "statement_end_date"),
    )


def _build_notes(raw: Any) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ExtractionValidationError("'notes' must be a list of strings")
    return [str(note) for note in raw]


def _require_list(data: dict[str, Any], key: str) -> list[Any]:
    raw = data.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ExtractionValidationError(f"'{key}' must be a list")
    if len(raw) > _MAX_ROWS:
        raise ExtractionValidationError(f"Too many {key}: {len(raw)} (max {_MAX_ROWS})")
    return raw


def _build_account_info(raw: Any) -> DetectedAccountInfo:
    if raw is None:
        raise ExtractionValidationError("Missing required field: account_info")
    if not isinstance(raw, dict):
        raise ExtractionValidationError("'account_info' must be an object")
    return DetectedAccountInfo(
        institution_name=_optional_str(raw.get("institution_name")),
        account_type=_optional_str(raw.get("account_type")),
        account_number_hint=_optional_str(raw.get("account_number_hint")),
        account_nickname=_optional_str(raw.get("account_nickname")),
        account_group=_optional_str(raw.get("account_group")),
        owner_name=_optional_str(raw.get("owner_name")),
    )


def _build_transaction(raw: Any, index: int, notes: list[str]) -> ExtractedTransaction:
    where = f"Transaction at index {index}"
    if not isinstance(raw, dict):
        raise ExtractionValidationError(f"{where} must be an object")
    transaction_date = _required_date(raw.get("transaction_date"), f"{where}: 'transaction_date'")
    description = _optional_str(raw.get("description")) or ""
    action = (_optional_str(raw.get("action")) or "other").lower()
    if action not in TRANSACTION_ACTIONS:
        notes.append(f"[Coercion] {where}: unknown action {action!r} mapped to 'other'")
        action = "other"
    total_amount = _optional_number(raw.get("total_amount"), f"{where}: 'total_amount'")
    if total_amount is None:
        raise ExtractionValidationError(f"{where}: 'total_amount' is required")
    return ExtractedTransaction(
        transaction_date=transaction_date,
        description=description,
        action=action,
        total_amount=total_amount,
        symbol=_optional_str(raw.get("symbol")),
        quantity=_optional_number(raw.get("quantity"), f"{where}: 'quantity'"),
        price_per_share=_optional_number(raw.get("price_per_share"), f"{where}: 'price_per_share'"),
        fees=_optional_number(raw.get("fees"), f"{where}: 'fees'"),
        commission=_optional_number(raw.get("commission"), f"{where}: 'commission'"),
        settlement_date=_optional_date(raw.get("settlement_date"), f"{where}: 'settlement_date'"),
    )


def _build_position(raw: Any, index: int) -> ExtractedPosition:
    where = f"Position at index {index}"
    if not isinstance(raw, dict):
        raise ExtractionValidationError(f"{where} must be an object")
    symbol = _optional_str(raw.get("symbol"))
    if not symbol:
        raise ExtractionValidationError(f"{where}: 'symbol' must be a non-empty string")
    quantity = _optional_number(raw.get("quantity"), f"{where}: 'quantity'")
    if quantity is None:
        raise ExtractionValidationError(f"{where}: 'quantity' is required")
    return ExtractedPosition(
        symbol=symbol,
        quantity=quantity,
        snapshot_date=_optional_date(raw.get("snapshot_date"), f"{where}: 'snapshot_date'"),
        description=_optional_str(raw.get("description")),
        cost_basis=_optional_number(raw.get("cost_basis"), f"{where}: 'cost_basis'"),
        market_value=_optional_number(raw.get("market_value"), f"{where}: 'market_value'"),
    )


def _build_balance(raw: Any, index: int) -> ExtractedBalance:
    where = f"Balance at index {index}"
    if not isinstance(raw, dict):
        raise ExtractionValidationError(f"{where} must be an object")
    return ExtractedBalance(
        snapshot_date=_optional_date(raw.get("snapshot_date"), f"{where}: 'snapshot_date'"),
        liquidation_value=_optional_number(raw.get("liquidation_value"), f"{where}: 'liquidation_value'"),
        cash_balance=_optional_number(raw.get("cash_balance"), f"{where}: 'cash_balance'"),
        equity=_optional_number(raw.get("equity"), f"{where}: 'equity'"),
        buying_power=_optional_number(raw.get("buying_power"), f"{where}: 'buying_power'"),
    )


def _optional_str(raw: Any) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        raw = str(raw)
    if not isinstance(raw, str):
        raise ExtractionValidationError(f"Expected a string, got {type(raw).__name__}")
    stripped = raw.strip()
    return stripped or None


def _optional_number(raw: Any, label: str) -> float | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ExtractionValidationError(f"{label} must be a number")
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        cleaned = _NUMBER_CLEAN_RE.sub("", raw)
        if cleaned.startswith("(") and cleaned.endswith(")"):
            cleaned = "-" + cleaned[1:-1]
        try:
            return float(cleaned)
        except ValueError as exc:
            raise ExtractionValidationError(f"{label} must be a number, got {raw!r}") from exc
    raise ExtractionValidationError(f"{label} must be a number")


def _optional_date(raw: Any, label: str) -> str | None:
    if raw is None or raw == "":
        return None
    if not isinstance(raw, str) or not _DATE_RE.match(raw.strip()):
        raise ExtractionValidationError(f"{label} must be a YYYY-MM-DD date, got {raw!r}")
    value = raw.strip()
    try:
        date.fromisoformat(value)
    except ValueError as exc:
        raise ExtractionValidationError(f"{label} is not a calendar date: {value!r}") from exc
    return value


def _required_date(raw: Any, label: str) -> str:
    value = _optional_date(raw, label)
    if value is None:
        raise ExtractionValidationError(f"{label} is required")
    return value
