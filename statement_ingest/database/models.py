from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

UPLOAD_STATUSES = frozenset({
    "pending", "processing", "completed", "partial", "failed",
    "qc_running", "qc_fixing", "qc_failed",
})
REUSABLE_STATUSES = ("completed", "partial")

CHECK_STATUSES = frozenset({
    "running", "passed", "failed", "fixing", "fixed", "unresolved", "resolved",
})
# Allowed previous statuses for each target check status.
CHECK_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "passed": ("running",),
    "failed": ("running",),
    "fixing": ("failed",),
    "fixed": ("fixing",),
    "unresolved": ("fixing", "failed"),
    "resolved": ("failed", "unresolved"),
}

ENTITY_TYPES = frozenset({"personal", "spouse", "trust", "partner", "other"})


@dataclass
class UploadRecord:
    """Represents a row from the uploaded_statements table."""

    id: str
    user_id: str
    filename: str
    file_path: str
    file_type: str
    mime_type: str
    file_size_bytes: int
    file_hash: str
    parse_status: str = "pending"
    process_count: int = 0
    parse_error: str | None = None
    parsed_at: datetime | None = None
    extracted_data: dict[str, Any] | None = None
    raw_llm_response: dict[str, Any] | None = None
    detected_account_info: dict[str, Any] | None = None
    processing_settings: dict[str, Any] | None = None
    account_id: str | None = None
    confirmed_at: datetime | None = None
    statement_start_date: date | None = None
    statement_end_date: date | None = None
    transactions_created: int = 0
    positions_created: int = 0
    quality_check_id: str | None = None
    qc_status_message: str | None = None
    created_at: datetime | None = None


@dataclass
class AccountRecord:
    """Represents a row from the accounts table."""

    id: str
    user_id: str
    institution_name: str
    account_type: str | None = None
    account_number_hint: str | None = None
    account_nickname: str | None = None
    account_group: str | None = None
    entity_id: str | None = None
    is_active: bool = True
    created_at: datetime | None = None


@dataclass
class EntityRecord:
    """Represents a row from the entities table."""

    id: str
    user_id: str
    entity_name: str
    entity_type: str = "personal"
    is_default: bool = False
    created_at: datetime | None = None


@dataclass
class QualityCheckRecord:
    """Represents a row from the quality_checks table."""

    id: str
    user_id: str
    upload_id: str
    check_status: str
    checks: dict[str, Any] = field(default_factory=dict)
    linked_account_id: str | None = None
    fix_attempts: list[dict[str, Any]] = field(default_factory=list)
    fix_count: int = 0
    resolution_notes: str | None = None
    resolved_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class ExtractionFailureRecord:
    """Represents a row from the extraction_failures table."""

    id: str
    user_id: str
    upload_id: str
    filename: str
    file_type: str
    attempt_number: int
    error_message: str
    llm_mode: str
    file_path: str | None = None
    file_size_bytes: int | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None
    created_at: datetime | None = None


@dataclass
class LedgerCounts:
    """Rows written for, or deleted from, one upload."""

    transactions: int = 0
    positions: int = 0
    balances: int = 0

    @property
    def total(self) -> int:
        return self.transactions + self.positions + self.balances


@dataclass
class UploadLedgerStats:
    """What the canonical tables hold for one upload, as seen by quality checks."""

    transaction_count: int = 0
    position_count: int = 0
    balance_count: int = 0
    liquidation_total: float | None = None
    position_market_value_total: float = 0.0
    orphaned_position_count: int = 0
    transaction_dates: list[date] = field(default_factory=list)
