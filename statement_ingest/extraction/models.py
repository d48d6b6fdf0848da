from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class ExtractedTransaction:
    """A single ledger line read from a statement."""

    transaction_date: str
    description: str
    action: str
    total_amount: float
    symbol: str | None = None
    quantity: float | None = None
    price_per_share: float | None = None
    fees: float | None = None
    commission: float | None = None
    settlement_date: str | None = None


@dataclass(frozen=True)
class ExtractedPosition:
    """A holding as of a snapshot date."""

    symbol: str
    quantity: float
    snapshot_date: str | None = None
    description: str | None = None
    cost_basis: float | None = None
    market_value: float | None = None


@dataclass(frozen=True)
class ExtractedBalance:
    """Account balance figures as of a snapshot date."""

    snapshot_date: str | None = None
    liquidation_value: float | None = None
    cash_balance: float | None = None
    equity: float | None = None
    buying_power: float | None = None


@dataclass(frozen=True)
class DetectedAccountInfo:
    """Account metadata the oracle found on the statement."""

    institution_name: str | None = None
    account_type: str | None = None
    account_number_hint: str | None = None
    account_nickname: str | None = None
    account_group: str | None = None
    owner_name: str | None = None


@dataclass(frozen=True)
class ExtractionResult:
    """Structured output of one extraction attempt."""

    account_info: DetectedAccountInfo
    transactions: list[ExtractedTransaction] = field(default_factory=list)
    positions: list[ExtractedPosition] = field(default_factory=list)
    balances: list[ExtractedBalance] = field(default_factory=list)
    confidence: str = "low"
    notes: list[str] = field(default_factory=list)
    statement_start_date: str | None = None
    statement_end_date: str | None = None

    @property
    def has_data(self) -> bool:
        return bool(self.transactions or self.positions or self.balances)

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict, the same shape the oracle is asked to return."""
        return asdict(self)
