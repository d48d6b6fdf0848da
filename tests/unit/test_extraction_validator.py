"""Tests for the extraction validator."""

import copy
from typing import Any

import pytest

from statement_ingest.extraction.exceptions import ExtractionValidationError
from statement_ingest.extraction.models import ExtractionResult
from statement_ingest.extraction.validator import validate_and_build


def _minimal(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {"account_info": {"institution_name": "Acme"}}
    data.update(overrides)
    return data


def _transaction(**overrides: Any) -> dict[str, Any]:
    txn: dict[str, Any] = {
        "transaction_date": "2024-01-05",
        "description": "Dividend",
        "action": "dividend",
        "total_amount": 12.5,
    }
    txn.update(overrides)
    return txn


class TestValidPayloads:
    def test_full_payload(self, extraction_payload: dict[str, Any]) -> None:
        result = validate_and_build(extraction_payload)
        assert isinstance(result, ExtractionResult)
        assert result.account_info.institution_name == "Acme Brokerage"
        assert result.account_info.owner_name == "Jordan Lee"
        assert len(result.transactions) == 2
        assert result.transactions[1].quantity == 10.0
        assert result.positions[0].market_value == 1900.0
        assert result.balances[0].liquidation_value == 10000.0
        assert result.confidence == "high"
        assert result.statement_end_date == "2024-01-31"
        assert result.has_data

    def test_missing_arrays_default_to_empty(self) -> None:
        result = validate_and_build(_minimal())
        assert result.transactions == []
        assert result.positions == []
        assert result.balances == []
        assert not result.has_data

    def test_missing_confidence_defaults_to_low(self) -> None:
        assert validate_and_build(_minimal()).confidence == "low"

    def test_unknown_confidence_defaults_to_low(self) -> None:
        assert validate_and_build(_minimal(confidence="certain")).confidence == "low"

    def test_payload_round_trips_through_to_payload(self, extraction_payload: dict[str, Any]) -> None:
        first = validate_and_build(extraction_payload)
        second = validate_and_build(first.to_payload())
        assert first == second

    def test_does_not_mutate_input(self, extraction_payload: dict[str, Any]) -> None:
        before = copy.deepcopy(extraction_payload)
        validate_and_build(extraction_payload)
        assert extraction_payload == before


class TestCoercion:
    def test_unknown_action_mapped_to_other_with_note(self) -> None:
        result = validate_and_build(_minimal(transactions=[_transaction(action="Wire Out")]))
        assert result.transactions[0].action == "other"
        assert any("unknown action" in note for note in result.notes)

    def test_action_is_lowercased(self) -> None:
        result = validate_and_build(_minimal(transactions=[_transaction(action="BUY")]))
        assert result.transactions[0].action == "buy"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("1,234.50", 1234.5), ("$99", 99.0), ("(250.00)", -250.0), (7, 7.0)],
    )
    def test_numeric_strings_coerced(self, raw: object, expected: float) -> None:
        result = validate_and_build(_minimal(transactions=[_transaction(total_amount=raw)]))
        assert result.transactions[0].total_amount == expected

    def test_blank_strings_become_none(self) -> None:
        result = validate_and_build(_minimal(account_info={"institution_name": "  ", "account_number_hint": ""}))
        assert result.account_info.institution_name is None
        assert result.account_info.account_number_hint is None

    def test_numeric_hint_becomes_string(self) -> None:
        result = validate_and_build(_minimal(account_info={"account_number_hint": 1234}))
        assert result.account_info.account_number_hint == "1234"


class TestInvalidPayloads:
    def test_missing_account_info(self) -> None:
        with pytest.raises(ExtractionValidationError, match="account_info"):
            validate_and_build({"transactions": []})

    def test_account_info_must_be_object(self) -> None:
        with pytest.raises(ExtractionValidationError, match="must be an object"):
            validate_and_build({"account_info": "Acme"})

    def test_transactions_must_be_list(self) -> None:
        with pytest.raises(ExtractionValidationError, match="'transactions' must be a list"):
            validate_and_build(_minimal(transactions={"a": 1}))

    def test_transaction_requires_date(self) -> None:
        with pytest.raises(ExtractionValidationError, match="transaction_date"):
            validate_and_build(_minimal(transactions=[_transaction(transaction_date=None)]))

    def test_transaction_rejects_non_iso_date(self) -> None:
        with pytest.raises(ExtractionValidationError, match="YYYY-MM-DD"):
            validate_and_build(_minimal(transactions=[_transaction(transaction_date="01/05/2024")]))

    @pytest.mark.parametrize("value", ["2024-13-45", "2024-02-30", "2023-02-29"])
    def test_transaction_rejects_impossible_date(self, value: str) -> None:
        with pytest.raises(ExtractionValidationError, match="not a calendar date"):
            validate_and_build(_minimal(transactions=[_transaction(transaction_date=value)]))

    def test_statement_period_rejects_impossible_date(self) -> None:
        with pytest.raises(ExtractionValidationError, match="statement_start_date"):
            validate_and_build(_minimal(statement_start_date="2024-02-30"))

    def test_leap_day_is_accepted(self) -> None:
        result = validate_and_build(_minimal(statement_end_date="2024-02-29"))
        assert result.statement_end_date == "2024-02-29"

    def test_transaction_requires_amount(self) -> None:
        with pytest.raises(ExtractionValidationError, match="total_amount"):
            validate_and_build(_minimal(transactions=[_transaction(total_amount=None)]))

    def test_unparseable_number(self) -> None:
        with pytest.raises(ExtractionValidationError, match="must be a number"):
            validate_and_build(_minimal(transactions=[_transaction(total_amount="twelve")]))

    def test_boolean_is_not_a_number(self) -> None:
        with pytest.raises(ExtractionValidationError, match="must be a number"):
            validate_and_build(_minimal(balances=[{"equity": True}]))

    def test_position_requires_symbol(self) -> None:
        with pytest.raises(ExtractionValidationError, match="symbol"):
            validate_and_build(_minimal(positions=[{"symbol": "", "quantity": 1}]))

    def test_position_requires_quantity(self) -> None:
        with pytest.raises(ExtractionValidationError, match="quantity"):
            validate_and_build(_minimal(positions=[{"symbol": "AAPL"}]))

    def test_notes_must_be_list(self) -> None:
        with pytest.raises(ExtractionValidationError, match="notes"):
            validate_and_build(_minimal(notes="oops"))

    def test_too_many_rows(self) -> None:
        with pytest.raises(ExtractionValidationError, match="Too many transactions"):
            validate_and_build(_minimal(transactions=[_transaction()] * 5001))
