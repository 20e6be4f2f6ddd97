"""
Unit Tests for StatementRowTransformer

Covers:
- Date forms and year inference from the statement period
- Amount parsing and source sign conventions
- Description cleanup
- Per-row errors

Run with: pytest tests/test_statement_row_transformer.py -v
"""

from datetime import date
from decimal import Decimal

import pytest

from database.statement_models import MatchStatus, TransactionType
from ingestion.factories.statement_row_transformer import (
    IngestionRowError,
    MAX_DESCRIPTION_LENGTH,
    StatementRowTransformer,
)
from ingestion.source_registry import SourceRegistry, StatementSource
from reconciliation.models import BankStatement


def make_statement(period_start=None, period_end=None):
    return BankStatement(
        id="stmt-1",
        company_id="company-1",
        period_start=period_start,
        period_end=period_end,
    )


def make_transformer(statement=None, source=StatementSource.STATEMENT_PDF):
    config = SourceRegistry().get_config(source)
    return StatementRowTransformer(statement or make_statement(period_end=date(2025, 1, 31)), config)


class TestDates:

    @pytest.mark.parametrize("raw,expected", [
        ("2025-01-15", date(2025, 1, 15)),
        ("2025-01-15T10:30:00", date(2025, 1, 15)),
        ("January 15, 2025", date(2025, 1, 15)),
        ("Jan 15 2025", date(2025, 1, 15)),
        ("Sept. 3, 2024", date(2024, 9, 3)),
        ("01/15/2025", date(2025, 1, 15)),
        ("01/15/25", date(2025, 1, 15)),
    ])
    def test_explicit_year(self, raw, expected):
        txn = make_transformer().transform({"date": raw, "amount": "-1.00", "description": "x"}, 0)

        assert txn.transaction_date == expected

    def test_year_from_period_end(self):
        txn = make_transformer().transform({"date": "01/15", "amount": "-1.00", "description": "x"}, 0)

        assert txn.transaction_date == date(2025, 1, 15)

    def test_line_after_period_end_rolls_back_a_year(self):
        """A 'Dec 28' line on a statement closing Jan 31 2025 is from 2024."""
        transformer = make_transformer(make_statement(date(2024, 12, 15), date(2025, 1, 31)))

        txn = transformer.transform({"date": "Dec 28", "amount": "-1.00", "description": "x"}, 0)

        assert txn.transaction_date == date(2024, 12, 28)

    def test_year_from_period_start_when_no_end(self):
        transformer = make_transformer(make_statement(period_start=date(2023, 6, 1)))

        txn = transformer.transform({"date": "06/05", "amount": "-1.00", "description": "x"}, 0)

        assert txn.transaction_date == date(2023, 6, 5)

    def test_transaction_date_alias(self):
        txn = make_transformer().transform({"transaction_date": "2025-01-02", "amount": "1", "description": "x"}, 0)

        assert txn.transaction_date == date(2025, 1, 2)

    @pytest.mark.parametrize("raw", ["13/01/2025", "02/30", "Foo 12", "yesterday", "Ju 4"])
    def test_unreadable_dates(self, raw):
        with pytest.raises(IngestionRowError) as exc_info:
            make_transformer().transform({"date": raw, "amount": "-1.00", "description": "x"}, 7)

        assert exc_info.value.field == "date"
        assert exc_info.value.row_index == 7

    def test_missing_date(self):
        with pytest.raises(IngestionRowError) as exc_info:
            make_transformer().transform({"amount": "-1.00", "description": "x"}, 0)

        assert exc_info.value.message == "Missing transaction date"


class TestAmounts:

    @pytest.mark.parametrize("raw,expected", [
        ("-250.00", Decimal("-250.00")),
        ("$1,234.50", Decimal("1234.50")),
        ("-$1,234.50", Decimal("-1234.50")),
        ("(1,200.00)", Decimal("-1200.00")),
        (" 42 ", Decimal("42.00")),
        (19.999, Decimal("20.00")),
        (-5, Decimal("-5.00")),
    ])
    def test_parsing(self, raw, expected):
        txn = make_transformer().transform({"date": "2025-01-02", "amount": raw, "description": "x"}, 0)

        assert txn.amount == expected

    @pytest.mark.parametrize("raw", ["abc", "NaN", "Infinity", True, "1.2.3"])
    def test_invalid_amounts(self, raw):
        with pytest.raises(IngestionRowError) as exc_info:
            make_transformer().transform({"date": "2025-01-02", "amount": raw, "description": "x"}, 0)

        assert exc_info.value.field == "amount"

    @pytest.mark.parametrize("raw", ["1e30", "-1E+40"])
    def test_amount_too_large_to_round(self, raw):
        with pytest.raises(IngestionRowError) as exc_info:
            make_transformer().transform({"date": "2025-01-02", "amount": raw, "description": "x"}, 0)

        assert exc_info.value.field == "amount"

    @pytest.mark.parametrize("raw", ["10000000000.00", "-1e10", "$12,345,678,901"])
    def test_amount_beyond_column_range(self, raw):
        with pytest.raises(IngestionRowError) as exc_info:
            make_transformer().transform({"date": "2025-01-02", "amount": raw, "description": "x"}, 0)

        assert exc_info.value.field == "amount"
        assert "out of range" in str(exc_info.value)

    def test_largest_storable_amount(self):
        txn = make_transformer().transform(
            {"date": "2025-01-02", "amount": "-9,999,999,999.99", "description": "x"}, 0
        )

        assert txn.amount == Decimal("-9999999999.99")

    def test_missing_amount(self):
        with pytest.raises(IngestionRowError) as exc_info:
            make_transformer().transform({"date": "2025-01-02", "description": "x"}, 0)

        assert exc_info.value.field == "amount"

    def test_bank_feed_sign_is_inverted(self):
        transformer = make_transformer(source=StatementSource.BANK_FEED)

        outflow = transformer.transform({"date": "2025-01-02", "amount": "89.40", "description": "STAPLES"}, 0)
        inflow = transformer.transform({"date": "2025-01-02", "amount": "-500.00", "description": "DEPOSIT"}, 1)
        zero = transformer.transform({"date": "2025-01-02", "amount": "0", "description": "ADJ"}, 2)

        assert outflow.amount == Decimal("-89.40")
        assert outflow.transaction_type == TransactionType.WITHDRAWAL
        assert inflow.amount == Decimal("500.00")
        assert zero.amount == Decimal("0.00")
        assert not zero.amount.is_signed()


class TestRows:

    def test_new_rows_are_unmatched(self):
        txn = make_transformer().transform(
            {"date": "2025-01-11", "amount": "-250.00", "description": "CHECKCARD OFFICE DEPOT"}, 0
        )

        assert txn.statement_id == "stmt-1"
        assert txn.match_status == MatchStatus.UNMATCHED
        assert txn.matched_expense_id is None
        assert txn.manually_confirmed is False
        assert txn.id

    def test_description_whitespace_collapsed_and_truncated(self):
        long_text = "  A   B\n C  " + "x" * 1000

        txn = make_transformer().transform({"date": "2025-01-02", "amount": "1", "description": long_text}, 0)

        assert txn.description.startswith("A B C ")
        assert len(txn.description) == MAX_DESCRIPTION_LENGTH

    def test_blank_description_rejected(self):
        with pytest.raises(IngestionRowError) as exc_info:
            make_transformer().transform({"date": "2025-01-02", "amount": "1", "description": "   "}, 0)

        assert exc_info.value.field == "description"

    def test_raw_type_and_check_number(self):
        txn = make_transformer().transform(
            {"date": "2025-01-12", "amount": "(1,200.00)", "description": "CHECK", "rawType": "check", "checkNumber": 1043},
            0,
        )

        assert txn.transaction_type == TransactionType.CHECK
        assert txn.check_number == "1043"

    def test_non_dict_row(self):
        with pytest.raises(IngestionRowError) as exc_info:
            make_transformer().transform(["2025-01-02", "1"], 3)

        assert exc_info.value.row_index == 3

    def test_batch_keeps_good_rows(self):
        rows = [
            {"date": "2025-01-02", "amount": "-10.00", "description": "ok"},
            {"date": "not a date", "amount": "-10.00", "description": "bad"},
            {"date": "2025-01-03", "amount": "5.00", "description": "ok too"},
        ]

        transactions, errors = make_transformer().transform_batch(rows)

        assert len(transactions) == 2
        assert len(errors) == 1
        assert errors[0].to_dict() == {
            "row_index": 1,
            "field": "date",
            "raw_value": "not a date",
            "message": "Invalid date format: not a date",
        }
