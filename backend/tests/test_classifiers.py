"""
Unit Tests for statement line classification

Run with: pytest tests/test_classifiers.py -v
"""

from decimal import Decimal

import pytest

from database.statement_models import TransactionType
from ingestion.classifiers import KeywordTransactionClassifier


class TestKeywordTransactionClassifier:

    @pytest.fixture
    def classifier(self):
        return KeywordTransactionClassifier()

    @pytest.mark.parametrize("raw_type,expected", [
        ("deposit", TransactionType.DEPOSIT),
        ("Interest", TransactionType.DEPOSIT),
        ("debit", TransactionType.WITHDRAWAL),
        ("cheque", TransactionType.CHECK),
        ("Service Charge", TransactionType.FEE),
        ("transfer", TransactionType.TRANSFER),
    ])
    def test_trusted_raw_type(self, classifier, raw_type, expected):
        result = classifier.classify("ANYTHING", Decimal("-10.00"), raw_type)

        assert result.transaction_type == expected

    def test_unknown_raw_type_falls_through(self, classifier):
        result = classifier.classify("COFFEE SHOP", Decimal("-4.50"), "pos")

        assert result.transaction_type == TransactionType.WITHDRAWAL

    def test_untrusted_raw_type_ignored(self):
        classifier = KeywordTransactionClassifier(trust_raw_type=False)

        result = classifier.classify("CLIENT PAYMENT", Decimal("300.00"), "withdrawal")

        assert result.transaction_type == TransactionType.DEPOSIT

    def test_check_number_from_description(self, classifier):
        result = classifier.classify("CHECK #1043", Decimal("-1200.00"))

        assert result.transaction_type == TransactionType.CHECK
        assert result.check_number == "1043"

    def test_check_hint_keeps_number(self, classifier):
        result = classifier.classify("CHEQUE NO. 2201", Decimal("-90.00"), "check")

        assert result.transaction_type == TransactionType.CHECK
        assert result.check_number == "2201"

    def test_check_wording_on_inflow_is_deposit(self, classifier):
        result = classifier.classify("DEPOSITED CHECK 5521", Decimal("500.00"))

        assert result.transaction_type == TransactionType.DEPOSIT

    @pytest.mark.parametrize("description", [
        "MONTHLY MAINTENANCE FEE",
        "OVERDRAFT CHARGE",
        "NSF RETURN ITEM",
        "Service Charge",
        "WIRE FEES",
    ])
    def test_fee_wording(self, classifier, description):
        result = classifier.classify(description, Decimal("-15.00"))

        assert result.transaction_type == TransactionType.FEE

    def test_fee_word_inside_other_word(self, classifier):
        result = classifier.classify("COFFEE BEANERY", Decimal("-6.25"))

        assert result.transaction_type == TransactionType.WITHDRAWAL

    def test_fee_refund_inflow_is_deposit(self, classifier):
        result = classifier.classify("FEE REVERSAL", Decimal("15.00"))

        assert result.transaction_type == TransactionType.DEPOSIT

    def test_transfer_wording(self, classifier):
        result = classifier.classify("ONLINE XFER TO SAVINGS", Decimal("-500.00"))

        assert result.transaction_type == TransactionType.TRANSFER

    def test_sign_fallback(self, classifier):
        assert classifier.classify("ACME CORP", Decimal("10.00")).transaction_type == TransactionType.DEPOSIT
        assert classifier.classify("ACME CORP", Decimal("-10.00")).transaction_type == TransactionType.WITHDRAWAL
        assert classifier.classify("ACME CORP", Decimal("0.00")).transaction_type == TransactionType.OTHER
