"""
Transaction type classification for statement lines.

Statement parsers and bank feeds rarely agree on a type vocabulary, so the
ingestor asks a classifier. The default uses the raw type hint when the source
is trusted, then description keywords, then the amount sign.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from database.statement_models import TransactionType

CHECK_PATTERN = re.compile(r"\bCHE(?:CK|QUE)\s*(?:NO\.?|#)?\s*(\d{3,})", re.IGNORECASE)

FEE_PATTERN = re.compile(r"\b(?:fees?|service charge|overdraft|nsf|maintenance)\b", re.IGNORECASE)
TRANSFER_PATTERN = re.compile(r"\b(?:transfer|xfer)\b", re.IGNORECASE)

RAW_TYPE_ALIASES = {
    "deposit": TransactionType.DEPOSIT,
    "credit": TransactionType.DEPOSIT,
    "interest": TransactionType.DEPOSIT,
    "withdrawal": TransactionType.WITHDRAWAL,
    "debit": TransactionType.WITHDRAWAL,
    "payment": TransactionType.WITHDRAWAL,
    "check": TransactionType.CHECK,
    "cheque": TransactionType.CHECK,
    "fee": TransactionType.FEE,
    "service_charge": TransactionType.FEE,
    "transfer": TransactionType.TRANSFER,
    "other": TransactionType.OTHER,
}


@dataclass(frozen=True)
class Classification:
    transaction_type: TransactionType
    check_number: Optional[str] = None


class TransactionClassifier(ABC):

    @abstractmethod
    def classify(
        self,
        description: str,
        amount: Decimal,
        raw_type: Optional[str] = None,
    ) -> Classification:
        """Assign a transaction type to a signed statement line."""


class KeywordTransactionClassifier(TransactionClassifier):
    """
    Order of precedence:
    1. Raw type hint, if trusted and recognised
    2. CHECK #### on an outflow
    3. Fee wording on an outflow
    4. Transfer wording
    5. Amount sign
    """

    def __init__(self, trust_raw_type: bool = True):
        self.trust_raw_type = trust_raw_type

    def classify(
        self,
        description: str,
        amount: Decimal,
        raw_type: Optional[str] = None,
    ) -> Classification:
        text = description or ""
        check_match = CHECK_PATTERN.search(text)
        check_number = check_match.group(1) if check_match else None

        if self.trust_raw_type and raw_type:
            hinted = RAW_TYPE_ALIASES.get(raw_type.strip().lower().replace(" ", "_"))
            if hinted is not None:
                return Classification(
                    hinted,
                    check_number if hinted == TransactionType.CHECK else None,
                )

        if check_number and amount < 0:
            return Classification(TransactionType.CHECK, check_number)

        if amount < 0 and FEE_PATTERN.search(text):
            return Classification(TransactionType.FEE)

        if TRANSFER_PATTERN.search(text):
            return Classification(TransactionType.TRANSFER)

        if amount < 0:
            return Classification(TransactionType.WITHDRAWAL)
        if amount > 0:
            return Classification(TransactionType.DEPOSIT)
        return Classification(TransactionType.OTHER)
