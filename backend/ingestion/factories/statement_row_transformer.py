"""
Statement Row Transformer

Turns raw parsed statement rows into BankTransaction records.
Handles validation, type conversion and classification. Rows that cannot be
read produce an IngestionRowError instead of stopping the batch.
"""

import re
import uuid
import logging
from datetime import datetime, date
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, Optional, List, Tuple

from database.statement_models import MatchStatus
from ingestion.classifiers import TransactionClassifier, KeywordTransactionClassifier
from ingestion.source_registry import SourceConfig
from reconciliation.models import BankStatement, BankTransaction, to_money

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 500
# bank_transactions.amount is NUMERIC(12, 2)
MAX_AMOUNT = Decimal("1e10")

MONTH_NAMES = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)

# "December 1, 2025", "Dec 1 2025", "Dec 1"
LONG_DATE = re.compile(r"^([A-Za-z]+)\.?\s+(\d{1,2}),?\s*(\d{4})?$")
# "12/01", "12/01/25", "12/01/2025"
SHORT_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})(?:/(\d{2}|\d{4}))?$")


def _month_number(word: str) -> Optional[int]:
    """Full month name or an abbreviation of at least three letters."""
    word = word.lower()
    if len(word) < 3:
        return None
    for number, name in enumerate(MONTH_NAMES, start=1):
        if name.startswith(word):
            return number
    return None


class IngestionRowError(Exception):
    """A statement row that could not be turned into a transaction."""

    def __init__(self, message: str, field: Optional[str] = None, raw_value: Any = None, row_index: Optional[int] = None):
        self.message = message
        self.field = field
        self.raw_value = raw_value
        self.row_index = row_index
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_index": self.row_index,
            "field": self.field,
            "raw_value": None if self.raw_value is None else str(self.raw_value)[:100],
            "message": self.message,
        }


class StatementRowTransformer:
    """
    Transforms raw statement rows for one statement.

    Handles:
    - Dates in ISO, "Month D, YYYY", "Mon D", "MM/DD" and "MM/DD/YY" forms;
      a missing year is taken from the statement period
    - Amounts with currency symbols, thousands separators and (parentheses)
    - Source sign conventions
    - Transaction type classification
    """

    def __init__(
        self,
        statement: BankStatement,
        source_config: SourceConfig,
        classifier: Optional[TransactionClassifier] = None,
    ):
        self.statement = statement
        self.source_config = source_config
        self.classifier = classifier or KeywordTransactionClassifier(
            trust_raw_type=source_config.trust_raw_type
        )

    def transform(self, row: Dict[str, Any], row_index: int) -> BankTransaction:
        """
        Transform one row.

        Raises:
            IngestionRowError: the row is missing a field or a value is unreadable
        """
        if not isinstance(row, dict):
            raise IngestionRowError("Row must be an object", raw_value=row, row_index=row_index)

        try:
            transaction_date = self._parse_date(row.get("date") or row.get("transaction_date"))
            amount = self._parse_amount(row.get("amount"))
            description = self._parse_description(row.get("description"))
        except IngestionRowError as e:
            e.row_index = row_index
            raise

        raw_type = row.get("raw_type") or row.get("rawType") or row.get("type")
        classification = self.classifier.classify(
            description, amount, str(raw_type) if raw_type else None
        )
        check_number = row.get("check_number") or row.get("checkNumber") or classification.check_number

        return BankTransaction(
            id=str(uuid.uuid4()),
            statement_id=self.statement.id,
            transaction_date=transaction_date,
            description=description,
            amount=amount,
            transaction_type=classification.transaction_type,
            check_number=str(check_number) if check_number else None,
            match_status=MatchStatus.UNMATCHED,
            match_notes=None,
            matched_expense_id=None,
            manually_confirmed=False,
        )

    def transform_batch(
        self,
        rows: List[Dict[str, Any]],
    ) -> Tuple[List[BankTransaction], List[IngestionRowError]]:
        """
        Transform every row; errors don't stop the batch.

        Returns (transactions, errors).
        """
        transactions = []
        errors = []
        for index, row in enumerate(rows):
            try:
                transactions.append(self.transform(row, index))
            except IngestionRowError as e:
                logger.warning(
                    f"Statement {self.statement.id} row {index} rejected: {e.message} (field={e.field})"
                )
                errors.append(e)
        return transactions, errors

    # ==================== FIELD PARSERS ====================

    def _parse_date(self, value: Any) -> date:
        if value is None or value == "":
            raise IngestionRowError("Missing transaction date", field="date")
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if not isinstance(value, str):
            raise IngestionRowError(f"Unsupported date type: {type(value).__name__}", field="date", raw_value=value)

        text = value.strip()
        for fmt in ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%SZ"):
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue

        long_match = LONG_DATE.match(text)
        if long_match:
            month = _month_number(long_match.group(1))
            if month is None:
                raise IngestionRowError(f"Unknown month in date: {value}", field="date", raw_value=value)
            return self._build_date(int(long_match.group(3)) if long_match.group(3) else None,
                                    month, int(long_match.group(2)), value)

        short_match = SHORT_DATE.match(text)
        if short_match:
            year = short_match.group(3)
            if year is not None and len(year) == 2:
                year = "20" + year
            return self._build_date(int(year) if year else None,
                                    int(short_match.group(1)), int(short_match.group(2)), value)

        raise IngestionRowError(f"Invalid date format: {value}", field="date", raw_value=value)

    def _build_date(self, year: Optional[int], month: int, day: int, raw: Any) -> date:
        inferred = year is None
        if inferred:
            year = self._period_year()
        try:
            result = date(year, month, day)
        except ValueError:
            raise IngestionRowError(f"Invalid calendar date: {raw}", field="date", raw_value=raw)

        # A December line on a statement closing in January belongs to the prior year
        period_end = self.statement.period_end
        if inferred and period_end is not None and result > period_end:
            try:
                result = date(year - 1, month, day)
            except ValueError:
                raise IngestionRowError(f"Invalid calendar date: {raw}", field="date", raw_value=raw)
        return result

    def _period_year(self) -> int:
        if self.statement.period_end is not None:
            return self.statement.period_end.year
        if self.statement.period_start is not None:
            return self.statement.period_start.year
        return date.today().year

    def _parse_amount(self, value: Any) -> Decimal:
        if value is None or value == "":
            raise IngestionRowError("Missing amount", field="amount")
        if isinstance(value, bool):
            raise IngestionRowError(f"Invalid amount: {value}", field="amount", raw_value=value)

        if isinstance(value, (int, float, Decimal)):
            raw = str(value)
        else:
            raw = re.sub(r"[$,\s]", "", str(value))
            if raw.startswith("(") and raw.endswith(")"):
                raw = "-" + raw[1:-1]

        try:
            parsed = Decimal(raw)
        except (InvalidOperation, ValueError):
            raise IngestionRowError(f"Invalid amount: {value}", field="amount", raw_value=value)
        if not parsed.is_finite():
            raise IngestionRowError(f"Invalid amount: {value}", field="amount", raw_value=value)

        try:
            amount = to_money(parsed)
        except InvalidOperation:
            raise IngestionRowError(f"Invalid amount: {value}", field="amount", raw_value=value)
        if abs(amount) >= MAX_AMOUNT:
            raise IngestionRowError(
                f"Amount out of range: {value}", field="amount", raw_value=value
            )
        if self.source_config.invert_amount_sign and amount:
            return -amount
        return amount

    @staticmethod
    def _parse_description(value: Any) -> str:
        if value is None:
            raise IngestionRowError("Missing description", field="description")
        description = " ".join(str(value).split())
        if not description:
            raise IngestionRowError("Missing description", field="description", raw_value=value)
        return description[:MAX_DESCRIPTION_LENGTH]
