"""
Reconciliation domain records.

Plain dataclasses passed between the stores, the matching engine and the
reporter. Stores convert database rows into these; nothing here touches I/O.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Any

from database.statement_models import (
    StatementStatus,
    TransactionType,
    MatchStatus,
    LINKABLE_STATUSES,
)

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Coerce a numeric value to a two-place Decimal."""
    if isinstance(value, Decimal):
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    """$1,234.50 style, always unsigned."""
    return f"${abs(value):,.2f}"


@dataclass
class BankStatement:
    id: str
    company_id: str
    account_name: Optional[str] = None
    masked_account_number: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    beginning_balance: Optional[Decimal] = None
    ending_balance: Optional[Decimal] = None
    status: StatementStatus = StatementStatus.PENDING
    original_filename: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "account_name": self.account_name,
            "masked_account_number": self.masked_account_number,
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "beginning_balance": float(self.beginning_balance) if self.beginning_balance is not None else None,
            "ending_balance": float(self.ending_balance) if self.ending_balance is not None else None,
            "status": self.status.value,
            "original_filename": self.original_filename,
        }


@dataclass
class BankTransaction:
    """A statement line. amount is signed: positive inflow, negative outflow."""
    id: str
    statement_id: str
    transaction_date: date
    description: str
    amount: Decimal
    transaction_type: TransactionType = TransactionType.OTHER
    check_number: Optional[str] = None
    match_status: MatchStatus = MatchStatus.UNMATCHED
    match_notes: Optional[str] = None
    matched_expense_id: Optional[str] = None
    manually_confirmed: bool = False

    @property
    def absolute_amount(self) -> Decimal:
        return abs(self.amount)

    def with_match(self, update: "MatchUpdate") -> "BankTransaction":
        """Copy with the match state of an update applied."""
        return replace(
            self,
            match_status=update.match_status,
            match_notes=update.match_notes,
            matched_expense_id=update.matched_expense_id,
            manually_confirmed=update.manually_confirmed,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "statement_id": self.statement_id,
            "transaction_date": self.transaction_date.isoformat(),
            "description": self.description,
            "amount": float(self.amount),
            "transaction_type": self.transaction_type.value,
            "check_number": self.check_number,
            "match_status": self.match_status.value,
            "match_notes": self.match_notes,
            "matched_expense_id": self.matched_expense_id,
            "manually_confirmed": self.manually_confirmed,
        }


@dataclass
class CompanyExpense:
    id: str
    company_id: str
    date: date
    amount: Decimal
    description: Optional[str] = None
    category: Optional[str] = None
    billable: bool = False
    invoice_id: Optional[str] = None
    bank_transaction_id: Optional[str] = None

    @property
    def absolute_amount(self) -> Decimal:
        return abs(self.amount)


@dataclass
class MatchUpdate:
    """
    The mutable part of a BankTransaction, written back as one batch.
    """
    transaction_id: str
    match_status: MatchStatus
    match_notes: Optional[str]
    matched_expense_id: Optional[str]
    manually_confirmed: bool = False

    def __post_init__(self):
        if self.matched_expense_id and self.match_status not in LINKABLE_STATUSES:
            raise ValueError(
                f"Transaction {self.transaction_id} cannot keep an expense link "
                f"while {self.match_status.value}"
            )


@dataclass
class MatchDecision:
    """Outcome of matching one transaction during a pass."""
    transaction_id: str
    match_status: MatchStatus
    matched_expense_id: Optional[str]
    match_notes: Optional[str]
    previous_expense_id: Optional[str] = None
    candidates_considered: int = 0

    @property
    def link_changed(self) -> bool:
        return self.previous_expense_id != self.matched_expense_id

    def to_update(self) -> MatchUpdate:
        return MatchUpdate(
            transaction_id=self.transaction_id,
            match_status=self.match_status,
            match_notes=self.match_notes,
            matched_expense_id=self.matched_expense_id,
            manually_confirmed=False,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "match_status": self.match_status.value,
            "matched_expense_id": self.matched_expense_id,
            "match_notes": self.match_notes,
            "candidates_considered": self.candidates_considered,
        }


@dataclass
class ReconciliationResult:
    """
    Result of a reconciliation pass.

    Counts describe the whole statement after the pass; processed_count is
    the number of transactions the pass was allowed to classify.
    """
    run_id: str
    statement_id: str
    processed_count: int
    matched_count: int
    discrepancy_count: int
    unmatched_count: int
    ignored_count: int
    deposits_total: Decimal
    withdrawals_total: Decimal
    decisions: List[MatchDecision] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "statement_id": self.statement_id,
            "processed_count": self.processed_count,
            "matched_count": self.matched_count,
            "discrepancy_count": self.discrepancy_count,
            "unmatched_count": self.unmatched_count,
            "ignored_count": self.ignored_count,
            "deposits_total": float(self.deposits_total),
            "withdrawals_total": float(self.withdrawals_total),
            "decisions": [d.to_dict() for d in self.decisions],
        }
