"""
Amount and Date Matching Rules

Decides how a single bank transaction pairs with the expense pool.

Primary Match Keys:
- absolute amount (equal within an epsilon)
- date (inside a window either side of the bank date)

Outcomes:
- MATCHED: exactly one exact-amount candidate in the window, or the
  nearest-date one when several compete (lowest expense id on ties)
- DISCREPANCY: no exact-amount candidate, but an expense sits on the same
  date (within the discrepancy window); the nearest amount is linked
- UNMATCHED: nothing usable
"""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import List, Iterable, Optional

from database.statement_models import MatchStatus
from reconciliation.models import (
    BankTransaction,
    CompanyExpense,
    MatchDecision,
    format_money,
    to_money,
)

NOTE_EXACT = "matched by amount and date"
NOTE_UNMATCHED = "no expense found with matching amount and date"


@dataclass(frozen=True)
class MatchingConfig:
    """
    Tolerances for the matching pass.
    """
    date_window_days: int = 3
    amount_epsilon: Decimal = Decimal("0.005")
    discrepancy_window_days: int = 1

    @classmethod
    def from_settings(cls, settings) -> "MatchingConfig":
        return cls(
            date_window_days=settings.RECONCILE_DATE_WINDOW_DAYS,
            amount_epsilon=Decimal(str(settings.RECONCILE_AMOUNT_EPSILON)),
            discrepancy_window_days=settings.RECONCILE_DISCREPANCY_WINDOW_DAYS,
        )

    def to_dict(self):
        return {
            "date_window_days": self.date_window_days,
            "amount_epsilon": str(self.amount_epsilon),
            "discrepancy_window_days": self.discrepancy_window_days,
        }


@dataclass(frozen=True)
class MatchCandidate:
    """
    An expense considered for a bank transaction.
    """
    expense: CompanyExpense
    date_distance: int
    amount_difference: Decimal  # |bank| - |expense|

    @property
    def expense_id(self) -> str:
        return self.expense.id


class AmountDateMatchingRules:
    """
    Matching rules for bank lines against the expense ledger.
    """

    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()

    def evaluate(
        self,
        transaction: BankTransaction,
        pool: Iterable[CompanyExpense],
    ) -> MatchDecision:
        """
        Classify one transaction against the expenses still available.

        The pool is not modified; the caller removes the linked expense.
        """
        candidates = self._build_candidates(transaction, pool)

        exact = [
            c for c in candidates
            if abs(c.amount_difference) <= self.config.amount_epsilon
            and c.date_distance <= self.config.date_window_days
        ]
        if exact:
            return self._exact_match(transaction, exact)

        same_date = [
            c for c in candidates
            if c.date_distance <= self.config.discrepancy_window_days
        ]
        if same_date:
            return self._discrepancy(transaction, same_date)

        return MatchDecision(
            transaction_id=transaction.id,
            match_status=MatchStatus.UNMATCHED,
            matched_expense_id=None,
            match_notes=NOTE_UNMATCHED,
            previous_expense_id=transaction.matched_expense_id,
            candidates_considered=0,
        )

    def _build_candidates(
        self,
        transaction: BankTransaction,
        pool: Iterable[CompanyExpense],
    ) -> List[MatchCandidate]:
        widest = max(self.config.date_window_days, self.config.discrepancy_window_days)
        earliest = transaction.transaction_date - timedelta(days=widest)
        latest = transaction.transaction_date + timedelta(days=widest)

        candidates = []
        for expense in pool:
            if not (earliest <= expense.date <= latest):
                continue
            candidates.append(MatchCandidate(
                expense=expense,
                date_distance=abs((expense.date - transaction.transaction_date).days),
                amount_difference=transaction.absolute_amount - expense.absolute_amount,
            ))
        return candidates

    def _exact_match(
        self,
        transaction: BankTransaction,
        exact: List[MatchCandidate],
    ) -> MatchDecision:
        best = min(exact, key=lambda c: (c.date_distance, c.expense_id))

        if len(exact) == 1:
            notes = NOTE_EXACT
        else:
            notes = (
                f"{NOTE_EXACT}; {len(exact)} expenses share this amount, "
                f"selected the nearest date (lowest expense id on ties)"
            )

        return MatchDecision(
            transaction_id=transaction.id,
            match_status=MatchStatus.MATCHED,
            matched_expense_id=best.expense_id,
            match_notes=notes,
            previous_expense_id=transaction.matched_expense_id,
            candidates_considered=len(exact),
        )

    def _discrepancy(
        self,
        transaction: BankTransaction,
        same_date: List[MatchCandidate],
    ) -> MatchDecision:
        best = min(
            same_date,
            key=lambda c: (abs(c.amount_difference), c.date_distance, c.expense_id),
        )
        difference = to_money(best.amount_difference)
        sign = "+" if difference > 0 else "-" if difference < 0 else ""
        notes = (
            f"amount differs by {sign}{format_money(difference)} "
            f"(bank {format_money(transaction.amount)} vs expense {format_money(best.expense.amount)})"
        )

        return MatchDecision(
            transaction_id=transaction.id,
            match_status=MatchStatus.DISCREPANCY,
            matched_expense_id=best.expense_id,
            match_notes=notes,
            previous_expense_id=transaction.matched_expense_id,
            candidates_considered=len(same_date),
        )
