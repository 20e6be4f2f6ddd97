"""
Reconciliation Reporter

Stateless summaries over a statement's transactions. Totals are computed from
the signed amounts, never from transaction_type, so a misclassified row still
lands on the right side of the balance.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Any, List, Iterable

from database.statement_models import MatchStatus
from reconciliation.models import BankStatement, BankTransaction, CENT, to_money

DEFAULT_BALANCE_TOLERANCE = Decimal("0.01")


@dataclass
class ReconciliationSummary:
    matched: List[BankTransaction] = field(default_factory=list)
    unmatched: List[BankTransaction] = field(default_factory=list)
    discrepancies: List[BankTransaction] = field(default_factory=list)
    ignored: List[BankTransaction] = field(default_factory=list)
    deposits_total: Decimal = Decimal("0.00")
    withdrawals_total: Decimal = Decimal("0.00")

    @property
    def matched_count(self) -> int:
        return len(self.matched)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched)

    @property
    def discrepancy_count(self) -> int:
        return len(self.discrepancies)

    @property
    def ignored_count(self) -> int:
        return len(self.ignored)

    @property
    def transaction_count(self) -> int:
        return (
            self.matched_count + self.unmatched_count
            + self.discrepancy_count + self.ignored_count
        )

    def to_dict(self, include_transactions: bool = False) -> Dict[str, Any]:
        data = {
            "matched_count": self.matched_count,
            "unmatched_count": self.unmatched_count,
            "discrepancy_count": self.discrepancy_count,
            "ignored_count": self.ignored_count,
            "transaction_count": self.transaction_count,
            "deposits_total": float(self.deposits_total),
            "withdrawals_total": float(self.withdrawals_total),
        }
        if include_transactions:
            data["matched"] = [t.to_dict() for t in self.matched]
            data["unmatched"] = [t.to_dict() for t in self.unmatched]
            data["discrepancies"] = [t.to_dict() for t in self.discrepancies]
            data["ignored"] = [t.to_dict() for t in self.ignored]
        return data


@dataclass
class VarianceReport:
    """Statement balance check: beginning + deposits - withdrawals vs ending."""
    statement_id: str
    beginning_balance: Decimal
    ending_balance: Decimal
    deposits_total: Decimal
    withdrawals_total: Decimal
    calculated_ending_balance: Decimal
    variance: Decimal
    balanced: bool
    matched_count: int
    unmatched_count: int
    discrepancy_count: int
    ignored_count: int
    transaction_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statement_id": self.statement_id,
            "beginning_balance": float(self.beginning_balance),
            "ending_balance": float(self.ending_balance),
            "deposits_total": float(self.deposits_total),
            "withdrawals_total": float(self.withdrawals_total),
            "calculated_ending_balance": float(self.calculated_ending_balance),
            "variance": float(self.variance),
            "balanced": self.balanced,
            "matched_count": self.matched_count,
            "unmatched_count": self.unmatched_count,
            "discrepancy_count": self.discrepancy_count,
            "ignored_count": self.ignored_count,
            "transaction_count": self.transaction_count,
        }


def summarize_transactions(transactions: Iterable[BankTransaction]) -> ReconciliationSummary:
    """
    Partition transactions by match status and total the money movement.

    deposits_total sums positive amounts, withdrawals_total sums the absolute
    value of negative amounts.
    """
    summary = ReconciliationSummary()
    deposits = Decimal("0")
    withdrawals = Decimal("0")

    for txn in transactions:
        if txn.match_status == MatchStatus.MATCHED:
            summary.matched.append(txn)
        elif txn.match_status == MatchStatus.DISCREPANCY:
            summary.discrepancies.append(txn)
        elif txn.match_status == MatchStatus.IGNORED:
            summary.ignored.append(txn)
        else:
            summary.unmatched.append(txn)

        if txn.amount > 0:
            deposits += txn.amount
        elif txn.amount < 0:
            withdrawals += -txn.amount

    summary.deposits_total = to_money(deposits)
    summary.withdrawals_total = to_money(withdrawals)
    return summary


def build_variance_report(
    statement: BankStatement,
    transactions: Iterable[BankTransaction],
    tolerance: Decimal = DEFAULT_BALANCE_TOLERANCE,
) -> VarianceReport:
    """
    Compare the statement's ending balance with the one implied by its lines.

    A missing beginning or ending balance is treated as zero. The statement
    is balanced when |variance| is strictly below the tolerance.
    """
    summary = summarize_transactions(transactions)

    beginning = to_money(statement.beginning_balance or 0)
    ending = to_money(statement.ending_balance or 0)
    calculated = (beginning + summary.deposits_total - summary.withdrawals_total).quantize(CENT)
    variance = (ending - calculated).quantize(CENT)

    return VarianceReport(
        statement_id=statement.id,
        beginning_balance=beginning,
        ending_balance=ending,
        deposits_total=summary.deposits_total,
        withdrawals_total=summary.withdrawals_total,
        calculated_ending_balance=calculated,
        variance=variance,
        balanced=abs(variance) < tolerance,
        matched_count=summary.matched_count,
        unmatched_count=summary.unmatched_count,
        discrepancy_count=summary.discrepancy_count,
        ignored_count=summary.ignored_count,
        transaction_count=summary.transaction_count,
    )
