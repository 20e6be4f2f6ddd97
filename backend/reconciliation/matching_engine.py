"""
Matching Engine

Plans a reconciliation pass in memory. Given a statement's transactions and
the candidate expense pool it returns one MatchDecision per eligible
transaction. Nothing is written here; ReconciliationService persists the plan.
"""

import logging
from typing import Dict, List, Optional, Tuple

from database.statement_models import MatchStatus, RECONCILABLE_STATUSES
from reconciliation.matching_rules import AmountDateMatchingRules, MatchingConfig
from reconciliation.models import BankTransaction, CompanyExpense, MatchDecision

logger = logging.getLogger(__name__)


class MatchingEngine:
    """
    Deterministic amount/date matcher.

    Transactions are processed oldest first, larger amounts first within a
    day, then by id. Each linked expense leaves the pool so it can only be
    claimed once per pass.
    """

    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()
        self.rules = AmountDateMatchingRules(self.config)

    @staticmethod
    def is_eligible(transaction: BankTransaction) -> bool:
        """Only unconfirmed unmatched or discrepancy rows are re-decided."""
        return (
            transaction.match_status in RECONCILABLE_STATUSES
            and not transaction.manually_confirmed
        )

    @staticmethod
    def processing_order(transaction: BankTransaction) -> Tuple:
        return (
            transaction.transaction_date,
            -transaction.absolute_amount,
            transaction.id,
        )

    def plan(
        self,
        transactions: List[BankTransaction],
        expenses: List[CompanyExpense],
    ) -> List[MatchDecision]:
        """
        Decide every eligible transaction against the expense pool.

        Args:
            transactions: Transactions of one statement (any status)
            expenses: Expenses free for this pass, including those currently
                linked to the eligible transactions

        Returns:
            Decisions in processing order
        """
        eligible = sorted(
            (t for t in transactions if self.is_eligible(t)),
            key=self.processing_order,
        )

        pool: Dict[str, CompanyExpense] = {}
        for expense in expenses:
            pool[expense.id] = expense

        decisions = []
        for txn in eligible:
            decision = self.rules.evaluate(txn, pool.values())
            if decision.matched_expense_id:
                pool.pop(decision.matched_expense_id, None)
            decisions.append(decision)

        logger.debug(
            f"Planned {len(decisions)} decisions: "
            f"{sum(1 for d in decisions if d.match_status == MatchStatus.MATCHED)} matched, "
            f"{sum(1 for d in decisions if d.match_status == MatchStatus.DISCREPANCY)} discrepancies, "
            f"{len(pool)} expenses left in pool"
        )
        return decisions
