"""
Reconciliation error kinds.
"""

from typing import Optional


class ReconciliationError(Exception):
    """Base class for reconciliation errors."""


class StatementNotFound(ReconciliationError):
    def __init__(self, statement_id: str):
        self.statement_id = statement_id
        super().__init__(f"Statement {statement_id} not found")


class TransactionNotFound(ReconciliationError):
    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Bank transaction {transaction_id} not found")


class ExpenseNotFound(ReconciliationError):
    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} not found")


class ReconciliationFailed(ReconciliationError):
    """A pass was aborted before commit. No match state was changed."""

    def __init__(self, statement_id: str, reason: str):
        self.statement_id = statement_id
        self.reason = reason
        super().__init__(f"Reconciliation of statement {statement_id} failed: {reason}")


class LockContention(ReconciliationError):
    """Another pass or override holds the statement lease. Safe to retry."""

    def __init__(self, statement_id: str):
        self.statement_id = statement_id
        super().__init__(f"Statement {statement_id} is being reconciled; retry shortly")


class LinkConflict(ReconciliationError):
    """The expense is already linked to a different bank transaction."""

    def __init__(self, expense_id: str, transaction_id: str, linked_transaction_id: Optional[str] = None):
        self.expense_id = expense_id
        self.transaction_id = transaction_id
        self.linked_transaction_id = linked_transaction_id
        super().__init__(
            f"Expense {expense_id} is already linked to transaction "
            f"{linked_transaction_id or 'another transaction'}; cannot link to {transaction_id}"
        )
