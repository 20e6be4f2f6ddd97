"""
Repository interfaces consumed by the reconciliation engine.

StatementStore and ExpenseLedger share one unit of work: writes made through
either are only visible after StatementStore.commit() and are discarded by
StatementStore.rollback().
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Iterable

from database.statement_models import StatementStatus
from reconciliation.models import BankStatement, BankTransaction, CompanyExpense, MatchUpdate


class StatementStore(ABC):
    """Persists statement headers and their transaction rows."""

    @abstractmethod
    async def get_statement(self, statement_id: str) -> Optional[BankStatement]:
        ...

    @abstractmethod
    async def list_statements(self, company_id: str) -> List[BankStatement]:
        """Company statements, latest period first."""

    @abstractmethod
    async def delete_statement(self, statement_id: str) -> None:
        """Remove the statement header and its transaction rows."""

    @abstractmethod
    async def update_statement_status(self, statement_id: str, status: StatementStatus) -> None:
        ...

    @abstractmethod
    async def list_transactions(self, statement_id: str) -> List[BankTransaction]:
        ...

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[BankTransaction]:
        ...

    @abstractmethod
    async def add_transactions(self, transactions: List[BankTransaction]) -> None:
        ...

    @abstractmethod
    async def save_match_updates(self, updates: List[MatchUpdate]) -> None:
        """Write match state for many transactions in one batch."""

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...


class ExpenseLedger(ABC):
    """Read and link access to the external expense ledger."""

    @abstractmethod
    async def list_unlinked_expenses(self, company_id: str) -> List[CompanyExpense]:
        ...

    @abstractmethod
    async def get_expenses(self, expense_ids: Iterable[str]) -> List[CompanyExpense]:
        ...

    @abstractmethod
    async def link_expense(self, expense_id: str, transaction_id: str) -> None:
        """
        Record that the expense is paired with the bank transaction.

        Raises LinkConflict if it is linked to a different transaction and
        ExpenseNotFound if it does not exist.
        """

    @abstractmethod
    async def unlink_expense(self, expense_id: str) -> None:
        ...
