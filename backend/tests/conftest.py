"""
Shared fixtures: in-memory StatementStore and ExpenseLedger.

Both fakes write through one InMemoryBackend that behaves like a database
session: writes are staged, visible to the same backend, and only become
committed state on commit(). rollback() discards them.
"""

import asyncio
import copy
from dataclasses import replace
from datetime import date
from typing import Dict, List, Optional, Iterable

import pytest

from database.statement_models import StatementStatus, LINKABLE_STATUSES
from reconciliation.exceptions import ExpenseNotFound, LinkConflict
from reconciliation.locking import InProcessLeaseManager
from reconciliation.matching_engine import MatchingEngine
from reconciliation.models import (
    BankStatement,
    BankTransaction,
    CompanyExpense,
    MatchUpdate,
    to_money,
)
from reconciliation.services.reconciliation_service import ReconciliationService
from reconciliation.status_tracker import StatusTracker
from reconciliation.stores.base import StatementStore, ExpenseLedger
from ingestion.services.ingestion_service import TransactionIngestor

COMPANY_ID = "company-1"


class InMemoryBackend:

    def __init__(self):
        self.committed = {"statements": {}, "transactions": {}, "expenses": {}}
        self._staged = None
        self.commit_count = 0
        self.rollback_count = 0
        self.fail_on: Optional[str] = None
        self.delays: Dict[str, float] = {}

    @property
    def state(self):
        return self._staged if self._staged is not None else self.committed

    def writable(self):
        if self._staged is None:
            self._staged = copy.deepcopy(self.committed)
        return self._staged

    async def hook(self, operation: str):
        if operation in self.delays:
            await asyncio.sleep(self.delays[operation])
        if self.fail_on == operation:
            raise RuntimeError(f"injected failure in {operation}")

    def commit(self):
        if self._staged is not None:
            self.committed = self._staged
            self._staged = None
        self.commit_count += 1

    def rollback(self):
        self._staged = None
        self.rollback_count += 1

    # ==================== SEEDING (committed directly) ====================

    def add_statement(self, statement_id: str = "stmt-1", company_id: str = COMPANY_ID, **kwargs) -> BankStatement:
        statement = BankStatement(id=statement_id, company_id=company_id, **kwargs)
        self.committed["statements"][statement_id] = statement
        return statement

    def add_transaction(
        self,
        transaction_id: str,
        txn_date: date,
        amount,
        statement_id: str = "stmt-1",
        description: str = "",
        **kwargs,
    ) -> BankTransaction:
        txn = BankTransaction(
            id=transaction_id,
            statement_id=statement_id,
            transaction_date=txn_date,
            description=description or f"line {transaction_id}",
            amount=to_money(amount),
            **kwargs,
        )
        self.committed["transactions"][transaction_id] = txn
        return txn

    def add_expense(
        self,
        expense_id: str,
        expense_date: date,
        amount,
        company_id: str = COMPANY_ID,
        **kwargs,
    ) -> CompanyExpense:
        expense = CompanyExpense(
            id=expense_id,
            company_id=company_id,
            date=expense_date,
            amount=to_money(amount),
            **kwargs,
        )
        self.committed["expenses"][expense_id] = expense
        return expense

    # ==================== COMMITTED VIEWS ====================

    def transaction(self, transaction_id: str) -> BankTransaction:
        return self.committed["transactions"][transaction_id]

    def expense(self, expense_id: str) -> CompanyExpense:
        return self.committed["expenses"][expense_id]

    def statement(self, statement_id: str = "stmt-1") -> BankStatement:
        return self.committed["statements"][statement_id]

    def statement_transactions(self, statement_id: str = "stmt-1") -> List[BankTransaction]:
        return sorted(
            (t for t in self.committed["transactions"].values() if t.statement_id == statement_id),
            key=lambda t: (t.transaction_date, t.id),
        )

    def snapshot(self):
        return copy.deepcopy(self.committed)


class InMemoryStatementStore(StatementStore):

    def __init__(self, backend: InMemoryBackend):
        self.backend = backend

    async def get_statement(self, statement_id: str) -> Optional[BankStatement]:
        await self.backend.hook("get_statement")
        found = self.backend.state["statements"].get(statement_id)
        return replace(found) if found else None

    async def list_statements(self, company_id: str) -> List[BankStatement]:
        await self.backend.hook("list_statements")
        found = [replace(s) for s in self.backend.state["statements"].values() if s.company_id == company_id]
        found.sort(key=lambda s: s.id)
        found.sort(key=lambda s: s.period_end or date.min, reverse=True)
        return found

    async def delete_statement(self, statement_id: str) -> None:
        await self.backend.hook("delete_statement")
        state = self.backend.writable()
        state["statements"].pop(statement_id, None)
        for txn_id in [t.id for t in state["transactions"].values() if t.statement_id == statement_id]:
            del state["transactions"][txn_id]

    async def update_statement_status(self, statement_id: str, status: StatementStatus) -> None:
        await self.backend.hook("update_statement_status")
        statements = self.backend.writable()["statements"]
        statements[statement_id] = replace(statements[statement_id], status=status)

    async def list_transactions(self, statement_id: str) -> List[BankTransaction]:
        await self.backend.hook("list_transactions")
        return sorted(
            (replace(t) for t in self.backend.state["transactions"].values() if t.statement_id == statement_id),
            key=lambda t: (t.transaction_date, t.id),
        )

    async def get_transaction(self, transaction_id: str) -> Optional[BankTransaction]:
        await self.backend.hook("get_transaction")
        found = self.backend.state["transactions"].get(transaction_id)
        return replace(found) if found else None

    async def add_transactions(self, transactions: List[BankTransaction]) -> None:
        await self.backend.hook("add_transactions")
        stored = self.backend.writable()["transactions"]
        for txn in transactions:
            stored[txn.id] = replace(txn)

    async def save_match_updates(self, updates: List[MatchUpdate]) -> None:
        await self.backend.hook("save_match_updates")
        stored = self.backend.writable()["transactions"]
        for update in updates:
            stored[update.transaction_id] = stored[update.transaction_id].with_match(update)

        # Mirrors the partial unique index on matched_expense_id
        seen = {}
        for txn in stored.values():
            if txn.matched_expense_id is None:
                continue
            if txn.matched_expense_id in seen:
                raise RuntimeError(
                    f"expense {txn.matched_expense_id} linked to both "
                    f"{seen[txn.matched_expense_id]} and {txn.id}"
                )
            seen[txn.matched_expense_id] = txn.id

    async def commit(self) -> None:
        await self.backend.hook("commit")
        self.backend.commit()

    async def rollback(self) -> None:
        self.backend.rollback()


class InMemoryExpenseLedger(ExpenseLedger):

    def __init__(self, backend: InMemoryBackend):
        self.backend = backend

    async def list_unlinked_expenses(self, company_id: str) -> List[CompanyExpense]:
        await self.backend.hook("list_unlinked_expenses")
        return sorted(
            (
                replace(e) for e in self.backend.state["expenses"].values()
                if e.company_id == company_id and e.bank_transaction_id is None
            ),
            key=lambda e: (e.date, e.id),
        )

    async def get_expenses(self, expense_ids: Iterable[str]) -> List[CompanyExpense]:
        await self.backend.hook("get_expenses")
        expenses = self.backend.state["expenses"]
        return [replace(expenses[i]) for i in sorted(set(expense_ids)) if i in expenses]

    async def link_expense(self, expense_id: str, transaction_id: str) -> None:
        await self.backend.hook("link_expense")
        expenses = self.backend.writable()["expenses"]
        if expense_id not in expenses:
            raise ExpenseNotFound(expense_id)
        current = expenses[expense_id].bank_transaction_id
        if current is not None and current != transaction_id:
            raise LinkConflict(expense_id, transaction_id, current)
        expenses[expense_id] = replace(expenses[expense_id], bank_transaction_id=transaction_id)

    async def unlink_expense(self, expense_id: str) -> None:
        await self.backend.hook("unlink_expense")
        expenses = self.backend.writable()["expenses"]
        if expense_id in expenses:
            expenses[expense_id] = replace(expenses[expense_id], bank_transaction_id=None)


def assert_links_consistent(backend: InMemoryBackend):
    """Every linked transaction is mirrored by its expense and vice versa."""
    transactions = backend.committed["transactions"]
    expenses = backend.committed["expenses"]
    linked = {}
    for txn in transactions.values():
        if txn.matched_expense_id is None:
            continue
        assert txn.match_status in LINKABLE_STATUSES
        assert txn.matched_expense_id not in linked, "expense linked twice"
        linked[txn.matched_expense_id] = txn.id
        assert expenses[txn.matched_expense_id].bank_transaction_id == txn.id
    for expense in expenses.values():
        if expense.bank_transaction_id is not None:
            assert linked.get(expense.id) == expense.bank_transaction_id


# ==================== FIXTURES ====================

@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def statement_store(backend):
    return InMemoryStatementStore(backend)


@pytest.fixture
def expense_ledger(backend):
    return InMemoryExpenseLedger(backend)


@pytest.fixture
def leases():
    return InProcessLeaseManager()


@pytest.fixture
def service(statement_store, expense_ledger, leases):
    return ReconciliationService(statement_store, expense_ledger, leases, engine=MatchingEngine())


@pytest.fixture
def tracker(statement_store, expense_ledger, leases):
    return StatusTracker(statement_store, expense_ledger, leases)


@pytest.fixture
def ingestor(statement_store):
    return TransactionIngestor(statement_store)


@pytest.fixture
def links_consistent():
    return assert_links_consistent
