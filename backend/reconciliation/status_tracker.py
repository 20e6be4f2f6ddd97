"""
Status Tracker

Manual overrides of a bank transaction's match state. A confirmed override is
never revisited by later reconciliation passes until it is cleared.
"""

import logging
from typing import Optional, Union

from database.statement_models import MatchStatus, LINKABLE_STATUSES
from reconciliation.exceptions import (
    ExpenseNotFound,
    StatementNotFound,
    TransactionNotFound,
)
from reconciliation.locking import StatementLeaseManager
from reconciliation.models import BankStatement, BankTransaction, MatchUpdate
from reconciliation.services.reconciliation_service import (
    ReconciliationAuditEvent,
    log_reconciliation_event,
)
from reconciliation.stores.base import StatementStore, ExpenseLedger

logger = logging.getLogger(__name__)


def parse_match_status(value: Union[MatchStatus, str]) -> MatchStatus:
    if isinstance(value, MatchStatus):
        return value
    try:
        return MatchStatus(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in MatchStatus)
        raise ValueError(f"Invalid match status '{value}'. Must be one of: {allowed}")


class StatusTracker:

    def __init__(
        self,
        statements: StatementStore,
        ledger: ExpenseLedger,
        leases: StatementLeaseManager,
    ):
        self.statements = statements
        self.ledger = ledger
        self.leases = leases

    async def set_match_status(
        self,
        transaction_id: str,
        status: Union[MatchStatus, str],
        notes: Optional[str] = None,
        confirm: bool = True,
        expense_id: Optional[str] = None,
        actor: str = "user",
    ) -> BankTransaction:
        """
        Override the match state of one transaction.

        Args:
            transaction_id: Bank transaction to update
            status: New match status
            notes: Replacement notes; a default is written when omitted
            confirm: Protect the row from later reconciliation passes
            expense_id: Expense to link, only for matched or discrepancy
            actor: Recorded in the audit log

        Raises:
            TransactionNotFound, ExpenseNotFound, LinkConflict, LockContention,
            ValueError for an invalid status or a link that is not allowed
        """
        new_status = parse_match_status(status)
        if expense_id and new_status not in LINKABLE_STATUSES:
            raise ValueError(
                f"An expense can only be linked when status is matched or discrepancy, "
                f"not {new_status.value}"
            )

        found = await self._require_transaction(transaction_id)

        async with self.leases.lease(found.statement_id):
            try:
                # A pass may have committed since the first read
                txn = await self._require_transaction(transaction_id)
                statement = await self._require_statement(txn.statement_id)
                new_link = txn.matched_expense_id if new_status in LINKABLE_STATUSES else None

                if expense_id and expense_id != txn.matched_expense_id:
                    await self._check_expense(expense_id, statement)
                    if txn.matched_expense_id:
                        await self.ledger.unlink_expense(txn.matched_expense_id)
                    await self.ledger.link_expense(expense_id, txn.id)
                    new_link = expense_id
                elif txn.matched_expense_id and new_link is None:
                    await self.ledger.unlink_expense(txn.matched_expense_id)

                update = MatchUpdate(
                    transaction_id=txn.id,
                    match_status=new_status,
                    match_notes=notes if notes is not None else f"status set manually to {new_status.value}",
                    matched_expense_id=new_link,
                    manually_confirmed=confirm,
                )
                await self.statements.save_match_updates([update])
                await self.statements.commit()
            except BaseException:
                await self.statements.rollback()
                raise

        log_reconciliation_event(
            ReconciliationAuditEvent.STATUS_OVERRIDDEN,
            statement.id,
            {
                "from_status": txn.match_status.value,
                "to_status": new_status.value,
                "previous_expense_id": txn.matched_expense_id,
                "expense_id": new_link,
                "confirmed": confirm,
            },
            transaction_id=txn.id,
            actor=actor,
        )

        return txn.with_match(update)

    async def clear_override(self, transaction_id: str, actor: str = "user") -> BankTransaction:
        """Let later reconciliation passes reclassify the transaction again."""
        found = await self._require_transaction(transaction_id)

        async with self.leases.lease(found.statement_id):
            try:
                txn = await self._require_transaction(transaction_id)
                update = MatchUpdate(
                    transaction_id=txn.id,
                    match_status=txn.match_status,
                    match_notes=txn.match_notes,
                    matched_expense_id=txn.matched_expense_id,
                    manually_confirmed=False,
                )
                await self.statements.save_match_updates([update])
                await self.statements.commit()
            except BaseException:
                await self.statements.rollback()
                raise

        log_reconciliation_event(
            ReconciliationAuditEvent.OVERRIDE_CLEARED,
            txn.statement_id,
            {"match_status": txn.match_status.value},
            transaction_id=txn.id,
            actor=actor,
        )
        return txn.with_match(update)

    async def _check_expense(self, expense_id: str, statement: BankStatement) -> None:
        found = await self.ledger.get_expenses([expense_id])
        if not found:
            raise ExpenseNotFound(expense_id)
        if found[0].company_id != statement.company_id:
            raise ValueError(
                f"Expense {expense_id} belongs to a different company than statement {statement.id}"
            )

    async def _require_transaction(self, transaction_id: str) -> BankTransaction:
        txn = await self.statements.get_transaction(transaction_id)
        if txn is None:
            raise TransactionNotFound(transaction_id)
        return txn

    async def _require_statement(self, statement_id: str) -> BankStatement:
        statement = await self.statements.get_statement(statement_id)
        if statement is None:
            raise StatementNotFound(statement_id)
        return statement

