"""
Reconciliation Service

Runs reconciliation passes for one bank statement at a time:
- Loads the statement, its transactions and the candidate expense pool
- Plans every decision in memory with the MatchingEngine
- Writes ledger links and transaction updates as one batch, then commits
- Produces the variance report for a statement
- Lists, reads and deletes statements
- Audit logging

A pass is all-or-nothing. Failure, timeout or cancellation rolls the batch
back and leaves the previous match state in place.
"""

import asyncio
import uuid
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Any, List, Optional

from database.statement_models import MatchStatus
from reconciliation.exceptions import (
    ReconciliationFailed,
    StatementNotFound,
)
from reconciliation.locking import StatementLeaseManager
from reconciliation.matching_engine import MatchingEngine
from reconciliation.models import (
    BankStatement,
    BankTransaction,
    CompanyExpense,
    MatchDecision,
    ReconciliationResult,
)
from reconciliation.reporter import (
    DEFAULT_BALANCE_TOLERANCE,
    VarianceReport,
    build_variance_report,
    summarize_transactions,
)
from reconciliation.stores.base import StatementStore, ExpenseLedger
from sentry_integration import capture_exception

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class ReconciliationAuditEvent:
    """Audit event types for reconciliation operations."""
    RUN_STARTED = "reconciliation.run_started"
    RUN_COMPLETED = "reconciliation.run_completed"
    RUN_FAILED = "reconciliation.run_failed"
    MATCH_LINKED = "reconciliation.match_linked"
    MATCH_RELEASED = "reconciliation.match_released"
    STATUS_OVERRIDDEN = "reconciliation.status_overridden"
    OVERRIDE_CLEARED = "reconciliation.override_cleared"
    STATEMENT_DELETED = "reconciliation.statement_deleted"


def log_reconciliation_event(
    event_type: str,
    statement_id: str,
    details: Dict[str, Any],
    run_id: Optional[str] = None,
    transaction_id: Optional[str] = None,
    actor: str = "system"
):
    """Log reconciliation event for audit trail."""
    log_entry = {
        "event": event_type,
        "statement_id": statement_id,
        "run_id": run_id,
        "transaction_id": transaction_id,
        "details": details,
        "actor": actor,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    logger.info(f"Reconciliation event: {event_type}", extra=log_entry)


class ReconciliationService:
    """
    Matches a statement's bank transactions against the company expense ledger.

    The stores and the lease manager are injected; in the API they all share
    the request's database session.
    """

    def __init__(
        self,
        statements: StatementStore,
        ledger: ExpenseLedger,
        leases: StatementLeaseManager,
        engine: Optional[MatchingEngine] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        balance_tolerance: Decimal = DEFAULT_BALANCE_TOLERANCE,
    ):
        self.statements = statements
        self.ledger = ledger
        self.leases = leases
        self.engine = engine or MatchingEngine()
        self.timeout_seconds = timeout_seconds
        self.balance_tolerance = balance_tolerance

    async def reconcile(self, statement_id: str) -> ReconciliationResult:
        """
        Run one reconciliation pass over a statement.

        Only unconfirmed transactions in unmatched or discrepancy state are
        re-decided. Running the pass again without new data changes nothing.

        Raises:
            StatementNotFound: unknown statement
            LockContention: another pass or override holds the statement
            ReconciliationFailed: the pass was aborted and rolled back
        """
        statement = await self._require_statement(statement_id)
        run_id = str(uuid.uuid4())

        async with self.leases.lease(statement_id):
            log_reconciliation_event(
                ReconciliationAuditEvent.RUN_STARTED,
                statement_id,
                {"company_id": statement.company_id, **self.engine.config.to_dict()},
                run_id=run_id,
            )
            try:
                result = await asyncio.wait_for(
                    self._run_pass(statement, run_id),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                reason = f"timed out after {self.timeout_seconds}s"
                self._report_failure(statement_id, run_id, reason, e)
                raise ReconciliationFailed(statement_id, reason) from e
            except ReconciliationFailed:
                raise
            except Exception as e:
                self._report_failure(statement_id, run_id, str(e), e)
                raise ReconciliationFailed(statement_id, str(e)) from e

        log_reconciliation_event(
            ReconciliationAuditEvent.RUN_COMPLETED,
            statement_id,
            {
                "processed": result.processed_count,
                "matched": result.matched_count,
                "discrepancies": result.discrepancy_count,
                "unmatched": result.unmatched_count,
                "ignored": result.ignored_count,
            },
            run_id=run_id,
        )
        return result

    async def _run_pass(self, statement: BankStatement, run_id: str) -> ReconciliationResult:
        try:
            transactions = await self.statements.list_transactions(statement.id)
            pool = await self._candidate_pool(statement, transactions)

            decisions = self.engine.plan(transactions, pool)
            await self._apply_links(statement.id, run_id, decisions)
            await self.statements.save_match_updates([d.to_update() for d in decisions])

            after = self._apply_decisions(transactions, decisions)
            await self.statements.commit()
        except BaseException:
            # Also reached on timeout or cancellation
            await self.statements.rollback()
            raise

        summary = summarize_transactions(after)
        return ReconciliationResult(
            run_id=run_id,
            statement_id=statement.id,
            processed_count=len(decisions),
            matched_count=summary.matched_count,
            discrepancy_count=summary.discrepancy_count,
            unmatched_count=summary.unmatched_count,
            ignored_count=summary.ignored_count,
            deposits_total=summary.deposits_total,
            withdrawals_total=summary.withdrawals_total,
            decisions=decisions,
        )

    async def _candidate_pool(
        self,
        statement: BankStatement,
        transactions: List[BankTransaction],
    ) -> List[CompanyExpense]:
        """
        Unlinked company expenses plus those held by the transactions this
        pass will re-decide.
        """
        in_scope = {t.id: t for t in transactions if self.engine.is_eligible(t)}
        held_ids = [t.matched_expense_id for t in in_scope.values() if t.matched_expense_id]

        pool = await self.ledger.list_unlinked_expenses(statement.company_id)
        known = {e.id for e in pool}

        for expense in await self.ledger.get_expenses(held_ids):
            if expense.id in known or expense.company_id != statement.company_id:
                continue
            if expense.bank_transaction_id not in (None, *in_scope.keys()):
                logger.warning(
                    f"Expense {expense.id} is referenced by a transaction on statement "
                    f"{statement.id} but linked to {expense.bank_transaction_id}; leaving it out"
                )
                continue
            pool.append(expense)
            known.add(expense.id)

        return pool

    async def _apply_links(
        self,
        statement_id: str,
        run_id: str,
        decisions: List[MatchDecision],
    ) -> None:
        changed = [d for d in decisions if d.link_changed]

        # Release first so an expense can move between transactions
        for decision in changed:
            if decision.previous_expense_id:
                await self.ledger.unlink_expense(decision.previous_expense_id)
                log_reconciliation_event(
                    ReconciliationAuditEvent.MATCH_RELEASED,
                    statement_id,
                    {"expense_id": decision.previous_expense_id},
                    run_id=run_id,
                    transaction_id=decision.transaction_id,
                )

        for decision in changed:
            if decision.matched_expense_id:
                await self.ledger.link_expense(decision.matched_expense_id, decision.transaction_id)
                log_reconciliation_event(
                    ReconciliationAuditEvent.MATCH_LINKED,
                    statement_id,
                    {
                        "expense_id": decision.matched_expense_id,
                        "match_status": decision.match_status.value,
                    },
                    run_id=run_id,
                    transaction_id=decision.transaction_id,
                )

    @staticmethod
    def _apply_decisions(
        transactions: List[BankTransaction],
        decisions: List[MatchDecision],
    ) -> List[BankTransaction]:
        by_id = {d.transaction_id: d for d in decisions}
        return [
            txn.with_match(by_id[txn.id].to_update()) if txn.id in by_id else txn
            for txn in transactions
        ]

    def _report_failure(self, statement_id: str, run_id: str, reason: str, error: BaseException):
        logger.error(f"Reconciliation of statement {statement_id} failed: {reason}")
        log_reconciliation_event(
            ReconciliationAuditEvent.RUN_FAILED,
            statement_id,
            {"reason": reason, "error_type": type(error).__name__},
            run_id=run_id,
        )
        capture_exception(error, statement_id=statement_id, run_id=run_id)

    # ==================== STATEMENTS ====================

    async def list_statements(self, company_id: str) -> List[BankStatement]:
        return await self.statements.list_statements(company_id)

    async def get_statement(self, statement_id: str) -> BankStatement:
        return await self._require_statement(statement_id)

    async def delete_statement(self, statement_id: str, actor: str = "user") -> None:
        """
        Delete a statement and its transactions.

        Expenses linked to any of its transactions are released back to the
        ledger in the same commit.

        Raises:
            StatementNotFound: unknown statement
            LockContention: a pass or override holds the statement
        """
        await self._require_statement(statement_id)

        async with self.leases.lease(statement_id):
            try:
                await self._require_statement(statement_id)
                transactions = await self.statements.list_transactions(statement_id)
                released = [t.matched_expense_id for t in transactions if t.matched_expense_id]
                for expense_id in released:
                    await self.ledger.unlink_expense(expense_id)
                await self.statements.delete_statement(statement_id)
                await self.statements.commit()
            except BaseException:
                await self.statements.rollback()
                raise

        log_reconciliation_event(
            ReconciliationAuditEvent.STATEMENT_DELETED,
            statement_id,
            {"transactions": len(transactions), "released_expense_ids": released},
            actor=actor,
        )

    # ==================== READ OPERATIONS ====================

    async def get_report(self, statement_id: str) -> VarianceReport:
        statement = await self._require_statement(statement_id)
        transactions = await self.statements.list_transactions(statement_id)
        return build_variance_report(statement, transactions, self.balance_tolerance)

    async def list_transactions(
        self,
        statement_id: str,
        match_status: Optional[MatchStatus] = None,
    ) -> List[BankTransaction]:
        await self._require_statement(statement_id)
        transactions = await self.statements.list_transactions(statement_id)
        if match_status is not None:
            transactions = [t for t in transactions if t.match_status == match_status]
        return transactions

    async def _require_statement(self, statement_id: str) -> BankStatement:
        statement = await self.statements.get_statement(statement_id)
        if statement is None:
            raise StatementNotFound(statement_id)
        return statement
