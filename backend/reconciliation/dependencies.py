"""
FastAPI dependency providers for the reconciliation services.

Every provider in a request resolves to the same AsyncSession (FastAPI caches
get_db per request), so stores, ledger and advisory leases share one database
transaction.
"""

from decimal import Decimal

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database.connection import get_db
from reconciliation.locking import (
    StatementLeaseManager,
    PostgresAdvisoryLeaseManager,
    in_process_leases,
)
from reconciliation.matching_engine import MatchingEngine
from reconciliation.matching_rules import MatchingConfig
from reconciliation.services.reconciliation_service import ReconciliationService
from reconciliation.status_tracker import StatusTracker
from reconciliation.stores import (
    StatementStore,
    ExpenseLedger,
    SqlStatementStore,
    SqlExpenseLedger,
)

LOCK_BACKEND_POSTGRES = "postgres"


def get_statement_store(db: AsyncSession = Depends(get_db)) -> StatementStore:
    return SqlStatementStore(db)


def get_expense_ledger(db: AsyncSession = Depends(get_db)) -> ExpenseLedger:
    return SqlExpenseLedger(db)


def get_lease_manager(db: AsyncSession = Depends(get_db)) -> StatementLeaseManager:
    if get_settings().RECONCILE_LOCK_BACKEND.lower() == LOCK_BACKEND_POSTGRES:
        return PostgresAdvisoryLeaseManager(db)
    return in_process_leases


def get_matching_engine() -> MatchingEngine:
    return MatchingEngine(MatchingConfig.from_settings(get_settings()))


def get_reconciliation_service(
    statements: StatementStore = Depends(get_statement_store),
    ledger: ExpenseLedger = Depends(get_expense_ledger),
    leases: StatementLeaseManager = Depends(get_lease_manager),
    engine: MatchingEngine = Depends(get_matching_engine),
) -> ReconciliationService:
    settings = get_settings()
    return ReconciliationService(
        statements,
        ledger,
        leases,
        engine=engine,
        timeout_seconds=settings.RECONCILE_TIMEOUT_SECONDS,
        balance_tolerance=Decimal(str(settings.RECONCILE_BALANCE_TOLERANCE)),
    )


def get_status_tracker(
    statements: StatementStore = Depends(get_statement_store),
    ledger: ExpenseLedger = Depends(get_expense_ledger),
    leases: StatementLeaseManager = Depends(get_lease_manager),
) -> StatusTracker:
    return StatusTracker(statements, ledger, leases)
