"""
Bank Reconciliation Module

Matches bank statement transactions against the company expense ledger:
- Amount and date matching with configurable tolerances
- Discrepancy detection for same-date amount differences
- Manual overrides that later passes respect
- Variance reporting against statement balances
- Audit trail for all operations
"""

from reconciliation.exceptions import (
    ReconciliationError,
    StatementNotFound,
    TransactionNotFound,
    ExpenseNotFound,
    ReconciliationFailed,
    LockContention,
    LinkConflict,
)
from reconciliation.matching_rules import AmountDateMatchingRules, MatchingConfig
from reconciliation.matching_engine import MatchingEngine
from reconciliation.reporter import summarize_transactions, build_variance_report
from reconciliation.services.reconciliation_service import ReconciliationService
from reconciliation.status_tracker import StatusTracker
from reconciliation.endpoints.reconciliation_api import router as reconciliation_router

__all__ = [
    # Errors
    'ReconciliationError',
    'StatementNotFound',
    'TransactionNotFound',
    'ExpenseNotFound',
    'ReconciliationFailed',
    'LockContention',
    'LinkConflict',
    # Matching
    'AmountDateMatchingRules',
    'MatchingConfig',
    'MatchingEngine',
    # Reporting
    'summarize_transactions',
    'build_variance_report',
    # Services
    'ReconciliationService',
    'StatusTracker',
    # Router
    'reconciliation_router'
]
