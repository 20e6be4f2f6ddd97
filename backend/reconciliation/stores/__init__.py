"""
Statement store and expense ledger repositories.
"""

from .base import StatementStore, ExpenseLedger
from .sql_store import SqlStatementStore, SqlExpenseLedger

__all__ = ["StatementStore", "ExpenseLedger", "SqlStatementStore", "SqlExpenseLedger"]
