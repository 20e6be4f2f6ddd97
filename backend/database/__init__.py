from .connection import get_db, get_engine, get_session_factory, init_db, dispose_engine, Base

# Import statement models to ensure they are registered with Base
from .statement_models import (
    BankStatementDB, BankTransactionDB, CompanyExpenseDB,
    StatementStatus, TransactionType, MatchStatus,
    LINKABLE_STATUSES, RECONCILABLE_STATUSES,
)

__all__ = [
    'get_db', 'get_engine', 'get_session_factory', 'init_db', 'dispose_engine', 'Base',
    # Statement models
    'BankStatementDB', 'BankTransactionDB', 'CompanyExpenseDB',
    'StatementStatus', 'TransactionType', 'MatchStatus',
    'LINKABLE_STATUSES', 'RECONCILABLE_STATUSES',
]
