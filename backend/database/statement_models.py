"""
Recon Core - Bank Statement Database Models

Tables:
- bank_statements: one row per uploaded statement or feed period
- bank_transactions: parsed statement lines with their match state
- company_expenses: the expense ledger (owned by the ledger service; this
  service only reads it and records the bank_transaction_id back-reference)
"""

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, String, Text, Boolean, Date, DateTime,
    ForeignKey, Index, Enum as SQLEnum, Numeric, text
)
from sqlalchemy.orm import relationship

from database.connection import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ==================== ENUMS (FROZEN) ====================

class StatementStatus(str, PyEnum):
    """Statement processing lifecycle"""
    PENDING = "pending"        # Uploaded, not yet parsed
    PROCESSING = "processing"  # Ingestion in progress
    PROCESSED = "processed"    # At least one transaction ingested
    ERROR = "error"            # Ingestion produced no usable transactions


class TransactionType(str, PyEnum):
    """Bank transaction type"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    CHECK = "check"
    FEE = "fee"
    TRANSFER = "transfer"
    OTHER = "other"


class MatchStatus(str, PyEnum):
    """Reconciliation state of a bank transaction"""
    UNMATCHED = "unmatched"
    MATCHED = "matched"
    DISCREPANCY = "discrepancy"
    IGNORED = "ignored"


# Statuses that may carry a matched_expense_id
LINKABLE_STATUSES = frozenset({MatchStatus.MATCHED, MatchStatus.DISCREPANCY})

# Statuses revisited by an automatic reconciliation pass
RECONCILABLE_STATUSES = frozenset({MatchStatus.UNMATCHED, MatchStatus.DISCREPANCY})


# ==================== DATABASE MODELS ====================

class BankStatementDB(Base):
    """
    Statement header.

    Balances are the figures printed on the statement; the variance report
    compares them with the sum of the ingested transactions.
    """
    __tablename__ = "bank_statements"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    company_id = Column(String(36), nullable=False, index=True)

    account_name = Column(Text, nullable=True)
    masked_account_number = Column(String(32), nullable=True)
    original_filename = Column(Text, nullable=True)

    period_start = Column(Date, nullable=True)
    period_end = Column(Date, nullable=True)
    beginning_balance = Column(Numeric(12, 2), nullable=True)
    ending_balance = Column(Numeric(12, 2), nullable=True)

    status = Column(
        SQLEnum(StatementStatus, name='statement_status_enum', create_type=False,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=StatementStatus.PENDING,
        index=True
    )

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    transactions = relationship("BankTransactionDB", back_populates="statement", cascade="all, delete-orphan")


class BankTransactionDB(Base):
    """
    Single statement line.

    Only match_status, match_notes, matched_expense_id and manually_confirmed
    change after ingestion.
    """
    __tablename__ = "bank_transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    statement_id = Column(String(36), ForeignKey("bank_statements.id", ondelete="CASCADE"), nullable=False, index=True)

    transaction_date = Column(Date, nullable=False)
    description = Column(Text, nullable=False, default="")
    amount = Column(Numeric(12, 2), nullable=False)
    transaction_type = Column(
        SQLEnum(TransactionType, name='bank_transaction_type_enum', create_type=False,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=TransactionType.OTHER
    )
    check_number = Column(String(32), nullable=True)

    match_status = Column(
        SQLEnum(MatchStatus, name='bank_match_status_enum', create_type=False,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=MatchStatus.UNMATCHED,
        index=True
    )
    match_notes = Column(Text, nullable=True)
    matched_expense_id = Column(String(36), ForeignKey("company_expenses.id", ondelete="SET NULL"), nullable=True)
    manually_confirmed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    statement = relationship("BankStatementDB", back_populates="transactions")

    __table_args__ = (
        Index('ix_bank_transactions_statement_date', 'statement_id', 'transaction_date'),
        # 1:1 pairing between bank lines and expenses
        Index(
            'ux_bank_transactions_matched_expense',
            'matched_expense_id',
            unique=True,
            postgresql_where=text('matched_expense_id IS NOT NULL')
        ),
    )


class CompanyExpenseDB(Base):
    """
    Expense ledger row, mapped read-mostly.

    bank_transaction_id is the link back-reference recorded by the ledger
    when a bank line is paired with the expense.
    """
    __tablename__ = "company_expenses"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    company_id = Column(String(36), nullable=False, index=True)

    date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(Text, nullable=True)
    billable = Column(Boolean, nullable=False, default=False)
    invoice_id = Column(String(36), nullable=True)

    bank_transaction_id = Column(String(36), nullable=True, index=True)

    __table_args__ = (
        Index('ix_company_expenses_company_date', 'company_id', 'date'),
    )
