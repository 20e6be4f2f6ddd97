"""
Database Migration: Create Bank Reconciliation Tables

Creates the statement and transaction tables, the enum types they use, and
the bank_transaction_id back-reference on the expense ledger.
"""

import asyncio
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import text
from database.connection import get_engine, dispose_engine


SQL_STATEMENTS = [
    # Enum types
    """
    DO $$ BEGIN
        CREATE TYPE statement_status_enum AS ENUM ('pending', 'processing', 'processed', 'error');
    EXCEPTION WHEN duplicate_object THEN NULL;
    END $$
    """,
    """
    DO $$ BEGIN
        CREATE TYPE bank_transaction_type_enum AS ENUM
            ('deposit', 'withdrawal', 'check', 'fee', 'transfer', 'other');
    EXCEPTION WHEN duplicate_object THEN NULL;
    END $$
    """,
    """
    DO $$ BEGIN
        CREATE TYPE bank_match_status_enum AS ENUM ('unmatched', 'matched', 'discrepancy', 'ignored');
    EXCEPTION WHEN duplicate_object THEN NULL;
    END $$
    """,

    # Expense ledger (normally owned by the ledger service)
    """
    CREATE TABLE IF NOT EXISTS public.company_expenses (
        id VARCHAR(36) PRIMARY KEY,
        company_id VARCHAR(36) NOT NULL,
        date DATE NOT NULL,
        amount NUMERIC(12,2) NOT NULL,
        description TEXT,
        category TEXT,
        billable BOOLEAN NOT NULL DEFAULT false,
        invoice_id VARCHAR(36)
    )
    """,
    "ALTER TABLE public.company_expenses ADD COLUMN IF NOT EXISTS bank_transaction_id VARCHAR(36)",
    "CREATE INDEX IF NOT EXISTS ix_company_expenses_company_date ON public.company_expenses(company_id, date)",
    "CREATE INDEX IF NOT EXISTS ix_company_expenses_bank_transaction_id ON public.company_expenses(bank_transaction_id)",

    # Statement headers
    """
    CREATE TABLE IF NOT EXISTS public.bank_statements (
        id VARCHAR(36) PRIMARY KEY,
        company_id VARCHAR(36) NOT NULL,
        account_name TEXT,
        masked_account_number VARCHAR(32),
        original_filename TEXT,
        period_start DATE,
        period_end DATE,
        beginning_balance NUMERIC(12,2),
        ending_balance NUMERIC(12,2),
        status statement_status_enum NOT NULL DEFAULT 'pending',
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_bank_statements_company_id ON public.bank_statements(company_id)",
    "CREATE INDEX IF NOT EXISTS ix_bank_statements_status ON public.bank_statements(status)",

    # Statement lines
    """
    CREATE TABLE IF NOT EXISTS public.bank_transactions (
        id VARCHAR(36) PRIMARY KEY,
        statement_id VARCHAR(36) NOT NULL REFERENCES public.bank_statements(id) ON DELETE CASCADE,
        transaction_date DATE NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        amount NUMERIC(12,2) NOT NULL,
        transaction_type bank_transaction_type_enum NOT NULL DEFAULT 'other',
        check_number VARCHAR(32),
        match_status bank_match_status_enum NOT NULL DEFAULT 'unmatched',
        match_notes TEXT,
        matched_expense_id VARCHAR(36) REFERENCES public.company_expenses(id) ON DELETE SET NULL,
        manually_confirmed BOOLEAN NOT NULL DEFAULT false,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

        -- Only matched and discrepancy rows may point at an expense
        CONSTRAINT bank_transactions_link_status_check
            CHECK (matched_expense_id IS NULL OR match_status IN ('matched', 'discrepancy'))
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_bank_transactions_statement_id ON public.bank_transactions(statement_id)",
    "CREATE INDEX IF NOT EXISTS ix_bank_transactions_match_status ON public.bank_transactions(match_status)",
    "CREATE INDEX IF NOT EXISTS ix_bank_transactions_statement_date ON public.bank_transactions(statement_id, transaction_date)",

    # An expense is paired with at most one bank line
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_bank_transactions_matched_expense
        ON public.bank_transactions(matched_expense_id)
        WHERE matched_expense_id IS NOT NULL
    """,
]


async def create_tables():
    """Create the bank reconciliation tables."""
    print("Creating bank reconciliation tables...")

    try:
        async with get_engine().begin() as conn:
            for i, sql in enumerate(SQL_STATEMENTS):
                await conn.execute(text(sql))
                print(f"  ✓ Statement {i+1}/{len(SQL_STATEMENTS)} executed")
    finally:
        await dispose_engine()

    print("\n✅ Bank reconciliation tables created successfully!")


if __name__ == "__main__":
    asyncio.run(create_tables())
