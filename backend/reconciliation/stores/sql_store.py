"""
PostgreSQL-backed StatementStore and ExpenseLedger.

Both classes take the same AsyncSession so a reconciliation pass commits or
rolls back its transaction updates and ledger links together.
"""

from datetime import datetime, timezone
from typing import List, Optional, Iterable
import logging

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database.statement_models import (
    BankStatementDB, BankTransactionDB, CompanyExpenseDB, StatementStatus
)
from reconciliation.exceptions import LinkConflict, ExpenseNotFound
from reconciliation.models import (
    BankStatement, BankTransaction, CompanyExpense, MatchUpdate, to_money
)
from reconciliation.stores.base import StatementStore, ExpenseLedger

logger = logging.getLogger(__name__)


# ==================== CONVERSIONS ====================

def _db_to_statement(db_obj: BankStatementDB) -> BankStatement:
    return BankStatement(
        id=db_obj.id,
        company_id=db_obj.company_id,
        account_name=db_obj.account_name,
        masked_account_number=db_obj.masked_account_number,
        period_start=db_obj.period_start,
        period_end=db_obj.period_end,
        beginning_balance=to_money(db_obj.beginning_balance) if db_obj.beginning_balance is not None else None,
        ending_balance=to_money(db_obj.ending_balance) if db_obj.ending_balance is not None else None,
        status=db_obj.status,
        original_filename=db_obj.original_filename,
    )


def _db_to_transaction(db_obj: BankTransactionDB) -> BankTransaction:
    return BankTransaction(
        id=db_obj.id,
        statement_id=db_obj.statement_id,
        transaction_date=db_obj.transaction_date,
        description=db_obj.description or "",
        amount=to_money(db_obj.amount),
        transaction_type=db_obj.transaction_type,
        check_number=db_obj.check_number,
        match_status=db_obj.match_status,
        match_notes=db_obj.match_notes,
        matched_expense_id=db_obj.matched_expense_id,
        manually_confirmed=bool(db_obj.manually_confirmed),
    )


def _db_to_expense(db_obj: CompanyExpenseDB) -> CompanyExpense:
    return CompanyExpense(
        id=db_obj.id,
        company_id=db_obj.company_id,
        date=db_obj.date,
        amount=to_money(db_obj.amount),
        description=db_obj.description,
        category=db_obj.category,
        billable=bool(db_obj.billable),
        invoice_id=db_obj.invoice_id,
        bank_transaction_id=db_obj.bank_transaction_id,
    )


# ==================== STATEMENT STORE ====================

class SqlStatementStore(StatementStore):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_statement(self, statement_id: str) -> Optional[BankStatement]:
        result = await self.db.execute(
            select(BankStatementDB)
            .where(BankStatementDB.id == statement_id)
            .execution_options(populate_existing=True)
        )
        db_obj = result.scalar_one_or_none()
        return _db_to_statement(db_obj) if db_obj else None

    async def list_statements(self, company_id: str) -> List[BankStatement]:
        result = await self.db.execute(
            select(BankStatementDB)
            .where(BankStatementDB.company_id == company_id)
            .order_by(BankStatementDB.period_end.desc().nulls_last(), BankStatementDB.id)
        )
        return [_db_to_statement(row) for row in result.scalars().all()]

    async def delete_statement(self, statement_id: str) -> None:
        # bank_transactions rows go with it through ON DELETE CASCADE
        await self.db.execute(
            delete(BankStatementDB).where(BankStatementDB.id == statement_id)
        )

    async def update_statement_status(self, statement_id: str, status: StatementStatus) -> None:
        await self.db.execute(
            update(BankStatementDB)
            .where(BankStatementDB.id == statement_id)
            .values(status=status, updated_at=datetime.now(timezone.utc))
        )

    async def list_transactions(self, statement_id: str) -> List[BankTransaction]:
        result = await self.db.execute(
            select(BankTransactionDB)
            .where(BankTransactionDB.statement_id == statement_id)
            .order_by(BankTransactionDB.transaction_date, BankTransactionDB.id)
        )
        return [_db_to_transaction(row) for row in result.scalars().all()]

    async def get_transaction(self, transaction_id: str) -> Optional[BankTransaction]:
        result = await self.db.execute(
            select(BankTransactionDB)
            .where(BankTransactionDB.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        db_obj = result.scalar_one_or_none()
        return _db_to_transaction(db_obj) if db_obj else None

    async def add_transactions(self, transactions: List[BankTransaction]) -> None:
        self.db.add_all([
            BankTransactionDB(
                id=txn.id,
                statement_id=txn.statement_id,
                transaction_date=txn.transaction_date,
                description=txn.description,
                amount=txn.amount,
                transaction_type=txn.transaction_type,
                check_number=txn.check_number,
                match_status=txn.match_status,
                match_notes=txn.match_notes,
                matched_expense_id=txn.matched_expense_id,
                manually_confirmed=txn.manually_confirmed,
            )
            for txn in transactions
        ])
        await self.db.flush()

    async def save_match_updates(self, updates: List[MatchUpdate]) -> None:
        if not updates:
            return
        now = datetime.now(timezone.utc)
        # Clear links first so a link moving between two rows of the batch
        # never trips the unique index mid-statement.
        moved = [u.transaction_id for u in updates]
        await self.db.execute(
            update(BankTransactionDB)
            .where(BankTransactionDB.id.in_(moved))
            .values(matched_expense_id=None)
        )
        for u in updates:
            await self.db.execute(
                update(BankTransactionDB)
                .where(BankTransactionDB.id == u.transaction_id)
                .values(
                    match_status=u.match_status,
                    match_notes=u.match_notes,
                    matched_expense_id=u.matched_expense_id,
                    manually_confirmed=u.manually_confirmed,
                    updated_at=now,
                )
            )
        logger.debug(f"Wrote match state for {len(updates)} bank transactions")

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()


# ==================== EXPENSE LEDGER ====================

class SqlExpenseLedger(ExpenseLedger):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_unlinked_expenses(self, company_id: str) -> List[CompanyExpense]:
        result = await self.db.execute(
            select(CompanyExpenseDB)
            .where(
                CompanyExpenseDB.company_id == company_id,
                CompanyExpenseDB.bank_transaction_id.is_(None),
            )
            .order_by(CompanyExpenseDB.date, CompanyExpenseDB.id)
        )
        return [_db_to_expense(row) for row in result.scalars().all()]

    async def get_expenses(self, expense_ids: Iterable[str]) -> List[CompanyExpense]:
        ids = list(expense_ids)
        if not ids:
            return []
        result = await self.db.execute(
            select(CompanyExpenseDB)
            .where(CompanyExpenseDB.id.in_(ids))
            .order_by(CompanyExpenseDB.id)
        )
        return [_db_to_expense(row) for row in result.scalars().all()]

    async def link_expense(self, expense_id: str, transaction_id: str) -> None:
        # Conditional update: succeeds only if unlinked or already ours
        result = await self.db.execute(
            update(CompanyExpenseDB)
            .where(
                CompanyExpenseDB.id == expense_id,
                (CompanyExpenseDB.bank_transaction_id.is_(None))
                | (CompanyExpenseDB.bank_transaction_id == transaction_id),
            )
            .values(bank_transaction_id=transaction_id)
        )
        if result.rowcount:
            return

        existing = await self.db.execute(
            select(CompanyExpenseDB.bank_transaction_id).where(CompanyExpenseDB.id == expense_id)
        )
        row = existing.first()
        if row is None:
            raise ExpenseNotFound(expense_id)
        raise LinkConflict(expense_id, transaction_id, row[0])

    async def unlink_expense(self, expense_id: str) -> None:
        await self.db.execute(
            update(CompanyExpenseDB)
            .where(CompanyExpenseDB.id == expense_id)
            .values(bank_transaction_id=None)
        )
