"""
Statement leases.

A reconciliation pass and a manual override on the same statement must not
interleave. Both acquire a per-statement lease first; acquisition never waits,
a second caller gets LockContention and may retry.

Backends:
- InProcessLeaseManager: a set of held statement ids. Correct for a single
  worker process.
- PostgresAdvisoryLeaseManager: transaction-scoped advisory locks, released by
  PostgreSQL on the commit or rollback that ends the pass.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Set

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from reconciliation.exceptions import LockContention

logger = logging.getLogger(__name__)

LEASE_NAMESPACE = "bank_statement"


class StatementLeaseManager(ABC):

    @abstractmethod
    async def acquire(self, statement_id: str) -> None:
        """Take the lease or raise LockContention."""

    @abstractmethod
    async def release(self, statement_id: str) -> None:
        ...

    @asynccontextmanager
    async def lease(self, statement_id: str) -> AsyncIterator[None]:
        await self.acquire(statement_id)
        try:
            yield
        finally:
            await self.release(statement_id)


class InProcessLeaseManager(StatementLeaseManager):

    def __init__(self):
        self._held: Set[str] = set()
        self._lock = threading.Lock()

    async def acquire(self, statement_id: str) -> None:
        with self._lock:
            if statement_id in self._held:
                logger.info(f"Lease for statement {statement_id} is already held")
                raise LockContention(statement_id)
            self._held.add(statement_id)

    async def release(self, statement_id: str) -> None:
        with self._lock:
            self._held.discard(statement_id)

    def is_held(self, statement_id: str) -> bool:
        with self._lock:
            return statement_id in self._held


class PostgresAdvisoryLeaseManager(StatementLeaseManager):
    """
    Uses pg_try_advisory_xact_lock on the request's session.

    The lock belongs to the open database transaction, so it must share the
    session the stores write through.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def acquire(self, statement_id: str) -> None:
        result = await self.db.execute(
            text("SELECT pg_try_advisory_xact_lock(hashtext(:key))"),
            {"key": f"{LEASE_NAMESPACE}:{statement_id}"},
        )
        if not result.scalar():
            logger.info(f"Advisory lock for statement {statement_id} is held by another session")
            raise LockContention(statement_id)

    async def release(self, statement_id: str) -> None:
        # Released by PostgreSQL at commit or rollback
        return None


# Shared by every request in this process
in_process_leases = InProcessLeaseManager()
