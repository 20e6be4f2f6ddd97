"""
Ingestion Service

Handles the core ingestion logic:
- Transforming parsed statement rows into bank transactions
- Storing accepted transactions as unmatched
- Moving the statement through processing to processed or error
- Audit trail management
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from database.statement_models import StatementStatus
from ingestion.classifiers import TransactionClassifier
from ingestion.factories.statement_row_transformer import (
    IngestionRowError,
    StatementRowTransformer,
)
from ingestion.source_registry import StatementSource, SourceRegistry, source_registry
from reconciliation.exceptions import StatementNotFound
from reconciliation.models import BankTransaction
from reconciliation.stores.base import StatementStore

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """Result of ingesting one batch of statement rows."""
    batch_id: str
    statement_id: str
    source: str
    total_count: int
    ingested_count: int
    error_count: int
    statement_status: StatementStatus
    errors: List[Dict[str, Any]] = field(default_factory=list)
    transactions: List[BankTransaction] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "statement_id": self.statement_id,
            "source": self.source,
            "total_count": self.total_count,
            "ingested_count": self.ingested_count,
            "error_count": self.error_count,
            "statement_status": self.statement_status.value,
            "errors": self.errors,
            "transaction_ids": [t.id for t in self.transactions],
        }


class IngestionAuditEvent:
    """Audit event types for ingestion operations."""
    BATCH_STARTED = "ingestion.batch_started"
    BATCH_COMPLETED = "ingestion.batch_completed"
    BATCH_FAILED = "ingestion.batch_failed"
    ROW_REJECTED = "ingestion.row_rejected"


def log_ingestion_event(
    event_type: str,
    batch_id: str,
    statement_id: str,
    details: Dict[str, Any],
    success: bool = True
):
    """Log ingestion event for audit trail."""
    log_entry = {
        "event": event_type,
        "batch_id": batch_id,
        "statement_id": statement_id,
        "details": details,
        "success": success,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

    if success:
        logger.info(f"Ingestion event: {event_type} for batch {batch_id}", extra=log_entry)
    else:
        logger.warning(f"Ingestion event FAILED: {event_type} for batch {batch_id}", extra=log_entry)


class TransactionIngestor:
    """
    Turns parsed statement rows into stored bank transactions.

    Bad rows are collected and reported; they never abort the batch.
    """

    def __init__(
        self,
        statements: StatementStore,
        registry: Optional[SourceRegistry] = None,
        classifier: Optional[TransactionClassifier] = None,
    ):
        self.statements = statements
        self.registry = registry or source_registry
        self.classifier = classifier

    async def ingest(
        self,
        statement_id: str,
        rows: List[Dict[str, Any]],
        source: StatementSource = StatementSource.STATEMENT_PDF,
    ) -> IngestionResult:
        """
        Ingest a batch of parsed rows into a statement.

        Args:
            statement_id: Statement the rows belong to
            rows: Raw rows with date, description, amount and optional
                raw_type / check_number
            source: Where the rows came from; decides sign convention and
                whether the raw type hint is trusted

        Returns:
            IngestionResult; statement_status is processed if any row was
            accepted, error otherwise

        Raises:
            StatementNotFound: unknown statement
            ValueError: the source is disabled
        """
        source_config = self.registry.require_enabled(source)
        statement = await self.statements.get_statement(statement_id)
        if statement is None:
            raise StatementNotFound(statement_id)

        batch_id = str(uuid.uuid4())
        log_ingestion_event(
            IngestionAuditEvent.BATCH_STARTED,
            batch_id,
            statement_id,
            {"count": len(rows), "source": source.value}
        )

        await self.statements.update_statement_status(statement_id, StatementStatus.PROCESSING)
        await self.statements.commit()

        try:
            transformer = StatementRowTransformer(statement, source_config, self.classifier)
            transactions, row_errors = transformer.transform_batch(rows)

            for error in row_errors:
                log_ingestion_event(
                    IngestionAuditEvent.ROW_REJECTED,
                    batch_id,
                    statement_id,
                    error.to_dict(),
                    success=False
                )

            final_status = StatementStatus.PROCESSED if transactions else StatementStatus.ERROR
            if transactions:
                await self.statements.add_transactions(transactions)
            await self.statements.update_statement_status(statement_id, final_status)
            await self.statements.commit()
        except Exception as e:
            await self.statements.rollback()
            logger.error(f"Failed to store transactions for statement {statement_id}: {e}")
            try:
                await self._restore_status(statement_id, batch_id, statement.status, str(e))
            except Exception as restore_error:
                await self.statements.rollback()
                logger.error(
                    f"Failed to restore status of statement {statement_id} "
                    f"to {statement.status.value}: {restore_error}"
                )
            raise

        log_ingestion_event(
            IngestionAuditEvent.BATCH_COMPLETED,
            batch_id,
            statement_id,
            {
                "total": len(rows),
                "ingested": len(transactions),
                "errors": len(row_errors),
                "statement_status": final_status.value,
            }
        )

        return IngestionResult(
            batch_id=batch_id,
            statement_id=statement_id,
            source=source.value,
            total_count=len(rows),
            ingested_count=len(transactions),
            error_count=len(row_errors),
            statement_status=final_status,
            errors=[e.to_dict() for e in row_errors],
            transactions=transactions,
        )

    async def _restore_status(
        self,
        statement_id: str,
        batch_id: str,
        previous: StatementStatus,
        reason: str,
    ) -> None:
        # A storage failure says nothing about the rows; undo the processing mark
        await self.statements.update_statement_status(statement_id, previous)
        await self.statements.commit()
        log_ingestion_event(
            IngestionAuditEvent.BATCH_FAILED,
            batch_id,
            statement_id,
            {"reason": reason, "statement_status": previous.value},
            success=False
        )

