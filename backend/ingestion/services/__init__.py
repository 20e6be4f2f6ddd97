"""
Ingestion Services Module
"""

from .ingestion_service import (
    TransactionIngestor,
    IngestionResult,
    IngestionAuditEvent,
    log_ingestion_event,
)

__all__ = [
    "TransactionIngestor",
    "IngestionResult",
    "IngestionAuditEvent",
    "log_ingestion_event",
]
