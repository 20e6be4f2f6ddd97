"""
Reconciliation Services Module
"""

from .reconciliation_service import (
    ReconciliationService,
    ReconciliationAuditEvent,
    log_reconciliation_event,
)

__all__ = [
    "ReconciliationService",
    "ReconciliationAuditEvent",
    "log_reconciliation_event",
]
