"""
Statement Ingestion Module

Turns parsed bank statement lines into stored, classified transactions.
"""

from .source_registry import StatementSource, SourceConfig, SourceRegistry, source_registry
from .classifiers import TransactionClassifier, KeywordTransactionClassifier, Classification
from .factories import StatementRowTransformer, IngestionRowError
from .services import TransactionIngestor, IngestionResult

__all__ = [
    "StatementSource",
    "SourceConfig",
    "SourceRegistry",
    "source_registry",
    "TransactionClassifier",
    "KeywordTransactionClassifier",
    "Classification",
    "StatementRowTransformer",
    "IngestionRowError",
    "TransactionIngestor",
    "IngestionResult",
]
