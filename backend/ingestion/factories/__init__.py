"""
Statement Row Transformer Factory Module
"""

from .statement_row_transformer import StatementRowTransformer, IngestionRowError

__all__ = ["StatementRowTransformer", "IngestionRowError"]
