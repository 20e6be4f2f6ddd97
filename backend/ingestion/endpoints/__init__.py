"""
Ingestion Endpoints Module
"""

from .statement_ingest import router as statement_ingestion_router

__all__ = ["statement_ingestion_router"]
