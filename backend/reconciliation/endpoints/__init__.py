"""
Reconciliation Endpoints Module
"""

from .reconciliation_api import router as reconciliation_router

__all__ = ["reconciliation_router"]
