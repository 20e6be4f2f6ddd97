"""
Bank Reconciliation API Endpoints

REST API for the reconciliation engine:
- GET /api/bank-reconciliation/status - Module status and active tolerances
- GET /api/bank-statements?company_id= - List a company's statements
- GET /api/bank-statements/{statement_id} - Statement header
- DELETE /api/bank-statements/{statement_id} - Delete a statement
- GET /api/bank-statements/{statement_id}/transactions - List transactions
- POST /api/bank-statements/{statement_id}/reconcile - Run a reconciliation pass
- GET /api/bank-statements/{statement_id}/report - Variance report
- PATCH /api/bank-transactions/{transaction_id}/match-status - Manual override
- DELETE /api/bank-transactions/{transaction_id}/override - Clear an override
"""

import logging
from typing import Optional, List
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from config import get_settings
from database.statement_models import MatchStatus
from reconciliation.dependencies import (
    get_matching_engine,
    get_reconciliation_service,
    get_status_tracker,
)
from reconciliation.exceptions import (
    StatementNotFound,
    TransactionNotFound,
    ExpenseNotFound,
    LockContention,
    LinkConflict,
    ReconciliationFailed,
)
from reconciliation.matching_engine import MatchingEngine
from reconciliation.services.reconciliation_service import ReconciliationService
from reconciliation.status_tracker import StatusTracker
from utils.validation_errors import (
    parse_enum_parameter,
    raise_missing_parameter,
    validate_identifier,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Bank Reconciliation"])

NOT_FOUND_ERRORS = (StatementNotFound, TransactionNotFound, ExpenseNotFound)
CONFLICT_ERRORS = (LockContention, LinkConflict)


# ==================== Request/Response Models ====================

class MatchStatusUpdateRequest(BaseModel):
    """Manual override of a transaction's match status."""
    match_status: Optional[str] = Field(default=None, description="unmatched, matched, discrepancy or ignored")
    notes: Optional[str] = Field(default=None, max_length=1000, description="Replacement match notes")
    confirm: bool = Field(default=True, description="Protect the row from later reconciliation passes")
    expense_id: Optional[str] = Field(default=None, description="Expense to link (matched or discrepancy only)")


class BankStatementResponse(BaseModel):
    id: str
    company_id: str
    account_name: Optional[str]
    masked_account_number: Optional[str]
    period_start: Optional[str]
    period_end: Optional[str]
    beginning_balance: Optional[float]
    ending_balance: Optional[float]
    status: str
    original_filename: Optional[str]


class BankTransactionResponse(BaseModel):
    id: str
    statement_id: str
    transaction_date: str
    description: str
    amount: float
    transaction_type: str
    check_number: Optional[str]
    match_status: str
    match_notes: Optional[str]
    matched_expense_id: Optional[str]
    manually_confirmed: bool


class MatchDecisionResponse(BaseModel):
    transaction_id: str
    match_status: str
    matched_expense_id: Optional[str]
    match_notes: Optional[str]
    candidates_considered: int


class ReconciliationRunResponse(BaseModel):
    """Response for a reconciliation pass."""
    run_id: str
    statement_id: str
    processed_count: int
    matched_count: int
    discrepancy_count: int
    unmatched_count: int
    ignored_count: int
    deposits_total: float
    withdrawals_total: float
    decisions: List[MatchDecisionResponse]


class VarianceReportResponse(BaseModel):
    statement_id: str
    beginning_balance: float
    ending_balance: float
    deposits_total: float
    withdrawals_total: float
    calculated_ending_balance: float
    variance: float
    balanced: bool
    matched_count: int
    unmatched_count: int
    discrepancy_count: int
    ignored_count: int
    transaction_count: int


# ==================== Endpoints ====================

@router.get("/bank-reconciliation/status", summary="Module status")
async def get_module_status(engine: MatchingEngine = Depends(get_matching_engine)):
    """
    Get bank reconciliation module status.

    Returns the matching tolerances and lease backend in effect.
    """
    settings = get_settings()
    return {
        "module": "bank_reconciliation",
        "status": "operational",
        "version": settings.API_VERSION,
        "matching": engine.config.to_dict(),
        "balance_tolerance": str(settings.RECONCILE_BALANCE_TOLERANCE),
        "timeout_seconds": settings.RECONCILE_TIMEOUT_SECONDS,
        "lock_backend": settings.RECONCILE_LOCK_BACKEND,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/bank-statements", summary="List company statements")
async def list_statements(
    company_id: Optional[str] = Query(default=None, description="Company whose statements to list"),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    List a company's bank statements, latest period first.
    """
    validated_id = validate_identifier(company_id, "company_id")

    try:
        statements = await service.list_statements(validated_id)
        return {
            "company_id": validated_id,
            "statements": [BankStatementResponse(**s.to_dict()) for s in statements],
            "count": len(statements),
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list statements for company {validated_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to list statements")


@router.get(
    "/bank-statements/{statement_id}",
    response_model=BankStatementResponse,
    summary="Get statement"
)
async def get_statement(
    statement_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    validated_id = validate_identifier(statement_id, "statement_id")

    try:
        statement = await service.get_statement(validated_id)
        return BankStatementResponse(**statement.to_dict())

    except HTTPException:
        raise
    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get statement {validated_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to get statement")


@router.delete("/bank-statements/{statement_id}", summary="Delete statement")
async def delete_statement(
    statement_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Delete a statement and its transactions.

    Linked expenses are released back to the ledger. Returns 409 while a
    pass or override holds the statement.
    """
    validated_id = validate_identifier(statement_id, "statement_id")

    try:
        await service.delete_statement(validated_id)
        return {"success": True, "statement_id": validated_id}

    except HTTPException:
        raise
    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to delete statement {validated_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete statement")


@router.get(
    "/bank-statements/{statement_id}/transactions",
    summary="List statement transactions"
)
async def list_statement_transactions(
    statement_id: str,
    match_status: Optional[str] = Query(default=None, description="Filter by match status"),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    List a statement's transactions, optionally filtered by match status.
    """
    validated_id = validate_identifier(statement_id, "statement_id")
    status_filter = parse_enum_parameter(MatchStatus, match_status, "match_status")

    try:
        transactions = await service.list_transactions(validated_id, status_filter)
        return {
            "statement_id": validated_id,
            "transactions": [
                BankTransactionResponse(**t.to_dict()) for t in transactions
            ],
            "count": len(transactions),
        }

    except HTTPException:
        raise
    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to list transactions for statement {validated_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to list transactions")


@router.post(
    "/bank-statements/{statement_id}/reconcile",
    response_model=ReconciliationRunResponse,
    summary="Run reconciliation"
)
async def reconcile_statement(
    statement_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Run a reconciliation pass over a statement.

    This will:
    1. Re-decide every unconfirmed unmatched or discrepancy transaction
    2. Link exact amount/date matches and same-date discrepancies to expenses
    3. Commit every change at once, or nothing if the pass fails

    Returns 409 while another pass or override holds the statement.
    """
    validated_id = validate_identifier(statement_id, "statement_id")

    try:
        result = await service.reconcile(validated_id)
        return ReconciliationRunResponse(**result.to_dict())

    except HTTPException:
        raise
    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ReconciliationFailed as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Reconciliation of statement {validated_id} failed: {e}")
        raise HTTPException(status_code=500, detail="Reconciliation run failed")


@router.get(
    "/bank-statements/{statement_id}/report",
    response_model=VarianceReportResponse,
    summary="Variance report"
)
async def get_statement_report(
    statement_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Compare the statement's ending balance with beginning + deposits - withdrawals.
    """
    validated_id = validate_identifier(statement_id, "statement_id")

    try:
        report = await service.get_report(validated_id)
        return VarianceReportResponse(**report.to_dict())

    except HTTPException:
        raise
    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to build report for statement {validated_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to build report")


@router.patch(
    "/bank-transactions/{transaction_id}/match-status",
    response_model=BankTransactionResponse,
    summary="Override match status"
)
async def update_match_status(
    transaction_id: str,
    request: MatchStatusUpdateRequest,
    tracker: StatusTracker = Depends(get_status_tracker),
):
    """
    Manually set a transaction's match status.

    With confirm=true (default) later reconciliation passes leave the row alone.
    """
    validated_id = validate_identifier(transaction_id, "transaction_id")
    if not request.match_status:
        raise_missing_parameter("match_status")
    new_status = parse_enum_parameter(MatchStatus, request.match_status, "match_status")

    try:
        txn = await tracker.set_match_status(
            validated_id,
            new_status,
            notes=request.notes,
            confirm=request.confirm,
            expense_id=request.expense_id,
        )
        return BankTransactionResponse(**txn.to_dict())

    except HTTPException:
        raise
    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update match status of transaction {validated_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update match status")


@router.delete(
    "/bank-transactions/{transaction_id}/override",
    response_model=BankTransactionResponse,
    summary="Clear manual override"
)
async def clear_match_override(
    transaction_id: str,
    tracker: StatusTracker = Depends(get_status_tracker),
):
    """
    Clear the manual confirmation so the next pass may reclassify the row.
    """
    validated_id = validate_identifier(transaction_id, "transaction_id")

    try:
        txn = await tracker.clear_override(validated_id)
        return BankTransactionResponse(**txn.to_dict())

    except HTTPException:
        raise
    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to clear override of transaction {validated_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to clear override")
