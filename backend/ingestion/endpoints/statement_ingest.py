"""
Statement Ingestion Endpoint

Entry point for parsed statement lines:
parser / bank feed → Ingestion → Reconciliation

Endpoint: POST /api/bank-statements/{statement_id}/transactions
Response: 201 Created with the batch summary; unreadable rows are reported
per row and never fail the request
"""

import logging
from typing import List, Dict, Any, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from ingestion.services.ingestion_service import TransactionIngestor
from ingestion.source_registry import StatementSource
from reconciliation.dependencies import get_statement_store
from reconciliation.exceptions import StatementNotFound
from reconciliation.stores import StatementStore
from utils.validation_errors import raise_invalid_parameter, validate_identifier

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Statement Ingestion"])


# ==================== REQUEST/RESPONSE MODELS ====================

class StatementRowPayload(BaseModel):
    """Single parsed statement line."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    date: Optional[str] = Field(None, description="Posting date: 2025-01-15, 01/15, 01/15/25, Jan 15 or January 15, 2025")
    transaction_date: Optional[str] = Field(None, description="Alternative date field")
    description: Optional[str] = Field(None, description="Statement description")
    amount: Optional[Union[float, str]] = Field(None, description="Signed amount; '$1,234.50' and '(12.00)' accepted")
    raw_type: Optional[str] = Field(None, alias="rawType", description="Parser's type hint: deposit, withdrawal, check, fee, interest, transfer")
    check_number: Optional[str] = Field(None, description="Check number if printed separately")


class StatementIngestionRequest(BaseModel):
    """Request to ingest parsed statement lines."""
    source: str = Field(default=StatementSource.STATEMENT_PDF.value, description="STATEMENT_PDF, BANK_FEED, CSV_IMPORT or MANUAL")
    rows: List[StatementRowPayload] = Field(..., description="Parsed statement lines")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "source": "STATEMENT_PDF",
            "rows": [
                {"date": "01/11", "description": "CHECKCARD 0110 OFFICE DEPOT", "amount": "-250.00"},
                {"date": "01/12", "description": "CHECK 1043", "amount": "(1,200.00)", "rawType": "check"},
                {"date": "01/15", "description": "Interest Earned", "amount": "0.42", "rawType": "interest"},
            ]
        }
    })


class IngestionRowErrorDetail(BaseModel):
    row_index: Optional[int]
    field: Optional[str]
    raw_value: Optional[str]
    message: str


class StatementIngestionResponse(BaseModel):
    """Response from statement ingestion."""
    success: bool = Field(..., description="True when every row was accepted")
    batch_id: str
    statement_id: str
    source: str
    total_count: int
    ingested_count: int
    error_count: int
    statement_status: str
    transaction_ids: List[str]
    errors: List[IngestionRowErrorDetail]


# ==================== DEPENDENCIES ====================

def get_transaction_ingestor(
    statements: StatementStore = Depends(get_statement_store),
) -> TransactionIngestor:
    return TransactionIngestor(statements)


# ==================== ENDPOINTS ====================

@router.post(
    "/bank-statements/{statement_id}/transactions",
    response_model=StatementIngestionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def ingest_statement_transactions(
    statement_id: str,
    request: StatementIngestionRequest,
    ingestor: TransactionIngestor = Depends(get_transaction_ingestor),
):
    """
    Ingest parsed lines into a bank statement.

    **Processing Flow:**
    1. Mark the statement processing
    2. Parse dates and amounts, classify each line
    3. Store accepted lines as unmatched
    4. Mark the statement processed, or error if no line was usable

    **Error Handling:**
    - Unreadable rows are skipped and returned in `errors`
    - Unknown statement → 404, unknown source → 422
    """
    validated_id = validate_identifier(statement_id, "statement_id")
    try:
        source = StatementSource(request.source.strip().upper())
    except ValueError:
        raise_invalid_parameter(
            "source",
            f"Invalid source. Valid values: {[s.value for s in StatementSource]}",
            request.source
        )

    logger.info(f"Statement ingestion request: {len(request.rows)} rows for statement {validated_id}")
    rows: List[Dict[str, Any]] = [row.model_dump(exclude_none=True) for row in request.rows]

    try:
        result = await ingestor.ingest(validated_id, rows, source)
        data = result.to_dict()
        return StatementIngestionResponse(success=result.error_count == 0, **data)

    except HTTPException:
        raise
    except StatementNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Ingestion failed for statement {validated_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Ingestion failed"
        )
