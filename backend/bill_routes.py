"""
BILL QUANTITY RECONCILIATION API ROUTES

Two operations only:
- PUT    /api/bills/{billNumber}/edit-qty  -> QuantityReconciliationEngine
- DELETE /api/bills/{billNumber}           -> BillReversalService (soft delete)

Engine errors are domain exceptions; this module is the only place they
become HTTP responses.
"""

from fastapi import APIRouter, HTTPException, Request, status, Depends
from fastapi.responses import JSONResponse
from bson import ObjectId, Decimal128
from datetime import datetime
from typing import Dict, Any
import logging

from audit_service import AuditService
from models import EditQuantitiesRequest, DeleteBillResponse
from reconciliation import (
    QuantityReconciliationEngine, BillReversalService, ChangeRequest,
    ReconciliationError, ValidationError, NotFoundError, BillNotFoundError,
    ContractorNotFoundError, BillAlreadyPaidError, InsufficientPendingQuantityError,
    ReversalPartialFailure
)
from reconciliation.key_matcher import normalize_text

logger = logging.getLogger(__name__)


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize MongoDB document for JSON response (handles Decimal128, ObjectId, datetime)"""
    if doc is None:
        return None
    result = {}
    for key, value in doc.items():
        if isinstance(value, ObjectId):
            result[key] = str(value)
        elif isinstance(value, Decimal128):
            result[key] = float(value.to_decimal())
        elif isinstance(value, datetime):
            result[key] = value.isoformat()
        elif isinstance(value, dict):
            result[key] = serialize_doc(value)
        elif isinstance(value, list):
            result[key] = [
                serialize_doc(item) if isinstance(item, dict)
                else float(item.to_decimal()) if isinstance(item, Decimal128)
                else str(item) if isinstance(item, ObjectId)
                else item
                for item in value
            ]
        else:
            result[key] = value
    return result


def to_http_exception(error: ReconciliationError) -> HTTPException:
    """Map the reconciliation error taxonomy onto HTTP status codes"""
    if isinstance(error, (BillNotFoundError, ContractorNotFoundError)):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, InsufficientPendingQuantityError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(error, (ValidationError, NotFoundError, BillAlreadyPaidError)):
        # Operations/masters missing for a submitted change are a bad request
        status_code = status.HTTP_400_BAD_REQUEST
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return HTTPException(
        status_code=status_code,
        detail={"error": error.message, "code": error.error_code, "details": error.details}
    )


# Create router
bill_router = APIRouter(prefix="/api/bills", tags=["Bills - Quantity Reconciliation"])


def get_reconciliation_engine(request: Request) -> QuantityReconciliationEngine:
    return request.app.state.reconciliation_engine


def get_reversal_service(request: Request) -> BillReversalService:
    return request.app.state.reversal_service


def get_audit_service(request: Request) -> AuditService:
    return request.app.state.audit_service


@bill_router.put("/{bill_number}/edit-qty")
async def edit_bill_quantities(
    bill_number: str,
    payload: EditQuantitiesRequest,
    engine: QuantityReconciliationEngine = Depends(get_reconciliation_engine),
    audit_service: AuditService = Depends(get_audit_service)
):
    """
    Edit completed quantities of an unpaid bill.
    
    Syncs JobopsMaster pending work and Contractor_WD work done in one transaction.
    """
    contractor_id = normalize_text(payload.contractor_id)
    changes = [
        ChangeRequest(
            job_number=change.job_number,
            ops_name=change.ops_name,
            rate=change.rate,
            new_qty_completed=change.new_qty_completed
        )
        for change in payload.changes
    ]
    
    try:
        result = await engine.edit_bill_quantities(bill_number, contractor_id, changes)
    except ReconciliationError as e:
        raise to_http_exception(e)
    
    if not result.is_noop:
        await audit_service.log_action(
            entity_type="BILL",
            entity_id=bill_number,
            action_type="EDIT_QTY",
            actor_id=contractor_id,
            new_value={
                "jobs_adjusted": result.jobs_adjusted,
                "deltas_applied": result.deltas_applied,
                "lines_pruned": result.lines_pruned
            }
        )
    
    return serialize_doc(result.bill)


@bill_router.delete("/{bill_number}", response_model=DeleteBillResponse)
async def delete_bill(
    bill_number: str,
    reversal_service: BillReversalService = Depends(get_reversal_service),
    audit_service: AuditService = Depends(get_audit_service)
):
    """
    Soft delete a bill (isDeleted = 1) and reverse its quantities.
    
    Reversal is per job, not atomic across jobs. A partial reversal answers
    207 with the per-job report; the bill stays deleted either way.
    """
    try:
        report = await reversal_service.retract_bill(bill_number)
    except ReversalPartialFailure as e:
        logger.error(f"Bill {bill_number} deleted with incomplete reversal: {e.details['failed_jobs']}")
        await audit_service.log_action(
            entity_type="BILL",
            entity_id=bill_number,
            action_type="SOFT_DELETE",
            actor_id=e.report.contractor_id,
            new_value=e.report.to_dict()
        )
        return JSONResponse(
            status_code=status.HTTP_207_MULTI_STATUS,
            content={
                "message": "Bill deleted, quantity reversal incomplete",
                "reversal": e.report.to_dict()
            }
        )
    except ReconciliationError as e:
        raise to_http_exception(e)
    
    await audit_service.log_action(
        entity_type="BILL",
        entity_id=bill_number,
        action_type="SOFT_DELETE",
        actor_id=report.contractor_id,
        new_value=report.to_dict()
    )
    
    return {"message": "Bill deleted successfully", "reversal": report.to_dict()}
