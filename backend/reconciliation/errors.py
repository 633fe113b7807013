"""
RECONCILIATION ENGINE - ERROR TAXONOMY

ValidationError  -> malformed change set, rejected before any mutation
NotFoundError    -> bill, job master or operation line absent
ConflictError    -> business-rule rejection (paid bill, over-commitment)
PersistenceError -> storage failure inside a unit of work

Every error carries a stable error_code, a human message and a details
dict so the HTTP layer can render it without knowing the subclass.
"""

from typing import Any, Dict, Optional


class ReconciliationError(Exception):
    """Base class for all quantity reconciliation failures"""
    error_code = "RECONCILIATION_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationError(ReconciliationError):
    error_code = "VALIDATION_ERROR"


class MissingFieldError(ValidationError):
    """Raised when a required request field is absent or blank"""
    error_code = "MISSING_FIELD"

    def __init__(self, field_name: str, message: Optional[str] = None):
        self.field_name = field_name
        super().__init__(
            message or f"{field_name} is required",
            details={"field": field_name}
        )


class InvalidQuantityError(ValidationError):
    """Raised when a quantity is not a finite, non-negative number"""
    error_code = "INVALID_QUANTITY"

    def __init__(self, field_name: str, value: Any):
        self.field_name = field_name
        self.value = value
        super().__init__(
            f"{field_name} must be a non-negative number",
            details={"field": field_name, "value": repr(value)}
        )


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFoundError(ReconciliationError):
    error_code = "NOT_FOUND"


class BillNotFoundError(NotFoundError):
    error_code = "BILL_NOT_FOUND"

    def __init__(self, bill_number: str):
        self.bill_number = bill_number
        super().__init__(
            f"Bill not found: {bill_number}",
            details={"bill_number": bill_number}
        )


class OperationNotFoundError(NotFoundError):
    """Raised when a change request names an operation line the bill does not hold"""
    error_code = "OPERATION_NOT_FOUND"

    def __init__(self, job_number: str, ops_name: str, rate: Any):
        self.job_number = job_number
        self.ops_name = ops_name
        self.rate = rate
        super().__init__(
            f"Operation not found in bill for job {job_number}, operation {ops_name}",
            details={"job_number": job_number, "ops_name": ops_name, "rate": rate}
        )


class JobMasterNotFoundError(NotFoundError):
    error_code = "JOB_MASTER_NOT_FOUND"

    def __init__(self, job_number: str):
        self.job_number = job_number
        super().__init__(
            f"JobopsMaster not found for job {job_number}",
            details={"job_number": job_number}
        )


class OperationNotFoundInMasterError(NotFoundError):
    error_code = "OPERATION_NOT_FOUND_IN_MASTER"

    def __init__(self, job_number: str, ops_name: str, rate: str):
        self.job_number = job_number
        self.ops_name = ops_name
        self.rate = rate
        super().__init__(
            f"Operation {ops_name} (rate {rate}) not found in JobopsMaster for job {job_number}",
            details={"job_number": job_number, "ops_name": ops_name, "rate": rate}
        )


class ContractorNotFoundError(NotFoundError):
    error_code = "CONTRACTOR_NOT_FOUND"

    def __init__(self, contractor_name: str):
        self.contractor_name = contractor_name
        super().__init__(
            f"Contractor not found for name: {contractor_name}",
            details={"contractor_name": contractor_name}
        )


# =============================================================================
# CONFLICT
# =============================================================================

class ConflictError(ReconciliationError):
    error_code = "CONFLICT"


class BillAlreadyPaidError(ConflictError):
    error_code = "BILL_ALREADY_PAID"

    def __init__(self, bill_number: str):
        self.bill_number = bill_number
        super().__init__(
            "Paid bills cannot be edited",
            details={"bill_number": bill_number}
        )


class InsufficientPendingQuantityError(ConflictError):
    """Raised when a bill would claim more completed work than remains pending"""
    error_code = "INSUFFICIENT_PENDING_QUANTITY"

    def __init__(self, job_number: str, ops_name: str, pending_qty: float, delta_qty: float):
        self.job_number = job_number
        self.ops_name = ops_name
        self.pending_qty = pending_qty
        self.delta_qty = delta_qty
        super().__init__(
            f"Insufficient pending quantity for job {job_number}, operation {ops_name} "
            f"to increase completed quantity by {delta_qty}",
            details={
                "job_number": job_number,
                "ops_name": ops_name,
                "pending_qty": pending_qty,
                "delta_qty": delta_qty
            }
        )


# =============================================================================
# PERSISTENCE
# =============================================================================

class PersistenceError(ReconciliationError):
    """Raised when the storage layer fails inside a unit of work"""
    error_code = "PERSISTENCE_ERROR"


class ReversalPartialFailure(ReconciliationError):
    """
    Raised by the reversal path when at least one job could not be restored.

    The attached report lists every job with its outcome; jobs marked as
    reversed were committed and stay committed.
    """
    error_code = "REVERSAL_PARTIAL_FAILURE"

    def __init__(self, bill_number: str, report):
        self.bill_number = bill_number
        self.report = report
        failed = [outcome.job_number for outcome in report.failed_jobs]
        super().__init__(
            f"Reversal incomplete for bill {bill_number}: {len(failed)} job(s) failed",
            details={"bill_number": bill_number, "failed_jobs": failed}
        )
