"""
RECONCILIATION ENGINE - BILL QUANTITY ORCHESTRATOR

Edits the completed quantities of an unpaid bill and propagates every
delta to JobopsMaster (pending work) and Contractor_WD (work done).

States:
    VALIDATING -> ADJUSTING -> COMMITTING -> DONE
    any state  -> ABORTED on the first error

ALL mutations of one edit run in a single unit of work: the bill, every
touched JobopsMaster and every touched Contractor_WD persist together or
not at all.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
import logging

from reconciliation.contractor_ledger import ContractorLedgerAdjuster
from reconciliation.delta_calculator import ChangeRequest, calculate_deltas
from reconciliation.errors import (
    BillAlreadyPaidError, BillNotFoundError, MissingFieldError, ReconciliationError
)
from reconciliation.job_ops_ledger import JobOpsLedgerAdjuster
from reconciliation.key_matcher import normalize_text
from reconciliation.quantity_precision import quantity_or_zero
from reconciliation.stores import is_bill_paid
from reconciliation.unit_of_work import UnitOfWorkFactory

logger = logging.getLogger(__name__)


class ReconciliationState(str, Enum):
    VALIDATING = "Validating"
    ADJUSTING = "Adjusting"
    COMMITTING = "Committing"
    DONE = "Done"
    ABORTED = "Aborted"


@dataclass
class ReconciliationResult:
    bill: Dict[str, Any]
    state: ReconciliationState
    jobs_adjusted: List[str] = field(default_factory=list)
    deltas_applied: int = 0
    lines_pruned: int = 0

    @property
    def is_noop(self) -> bool:
        return self.deltas_applied == 0


def prune_settled_lines(bill: Dict[str, Any]) -> int:
    """
    Drop op lines with no completed quantity, then jobs with no op lines.
    Returns the number of op lines removed.
    """
    removed = 0
    kept_jobs = []
    for job in bill.get("jobs") or []:
        ops = job.get("ops") or []
        kept_ops = [op for op in ops if quantity_or_zero(op.get("qtyCompleted")) > 0]
        removed += len(ops) - len(kept_ops)
        if kept_ops:
            job["ops"] = kept_ops
            kept_jobs.append(job)
    bill["jobs"] = kept_jobs
    return removed


class QuantityReconciliationEngine:
    """
    Edit path of the reconciliation engine.

    Holds no per-request state; concurrent edits touching the same bill,
    job or contractor are serialized by the storage layer's transactions.
    """

    def __init__(
        self,
        unit_of_work_factory: UnitOfWorkFactory,
        job_ops_adjuster: Optional[JobOpsLedgerAdjuster] = None,
        ledger_adjuster: Optional[ContractorLedgerAdjuster] = None
    ):
        self.unit_of_work_factory = unit_of_work_factory
        self.job_ops_adjuster = job_ops_adjuster or JobOpsLedgerAdjuster()
        self.ledger_adjuster = ledger_adjuster or ContractorLedgerAdjuster()

    async def edit_bill_quantities(
        self,
        bill_number: str,
        contractor_id: Any,
        changes: Iterable[ChangeRequest]
    ) -> ReconciliationResult:
        """
        Apply target completed quantities to a bill and sync both ledgers.

        Returns the updated bill. An all-equal change set is a successful
        no-op: the current bill comes back and nothing is written.

        Raises:
            BillNotFoundError, BillAlreadyPaidError,
            MissingFieldError, InvalidQuantityError, OperationNotFoundError,
            JobMasterNotFoundError, OperationNotFoundInMasterError,
            InsufficientPendingQuantityError, PersistenceError
        """
        changes = list(changes or [])
        state = ReconciliationState.VALIDATING

        try:
            async with self.unit_of_work_factory() as uow:
                bill = await uow.bills.find_by_number(bill_number, include_deleted=False)
                if bill is None:
                    raise BillNotFoundError(bill_number)

                if is_bill_paid(bill):
                    raise BillAlreadyPaidError(bill_number)

                if not normalize_text(contractor_id):
                    raise MissingFieldError("contractorId")
                if not changes:
                    raise MissingFieldError("changes", "At least one change is required")

                delta_set = calculate_deltas(bill, changes)
                if delta_set.is_empty:
                    logger.info(f"[RECONCILE] No effective changes for bill {bill_number}")
                    return ReconciliationResult(bill=bill, state=ReconciliationState.DONE)

                state = ReconciliationState.ADJUSTING
                for job_number, deltas in delta_set.items():
                    adjustments = await self.job_ops_adjuster.apply(uow, job_number, deltas)
                    await self.ledger_adjuster.apply(uow, contractor_id, job_number, adjustments)

                state = ReconciliationState.COMMITTING
                lines_pruned = prune_settled_lines(bill)
                await uow.bills.save(bill)
                await uow.commit()

                state = ReconciliationState.DONE
                logger.info(
                    f"[TRANSACTION] Bill quantities edited: bill={bill_number}, "
                    f"jobs={delta_set.job_numbers}, deltas={len(delta_set)}, pruned={lines_pruned}"
                )
                return ReconciliationResult(
                    bill=bill,
                    state=state,
                    jobs_adjusted=delta_set.job_numbers,
                    deltas_applied=len(delta_set),
                    lines_pruned=lines_pruned
                )

        except ReconciliationError as e:
            logger.error(
                f"[RECONCILE] {ReconciliationState.ABORTED.value} in {state.value} "
                f"for bill {bill_number}: {e.message}"
            )
            raise
