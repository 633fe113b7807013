"""
RECONCILIATION ENGINE - JOBOPS MASTER ADJUSTER

pendingOpsQty is the work on a job not yet billed as completed.
A positive delta (more work billed) consumes pending work; a negative
delta gives it back.

INVARIANT: 0 <= pendingOpsQty <= totalOpsQty after every edit.
Requests that would push pending meaningfully below zero are rejected;
drift within PENDING_EPSILON is clamped away.
"""

from datetime import datetime
from typing import Any, Dict, List
import logging

from reconciliation.contractor_ledger import LedgerAdjustment
from reconciliation.delta_calculator import OperationDelta
from reconciliation.errors import (
    InsufficientPendingQuantityError, JobMasterNotFoundError, OperationNotFoundInMasterError
)
from reconciliation.key_matcher import (
    find_master_operation, normalize_text, resolve_operation_names
)
from reconciliation.quantity_precision import (
    LEDGER_RATE_PRECISION, PENDING_EPSILON, clamp, format_rate, quantity_or_zero
)

logger = logging.getLogger(__name__)


class JobOpsLedgerAdjuster:
    """Applies completed-quantity deltas to one job's JobopsMaster record"""

    async def apply(
        self,
        uow,
        job_number: str,
        deltas: List[OperationDelta]
    ) -> List[LedgerAdjustment]:
        """
        Consume/restore pending work for every delta on a job and save the master.

        Returns the Contractor_WD adjustments to apply next, each carrying the
        master op's valuePerBook.

        Raises:
            JobMasterNotFoundError
            OperationNotFoundInMasterError
            InsufficientPendingQuantityError
        """
        master = await uow.job_ops.find_by_job_id(job_number)
        if master is None:
            raise JobMasterNotFoundError(job_number)

        master_ops = master.get("ops") or []
        operation_names = await resolve_operation_names(uow.operations, master_ops)

        now = datetime.utcnow()
        adjustments = []
        for delta in deltas:
            name = normalize_text(delta.ops_name)
            jop = find_master_operation(job_number, master_ops, operation_names, name, delta.rate)
            if jop is None:
                raise OperationNotFoundInMasterError(
                    job_number, name, format_rate(delta.rate, LEDGER_RATE_PRECISION)
                )

            jop["pendingOpsQty"] = self.next_pending(job_number, name, jop, delta.delta_qty)
            jop["lastUpdatedDate"] = now

            adjustments.append(LedgerAdjustment(
                ops_name=name,
                value_per_book=jop.get("valuePerBook"),
                delta_qty=delta.delta_qty
            ))

        await uow.job_ops.save(master)
        logger.info(f"[RECONCILE] JobopsMaster updated: job={job_number}, ops={len(deltas)}")
        return adjustments

    def next_pending(
        self,
        job_number: str,
        ops_name: str,
        jop: Dict[str, Any],
        delta_qty: float
    ) -> float:
        current_pending = quantity_or_zero(jop.get("pendingOpsQty"))
        total_ops_qty = quantity_or_zero(jop.get("totalOpsQty"))

        new_pending = current_pending - delta_qty
        if new_pending < -PENDING_EPSILON:
            raise InsufficientPendingQuantityError(job_number, ops_name, current_pending, delta_qty)

        return clamp(new_pending, 0.0, total_ops_qty)

    def restore_pending(self, jop: Dict[str, Any], qty: float, now: datetime) -> None:
        """
        Give a retracted bill line's quantity back to pending work.

        Only the lower bound is enforced on this path, pending may end up
        above totalOpsQty.
        """
        jop["pendingOpsQty"] = max(0.0, quantity_or_zero(jop.get("pendingOpsQty")) + qty)
        jop["lastUpdatedDate"] = now
