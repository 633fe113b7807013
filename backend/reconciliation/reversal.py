"""
RECONCILIATION ENGINE - REVERSAL PATH (SOFT DELETE)

When a bill is retracted, every op line still on it gives its whole
qtyCompleted back: JobopsMaster pending work goes up, Contractor_WD work
done goes down (entries reaching zero are removed, empty ledgers deleted).

Operations are located by catalog identity (opsName -> operation id),
not by the rate-based composite key used on the edit path.

NOT ATOMIC ACROSS JOBS: each job is reversed in its own unit of work.
A failure on one job is recorded and the remaining jobs still run; the
caller gets a report (or ReversalPartialFailure carrying it).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import copy
import logging

from reconciliation.contractor_ledger import ContractorLedgerAdjuster, settle_ledger
from reconciliation.errors import (
    BillNotFoundError, ContractorNotFoundError, ReconciliationError, ReversalPartialFailure
)
from reconciliation.job_ops_ledger import JobOpsLedgerAdjuster
from reconciliation.key_matcher import find_master_operation_by_id, normalize_text
from reconciliation.quantity_precision import quantity_or_zero
from reconciliation.unit_of_work import UnitOfWorkFactory

logger = logging.getLogger(__name__)

JOB_REVERSED = "reversed"
JOB_FAILED = "failed"


@dataclass
class JobReversalOutcome:
    job_number: str
    status: str
    pending_restored: int = 0
    ledger_entries_reduced: int = 0
    error_code: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobNumber": self.job_number,
            "status": self.status,
            "pendingRestored": self.pending_restored,
            "ledgerEntriesReduced": self.ledger_entries_reduced,
            "errorCode": self.error_code,
            "error": self.error
        }


@dataclass
class ReversalReport:
    bill_number: str
    contractor_id: Any
    jobs: List[JobReversalOutcome] = field(default_factory=list)

    @property
    def failed_jobs(self) -> List[JobReversalOutcome]:
        return [job for job in self.jobs if job.status == JOB_FAILED]

    @property
    def reversed_jobs(self) -> List[JobReversalOutcome]:
        return [job for job in self.jobs if job.status == JOB_REVERSED]

    @property
    def is_complete(self) -> bool:
        return not self.failed_jobs

    def to_dict(self) -> Dict[str, Any]:
        return {
            "billNumber": self.bill_number,
            "contractorId": self.contractor_id,
            "complete": self.is_complete,
            "jobs": [job.to_dict() for job in self.jobs]
        }


class BillReversalService:
    """Delete path of the reconciliation engine"""

    def __init__(
        self,
        unit_of_work_factory: UnitOfWorkFactory,
        job_ops_adjuster: Optional[JobOpsLedgerAdjuster] = None,
        ledger_adjuster: Optional[ContractorLedgerAdjuster] = None
    ):
        self.unit_of_work_factory = unit_of_work_factory
        self.job_ops_adjuster = job_ops_adjuster or JobOpsLedgerAdjuster()
        self.ledger_adjuster = ledger_adjuster or ContractorLedgerAdjuster()

    async def retract_bill(self, bill_number: str) -> ReversalReport:
        """
        Soft delete a live bill, then reverse its quantities.

        The contractor is resolved before anything changes; an unknown
        contractor leaves the bill untouched.

        Raises:
            BillNotFoundError: no live bill with that number
            ContractorNotFoundError
            ReversalPartialFailure: bill deleted, some jobs not reversed
        """
        async with self.unit_of_work_factory() as uow:
            bill = await uow.bills.find_by_number(bill_number, include_deleted=False)
            if bill is None:
                raise BillNotFoundError(bill_number)

            contractor_id = await self._resolve_contractor(uow, bill)
            snapshot = copy.deepcopy(bill)

            await uow.bills.mark_deleted(bill_number)
            await uow.commit()

        logger.info(f"[REVERSAL] Bill {bill_number} marked deleted, reversing quantities")
        return await self.reverse_bill_on_delete(snapshot, contractor_id=contractor_id)

    async def reverse_bill_on_delete(
        self,
        bill: Dict[str, Any],
        contractor_id: Any = None
    ) -> ReversalReport:
        """
        Restore pending work and reduce work done for every line of a retracted bill.

        `bill` is the snapshot taken before retraction. When contractor_id is
        not given it is resolved from the bill's contractorName.
        """
        bill_number = bill.get("billNumber")
        if contractor_id is None:
            async with self.unit_of_work_factory() as uow:
                contractor_id = await self._resolve_contractor(uow, bill)

        report = ReversalReport(bill_number=bill_number, contractor_id=contractor_id)

        for job in bill.get("jobs") or []:
            job_number = job.get("jobNumber")
            try:
                async with self.unit_of_work_factory() as uow:
                    outcome = await self._reverse_job(uow, contractor_id, job)
                    await uow.commit()
                report.jobs.append(outcome)
            except ReconciliationError as e:
                logger.error(f"[REVERSAL] Job {job_number} of bill {bill_number} not reversed: {e.message}")
                report.jobs.append(JobReversalOutcome(
                    job_number=job_number,
                    status=JOB_FAILED,
                    error_code=e.error_code,
                    error=e.message
                ))

        if not report.is_complete:
            raise ReversalPartialFailure(bill_number, report)

        logger.info(f"[REVERSAL] Bill {bill_number} reversed across {len(report.jobs)} job(s)")
        return report

    async def _resolve_contractor(self, uow, bill: Dict[str, Any]) -> Any:
        contractor_name = normalize_text(bill.get("contractorName"))
        contractor_id = await uow.contractors.find_id_by_name(contractor_name)
        if contractor_id is None:
            raise ContractorNotFoundError(contractor_name)
        return contractor_id

    async def _reverse_job(self, uow, contractor_id: Any, job: Dict[str, Any]) -> JobReversalOutcome:
        job_number = job.get("jobNumber")
        ops = job.get("ops") or []
        outcome = JobReversalOutcome(job_number=job_number, status=JOB_REVERSED)
        operation_ids: Dict[str, Optional[str]] = {}
        now = datetime.utcnow()

        master = await uow.job_ops.find_by_job_id(job_number)
        if master is None:
            logger.warning(f"[REVERSAL] No JobopsMaster for job {job_number}, pending work not restored")
        else:
            for op in ops:
                operation_id = await self._operation_id(uow, op.get("opsName"), operation_ids)
                if operation_id is None:
                    continue
                jop = find_master_operation_by_id(master.get("ops") or [], operation_id, op.get("rate"))
                if jop is None:
                    continue
                self.job_ops_adjuster.restore_pending(jop, quantity_or_zero(op.get("qtyCompleted")), now)
                outcome.pending_restored += 1
            await uow.job_ops.save(master)

        ledger = await uow.ledgers.find(contractor_id, job_number)
        if ledger is not None:
            for op in ops:
                operation_id = await self._operation_id(uow, op.get("opsName"), operation_ids)
                if operation_id is None:
                    continue
                entry = ledger.find_entry_by_operation_id(operation_id, op.get("opsName"), op.get("rate"))
                if entry is None:
                    continue
                self.ledger_adjuster.reverse_entry(ledger, entry, quantity_or_zero(op.get("qtyCompleted")))
                outcome.ledger_entries_reduced += 1
            await settle_ledger(uow.ledgers, ledger)

        return outcome

    async def _operation_id(self, uow, ops_name: Any, cache: Dict[str, Optional[str]]) -> Optional[str]:
        name = normalize_text(ops_name)
        if name not in cache:
            operation = await uow.operations.find_by_name(name)
            cache[name] = str(operation["_id"]) if operation else None
            if operation is None:
                logger.warning(f"[REVERSAL] Operation '{name}' not in catalog, skipped")
        return cache[name]
