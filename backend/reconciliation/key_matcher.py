"""
RECONCILIATION ENGINE - KEY MATCHER

Bills, JobopsMaster and Contractor_WD never share a foreign key for an
operation. The same logical "operation X on job J" is:

- Bill:           (jobNumber, opsName, rate)
- JobopsMaster:   (jobId, opId, valuePerBook)
- Contractor_WD:  (jobId, opsId or null, opsName, valuePerBook)

Identity is therefore a normalized composite key: trimmed job number,
trimmed operation name, and rate rendered at a fixed precision.
Bill lines compare at BILL_RATE_PRECISION; JobopsMaster and Contractor_WD
compare at the coarser LEDGER_RATE_PRECISION.
"""

from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple
import logging

from reconciliation.quantity_precision import (
    BILL_RATE_PRECISION, LEDGER_RATE_PRECISION, format_rate
)

logger = logging.getLogger(__name__)

# Name used for JobopsMaster operations whose opId is missing from the catalog
UNKNOWN_OPERATION_NAME = "Unknown"


class OperationKey(NamedTuple):
    job_number: str
    ops_name: str
    rate: str


def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize(job_number: Any, ops_name: Any, rate: Any, precision: int) -> OperationKey:
    """Build the composite identity of an operation line at the given rate precision"""
    return OperationKey(
        job_number=normalize_text(job_number),
        ops_name=normalize_text(ops_name),
        rate=format_rate(rate, precision)
    )


def bill_key(job_number: Any, ops_name: Any, rate: Any) -> OperationKey:
    return normalize(job_number, ops_name, rate, BILL_RATE_PRECISION)


def ledger_key(job_number: Any, ops_name: Any, rate: Any) -> OperationKey:
    return normalize(job_number, ops_name, rate, LEDGER_RATE_PRECISION)


def operation_id_str(value: Any) -> Optional[str]:
    """Stringify an ObjectId/str operation id, None when absent"""
    if value is None or value == "":
        return None
    return str(value)


class BillOperationIndex:
    """
    Lookup of a bill's operation lines by bill-precision key.

    When a bill carries two lines with the same key the later one wins,
    so every change request resolves to exactly one line.
    """

    def __init__(self, bill: Dict[str, Any]):
        self._lines: Dict[OperationKey, Tuple[Dict[str, Any], Dict[str, Any]]] = {}
        for job in bill.get("jobs") or []:
            for op in job.get("ops") or []:
                key = bill_key(job.get("jobNumber"), op.get("opsName"), op.get("rate"))
                self._lines[key] = (job, op)

    def find(
        self,
        job_number: Any,
        ops_name: Any,
        rate: Any
    ) -> Optional[Tuple[Dict[str, Any], Dict[str, Any]]]:
        return self._lines.get(bill_key(job_number, ops_name, rate))

    def __len__(self) -> int:
        return len(self._lines)


async def resolve_operation_names(catalog, master_ops: Iterable[Dict[str, Any]]) -> Dict[str, str]:
    """
    Resolve JobopsMaster opIds to display names via the operation catalog.
    Ids the catalog does not know are simply absent from the result.
    """
    op_ids = []
    for jop in master_ops:
        op_id = operation_id_str(jop.get("opId"))
        if op_id and op_id not in op_ids:
            op_ids.append(op_id)
    if not op_ids:
        return {}
    return await catalog.names_by_ids(op_ids)


def find_master_operation(
    job_number: Any,
    master_ops: List[Dict[str, Any]],
    operation_names: Dict[str, str],
    ops_name: Any,
    rate: Any
) -> Optional[Dict[str, Any]]:
    """Find the JobopsMaster op matching (name, rate) at ledger precision"""
    wanted = ledger_key(job_number, ops_name, rate)
    for jop in master_ops:
        name = operation_names.get(operation_id_str(jop.get("opId")), UNKNOWN_OPERATION_NAME)
        if ledger_key(job_number, name, jop.get("valuePerBook")) == wanted:
            return jop
    return None


def find_master_operation_by_id(
    master_ops: List[Dict[str, Any]],
    operation_id: str,
    rate: Any
) -> Optional[Dict[str, Any]]:
    """
    Find the JobopsMaster op carrying a catalog-resolved operation id.

    Several ops on one job may share an id at different values per book;
    the one whose value agrees with the bill rate at ledger precision wins,
    otherwise the first op with that id.
    """
    candidates = [
        jop for jop in master_ops
        if operation_id_str(jop.get("opId")) == operation_id
    ]
    if not candidates:
        return None
    wanted = format_rate(rate, LEDGER_RATE_PRECISION)
    for jop in candidates:
        if format_rate(jop.get("valuePerBook"), LEDGER_RATE_PRECISION) == wanted:
            return jop
    return candidates[0]
