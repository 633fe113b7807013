"""
RECONCILIATION ENGINE - DELTA CALCULATOR

Turns a change set of target completed quantities into signed deltas,
grouped by job in order of first appearance. Each matched bill line is
updated in memory (qtyCompleted, totalValue); nothing is persisted here.

The whole change set is validated before the caller touches any ledger.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple
import logging

from reconciliation.errors import MissingFieldError, OperationNotFoundError
from reconciliation.key_matcher import BillOperationIndex, normalize_text
from reconciliation.quantity_precision import parse_quantity, quantity_or_zero

logger = logging.getLogger(__name__)


@dataclass
class ChangeRequest:
    """Target completed quantity for one bill line"""
    job_number: Any = None
    ops_name: Any = None
    rate: Any = None
    new_qty_completed: Any = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ChangeRequest":
        """Build from a camelCase payload row ({jobNumber, opsName, rate, newQtyCompleted})"""
        data = data or {}
        return cls(
            job_number=data.get("jobNumber"),
            ops_name=data.get("opsName"),
            rate=data.get("rate"),
            new_qty_completed=data.get("newQtyCompleted")
        )


@dataclass
class OperationDelta:
    job_number: str
    ops_name: str
    rate: float
    delta_qty: float


class DeltaSet:
    """Non-zero deltas keyed by job number, insertion ordered"""

    def __init__(self):
        self._by_job: Dict[str, List[OperationDelta]] = {}

    def add(self, delta: OperationDelta) -> None:
        self._by_job.setdefault(delta.job_number, []).append(delta)

    def items(self) -> Iterator[Tuple[str, List[OperationDelta]]]:
        return iter(self._by_job.items())

    @property
    def job_numbers(self) -> List[str]:
        return list(self._by_job.keys())

    @property
    def is_empty(self) -> bool:
        return not self._by_job

    def __len__(self) -> int:
        return sum(len(deltas) for deltas in self._by_job.values())

    def for_job(self, job_number: str) -> List[OperationDelta]:
        return list(self._by_job.get(job_number, []))


def _require_fields(change: ChangeRequest) -> None:
    if not normalize_text(change.job_number):
        raise MissingFieldError("jobNumber", "Each change must have a jobNumber")
    if not normalize_text(change.ops_name):
        raise MissingFieldError("opsName", "Each change must have an opsName")
    if change.new_qty_completed is None:
        raise MissingFieldError("newQtyCompleted", "Each change must have newQtyCompleted")


def calculate_deltas(bill: Dict[str, Any], changes: Iterable[ChangeRequest]) -> DeltaSet:
    """
    Compute per-line deltas for a change set against the bill's current lines.

    Raises:
        MissingFieldError: a change lacks jobNumber, opsName or newQtyCompleted
        OperationNotFoundError: no bill line matches the change's key
        InvalidQuantityError: newQtyCompleted is not a finite number >= 0
    """
    index = BillOperationIndex(bill)
    delta_set = DeltaSet()

    for change in changes:
        _require_fields(change)

        found = index.find(change.job_number, change.ops_name, change.rate)
        if found is None:
            raise OperationNotFoundError(
                normalize_text(change.job_number),
                normalize_text(change.ops_name),
                change.rate
            )
        job, op = found

        new_qty = parse_quantity(change.new_qty_completed, "newQtyCompleted")
        old_qty = quantity_or_zero(op.get("qtyCompleted"))
        delta = new_qty - old_qty
        if delta == 0:
            continue

        rate = quantity_or_zero(op.get("rate"))
        delta_set.add(OperationDelta(
            job_number=job.get("jobNumber"),
            ops_name=normalize_text(op.get("opsName")),
            rate=rate,
            delta_qty=delta
        ))

        op["qtyCompleted"] = new_qty
        op["totalValue"] = rate * new_qty

    logger.debug(f"[RECONCILE] {len(delta_set)} delta(s) across jobs {delta_set.job_numbers}")
    return delta_set
