"""
RECONCILIATION ENGINE - CONTRACTOR WORK-DONE LEDGER

One Contractor_WD record per (contractor, job). The record exists iff it
holds at least one opsDone entry: it is created lazily on the first
positive delta and removed once its last entry is reversed away.
settle_ledger() is the single place that enforces this.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from reconciliation.key_matcher import ledger_key, normalize_text, operation_id_str
from reconciliation.quantity_precision import quantity_or_zero, round_rate

logger = logging.getLogger(__name__)

_ENTRY_FIELDS = ("opsId", "opsName", "valuePerBook", "opsDoneQty", "completionDate")


@dataclass
class LedgerEntry:
    ops_name: str
    value_per_book: float
    ops_done_qty: float
    ops_id: Any = None
    completion_date: Optional[datetime] = None
    # Fields we do not manage (e.g. the subdocument _id) round-trip untouched
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "LedgerEntry":
        return cls(
            ops_id=doc.get("opsId"),
            ops_name=normalize_text(doc.get("opsName")),
            value_per_book=quantity_or_zero(doc.get("valuePerBook")),
            ops_done_qty=quantity_or_zero(doc.get("opsDoneQty")),
            completion_date=doc.get("completionDate"),
            extra={k: v for k, v in doc.items() if k not in _ENTRY_FIELDS}
        )

    def to_document(self) -> Dict[str, Any]:
        doc = dict(self.extra)
        doc.update({
            "opsId": self.ops_id,
            "opsName": self.ops_name,
            "valuePerBook": self.value_per_book,
            "opsDoneQty": self.ops_done_qty,
            "completionDate": self.completion_date
        })
        return doc


@dataclass
class ContractorLedger:
    contractor_id: str
    job_id: str
    entries: List[LedgerEntry] = field(default_factory=list)
    document_id: Any = None

    @classmethod
    def open(cls, contractor_id: str, job_id: str) -> "ContractorLedger":
        """A new, not yet persisted ledger with no entries"""
        return cls(contractor_id=contractor_id, job_id=job_id)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ContractorLedger":
        return cls(
            contractor_id=doc.get("contractorId"),
            job_id=doc.get("jobId"),
            entries=[LedgerEntry.from_document(entry) for entry in doc.get("opsDone") or []],
            document_id=doc.get("_id")
        )

    def to_document(self) -> Dict[str, Any]:
        doc = {
            "contractorId": self.contractor_id,
            "jobId": self.job_id,
            "opsDone": [entry.to_document() for entry in self.entries]
        }
        if self.document_id is not None:
            doc["_id"] = self.document_id
        return doc

    @property
    def is_persisted(self) -> bool:
        return self.document_id is not None

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def find_entry(self, ops_name: Any, value_per_book: Any) -> Optional[LedgerEntry]:
        """Match an entry by (name, valuePerBook) at ledger precision"""
        wanted = ledger_key(self.job_id, ops_name, value_per_book)
        for entry in self.entries:
            if ledger_key(self.job_id, entry.ops_name, entry.value_per_book) == wanted:
                return entry
        return None

    def find_entry_by_operation_id(
        self,
        operation_id: str,
        ops_name: Any,
        rate: Any
    ) -> Optional[LedgerEntry]:
        """
        Match an entry by catalog operation id.

        Entries written by the edit path carry no opsId; those are matched
        on (name, valuePerBook) instead, then on name alone.
        """
        by_id = [e for e in self.entries if operation_id_str(e.ops_id) == operation_id]
        if by_id:
            wanted = ledger_key(self.job_id, ops_name, rate)
            for entry in by_id:
                if ledger_key(self.job_id, entry.ops_name, entry.value_per_book) == wanted:
                    return entry
            return by_id[0]

        untracked = [e for e in self.entries if operation_id_str(e.ops_id) is None]
        name = normalize_text(ops_name)
        wanted = ledger_key(self.job_id, name, rate)
        for entry in untracked:
            if ledger_key(self.job_id, entry.ops_name, entry.value_per_book) == wanted:
                return entry
        for entry in untracked:
            if entry.ops_name == name:
                return entry
        return None

    def remove_entry(self, entry: LedgerEntry) -> None:
        self.entries = [e for e in self.entries if e is not entry]


@dataclass
class LedgerAdjustment:
    """A completed-quantity delta to apply to one Contractor_WD entry"""
    ops_name: str
    value_per_book: float
    delta_qty: float


async def settle_ledger(store, ledger: ContractorLedger) -> Optional[ContractorLedger]:
    """
    Persist a ledger, or make sure it does not exist when it has no entries.

    Returns the ledger when it was saved, None when it is now absent.
    """
    if ledger.is_empty:
        if ledger.is_persisted:
            await store.delete(ledger)
            logger.info(f"[LEDGER] Removed empty Contractor_WD: contractor={ledger.contractor_id}, job={ledger.job_id}")
        return None
    await store.save(ledger)
    return ledger


class ContractorLedgerAdjuster:
    """Applies completed-quantity deltas to a contractor's ledger for one job"""

    async def apply(
        self,
        uow,
        contractor_id: str,
        job_id: str,
        adjustments: List[LedgerAdjustment]
    ) -> Optional[ContractorLedger]:
        ledger = await uow.ledgers.find(contractor_id, job_id)
        if ledger is None:
            ledger = ContractorLedger.open(contractor_id, job_id)

        now = datetime.utcnow()
        for adjustment in adjustments:
            self.apply_adjustment(ledger, adjustment, now)

        return await settle_ledger(uow.ledgers, ledger)

    def apply_adjustment(
        self,
        ledger: ContractorLedger,
        adjustment: LedgerAdjustment,
        now: datetime
    ) -> None:
        name = normalize_text(adjustment.ops_name)
        value = round_rate(adjustment.value_per_book)
        delta = adjustment.delta_qty
        entry = ledger.find_entry(name, value)

        if delta > 0:
            if entry is not None:
                entry.ops_done_qty += delta
                entry.completion_date = now
            else:
                ledger.entries.append(LedgerEntry(
                    ops_id=None,
                    ops_name=name,
                    value_per_book=value,
                    ops_done_qty=delta,
                    completion_date=now
                ))
        elif delta < 0 and entry is not None:
            new_done = entry.ops_done_qty + delta
            if new_done <= 0:
                ledger.remove_entry(entry)
            else:
                entry.ops_done_qty = new_done
                entry.completion_date = now
        elif delta < 0:
            logger.info(
                f"[LEDGER] Nothing to reverse for {name} @ {value} "
                f"(contractor={ledger.contractor_id}, job={ledger.job_id})"
            )

    def reverse_entry(self, ledger: ContractorLedger, entry: LedgerEntry, qty: float) -> None:
        """Take a whole bill line's quantity back out of an entry (soft delete)"""
        entry.ops_done_qty = max(0.0, entry.ops_done_qty - qty)
        if entry.ops_done_qty <= 0:
            ledger.remove_entry(entry)
