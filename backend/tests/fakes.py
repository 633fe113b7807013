"""
In-memory stand-in for the MongoDB collections the reconciliation engine
touches, and a unit of work over it that snapshots on begin and restores
on rollback.
"""
import copy

from pymongo.errors import OperationFailure

from reconciliation import ContractorLedger, UnitOfWork

BILL_NUMBER = "00000001"
CONTRACTOR_NAME = "Ravi Kumar"
CONTRACTOR_ID = "C001"


class InMemoryDatabase:
    def __init__(self):
        self.bills = {}
        self.job_ops = {}
        self.ledgers = {}
        self.operations = {}
        self.contractors = {}
        self.ids = {}
        self.writes = []
        self.fail_on = set()
        self.commits = 0
        self.rollbacks = 0
        self._next_id = 0

    def new_id(self, prefix):
        self._next_id += 1
        return f"{prefix}{self._next_id:04d}"

    def snapshot(self):
        return copy.deepcopy((self.bills, self.job_ops, self.ledgers))

    def restore(self, snapshot):
        self.bills, self.job_ops, self.ledgers = copy.deepcopy(snapshot)

    def record_write(self, name, key=None):
        if name in self.fail_on or (name, key) in self.fail_on:
            raise OperationFailure(f"injected failure on {name}")
        self.writes.append((name, key))

    # Seeding helpers ---------------------------------------------------

    def add_operation(self, ops_name):
        op_id = self.new_id("op")
        self.operations[op_id] = {"_id": op_id, "opsName": ops_name}
        self.ids[ops_name] = op_id
        return op_id

    def add_contractor(self, name, contractor_id):
        self.contractors[name] = {"name": name, "contractorId": contractor_id}

    def add_master(self, job_id, ops):
        self.job_ops[job_id] = {"_id": self.new_id("jm"), "jobId": job_id, "ops": ops}

    def add_ledger(self, contractor_id, job_id, entries):
        self.ledgers[(contractor_id, job_id)] = {
            "_id": self.new_id("wd"),
            "contractorId": contractor_id,
            "jobId": job_id,
            "opsDone": entries
        }

    def add_bill(self, bill):
        bill = dict(bill)
        bill.setdefault("_id", self.new_id("bill"))
        self.bills[bill["billNumber"]] = bill
        return bill

    # Read helpers for assertions ---------------------------------------

    def master_op(self, job_id, op_id):
        for jop in self.job_ops[job_id]["ops"]:
            if jop["opId"] == op_id:
                return jop
        return None

    def ledger_entry(self, contractor_id, job_id, ops_name):
        doc = self.ledgers.get((contractor_id, job_id))
        if doc is None:
            return None
        for entry in doc["opsDone"]:
            if entry["opsName"] == ops_name:
                return entry
        return None

    def bill_line(self, bill_number, job_number, ops_name):
        for job in self.bills[bill_number]["jobs"]:
            if job["jobNumber"] == job_number:
                for op in job["ops"]:
                    if op["opsName"] == ops_name:
                        return op
        return None


class InMemoryBillStore:
    def __init__(self, db):
        self.db = db

    async def find_by_number(self, bill_number, include_deleted=True):
        doc = self.db.bills.get(bill_number)
        if doc is None:
            return None
        if not include_deleted and doc.get("isDeleted") == 1:
            return None
        return copy.deepcopy(doc)

    async def save(self, bill):
        self.db.record_write("bills.save", bill["billNumber"])
        self.db.bills[bill["billNumber"]] = copy.deepcopy(bill)

    async def mark_deleted(self, bill_number):
        self.db.record_write("bills.mark_deleted", bill_number)
        self.db.bills[bill_number]["isDeleted"] = 1


class InMemoryJobOpsMasterStore:
    def __init__(self, db):
        self.db = db

    async def find_by_job_id(self, job_id):
        return copy.deepcopy(self.db.job_ops.get(job_id))

    async def save(self, master):
        self.db.record_write("job_ops.save", master["jobId"])
        self.db.job_ops[master["jobId"]] = copy.deepcopy(master)


class InMemoryContractorLedgerStore:
    def __init__(self, db):
        self.db = db

    async def find(self, contractor_id, job_id):
        doc = self.db.ledgers.get((contractor_id, job_id))
        if doc is None:
            return None
        return ContractorLedger.from_document(copy.deepcopy(doc))

    async def save(self, ledger):
        self.db.record_write("ledgers.save", ledger.job_id)
        if not ledger.is_persisted:
            ledger.document_id = self.db.new_id("wd")
        self.db.ledgers[(ledger.contractor_id, ledger.job_id)] = copy.deepcopy(ledger.to_document())

    async def delete(self, ledger):
        self.db.record_write("ledgers.delete", ledger.job_id)
        self.db.ledgers.pop((ledger.contractor_id, ledger.job_id), None)


class InMemoryOperationCatalog:
    def __init__(self, db):
        self.db = db

    async def names_by_ids(self, op_ids):
        return {
            op_id: self.db.operations[op_id]["opsName"]
            for op_id in op_ids
            if op_id in self.db.operations
        }

    async def find_by_name(self, ops_name):
        for doc in self.db.operations.values():
            if doc["opsName"] == ops_name:
                return dict(doc)
        return None


class InMemoryContractorDirectory:
    def __init__(self, db):
        self.db = db

    async def find_id_by_name(self, name):
        doc = self.db.contractors.get(name)
        return doc["contractorId"] if doc else None


class InMemoryUnitOfWork(UnitOfWork):
    def __init__(self, db):
        super().__init__()
        self.db = db
        self._snapshot = None

    async def _begin(self):
        self._snapshot = self.db.snapshot()
        self.bills = InMemoryBillStore(self.db)
        self.job_ops = InMemoryJobOpsMasterStore(self.db)
        self.ledgers = InMemoryContractorLedgerStore(self.db)
        self.operations = InMemoryOperationCatalog(self.db)
        self.contractors = InMemoryContractorDirectory(self.db)

    async def _commit(self):
        if "commit" in self.db.fail_on:
            raise OperationFailure("injected commit failure")
        self.db.commits += 1

    async def _rollback(self):
        self.db.restore(self._snapshot)
        self.db.rollbacks += 1
