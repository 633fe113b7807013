"""
RECONCILIATION ENGINE - MONGODB STORES

Thin Motor-backed accessors for the collections the engine reads and
writes. Every call passes the unit of work's client session so all reads
and writes of one edit land in the same transaction.
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from reconciliation.contractor_ledger import ContractorLedger

logger = logging.getLogger(__name__)

BILLS_COLLECTION = "bills"
JOB_OPS_MASTER_COLLECTION = "jobopsmasters"
CONTRACTOR_WD_COLLECTION = "contractor_wds"
OPERATIONS_COLLECTION = "operations"
CONTRACTORS_COLLECTION = "contractors"

PAID_STATUS = "Yes"
DELETED_FLAG = 1

# Bills written before the isDeleted field existed count as live
NOT_DELETED_FILTER = {
    "$or": [
        {"isDeleted": {"$ne": DELETED_FLAG}},
        {"isDeleted": {"$exists": False}}
    ]
}


def is_bill_paid(bill: Dict[str, Any]) -> bool:
    return bill.get("paymentStatus") == PAID_STATUS


class MongoBillStore:
    def __init__(self, db: AsyncIOMotorDatabase, session=None):
        self.collection = db[BILLS_COLLECTION]
        self.session = session

    async def find_by_number(self, bill_number: str, include_deleted: bool = True) -> Optional[Dict[str, Any]]:
        query = {"billNumber": bill_number}
        if not include_deleted:
            query.update(NOT_DELETED_FILTER)
        return await self.collection.find_one(query, session=self.session)

    async def save(self, bill: Dict[str, Any]) -> None:
        """Persist the bill's job/op lines (the only part the engine mutates)"""
        await self.collection.update_one(
            {"_id": bill["_id"]},
            {"$set": {"jobs": bill.get("jobs") or [], "updatedAt": datetime.utcnow()}},
            session=self.session
        )

    async def mark_deleted(self, bill_number: str) -> None:
        await self.collection.update_one(
            {"billNumber": bill_number},
            {"$set": {"isDeleted": DELETED_FLAG, "updatedAt": datetime.utcnow()}},
            session=self.session
        )


class MongoJobOpsMasterStore:
    def __init__(self, db: AsyncIOMotorDatabase, session=None):
        self.collection = db[JOB_OPS_MASTER_COLLECTION]
        self.session = session

    async def find_by_job_id(self, job_id: str) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({"jobId": job_id}, session=self.session)

    async def save(self, master: Dict[str, Any]) -> None:
        await self.collection.update_one(
            {"_id": master["_id"]},
            {"$set": {"ops": master.get("ops") or []}},
            session=self.session
        )


class MongoContractorLedgerStore:
    def __init__(self, db: AsyncIOMotorDatabase, session=None):
        self.collection = db[CONTRACTOR_WD_COLLECTION]
        self.session = session

    async def find(self, contractor_id: str, job_id: str) -> Optional[ContractorLedger]:
        doc = await self.collection.find_one(
            {"contractorId": contractor_id, "jobId": job_id},
            session=self.session
        )
        if doc is None:
            return None
        return ContractorLedger.from_document(doc)

    async def save(self, ledger: ContractorLedger) -> None:
        doc = ledger.to_document()
        if ledger.is_persisted:
            await self.collection.update_one(
                {"_id": ledger.document_id},
                {"$set": {"opsDone": doc["opsDone"]}},
                session=self.session
            )
        else:
            result = await self.collection.insert_one(doc, session=self.session)
            ledger.document_id = result.inserted_id

    async def delete(self, ledger: ContractorLedger) -> None:
        await self.collection.delete_one({"_id": ledger.document_id}, session=self.session)


class MongoOperationCatalog:
    """Read-only operation catalog: opId <-> opsName"""

    def __init__(self, db: AsyncIOMotorDatabase, session=None):
        self.collection = db[OPERATIONS_COLLECTION]
        self.session = session

    async def names_by_ids(self, op_ids: List[str]) -> Dict[str, str]:
        object_ids = [ObjectId(op_id) for op_id in op_ids if ObjectId.is_valid(op_id)]
        if not object_ids:
            return {}
        cursor = self.collection.find({"_id": {"$in": object_ids}}, session=self.session)
        docs = await cursor.to_list(length=None)
        return {str(doc["_id"]): doc.get("opsName") for doc in docs}

    async def find_by_name(self, ops_name: str) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({"opsName": ops_name}, session=self.session)


class MongoContractorDirectory:
    def __init__(self, db: AsyncIOMotorDatabase, session=None):
        self.collection = db[CONTRACTORS_COLLECTION]
        self.session = session

    async def find_id_by_name(self, name: str) -> Optional[str]:
        doc = await self.collection.find_one({"name": name}, session=self.session)
        if not doc:
            return None
        return doc.get("contractorId")


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """
    Create the lookup indexes the engine relies on.
    """
    try:
        await db[BILLS_COLLECTION].create_index(
            [("billNumber", 1)],
            unique=True,
            name="unique_bill_number"
        )
        await db[JOB_OPS_MASTER_COLLECTION].create_index(
            [("jobId", 1)],
            name="jobops_job_id"
        )
        await db[CONTRACTOR_WD_COLLECTION].create_index(
            [("contractorId", 1), ("jobId", 1)],
            unique=True,
            name="unique_contractor_job"
        )
        await db[OPERATIONS_COLLECTION].create_index(
            [("opsName", 1)],
            name="operation_name"
        )
        logger.info("Created reconciliation indexes")
    except Exception as e:
        # Index may already exist with different options
        logger.warning(f"Index creation result: {str(e)}")
