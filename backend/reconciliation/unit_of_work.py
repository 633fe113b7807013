"""
RECONCILIATION ENGINE - UNIT OF WORK

A unit of work groups every read and write of one logical change so they
either all persist or none do. Usage:

    async with unit_of_work_factory() as uow:
        bill = await uow.bills.find_by_number(bill_number, include_deleted=False)
        ...
        await uow.commit()

Leaving the block without commit() (early return or exception) rolls the
unit back. Storage driver errors surface as PersistenceError.

Stores exposed on an active unit of work:
- bills:       find_by_number, save, mark_deleted
- job_ops:     find_by_job_id, save
- ledgers:     find, save, delete
- operations:  names_by_ids, find_by_name
- contractors: find_id_by_name
"""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
from typing import Callable
import logging

from reconciliation.errors import PersistenceError
from reconciliation.stores import (
    MongoBillStore, MongoJobOpsMasterStore, MongoContractorLedgerStore,
    MongoOperationCatalog, MongoContractorDirectory
)

logger = logging.getLogger(__name__)


class UnitOfWork:
    """Base unit of work; subclasses provide begin/commit/rollback/close"""

    bills = None
    job_ops = None
    ledgers = None
    operations = None
    contractors = None

    def __init__(self):
        self.committed = False

    async def __aenter__(self) -> "UnitOfWork":
        try:
            await self._begin()
        except PyMongoError as e:
            await self._close()
            raise PersistenceError(f"Could not start unit of work: {str(e)}") from e
        except Exception:
            await self._close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        try:
            if not self.committed:
                await self._rollback()
        except PyMongoError as e:
            logger.warning(f"[TRANSACTION] Rollback failed: {str(e)}")
        finally:
            await self._close()

        if isinstance(exc, PyMongoError):
            raise PersistenceError(f"Transaction failed: {str(exc)}") from exc
        return False

    async def commit(self) -> None:
        try:
            await self._commit()
        except PyMongoError as e:
            raise PersistenceError(f"Commit failed: {str(e)}") from e
        self.committed = True

    async def _begin(self) -> None:
        raise NotImplementedError

    async def _commit(self) -> None:
        raise NotImplementedError

    async def _rollback(self) -> None:
        raise NotImplementedError

    async def _close(self) -> None:
        pass


class MongoUnitOfWork(UnitOfWork):
    """
    Unit of work over one MongoDB client session + multi-document transaction.
    Requires a replica set (or sharded cluster) deployment.
    """

    def __init__(self, client: AsyncIOMotorClient, db: AsyncIOMotorDatabase):
        super().__init__()
        self.client = client
        self.db = db
        self.session = None

    async def _begin(self) -> None:
        self.session = await self.client.start_session()
        self.session.start_transaction()
        self.bills = MongoBillStore(self.db, self.session)
        self.job_ops = MongoJobOpsMasterStore(self.db, self.session)
        self.ledgers = MongoContractorLedgerStore(self.db, self.session)
        self.operations = MongoOperationCatalog(self.db, self.session)
        self.contractors = MongoContractorDirectory(self.db, self.session)

    async def _commit(self) -> None:
        await self.session.commit_transaction()
        logger.debug("[TRANSACTION] Committed")

    async def _rollback(self) -> None:
        if self.session is not None and self.session.in_transaction:
            await self.session.abort_transaction()
            logger.debug("[TRANSACTION] Aborted")

    async def _close(self) -> None:
        if self.session is not None:
            await self.session.end_session()
            self.session = None


UnitOfWorkFactory = Callable[[], UnitOfWork]


def mongo_unit_of_work_factory(client: AsyncIOMotorClient, db: AsyncIOMotorDatabase) -> UnitOfWorkFactory:
    def factory() -> UnitOfWork:
        return MongoUnitOfWork(client, db)
    return factory
