"""
JobOps Master Adjuster Tests
Testing: pending work consumption/restoration and the 0 <= pending <= total invariant
"""
import pytest

from fakes import InMemoryUnitOfWork
from reconciliation import (
    InsufficientPendingQuantityError, JobMasterNotFoundError, JobOpsLedgerAdjuster,
    OperationDelta, OperationNotFoundInMasterError
)

pytestmark = pytest.mark.anyio


def delta(job_number, ops_name, rate, qty):
    return OperationDelta(job_number=job_number, ops_name=ops_name, rate=rate, delta_qty=qty)


class TestApply:

    async def test_positive_delta_consumes_pending(self, db):
        async with InMemoryUnitOfWork(db) as uow:
            adjustments = await JobOpsLedgerAdjuster().apply(uow, "J100", [delta("J100", "Drilling", 10, 3)])
            await uow.commit()

        jop = db.master_op("J100", db.ids["Drilling"])
        assert jop["pendingOpsQty"] == 12
        assert jop["lastUpdatedDate"] is not None
        assert len(adjustments) == 1
        assert adjustments[0].value_per_book == 10
        assert adjustments[0].delta_qty == 3

    async def test_negative_delta_restores_pending_up_to_total(self, db):
        db.master_op("J100", db.ids["Drilling"])["pendingOpsQty"] = 19
        async with InMemoryUnitOfWork(db) as uow:
            await JobOpsLedgerAdjuster().apply(uow, "J100", [delta("J100", "Drilling", 10, -3)])
            await uow.commit()

        assert db.master_op("J100", db.ids["Drilling"])["pendingOpsQty"] == 20

    async def test_over_commitment_rejected(self, db):
        async with InMemoryUnitOfWork(db) as uow:
            with pytest.raises(InsufficientPendingQuantityError) as exc_info:
                await JobOpsLedgerAdjuster().apply(uow, "J200", [delta("J200", "Binding", 7, 5)])

        assert exc_info.value.pending_qty == 1
        assert db.master_op("J200", db.ids["Binding"])["pendingOpsQty"] == 1

    async def test_float_drift_is_clamped(self, db):
        db.master_op("J200", db.ids["Binding"])["pendingOpsQty"] = 2.9999995
        async with InMemoryUnitOfWork(db) as uow:
            await JobOpsLedgerAdjuster().apply(uow, "J200", [delta("J200", "Binding", 7, 3)])
            await uow.commit()

        assert db.master_op("J200", db.ids["Binding"])["pendingOpsQty"] == 0

    async def test_rate_matches_at_two_places(self, db):
        async with InMemoryUnitOfWork(db) as uow:
            await JobOpsLedgerAdjuster().apply(uow, "J100", [delta("J100", "Cutting", 2.501, 5)])
            await uow.commit()

        assert db.master_op("J100", db.ids["Cutting"])["pendingOpsQty"] == 35

    async def test_missing_master(self, db):
        async with InMemoryUnitOfWork(db) as uow:
            with pytest.raises(JobMasterNotFoundError):
                await JobOpsLedgerAdjuster().apply(uow, "J999", [delta("J999", "Drilling", 10, 1)])

    async def test_missing_operation(self, db):
        async with InMemoryUnitOfWork(db) as uow:
            with pytest.raises(OperationNotFoundInMasterError):
                await JobOpsLedgerAdjuster().apply(uow, "J100", [delta("J100", "Drilling", 12, 1)])

    async def test_catalog_gap_does_not_match(self, db):
        del db.operations[db.ids["Drilling"]]
        async with InMemoryUnitOfWork(db) as uow:
            with pytest.raises(OperationNotFoundInMasterError):
                await JobOpsLedgerAdjuster().apply(uow, "J100", [delta("J100", "Drilling", 10, 1)])


class TestRestorePending:

    def test_no_upper_clamp(self):
        jop = {"pendingOpsQty": 18, "totalOpsQty": 20}
        JobOpsLedgerAdjuster().restore_pending(jop, 5, now=None)
        assert jop["pendingOpsQty"] == 23

    def test_lower_clamp(self):
        jop = {"pendingOpsQty": 2, "totalOpsQty": 20}
        JobOpsLedgerAdjuster().restore_pending(jop, -5, now=None)
        assert jop["pendingOpsQty"] == 0
