"""
Shared fixtures for the reconciliation engine tests.
"""
import pytest

from fakes import BILL_NUMBER, CONTRACTOR_ID, CONTRACTOR_NAME, InMemoryDatabase, InMemoryUnitOfWork
from reconciliation import BillReversalService, QuantityReconciliationEngine


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def db():
    """
    One unpaid bill across two jobs, with masters and ledgers consistent
    with it:

    J100  Drilling @10   bill 5   pending 15/20   ledger 5 (no opsId)
          Cutting  @2.5  bill 10  pending 40/50   ledger 10 (opsId tracked)
    J200  Binding  @7    bill 3   pending 1/10    ledger 3 (opsId tracked)
    """
    database = InMemoryDatabase()
    drilling = database.add_operation("Drilling")
    cutting = database.add_operation("Cutting")
    binding = database.add_operation("Binding")

    database.add_contractor(CONTRACTOR_NAME, CONTRACTOR_ID)

    database.add_master("J100", [
        {"opId": drilling, "valuePerBook": 10, "totalOpsQty": 20, "pendingOpsQty": 15},
        {"opId": cutting, "valuePerBook": 2.5, "totalOpsQty": 50, "pendingOpsQty": 40},
    ])
    database.add_master("J200", [
        {"opId": binding, "valuePerBook": 7, "totalOpsQty": 10, "pendingOpsQty": 1},
    ])

    database.add_ledger(CONTRACTOR_ID, "J100", [
        {"opsId": None, "opsName": "Drilling", "valuePerBook": 10, "opsDoneQty": 5},
        {"opsId": cutting, "opsName": "Cutting", "valuePerBook": 2.5, "opsDoneQty": 10},
    ])
    database.add_ledger(CONTRACTOR_ID, "J200", [
        {"opsId": binding, "opsName": "Binding", "valuePerBook": 7, "opsDoneQty": 3},
    ])

    database.add_bill({
        "billNumber": BILL_NUMBER,
        "contractorName": CONTRACTOR_NAME,
        "paymentStatus": "No",
        "roomRent": 0,
        "jobs": [
            {
                "jobNumber": "J100",
                "clientName": "Acme Press",
                "jobTitle": "Annual Report",
                "ops": [
                    {"opsName": "Drilling", "qtyBook": 20, "rate": 10, "qtyCompleted": 5, "totalValue": 50},
                    {"opsName": "Cutting", "qtyBook": 50, "rate": 2.5, "qtyCompleted": 10, "totalValue": 25},
                ]
            },
            {
                "jobNumber": "J200",
                "clientName": "Globe Books",
                "jobTitle": "Catalogue",
                "ops": [
                    {"opsName": "Binding", "qtyBook": 10, "rate": 7, "qtyCompleted": 3, "totalValue": 21},
                ]
            }
        ]
    })
    return database


@pytest.fixture
def uow_factory(db):
    return lambda: InMemoryUnitOfWork(db)


@pytest.fixture
def engine(uow_factory):
    return QuantityReconciliationEngine(uow_factory)


@pytest.fixture
def reversal_service(uow_factory):
    return BillReversalService(uow_factory)
