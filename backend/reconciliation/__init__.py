"""
Bill Quantity Reconciliation Engine
"""
from .errors import (
    ReconciliationError,
    ValidationError,
    MissingFieldError,
    InvalidQuantityError,
    NotFoundError,
    BillNotFoundError,
    OperationNotFoundError,
    JobMasterNotFoundError,
    OperationNotFoundInMasterError,
    ContractorNotFoundError,
    ConflictError,
    BillAlreadyPaidError,
    InsufficientPendingQuantityError,
    PersistenceError,
    ReversalPartialFailure
)

from .key_matcher import (
    OperationKey,
    normalize,
    BillOperationIndex,
    UNKNOWN_OPERATION_NAME
)

from .delta_calculator import (
    ChangeRequest,
    OperationDelta,
    DeltaSet,
    calculate_deltas
)

from .contractor_ledger import (
    ContractorLedger,
    LedgerEntry,
    LedgerAdjustment,
    ContractorLedgerAdjuster,
    settle_ledger
)

from .job_ops_ledger import JobOpsLedgerAdjuster

from .unit_of_work import (
    UnitOfWork,
    MongoUnitOfWork,
    mongo_unit_of_work_factory
)

from .reconciliation_engine import (
    QuantityReconciliationEngine,
    ReconciliationResult,
    ReconciliationState
)

from .reversal import (
    BillReversalService,
    ReversalReport,
    JobReversalOutcome
)

__all__ = [
    # Errors
    'ReconciliationError',
    'ValidationError',
    'MissingFieldError',
    'InvalidQuantityError',
    'NotFoundError',
    'BillNotFoundError',
    'OperationNotFoundError',
    'JobMasterNotFoundError',
    'OperationNotFoundInMasterError',
    'ContractorNotFoundError',
    'ConflictError',
    'BillAlreadyPaidError',
    'InsufficientPendingQuantityError',
    'PersistenceError',
    'ReversalPartialFailure',
    # Key Matcher
    'OperationKey',
    'normalize',
    'BillOperationIndex',
    'UNKNOWN_OPERATION_NAME',
    # Delta Calculator
    'ChangeRequest',
    'OperationDelta',
    'DeltaSet',
    'calculate_deltas',
    # Ledgers
    'ContractorLedger',
    'LedgerEntry',
    'LedgerAdjustment',
    'ContractorLedgerAdjuster',
    'settle_ledger',
    'JobOpsLedgerAdjuster',
    # Unit of Work
    'UnitOfWork',
    'MongoUnitOfWork',
    'mongo_unit_of_work_factory',
    # Edit path
    'QuantityReconciliationEngine',
    'ReconciliationResult',
    'ReconciliationState',
    # Delete path
    'BillReversalService',
    'ReversalReport',
    'JobReversalOutcome',
]
