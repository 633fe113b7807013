from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Union

# ============================================
# BILL QUANTITY EDIT MODELS
# ============================================
# Field presence and value checks live in the reconciliation engine so the
# same rules apply whichever caller drives it; these models only shape JSON.

class QuantityChange(BaseModel):
    job_number: Optional[Union[str, int]] = Field(default=None, alias="jobNumber")
    ops_name: Optional[str] = Field(default=None, alias="opsName")
    rate: Optional[float] = None
    new_qty_completed: Optional[float] = Field(default=None, alias="newQtyCompleted")

    class Config:
        populate_by_name = True


class EditQuantitiesRequest(BaseModel):
    contractor_id: Optional[Union[str, int]] = Field(default=None, alias="contractorId")
    changes: List[QuantityChange] = Field(default_factory=list)

    class Config:
        populate_by_name = True


# ============================================
# SOFT DELETE MODELS
# ============================================
class JobReversalResult(BaseModel):
    jobNumber: Optional[str] = None
    status: str
    pendingRestored: int = 0
    ledgerEntriesReduced: int = 0
    errorCode: Optional[str] = None
    error: Optional[str] = None


class ReversalSummary(BaseModel):
    billNumber: Optional[str] = None
    contractorId: Optional[Any] = None
    complete: bool
    jobs: List[JobReversalResult] = Field(default_factory=list)


class DeleteBillResponse(BaseModel):
    message: str
    reversal: ReversalSummary


class ErrorDetail(BaseModel):
    error: str
    code: str
    details: Dict[str, Any] = Field(default_factory=dict)
