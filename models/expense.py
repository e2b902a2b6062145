from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime, date as date_type
from enum import Enum

from models.user import UserRole

class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

EXPENSE_CATEGORIES = [
    "Travel",
    "Meals & Entertainment",
    "Office Supplies",
    "Software & Subscriptions",
    "Marketing",
    "Training & Development",
    "Equipment",
    "Other",
]

class ApprovalStep(BaseModel):
    id: str
    approver: str
    # Snapshot of the approver at the time the step was created
    approver_name: str
    approver_role: UserRole
    status: ApprovalStatus = ApprovalStatus.PENDING
    comments: Optional[str] = None
    timestamp: Optional[datetime] = None

class ExpenseBase(BaseModel):
    amount: float = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=3)
    category: str = Field(..., min_length=1)
    description: str = ""
    date: date_type = Field(default_factory=date_type.today)
    receipt_url: Optional[str] = None

    @field_validator('currency')
    @classmethod
    def currency_upper(cls, v):
        return v.upper()

class ExpenseCreate(ExpenseBase):
    pass

class Expense(ExpenseBase):
    id: str
    employee_id: str
    employee_name: Optional[str] = None
    company_id: str
    status: ApprovalStatus
    approval_workflow: List[ApprovalStep] = []
    approvals_completed: int = 0
    approvals_required: int = 0
    converted_amount: Optional[float] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

class ExpenseDecision(BaseModel):
    # Kept as a plain string so unknown values reach the workflow engine
    status: str
    comments: Optional[str] = None
