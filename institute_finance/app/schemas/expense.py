"""
Expense Pydantic schemas.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from institute_finance.app.models.finance_enums import ExpenseStatus, ReimbursementStatus, ExpenseType, PaidFrom
from institute_finance.app.schemas.income import CategoryTotal


class ExpenseCreate(BaseModel):
    """Schema for recording an expense (stays pending until approved)."""
    employee_id: int
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    expense_date: date
    expense_type: ExpenseType = ExpenseType.INSTITUTE
    paid_from: PaidFrom = PaidFrom.INSTITUTE_FLOAT
    float_holder_id: Optional[int] = Field(None, description="Defaults to the approver for institute_float")
    description: Optional[str] = None


class ExpenseUpdate(BaseModel):
    """Schema for editing a pending expense. Only the fields sent are changed."""
    amount: Optional[Decimal] = Field(None, max_digits=12, decimal_places=2)
    expense_date: Optional[date] = None
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    expense_type: Optional[ExpenseType] = None
    paid_from: Optional[PaidFrom] = None
    float_holder_id: Optional[int] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_not_empty(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class ExpenseResponse(BaseModel):
    id: int
    employee_id: int
    expense_type: ExpenseType
    category: str
    amount: Decimal
    description: Optional[str]
    expense_date: date
    paid_from: PaidFrom
    float_holder_id: Optional[int]
    status: ExpenseStatus
    approved_by: Optional[int]
    approval_date: Optional[datetime]
    reimbursement_status: ReimbursementStatus
    reimbursement_date: Optional[datetime]
    notes: Optional[str]
    created_by: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ExpenseListResponse(BaseModel):
    expenses: List[ExpenseResponse]
    page: int
    page_size: int


class ExpenseDeleteResponse(BaseModel):
    message: str
    expense_id: int


class PendingReimbursementResponse(BaseModel):
    """Approved expenses still owed to the people who paid them."""
    expenses: List[ExpenseResponse]
    total_pending: Decimal


class EmployeeTotal(BaseModel):
    employee_id: int
    total: Decimal
    count: int


class ExpenseReport(BaseModel):
    """Approved expense totals."""
    total_expense: Decimal
    by_category: List[CategoryTotal]
    by_employee: List[EmployeeTotal]
