"""
Income Pydantic schemas.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from institute_finance.app.models.finance_enums import IncomeStatus, IncomeType, IncomeSource, PaymentMethod


class IncomeCreate(BaseModel):
    """Schema for recording income (stays pending until confirmed)."""
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    income_date: date
    income_type: IncomeType = IncomeType.OTHER
    source_type: IncomeSource = IncomeSource.INSTITUTE
    payment_method: PaymentMethod = PaymentMethod.CASH
    employee_id: Optional[int] = None
    contributor_id: Optional[int] = None
    held_by_id: Optional[int] = Field(None, description="Holder who physically keeps the cash")
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None


class IncomeUpdate(BaseModel):
    """Schema for editing income. Only the fields sent are changed."""
    amount: Optional[Decimal] = Field(None, max_digits=12, decimal_places=2)
    income_date: Optional[date] = None
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_not_empty(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class IncomeResponse(BaseModel):
    id: int
    employee_id: Optional[int]
    income_type: IncomeType
    source_type: IncomeSource
    contributor_id: Optional[int]
    held_by_id: Optional[int]
    payment_method: PaymentMethod
    category: Optional[str]
    amount: Decimal
    income_date: date
    description: Optional[str]
    notes: Optional[str]
    status: IncomeStatus
    confirmed_by: Optional[int]
    created_by: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class IncomeListResponse(BaseModel):
    incomes: List[IncomeResponse]
    page: int
    page_size: int


class IncomeDeleteResponse(BaseModel):
    message: str
    income_id: int


class RejectRequest(BaseModel):
    """Optional rejection reason (stored in notes)."""
    reason: Optional[str] = Field(None, max_length=1000)


class CategoryTotal(BaseModel):
    category: Optional[str]
    total: Decimal
    count: int


class IncomeReport(BaseModel):
    """Confirmed income totals."""
    total_income: Decimal
    by_category: List[CategoryTotal]
