"""
Cash transfer Pydantic schemas.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List


class TransferCreate(BaseModel):
    """Schema for recording a hand-over of cash between two holders."""
    sender_id: int
    receiver_id: int
    amount: Decimal = Field(..., max_digits=12, decimal_places=2, description="Must be greater than zero")
    transfer_date: date
    notes: Optional[str] = None


class TransferUpdate(BaseModel):
    """
    Schema for editing a transfer. Every field is optional; only the
    fields sent are changed.
    """
    sender_id: Optional[int] = None
    receiver_id: Optional[int] = None
    amount: Optional[Decimal] = Field(None, max_digits=12, decimal_places=2)
    transfer_date: Optional[date] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_not_empty(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class TransferResponse(BaseModel):
    """Schema for transfer response."""
    id: int
    sender_id: int
    receiver_id: int
    amount: Decimal
    transfer_date: date
    notes: Optional[str]
    created_by: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TransferListResponse(BaseModel):
    transfers: List[TransferResponse]
    page: int
    page_size: int


class TransferDeleteResponse(BaseModel):
    """Acknowledgement of a deleted transfer."""
    message: str
    transfer_id: int
