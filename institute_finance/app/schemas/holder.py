"""
Holder Pydantic schemas.

Defines request and response models for float holder management.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from institute_finance.app.models.enums import HolderRole


class HolderCreate(BaseModel):
    """Schema for onboarding a new holder."""
    full_name: str = Field(..., min_length=1, max_length=150, description="Display name")
    email: Optional[str] = Field(None, max_length=255)
    role: HolderRole = Field(HolderRole.STAFF, description="Staff role")


class HolderResponse(BaseModel):
    """Schema for holder response."""
    id: int
    full_name: str
    email: Optional[str]
    role: HolderRole
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class HolderListResponse(BaseModel):
    """Schema for paginated holder list."""
    holders: List[HolderResponse]
    total: int
    page: int
    page_size: int
