"""
Audit log Pydantic schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Any, Dict, Optional, List


class AuditLogResponse(BaseModel):
    id: int
    actor_id: Optional[int]
    action: str
    entity_type: str
    entity_id: Optional[int]
    before_snapshot: Optional[Dict[str, Any]]
    after_snapshot: Optional[Dict[str, Any]]
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogResponse]
    count: int
