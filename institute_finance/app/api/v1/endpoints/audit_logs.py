"""
Audit Log API Endpoints.

Read-only access to the finance audit trail (approver roles only).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from institute_finance.app.core.guards import require_approver
from institute_finance.app.db.session import get_db
from institute_finance.app.schemas.audit import AuditLogResponse, AuditLogListResponse
from institute_finance.app.services.audit import get_audit_trail, get_actor_history

router = APIRouter(prefix="/audit-logs", tags=["Audit"])


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    entity_type: Optional[str] = Query(None, description="e.g. cash_transfer, income, expense"),
    entity_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None, description="e.g. TRANSFER_UPDATED"),
    actor_id: Optional[int] = Query(None, description="Only actions performed by this holder"),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db)
):
    """Audit trail, most recent first."""
    if actor_id is not None:
        logs = await get_actor_history(db, actor_id, limit=limit)
    else:
        logs = await get_audit_trail(db, entity_type=entity_type, entity_id=entity_id, action=action, limit=limit)

    return AuditLogListResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        count=len(logs),
    )
