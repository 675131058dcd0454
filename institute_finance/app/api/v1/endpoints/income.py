"""
Income API Endpoints.

Recorded income stays pending until an approver confirms it; confirming
cash held by a named holder credits that holder's float.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from institute_finance.app.core.dependencies import get_current_user
from institute_finance.app.core.guards import require_approver
from institute_finance.app.db.session import get_db
from institute_finance.app.domain.approvals.income_workflow import IncomeWorkflow
from institute_finance.app.models.finance_enums import IncomeStatus, IncomeType
from institute_finance.app.schemas.income import (
    IncomeCreate, IncomeUpdate, IncomeResponse, IncomeListResponse, IncomeDeleteResponse, IncomeReport,
    RejectRequest,
)
from institute_finance.app.services.event_publisher import EventPublisher, get_event_publisher

router = APIRouter(prefix="/income", tags=["Income"])


@router.post("", response_model=IncomeResponse, status_code=status.HTTP_201_CREATED)
async def record_income(
    income_data: IncomeCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Record income (pending; no ledger effect yet)."""
    income = await IncomeWorkflow(db).record(
        actor_id=current_user["user_id"],
        **income_data.model_dump(),
    )
    return IncomeResponse.model_validate(income)


@router.get("", response_model=IncomeListResponse)
async def list_income(
    status_filter: Optional[IncomeStatus] = Query(None, alias="status"),
    employee_id: Optional[int] = Query(None),
    held_by_id: Optional[int] = Query(None),
    income_type: Optional[IncomeType] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    incomes = await IncomeWorkflow(db).list(
        status=status_filter,
        employee_id=employee_id,
        held_by_id=held_by_id,
        income_type=income_type,
        from_date=from_date,
        to_date=to_date,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return IncomeListResponse(
        incomes=[IncomeResponse.model_validate(income) for income in incomes],
        page=page,
        page_size=page_size,
    )


@router.get("/report", response_model=IncomeReport)
async def income_report(
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db)
):
    """Confirmed income totals by category."""
    return await IncomeWorkflow(db).report(from_date, to_date)


@router.get("/{income_id}", response_model=IncomeResponse)
async def get_income(
    income_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    income = await IncomeWorkflow(db).get(income_id)
    return IncomeResponse.model_validate(income)


@router.put("/{income_id}", response_model=IncomeResponse)
async def update_income(
    income_id: int,
    income_data: IncomeUpdate,
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    """
    Edit pending or confirmed income. Only the fields sent are changed.

    For confirmed cash income the float credit is rewritten in place and the
    holder's later balances are recomputed.
    """
    income = await IncomeWorkflow(db, events=events).update(
        income_id,
        actor_id=current_user["user_id"],
        **income_data.model_dump(exclude_unset=True),
    )
    return IncomeResponse.model_validate(income)


@router.delete("/{income_id}", response_model=IncomeDeleteResponse)
async def delete_income(
    income_id: int,
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    """Delete pending or rejected income. Confirmed income cannot be deleted."""
    await IncomeWorkflow(db, events=events).delete(income_id, actor_id=current_user["user_id"])
    return IncomeDeleteResponse(message="Income deleted", income_id=income_id)


@router.put("/{income_id}/confirm", response_model=IncomeResponse)
async def confirm_income(
    income_id: int,
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    """Confirm pending income. A second confirmation is rejected with 409."""
    income = await IncomeWorkflow(db, events=events).confirm(income_id, current_user["user_id"])
    return IncomeResponse.model_validate(income)


@router.put("/{income_id}/reject", response_model=IncomeResponse)
async def reject_income(
    income_id: int,
    body: Optional[RejectRequest] = None,
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    income = await IncomeWorkflow(db, events=events).reject(
        income_id, current_user["user_id"], reason=body.reason if body else None
    )
    return IncomeResponse.model_validate(income)
