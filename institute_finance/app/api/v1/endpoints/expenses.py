"""
Expense API Endpoints.

Approving an expense paid from institute float debits the float holder.
Reimbursement closes the loop with the person who paid and never touches
the ledger.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from institute_finance.app.core.dependencies import get_current_user
from institute_finance.app.core.guards import require_approver
from institute_finance.app.db.session import get_db
from institute_finance.app.domain.approvals.expense_workflow import ExpenseWorkflow
from institute_finance.app.models.finance_enums import ExpenseStatus, ExpenseType
from institute_finance.app.schemas.expense import (
    ExpenseCreate, ExpenseUpdate, ExpenseResponse, ExpenseListResponse, ExpenseDeleteResponse, ExpenseReport,
    PendingReimbursementResponse,
)
from institute_finance.app.schemas.income import RejectRequest
from institute_finance.app.services.event_publisher import EventPublisher, get_event_publisher

router = APIRouter(prefix="/expenses", tags=["Expenses"])


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def record_expense(
    expense_data: ExpenseCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Record an expense (pending; no ledger effect yet)."""
    expense = await ExpenseWorkflow(db).record(
        actor_id=current_user["user_id"],
        **expense_data.model_dump(),
    )
    return ExpenseResponse.model_validate(expense)


@router.get("", response_model=ExpenseListResponse)
async def list_expenses(
    status_filter: Optional[ExpenseStatus] = Query(None, alias="status"),
    employee_id: Optional[int] = Query(None),
    expense_type: Optional[ExpenseType] = Query(None),
    category: Optional[str] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    expenses = await ExpenseWorkflow(db).list(
        status=status_filter,
        employee_id=employee_id,
        expense_type=expense_type,
        category=category,
        from_date=from_date,
        to_date=to_date,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return ExpenseListResponse(
        expenses=[ExpenseResponse.model_validate(expense) for expense in expenses],
        page=page,
        page_size=page_size,
    )


@router.get("/pending-reimbursement", response_model=PendingReimbursementResponse)
async def pending_reimbursement(
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db)
):
    """Approved expenses still awaiting reimbursement."""
    pending = await ExpenseWorkflow(db).pending_reimbursements()
    return PendingReimbursementResponse(
        expenses=[ExpenseResponse.model_validate(expense) for expense in pending["expenses"]],
        total_pending=pending["total_pending"],
    )


@router.get("/report", response_model=ExpenseReport)
async def expense_report(
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db)
):
    """Approved expense totals by category and employee."""
    return await ExpenseWorkflow(db).report(from_date, to_date)


@router.get("/{expense_id}", response_model=ExpenseResponse)
async def get_expense(
    expense_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    expense = await ExpenseWorkflow(db).get(expense_id)
    return ExpenseResponse.model_validate(expense)


@router.put("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: int,
    expense_data: ExpenseUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    """Edit a pending expense. Only the fields sent are changed."""
    expense = await ExpenseWorkflow(db, events=events).update(
        expense_id,
        actor_id=current_user["user_id"],
        **expense_data.model_dump(exclude_unset=True),
    )
    return ExpenseResponse.model_validate(expense)


@router.delete("/{expense_id}", response_model=ExpenseDeleteResponse)
async def delete_expense(
    expense_id: int,
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    """Delete an expense that has not been reimbursed, reverting any float debit."""
    await ExpenseWorkflow(db, events=events).delete(expense_id, actor_id=current_user["user_id"])
    return ExpenseDeleteResponse(message="Expense deleted", expense_id=expense_id)


@router.put("/{expense_id}/approve", response_model=ExpenseResponse)
async def approve_expense(
    expense_id: int,
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    """Approve a pending expense; debits the float holder for institute_float."""
    expense = await ExpenseWorkflow(db, events=events).approve(expense_id, current_user["user_id"])
    return ExpenseResponse.model_validate(expense)


@router.put("/{expense_id}/reject", response_model=ExpenseResponse)
async def reject_expense(
    expense_id: int,
    body: Optional[RejectRequest] = None,
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    expense = await ExpenseWorkflow(db, events=events).reject(
        expense_id, current_user["user_id"], reason=body.reason if body else None
    )
    return ExpenseResponse.model_validate(expense)


@router.put("/{expense_id}/reimburse", response_model=ExpenseResponse)
async def reimburse_expense(
    expense_id: int,
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    """Mark an approved expense as reimbursed (no ledger effect)."""
    expense = await ExpenseWorkflow(db, events=events).reimburse(expense_id, current_user["user_id"])
    return ExpenseResponse.model_validate(expense)


@router.put("/{expense_id}/cancel-reimbursement", response_model=ExpenseResponse)
async def cancel_reimbursement(
    expense_id: int,
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    expense = await ExpenseWorkflow(db, events=events).cancel_reimbursement(expense_id, current_user["user_id"])
    return ExpenseResponse.model_validate(expense)
