"""
Holder API Endpoints.

Holder onboarding/retirement (approver roles) and float reads: current
balance, ledger history, chain verification and manual adjustments.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from institute_finance.app.core.dependencies import get_current_user
from institute_finance.app.core.exceptions import InvalidTransitionError, ResourceNotFoundError
from institute_finance.app.core.guards import require_approver
from institute_finance.app.db.session import get_db
from institute_finance.app.db.transaction import atomic
from institute_finance.app.domain.ledger.ledger_service import LedgerService
from institute_finance.app.models.enums import HolderRole
from institute_finance.app.models.holder import Holder
from institute_finance.app.schemas.holder import HolderCreate, HolderResponse, HolderListResponse
from institute_finance.app.schemas.ledger import (
    AdjustmentCreate, BalanceResponse, ChainVerificationResponse, ChainViolationResponse,
    LedgerEntryResponse, LedgerHistoryResponse,
)
from institute_finance.app.services.audit import log_event, snapshot, AuditAction
from institute_finance.app.services.event_publisher import EventPublisher, get_event_publisher

router = APIRouter(prefix="/holders", tags=["Holders"])


async def _get_holder_or_404(db: AsyncSession, holder_id: int) -> Holder:
    holder = await db.get(Holder, holder_id)
    if holder is None:
        raise ResourceNotFoundError("Holder", holder_id)
    return holder


@router.post("", response_model=HolderResponse, status_code=status.HTTP_201_CREATED)
async def create_holder(
    holder_data: HolderCreate,
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db)
):
    """Onboard a new float holder (approver roles only)."""
    async with atomic(db):
        holder = Holder(
            full_name=holder_data.full_name,
            email=holder_data.email,
            role=holder_data.role,
            is_active=True,
        )
        db.add(holder)
        await db.flush()
        await log_event(
            db, AuditAction.HOLDER_CREATED, "holder", holder.id,
            actor_id=current_user["user_id"], after=snapshot(holder),
        )

    return HolderResponse.model_validate(holder)


@router.get("", response_model=HolderListResponse)
async def list_holders(
    role: HolderRole = Query(None, description="Filter by role"),
    include_retired: bool = Query(False),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db)
):
    """List holders, active ones only unless include_retired is set."""
    filters = []
    if role:
        filters.append(Holder.role == role)
    if not include_retired:
        filters.append(Holder.is_active == True)

    total_result = await db.execute(select(func.count(Holder.id)).where(*filters))
    total = total_result.scalar()

    offset = (page - 1) * page_size
    result = await db.execute(
        select(Holder).where(*filters).order_by(Holder.full_name, Holder.id).offset(offset).limit(page_size)
    )
    holders = result.scalars().all()

    return HolderListResponse(
        holders=[HolderResponse.model_validate(holder) for holder in holders],
        total=total,
        page=page,
        page_size=page_size
    )


@router.patch("/{holder_id}/retire", response_model=HolderResponse)
async def retire_holder(
    holder_id: int,
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db)
):
    """
    Retire a holder (soft delete).

    History stays readable; the holder can no longer be a party to new postings.
    """
    async with atomic(db):
        holder = await _get_holder_or_404(db, holder_id)
        if not holder.is_active:
            raise InvalidTransitionError("Holder", holder_id, "retired", "retired")

        before = snapshot(holder)
        holder.is_active = False
        await db.flush()
        await log_event(
            db, AuditAction.HOLDER_RETIRED, "holder", holder.id,
            actor_id=current_user["user_id"], before=before, after=snapshot(holder),
        )

    return HolderResponse.model_validate(holder)


@router.get("/{holder_id}/balance", response_model=BalanceResponse)
async def get_balance(
    holder_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Current float of a holder (zero when there is no history)."""
    holder = await _get_holder_or_404(db, holder_id)
    ledger = LedgerService(db)
    return BalanceResponse(
        holder_id=holder.id,
        full_name=holder.full_name,
        balance=await ledger.current_balance(holder_id),
    )


@router.get("/{holder_id}/ledger", response_model=LedgerHistoryResponse)
async def get_ledger_history(
    holder_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Full history of a holder in insertion order (oldest first)."""
    await _get_holder_or_404(db, holder_id)
    ledger = LedgerService(db)
    entries = await ledger.entries_for_holder(holder_id)
    return LedgerHistoryResponse(
        holder_id=holder_id,
        balance=await ledger.current_balance(holder_id),
        entries=[LedgerEntryResponse.model_validate(entry) for entry in entries],
    )


@router.get("/{holder_id}/ledger/verify", response_model=ChainVerificationResponse)
async def verify_ledger(
    holder_id: int,
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db)
):
    """Walk the holder's chain and report entries breaking the balance invariant."""
    await _get_holder_or_404(db, holder_id)
    ledger = LedgerService(db)
    entries = await ledger.entries_for_holder(holder_id)
    violations = await ledger.verify_chain(holder_id)
    return ChainVerificationResponse(
        holder_id=holder_id,
        entries_checked=len(entries),
        is_valid=not violations,
        violations=[ChainViolationResponse.model_validate(v) for v in violations],
    )


@router.post("/{holder_id}/adjustments", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def post_adjustment(
    holder_id: int,
    adjustment: AdjustmentCreate,
    current_user: dict = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    """Manual credit/debit of a holder's float (approver roles only)."""
    entry = await LedgerService(db, events=events).post_manual_adjustment(
        holder_id,
        adjustment.transaction_type,
        adjustment.amount,
        adjustment.description,
        current_user["user_id"],
        adjustment.entry_date or date.today(),
    )
    return LedgerEntryResponse.model_validate(entry)
