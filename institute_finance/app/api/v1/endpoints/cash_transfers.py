"""
Cash Transfer API Endpoints.

Record, edit and delete hand-overs of cash between two holders. Edits and
deletes are retroactive: every later balance of the affected holders is
recomputed in the same transaction.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from institute_finance.app.core.dependencies import get_current_user
from institute_finance.app.db.session import get_db
from institute_finance.app.domain.transfers.transfer_service import TransferService
from institute_finance.app.schemas.transfer import (
    TransferCreate, TransferUpdate, TransferResponse, TransferListResponse, TransferDeleteResponse,
)
from institute_finance.app.services.event_publisher import EventPublisher, get_event_publisher

router = APIRouter(prefix="/cash-transfers", tags=["Cash Transfers"])


@router.post("", response_model=TransferResponse, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    transfer_data: TransferCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    """Record a transfer: debit the sender, credit the receiver."""
    transfer = await TransferService(db, events=events).create(
        sender_id=transfer_data.sender_id,
        receiver_id=transfer_data.receiver_id,
        amount=transfer_data.amount,
        transfer_date=transfer_data.transfer_date,
        notes=transfer_data.notes,
        actor_id=current_user["user_id"],
    )
    return TransferResponse.model_validate(transfer)


@router.get("", response_model=TransferListResponse)
async def list_transfers(
    holder_id: Optional[int] = Query(None, description="Only transfers where this holder is a party"),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List transfers, newest first."""
    transfers = await TransferService(db).list(
        holder_id=holder_id,
        from_date=from_date,
        to_date=to_date,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return TransferListResponse(
        transfers=[TransferResponse.model_validate(t) for t in transfers],
        page=page,
        page_size=page_size,
    )


@router.get("/{transfer_id}", response_model=TransferResponse)
async def get_transfer(
    transfer_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    transfer = await TransferService(db).get(transfer_id)
    return TransferResponse.model_validate(transfer)


@router.put("/{transfer_id}", response_model=TransferResponse)
async def edit_transfer(
    transfer_id: int,
    transfer_data: TransferUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    """
    Edit a transfer. Only the fields sent are changed.

    Changing parties, amount or date rewrites both ledger rows in place and
    recomputes every affected holder from that point onward.
    """
    changes = transfer_data.model_dump(exclude_unset=True)
    transfer = await TransferService(db, events=events).edit(
        transfer_id,
        actor_id=current_user["user_id"],
        **changes,
    )
    return TransferResponse.model_validate(transfer)


@router.delete("/{transfer_id}", response_model=TransferDeleteResponse)
async def delete_transfer(
    transfer_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher)
):
    """Delete a transfer and splice its effect out of both holders' chains."""
    await TransferService(db, events=events).delete(transfer_id, actor_id=current_user["user_id"])
    return TransferDeleteResponse(message="Cash transfer deleted", transfer_id=transfer_id)
