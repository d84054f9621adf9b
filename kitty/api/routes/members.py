"""
Member and deposit routes.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from kitty.db.session import get_db
from kitty.schemas.member import MemberCreate, MemberUpdate, MemberResponse, DepositCreate
from kitty.schemas.transaction import TransactionResponse
from kitty.services import activity_service, charge_service
from kitty.api.routes.activities import get_activity_or_404, transaction_response

router = APIRouter(prefix="/activities", tags=["members"])


@router.get("/{activity_id}/members", response_model=List[MemberResponse])
async def list_members(
    activity_id: int,
    db: Session = Depends(get_db)
):
    """List members ordered by name."""
    get_activity_or_404(activity_id, db)
    return activity_service.list_members(activity_id, db)


@router.post("/{activity_id}/members", response_model=Optional[MemberResponse], status_code=status.HTTP_201_CREATED)
async def add_member(
    activity_id: int,
    member_data: MemberCreate,
    db: Session = Depends(get_db)
):
    """Add a member. Returns null when the name is blank."""
    get_activity_or_404(activity_id, db)
    return activity_service.add_member(activity_id, member_data.name, db)


@router.put("/{activity_id}/members/{member_id}", response_model=MemberResponse)
async def rename_member(
    activity_id: int,
    member_id: int,
    member_data: MemberUpdate,
    db: Session = Depends(get_db)
):
    """Rename a member."""
    return activity_service.rename_member(activity_id, member_id, member_data.name, db)


@router.delete("/{activity_id}/members/{member_id}")
async def delete_member(
    activity_id: int,
    member_id: int,
    db: Session = Depends(get_db)
):
    """Delete a member and their transactions."""
    activity_service.delete_member(activity_id, member_id, db)
    return {"message": "Member deleted successfully"}


@router.post("/{activity_id}/deposits", response_model=Optional[TransactionResponse])
async def deposit(
    activity_id: int,
    deposit_data: DepositCreate,
    db: Session = Depends(get_db)
):
    """Deposit into a member's balance. Returns null when the amount is not positive."""
    get_activity_or_404(activity_id, db)
    transaction = charge_service.deposit(activity_id, deposit_data.member_id, deposit_data.amount, db)
    if transaction is None:
        return None
    return transaction_response(transaction)
