"""
Activity management routes.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from kitty.db.session import get_db
from kitty.models.activity import Activity
from kitty.models.transaction import Transaction
from kitty.schemas.activity import (
    ActivityCreate, ActivityUpdate, ActivityResponse, ActivityDashboardResponse,
    ShareSummaryResponse, BalanceAuditItem
)
from kitty.schemas.member import MemberResponse
from kitty.schemas.transaction import TransactionResponse, HistoryGroupResponse
from kitty.services import activity_service

router = APIRouter(prefix="/activities", tags=["activities"])


def get_activity_or_404(activity_id: int, db: Session) -> Activity:
    """Get an activity or fail with 404."""
    activity = db.query(Activity).filter(Activity.id == activity_id).first()
    if not activity:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Activity not found"
        )
    return activity


def transaction_response(transaction: Transaction) -> TransactionResponse:
    """Build a transaction response including the member's name."""
    return TransactionResponse(
        id=transaction.id,
        activity_id=transaction.activity_id,
        member_id=transaction.member_id,
        member_name=transaction.member.name if transaction.member else None,
        kind=transaction.kind,
        amount=transaction.amount,
        description=transaction.description or "",
        timestamp=transaction.timestamp,
        batch_id=transaction.batch_id,
        batch_total=transaction.batch_total,
        weight=transaction.weight,
        paid_cash=bool(transaction.paid_cash)
    )


@router.post("", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
async def create_activity(
    activity_data: ActivityCreate,
    db: Session = Depends(get_db)
):
    """Create a new activity."""
    return activity_service.create_activity(
        name=activity_data.name,
        activity_type=activity_data.type,
        cost_per_unit=activity_data.cost_per_unit,
        alert_threshold=activity_data.alert_threshold,
        db=db
    )


@router.get("", response_model=List[ActivityResponse])
async def list_activities(db: Session = Depends(get_db)):
    """List all activities, newest first."""
    return activity_service.list_activities(db)


@router.get("/{activity_id}", response_model=ActivityDashboardResponse)
async def get_activity_dashboard(
    activity_id: int,
    db: Session = Depends(get_db)
):
    """Get activity details with members and low-balance alerts."""
    activity = get_activity_or_404(activity_id, db)
    members = activity_service.list_members(activity_id, db)
    alert_members = activity_service.low_balance_members(activity, members)

    return ActivityDashboardResponse(
        activity=ActivityResponse.model_validate(activity),
        members=[MemberResponse.model_validate(m) for m in members],
        alert_members=[MemberResponse.model_validate(m) for m in alert_members]
    )


@router.put("/{activity_id}", response_model=ActivityResponse)
async def update_activity(
    activity_id: int,
    activity_data: ActivityUpdate,
    db: Session = Depends(get_db)
):
    """Update activity settings."""
    get_activity_or_404(activity_id, db)
    return activity_service.update_activity_settings(
        activity_id,
        name=activity_data.name,
        cost_per_unit=activity_data.cost_per_unit,
        alert_threshold=activity_data.alert_threshold,
        db=db
    )


@router.delete("/{activity_id}")
async def delete_activity(
    activity_id: int,
    db: Session = Depends(get_db)
):
    """Delete an activity and everything it owns."""
    get_activity_or_404(activity_id, db)
    activity_service.delete_activity(activity_id, db)
    return {"message": "Activity deleted successfully"}


@router.get("/{activity_id}/history", response_model=List[HistoryGroupResponse])
async def get_history(
    activity_id: int,
    db: Session = Depends(get_db)
):
    """Get transaction history grouped by charge event, newest first."""
    get_activity_or_404(activity_id, db)
    groups = activity_service.get_history(activity_id, db)

    return [
        HistoryGroupResponse(
            key=group.key,
            timestamp=group.timestamp,
            batch_id=group.batch_id,
            kind=group.kind,
            total=group.total,
            records=[transaction_response(t) for t in group.records]
        )
        for group in groups
    ]


@router.get("/{activity_id}/share", response_model=ShareSummaryResponse)
async def get_share_summary(
    activity_id: int,
    db: Session = Depends(get_db)
):
    """Get balances and the latest transactions for sharing with members."""
    activity = get_activity_or_404(activity_id, db)
    members = activity_service.list_members(activity_id, db)
    transactions = activity_service.get_recent_transactions(activity_id, db)

    return ShareSummaryResponse(
        activity=ActivityResponse.model_validate(activity),
        members=[MemberResponse.model_validate(m) for m in members],
        transactions=[transaction_response(t) for t in transactions]
    )


@router.get("/{activity_id}/audit", response_model=List[BalanceAuditItem])
async def audit_balances(
    activity_id: int,
    db: Session = Depends(get_db)
):
    """Compare cached balances with the sum of each member's transactions."""
    get_activity_or_404(activity_id, db)
    return activity_service.audit_balances(activity_id, db)


@router.post("/{activity_id}/recalculate-balances", response_model=List[BalanceAuditItem])
async def recalculate_balances(
    activity_id: int,
    db: Session = Depends(get_db)
):
    """Rebuild cached balances from transactions and report what changed."""
    get_activity_or_404(activity_id, db)
    return activity_service.recalculate_balances(activity_id, db)
