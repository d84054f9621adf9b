"""
Charge, batch edit and transaction void routes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Dict, List, Optional, Set, Tuple
from kitty.db.session import get_db
from kitty.schemas.transaction import (
    ChargeCreate, BatchUpdate, BatchTimestampUpdate, BatchOutcomeResponse, ParticipantInput
)
from kitty.services import charge_service, reconcile_service
from kitty.services.batch_service import BatchOutcome
from kitty.api.routes.activities import get_activity_or_404, transaction_response

router = APIRouter(prefix="/activities", tags=["charges"])


def split_participants(
    participants: Optional[List[ParticipantInput]]
) -> Tuple[Optional[Dict[int, Optional[int]]], Optional[Set[int]]]:
    """Turn participant inputs into a count map and the set paying cash."""
    if participants is None:
        return None, None
    counts = {p.member_id: p.count for p in participants}
    cash = {p.member_id for p in participants if not p.use_pool}
    return counts, cash


def outcome_response(outcome: BatchOutcome) -> BatchOutcomeResponse:
    return BatchOutcomeResponse(
        applied=outcome.applied,
        reason=outcome.reason,
        batch_id=outcome.batch_id,
        timestamp=outcome.timestamp,
        total=outcome.total,
        transactions=[transaction_response(t) for t in outcome.transactions],
        balance_deltas=outcome.balance_deltas
    )


@router.post("/{activity_id}/charges", response_model=BatchOutcomeResponse)
async def record_charge(
    activity_id: int,
    charge_data: ChargeCreate,
    db: Session = Depends(get_db)
):
    """
    Record a shared charge.

    Invalid totals or an empty participant list are not errors: nothing is
    written and the response carries ``applied: false`` with the reason.
    """
    get_activity_or_404(activity_id, db)
    counts, cash = split_participants(charge_data.participants)
    outcome = charge_service.record_charge(
        activity_id, charge_data.total_cost, counts, cash_member_ids=cash, db=db
    )
    return outcome_response(outcome)


@router.put("/{activity_id}/batches/by-timestamp", response_model=BatchOutcomeResponse)
async def update_batch_by_timestamp(
    activity_id: int,
    batch_data: BatchTimestampUpdate,
    db: Session = Depends(get_db)
):
    """Edit a batch recorded before batch ids existed, located by its exact timestamp."""
    get_activity_or_404(activity_id, db)
    counts, cash = split_participants(batch_data.participants)
    outcome = reconcile_service.edit_batch(
        activity_id,
        db,
        timestamp=batch_data.timestamp,
        description=batch_data.description,
        new_total=batch_data.new_total,
        counts=counts,
        cash_member_ids=cash
    )
    return outcome_response(outcome)


@router.put("/{activity_id}/batches/{batch_id}", response_model=BatchOutcomeResponse)
async def update_batch(
    activity_id: int,
    batch_id: str,
    batch_data: BatchUpdate,
    db: Session = Depends(get_db)
):
    """Change a batch's total and/or participants and reallocate."""
    get_activity_or_404(activity_id, db)
    counts, cash = split_participants(batch_data.participants)
    outcome = reconcile_service.edit_batch(
        activity_id,
        db,
        batch_id=batch_id,
        new_total=batch_data.new_total,
        counts=counts,
        cash_member_ids=cash
    )
    return outcome_response(outcome)


@router.post("/{activity_id}/transactions/{transaction_id}/void", response_model=BatchOutcomeResponse)
async def void_transaction(
    activity_id: int,
    transaction_id: int,
    db: Session = Depends(get_db)
):
    """Void a transaction and redistribute its batch among the remaining rows."""
    get_activity_or_404(activity_id, db)
    outcome = reconcile_service.void_transaction(activity_id, transaction_id, db)
    return outcome_response(outcome)


@router.delete("/{activity_id}/transactions/{transaction_id}", response_model=BatchOutcomeResponse)
async def remove_transaction(
    activity_id: int,
    transaction_id: int,
    db: Session = Depends(get_db)
):
    """Delete a transaction and redistribute its batch among the remaining rows."""
    get_activity_or_404(activity_id, db)
    outcome = reconcile_service.remove_transaction(activity_id, transaction_id, db)
    return outcome_response(outcome)
