"""
Reconciliation of batches after an edit, void or removal.

Every operation here runs as one database transaction: the batch rows and
the members they touch are locked, old amounts are reversed out of the
cached balances, the allocation is recomputed and the new amounts applied
before a single commit. Any failure rolls the whole request back.
"""
import uuid
import logging
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
from kitty.core.config import settings
from kitty.core.exceptions import LedgerError, NotFoundError, ReconciliationError
from kitty.core.utils import parse_amount
from kitty.models.activity import Activity
from kitty.models.transaction import Transaction, TransactionKind
from kitty.services.allocation_service import (
    allocate, describe_share, parse_total, parse_weight, weight_for
)
from kitty.services.batch_service import (
    BatchOutcome, find_batch, find_batch_by_timestamp, siblings_of
)
from kitty.services.charge_service import (
    apply_balance_delta, get_activity, label_for, load_members, unit_for, write_allocation
)

logger = logging.getLogger(__name__)


def recover_total(rows: List[Transaction], new_total: Optional[float] = None) -> Tuple[float, str]:
    """
    Work out the total a batch was allocated from.

    Tries, in order: an explicit new total, the stored ``batch_total``, the
    ``(total $...)`` fragment of any description, and finally the sum of the
    absolute amounts of the given rows. Returns the total and where it came from.
    """
    if new_total is not None:
        return new_total, "explicit"

    for row in rows:
        if row.batch_total is not None:
            return row.batch_total, "stored"

    for row in rows:
        parsed = parse_total(row.description)
        if parsed is not None:
            return parsed, "description"

    fallback = sum(abs(row.amount or 0.0) for row in rows)
    logger.warning(
        f"No total recorded for batch rows {[row.id for row in rows]}; "
        f"falling back to sum of amounts {fallback}"
    )
    return fallback, "amounts"


def recover_weight(row: Optional[Transaction], unit: str, count: Optional[int] = None) -> float:
    """
    Work out a participant's weight.

    A count supplied by the caller wins, then the stored weight, then the
    ``[n guests]`` / ``[n games]`` fragment, then a single head. A member
    with no row and no count is weighed the way a new charge would weigh
    them: one head, or no games.
    """
    if count is not None or row is None:
        return weight_for(unit, count)
    if row.weight is not None:
        return row.weight
    parsed = parse_weight(row.description)
    if parsed is not None:
        return parsed
    logger.warning(f"No weight recorded for transaction {row.id}; counting a single head")
    return 1.0


def _load_batch(
    activity_id: int,
    db: Session,
    batch_id: Optional[str] = None,
    timestamp: Optional[datetime] = None,
    description: Optional[str] = None
) -> List[Transaction]:
    if batch_id:
        rows = find_batch(db, activity_id, batch_id, lock=True)
    elif timestamp is not None:
        rows = find_batch_by_timestamp(db, activity_id, timestamp, description=description, lock=True)
    else:
        raise ReconciliationError("A batch id or timestamp is required")
    if not rows:
        raise NotFoundError(f"Batch {batch_id or timestamp} not found in activity {activity_id}")
    return rows


def edit_batch(
    activity_id: int,
    db: Session,
    batch_id: Optional[str] = None,
    timestamp: Optional[datetime] = None,
    description: Optional[str] = None,
    new_total: Any = None,
    counts: Optional[Dict[int, Optional[int]]] = None,
    cash_member_ids: Optional[Iterable[int]] = None
) -> BatchOutcome:
    """
    Replace a batch with a recomputed allocation.

    ``new_total`` changes the total; ``counts`` replaces the participant set
    (a ``None`` count keeps that member's previous weight). The old rows are
    reversed and deleted and new rows are written at the same timestamp and
    batch id. Legacy rows found by timestamp are given a batch id.
    """
    activity = get_activity(activity_id, db)

    total_override = None
    if new_total is not None:
        total_override = parse_amount(new_total)
        if total_override is None or total_override <= 0:
            logger.info(f"Ignoring batch edit on activity {activity_id}: invalid total {new_total!r}")
            return BatchOutcome.skipped("Total cost must be a positive number")
    if counts is not None and not counts:
        logger.info(f"Ignoring batch edit on activity {activity_id}: no participants selected")
        return BatchOutcome.skipped("No participants selected")

    try:
        outcome = _rewrite_batch(
            activity, db, batch_id, timestamp, description, total_override, counts, cash_member_ids
        )
        db.commit()
    except LedgerError:
        db.rollback()
        raise
    except Exception:
        logger.error(f"Batch edit failed on activity {activity_id}", exc_info=True)
        db.rollback()
        raise

    if not outcome.applied:
        return outcome
    for row in outcome.transactions:
        db.refresh(row)
    logger.info(
        f"Reallocated batch {outcome.batch_id} on activity {activity_id}: "
        f"total {outcome.total} over {len(outcome.transactions)} members"
    )
    return outcome


def edit_batch_total(
    activity_id: int,
    new_total: Any,
    db: Session,
    batch_id: Optional[str] = None,
    timestamp: Optional[datetime] = None
) -> BatchOutcome:
    """Reallocate a batch over the same participants with a new total."""
    return edit_batch(activity_id, db, batch_id=batch_id, timestamp=timestamp, new_total=new_total)


def edit_batch_participants(
    activity_id: int,
    counts: Dict[int, Optional[int]],
    db: Session,
    batch_id: Optional[str] = None,
    timestamp: Optional[datetime] = None,
    new_total: Any = None
) -> BatchOutcome:
    """Reallocate a batch over a new participant set, keeping its total unless given."""
    return edit_batch(
        activity_id, db, batch_id=batch_id, timestamp=timestamp, new_total=new_total, counts=counts
    )


def _rewrite_batch(
    activity: Activity,
    db: Session,
    batch_id: Optional[str],
    timestamp: Optional[datetime],
    description: Optional[str],
    total_override: Optional[float],
    counts: Optional[Dict[int, Optional[int]]],
    cash_member_ids: Optional[Iterable[int]]
) -> BatchOutcome:
    rows = _load_batch(activity.id, db, batch_id=batch_id, timestamp=timestamp, description=description)
    unit = unit_for(activity)

    rows_by_member: Dict[int, Transaction] = {}
    for row in rows:
        rows_by_member.setdefault(row.member_id, row)

    total, source = recover_total(rows, total_override)
    if total <= 0:
        raise ReconciliationError(f"Recovered batch total {total} from {source} is not positive")

    participants = list(counts.keys()) if counts is not None else list(rows_by_member.keys())
    weights = {
        member_id: recover_weight(
            rows_by_member.get(member_id), unit, counts.get(member_id) if counts else None
        )
        for member_id in participants
    }
    if not any(weight > 0 for weight in weights.values()):
        if counts is not None:
            logger.info(f"Ignoring batch edit on activity {activity.id}: no participant has a positive weight")
            return BatchOutcome.skipped(f"No participant has any {unit}")
        raise ReconciliationError("No participant has a positive weight after the edit")
    if cash_member_ids is None:
        cash = {member_id for member_id, row in rows_by_member.items() if row.paid_cash}
    else:
        cash = set(cash_member_ids)

    try:
        members = load_members(activity.id, set(participants) | {row.member_id for row in rows}, db)
    except NotFoundError as e:
        raise ReconciliationError(str(e)) from e

    new_batch_id = rows[0].batch_id or str(uuid.uuid4())
    timestamp = rows[0].timestamp

    deltas: Dict[int, float] = {}
    for row in rows:
        apply_balance_delta(members[row.member_id], -(row.amount or 0.0), deltas)
        db.delete(row)
    db.flush()

    shares = allocate(total, weights)

    new_rows = write_allocation(
        activity, total, weights, shares, members, cash,
        timestamp, new_batch_id, deltas, db
    )
    db.flush()
    return BatchOutcome(
        applied=True,
        batch_id=new_batch_id,
        timestamp=timestamp,
        total=total,
        transactions=new_rows,
        balance_deltas=deltas
    )


def void_transaction(activity_id: int, transaction_id: int, db: Session) -> BatchOutcome:
    """Void one row in place and spread its batch's total over the rest."""
    return _retire_transaction(activity_id, transaction_id, db, hard_delete=False)


def remove_transaction(activity_id: int, transaction_id: int, db: Session) -> BatchOutcome:
    """Delete one row and spread its batch's total over the rest."""
    return _retire_transaction(activity_id, transaction_id, db, hard_delete=True)


def _retire_transaction(activity_id: int, transaction_id: int, db: Session, hard_delete: bool) -> BatchOutcome:
    activity = get_activity(activity_id, db)
    target = db.query(Transaction).filter(
        Transaction.id == transaction_id,
        Transaction.activity_id == activity_id
    ).with_for_update().first()
    if not target:
        raise NotFoundError(f"Transaction {transaction_id} not found in activity {activity_id}")
    if target.kind == TransactionKind.VOID and not hard_delete:
        return BatchOutcome.skipped("Transaction is already void")

    try:
        outcome = _redistribute(activity, target, db, hard_delete)
        db.commit()
    except LedgerError:
        db.rollback()
        raise
    except Exception:
        logger.error(f"Retiring transaction {transaction_id} failed", exc_info=True)
        db.rollback()
        raise

    for row in outcome.transactions:
        db.refresh(row)
    action = "Removed" if hard_delete else "Voided"
    logger.info(
        f"{action} transaction {transaction_id} on activity {activity_id}; "
        f"redistributed over {len(outcome.transactions)} siblings"
    )
    return outcome


def _redistribute(activity: Activity, target: Transaction, db: Session, hard_delete: bool) -> BatchOutcome:
    siblings = siblings_of(db, target, lock=True)
    known_rows = [target] + siblings
    # Recovered before the target is zeroed, its amount counts toward the fallback
    total, source = recover_total(known_rows) if siblings else (None, None)
    unit = unit_for(activity)
    label = label_for(activity)
    batch_id = target.batch_id
    timestamp = target.timestamp

    members = load_members(activity.id, {row.member_id for row in known_rows}, db)
    deltas: Dict[int, float] = {}

    apply_balance_delta(members[target.member_id], -(target.amount or 0.0), deltas)
    if hard_delete:
        db.delete(target)
    else:
        target.amount = 0.0
        target.kind = TransactionKind.VOID
        target.description = f"{settings.VOID_PREFIX} {target.description or ''}".rstrip()

    if not siblings:
        db.flush()
        return BatchOutcome(applied=True, batch_id=batch_id, timestamp=timestamp, balance_deltas=deltas)

    if total <= 0:
        raise ReconciliationError(
            f"Cannot redistribute batch of transaction {target.id}: recovered total {total} from {source}"
        )

    weights = {row.id: recover_weight(row, unit) for row in siblings}
    shares = allocate(total, weights)
    if not shares:
        raise ReconciliationError(f"No remaining participant in the batch of transaction {target.id}")

    for row in siblings:
        share = shares.get(row.id, 0.0)
        new_amount = 0.0 if row.paid_cash else -share
        apply_balance_delta(members[row.member_id], new_amount - (row.amount or 0.0), deltas)
        row.amount = new_amount
        row.batch_total = total
        row.weight = weights[row.id]
        # Legacy rows keep their original wording
        if row.batch_id:
            row.description = describe_share(
                label, total, weights[row.id], unit,
                cash_share=share if row.paid_cash else None
            )
    db.flush()

    return BatchOutcome(
        applied=True,
        batch_id=batch_id,
        timestamp=timestamp,
        total=total,
        transactions=siblings,
        balance_deltas=deltas
    )
