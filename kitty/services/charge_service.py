"""
Charge service for recording deposits and allocated charges.
"""
import uuid
import logging
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from kitty.core.config import settings
from kitty.core.exceptions import NotFoundError
from kitty.core.utils import parse_amount
from kitty.models.activity import Activity, ActivityType
from kitty.models.member import Member
from kitty.models.transaction import Transaction, TransactionKind
from kitty.services.allocation_service import (
    UNIT_GAMES, UNIT_GUESTS, allocate, describe_share, weight_for
)
from kitty.services.batch_service import BatchOutcome

logger = logging.getLogger(__name__)


def now() -> datetime:
    """Current time truncated to whole seconds, the precision batches are matched at."""
    return datetime.now().replace(microsecond=0)


def unit_for(activity: Activity) -> str:
    """Weight unit for an activity type."""
    return UNIT_GAMES if activity.type == ActivityType.PER_USE else UNIT_GUESTS


def label_for(activity: Activity) -> str:
    """Description label for charges on an activity."""
    if activity.type == ActivityType.PER_USE:
        return settings.CHARGE_LABEL_PER_USE
    return settings.CHARGE_LABEL_SPLIT


def get_activity(activity_id: int, db: Session) -> Activity:
    """Get an activity or raise ``NotFoundError``."""
    activity = db.query(Activity).filter(Activity.id == activity_id).first()
    if not activity:
        raise NotFoundError(f"Activity {activity_id} not found")
    return activity


def load_members(activity_id: int, member_ids: Iterable[int], db: Session) -> Dict[int, Member]:
    """Lock and return the given members, failing if any is not in the activity."""
    wanted = set(member_ids)
    if not wanted:
        return {}
    members = db.query(Member).filter(
        Member.activity_id == activity_id,
        Member.id.in_(wanted)
    ).with_for_update().all()
    found = {m.id: m for m in members}
    missing = sorted(wanted - set(found))
    if missing:
        raise NotFoundError(f"Members {missing} not found in activity {activity_id}")
    return found


def apply_balance_delta(member: Member, delta: float, deltas: Dict[int, float]) -> None:
    """Apply ``delta`` to the cached balance and track the net change."""
    member.balance = (member.balance or 0.0) + delta
    deltas[member.id] = deltas.get(member.id, 0.0) + delta


def write_allocation(
    activity: Activity,
    total_cost: float,
    weights: Dict[int, float],
    shares: Dict[int, float],
    members: Dict[int, Member],
    cash_member_ids: Iterable[int],
    timestamp: datetime,
    batch_id: str,
    deltas: Dict[int, float],
    db: Session
) -> List[Transaction]:
    """
    Insert one expense row per allocated share and charge the pool.

    Members paying cash get a zero-amount row noting their share; their
    balance is not touched.
    """
    cash = set(cash_member_ids or ())
    label = label_for(activity)
    unit = unit_for(activity)
    rows = []
    for member_id, share in shares.items():
        paid_cash = member_id in cash
        amount = 0.0 if paid_cash else -share
        row = Transaction(
            activity_id=activity.id,
            member_id=member_id,
            kind=TransactionKind.EXPENSE,
            amount=amount,
            description=describe_share(
                label, total_cost, weights[member_id], unit,
                cash_share=share if paid_cash else None
            ),
            timestamp=timestamp,
            batch_id=batch_id,
            batch_total=total_cost,
            weight=weights[member_id],
            paid_cash=paid_cash
        )
        db.add(row)
        apply_balance_delta(members[member_id], amount, deltas)
        rows.append(row)
    return rows


def record_charge(
    activity_id: int,
    total_cost: Any,
    counts: Dict[int, Optional[int]],
    cash_member_ids: Optional[Iterable[int]] = None,
    db: Session = None
) -> BatchOutcome:
    """
    Record a shared charge as a new batch.

    ``counts`` maps each participating member to their games played
    (cost-per-use activities) or guests brought (split activities).
    Invalid input leaves the ledger untouched and reports why.
    """
    activity = get_activity(activity_id, db)

    cost = parse_amount(total_cost)
    if cost is None or cost <= 0:
        logger.info(f"Ignoring charge on activity {activity_id}: invalid total cost {total_cost!r}")
        return BatchOutcome.skipped("Total cost must be a positive number")
    if not counts:
        logger.info(f"Ignoring charge on activity {activity_id}: no participants selected")
        return BatchOutcome.skipped("No participants selected")

    unit = unit_for(activity)
    weights = {member_id: weight_for(unit, count) for member_id, count in counts.items()}
    shares = allocate(cost, weights)
    if not shares:
        logger.info(f"Ignoring charge on activity {activity_id}: no participant has a positive weight")
        return BatchOutcome.skipped(f"No participant has any {unit}")

    try:
        members = load_members(activity_id, shares.keys(), db)
        deltas: Dict[int, float] = {}
        batch_id = str(uuid.uuid4())
        timestamp = now()
        rows = write_allocation(
            activity, cost, weights, shares, members, cash_member_ids or (),
            timestamp, batch_id, deltas, db
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    for row in rows:
        db.refresh(row)
    logger.info(f"Recorded batch {batch_id} on activity {activity_id}: total {cost} over {len(rows)} members")
    return BatchOutcome(
        applied=True,
        batch_id=batch_id,
        timestamp=timestamp,
        total=cost,
        transactions=rows,
        balance_deltas=deltas
    )


def deposit(activity_id: int, member_id: int, amount: Any, db: Session) -> Optional[Transaction]:
    """Credit a member's balance. Non-positive or non-numeric amounts are ignored."""
    get_activity(activity_id, db)
    value = parse_amount(amount)
    if value is None or value <= 0:
        logger.info(f"Ignoring deposit for member {member_id}: invalid amount {amount!r}")
        return None

    try:
        member = load_members(activity_id, [member_id], db)[member_id]
        row = Transaction(
            activity_id=activity_id,
            member_id=member_id,
            kind=TransactionKind.DEPOSIT,
            amount=value,
            description=settings.DEPOSIT_LABEL,
            timestamp=now()
        )
        db.add(row)
        member.balance = (member.balance or 0.0) + value
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(row)
    logger.info(f"Deposited {value} for member {member_id} on activity {activity_id}")
    return row
