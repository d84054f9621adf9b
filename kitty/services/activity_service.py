"""
Activity service for activities, members and ledger views.
"""
import logging
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import func
from typing import Any, Dict, List, Optional
from kitty.core.config import settings
from kitty.core.exceptions import NotFoundError
from kitty.core.utils import parse_amount
from kitty.models.activity import Activity, ActivityType
from kitty.models.member import Member
from kitty.models.transaction import Transaction, TransactionKind
from kitty.services.batch_service import batch_key
from kitty.services.charge_service import get_activity

logger = logging.getLogger(__name__)


class HistoryGroup:
    """Rows of one charge event (or one standalone entry) for the history view."""
    def __init__(self, key: str, first: Transaction):
        self.key = key
        self.timestamp = first.timestamp
        self.batch_id = first.batch_id
        self.kind = first.kind
        self.total = 0.0
        self.records: List[Transaction] = []

    def add(self, row: Transaction):
        if self.kind == TransactionKind.VOID and row.kind != TransactionKind.VOID:
            self.kind = row.kind
        if row.kind == TransactionKind.EXPENSE:
            self.total += abs(row.amount or 0.0)
        elif row.kind == TransactionKind.DEPOSIT:
            self.total += row.amount or 0.0
        if row.batch_total is not None and row.kind != TransactionKind.VOID:
            # Cash-settled shares are stored as zero, the recorded total covers them
            self.total = max(self.total, row.batch_total)
        self.records.append(row)


class BalanceAudit:
    """Stored versus recomputed balance for one member."""
    def __init__(self, member: Member, computed: float):
        self.member_id = member.id
        self.name = member.name
        self.stored_balance = member.balance or 0.0
        self.computed_balance = computed
        self.drift = self.stored_balance - computed


def create_activity(
    name: str,
    activity_type: Optional[ActivityType] = None,
    cost_per_unit: Any = None,
    alert_threshold: Any = None,
    db: Session = None
) -> Activity:
    """Create a new activity."""
    activity = Activity(
        name=name,
        type=activity_type or ActivityType(settings.DEFAULT_ACTIVITY_TYPE),
        cost_per_unit=parse_amount(cost_per_unit) or 0.0,
        alert_threshold=_threshold_or_default(alert_threshold)
    )
    db.add(activity)
    db.commit()
    db.refresh(activity)
    logger.info(f"Created activity {activity.id} ({activity.type.value})")
    return activity


def _threshold_or_default(value: Any) -> float:
    threshold = parse_amount(value)
    return settings.DEFAULT_ALERT_THRESHOLD if threshold is None else threshold


def list_activities(db: Session) -> List[Activity]:
    """List activities, newest first."""
    return db.query(Activity).order_by(Activity.created_at.desc(), Activity.id.desc()).all()


def update_activity_settings(
    activity_id: int,
    name: Optional[str] = None,
    cost_per_unit: Any = None,
    alert_threshold: Any = None,
    db: Session = None
) -> Activity:
    """Update name, cost per unit and alert threshold."""
    activity = get_activity(activity_id, db)
    if name:
        activity.name = name
    if cost_per_unit is not None:
        activity.cost_per_unit = parse_amount(cost_per_unit) or 0.0
    if alert_threshold is not None:
        activity.alert_threshold = _threshold_or_default(alert_threshold)
    db.commit()
    db.refresh(activity)
    return activity


def delete_activity(activity_id: int, db: Session) -> None:
    """Delete an activity with its members and transactions."""
    activity = get_activity(activity_id, db)
    db.delete(activity)
    db.commit()
    logger.info(f"Deleted activity {activity_id}")


def list_members(activity_id: int, db: Session) -> List[Member]:
    """Members of an activity ordered by name."""
    get_activity(activity_id, db)
    return db.query(Member).filter(Member.activity_id == activity_id).order_by(Member.name, Member.id).all()


def low_balance_members(activity: Activity, members: List[Member]) -> List[Member]:
    """Members whose balance dropped below the activity's alert threshold."""
    return [m for m in members if (m.balance or 0.0) < activity.alert_threshold]


def get_member(activity_id: int, member_id: int, db: Session) -> Member:
    """Get a member of the activity or raise ``NotFoundError``."""
    member = db.query(Member).filter(
        Member.id == member_id,
        Member.activity_id == activity_id
    ).first()
    if not member:
        raise NotFoundError(f"Member {member_id} not found in activity {activity_id}")
    return member


def add_member(activity_id: int, name: Optional[str], db: Session) -> Optional[Member]:
    """Add a member with a zero balance. A blank name is ignored."""
    get_activity(activity_id, db)
    name = (name or "").strip()
    if not name:
        return None
    member = Member(activity_id=activity_id, name=name, balance=0.0)
    db.add(member)
    db.commit()
    db.refresh(member)
    return member


def rename_member(activity_id: int, member_id: int, name: str, db: Session) -> Member:
    """Rename a member. A blank name leaves the member unchanged."""
    member = get_member(activity_id, member_id, db)
    name = (name or "").strip()
    if name:
        member.name = name
        db.commit()
        db.refresh(member)
    return member


def delete_member(activity_id: int, member_id: int, db: Session) -> None:
    """Delete a member together with their transactions."""
    member = get_member(activity_id, member_id, db)
    db.delete(member)
    db.commit()
    logger.info(f"Deleted member {member_id} from activity {activity_id}")


def get_history(activity_id: int, db: Session) -> List[HistoryGroup]:
    """
    Get the activity's transactions grouped by batch, newest first.

    Rows without a batch id are grouped by their exact timestamp.
    """
    get_activity(activity_id, db)
    rows = db.query(Transaction).options(
        joinedload(Transaction.member)
    ).filter(
        Transaction.activity_id == activity_id
    ).order_by(Transaction.timestamp.desc(), Transaction.id).all()

    groups: Dict[str, HistoryGroup] = {}
    for row in rows:
        key = batch_key(row)
        if key not in groups:
            groups[key] = HistoryGroup(key, row)
        groups[key].add(row)

    return sorted(groups.values(), key=lambda g: g.timestamp, reverse=True)


def get_recent_transactions(activity_id: int, db: Session, limit: Optional[int] = None) -> List[Transaction]:
    """Latest transactions for the share summary."""
    return db.query(Transaction).options(
        joinedload(Transaction.member)
    ).filter(
        Transaction.activity_id == activity_id
    ).order_by(
        Transaction.timestamp.desc(), Transaction.id.desc()
    ).limit(limit or settings.SHARE_TRANSACTION_LIMIT).all()


def _computed_balances(activity_id: int, db: Session) -> Dict[int, float]:
    totals = db.query(
        Transaction.member_id, func.coalesce(func.sum(Transaction.amount), 0.0)
    ).filter(
        Transaction.activity_id == activity_id
    ).group_by(Transaction.member_id).all()
    return {member_id: float(total) for member_id, total in totals}


def audit_balances(activity_id: int, db: Session) -> List[BalanceAudit]:
    """Compare every cached balance with the sum of the member's transactions."""
    members = list_members(activity_id, db)
    computed = _computed_balances(activity_id, db)
    return [BalanceAudit(m, computed.get(m.id, 0.0)) for m in members]


def recalculate_balances(activity_id: int, db: Session) -> List[BalanceAudit]:
    """Rebuild cached balances from transactions. Returns the drift that was corrected."""
    get_activity(activity_id, db)
    try:
        members = db.query(Member).filter(
            Member.activity_id == activity_id
        ).order_by(Member.name, Member.id).with_for_update().all()
        computed = _computed_balances(activity_id, db)
        report = [BalanceAudit(m, computed.get(m.id, 0.0)) for m in members]
        for member in members:
            member.balance = computed.get(member.id, 0.0)
        db.commit()
    except Exception:
        db.rollback()
        raise

    corrected = [item for item in report if abs(item.drift) > 1e-9]
    if corrected:
        logger.warning(f"Corrected balance drift for {len(corrected)} members on activity {activity_id}")
    return report
