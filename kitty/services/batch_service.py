"""
Batch identification for ledger rows written by one allocation.
"""
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Dict, List, Optional
from kitty.core.utils import serialize_date
from kitty.models.transaction import Transaction, TransactionKind


class BatchOutcome:
    """Result of writing or recomputing a batch."""
    def __init__(
        self,
        applied: bool,
        reason: Optional[str] = None,
        batch_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        total: Optional[float] = None,
        transactions: Optional[List[Transaction]] = None,
        balance_deltas: Optional[Dict[int, float]] = None
    ):
        self.applied = applied
        self.reason = reason
        self.batch_id = batch_id
        self.timestamp = timestamp
        self.total = total
        self.transactions = transactions or []
        self.balance_deltas = balance_deltas or {}

    @classmethod
    def skipped(cls, reason: str) -> "BatchOutcome":
        """Outcome for lenient input validation: nothing was written."""
        return cls(applied=False, reason=reason)


def _active_expenses(db: Session, activity_id: int, lock: bool):
    query = db.query(Transaction).filter(
        Transaction.activity_id == activity_id,
        Transaction.kind == TransactionKind.EXPENSE
    )
    if lock:
        query = query.with_for_update()
    return query


def find_batch(db: Session, activity_id: int, batch_id: str, lock: bool = False) -> List[Transaction]:
    """Get the non-void rows of a batch by its identifier."""
    return _active_expenses(db, activity_id, lock).filter(
        Transaction.batch_id == batch_id
    ).order_by(Transaction.id).all()


def find_batch_by_timestamp(
    db: Session,
    activity_id: int,
    timestamp: datetime,
    description: Optional[str] = None,
    lock: bool = False
) -> List[Transaction]:
    """
    Get the non-void rows without a batch id recorded at exactly ``timestamp``.

    Used for rows written before batch identifiers existed. Rows that carry
    a batch id never match, even when another batch shares their second.
    Passing a description narrows the match to rows with that exact description.
    """
    query = _active_expenses(db, activity_id, lock).filter(
        Transaction.timestamp == timestamp,
        Transaction.batch_id.is_(None)
    )
    if description is not None:
        query = query.filter(Transaction.description == description)
    return query.order_by(Transaction.id).all()


def siblings_of(db: Session, transaction: Transaction, lock: bool = False) -> List[Transaction]:
    """Get the other non-void rows in the same batch as ``transaction``."""
    if transaction.kind != TransactionKind.EXPENSE:
        return []
    if transaction.batch_id:
        rows = find_batch(db, transaction.activity_id, transaction.batch_id, lock=lock)
    else:
        rows = find_batch_by_timestamp(db, transaction.activity_id, transaction.timestamp, lock=lock)
    return [row for row in rows if row.id != transaction.id]


def batch_key(transaction: Transaction) -> str:
    """Stable grouping key for history: the batch id, else the exact timestamp."""
    if transaction.batch_id:
        return transaction.batch_id
    return serialize_date(transaction.timestamp)
