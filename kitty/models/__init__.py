"""Models package - Import all models for SQLAlchemy registration."""
from kitty.models.activity import Activity, ActivityType
from kitty.models.member import Member
from kitty.models.transaction import Transaction, TransactionKind

__all__ = [
    "Activity",
    "ActivityType",
    "Member",
    "Transaction",
    "TransactionKind",
]
