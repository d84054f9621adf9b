"""
Transaction model for ledger entries.
"""
from sqlalchemy import Column, String, Float, DateTime, Boolean, ForeignKey, Integer, Text, Enum as SQLEnum
from sqlalchemy.orm import relationship
from kitty.db.base import BaseModel
import enum


class TransactionKind(str, enum.Enum):
    """Ledger entry kind."""
    EXPENSE = "expense"
    DEPOSIT = "deposit"
    VOID = "void"


class Transaction(BaseModel):
    """
    Single signed ledger entry for one member.

    Rows produced by one allocation share a ``batch_id`` and ``timestamp``.
    ``batch_total`` and ``weight`` keep the allocation parameters so a batch
    can be recomputed without reading the description.
    """
    __tablename__ = "transactions"

    activity_id = Column(Integer, ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, index=True)
    member_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(
        SQLEnum(TransactionKind, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True
    )
    amount = Column(Float, nullable=False, default=0.0)  # Negative for charges, positive for deposits
    description = Column(Text, nullable=False, default="")
    timestamp = Column(DateTime, nullable=False, index=True)

    # Batch metadata (NULL on legacy rows and deposits)
    batch_id = Column(String(36), nullable=True, index=True)
    batch_total = Column(Float, nullable=True)
    weight = Column(Float, nullable=True)
    paid_cash = Column(Boolean, nullable=False, default=False)  # Share settled outside the pool, amount stays 0

    # Relationships
    activity = relationship("Activity", back_populates="transactions")
    member = relationship("Member", back_populates="transactions")
