"""
Member model for a participant inside an activity.
"""
from sqlalchemy import Column, String, Float, ForeignKey, Integer
from sqlalchemy.orm import relationship
from kitty.db.base import BaseModel


class Member(BaseModel):
    """Member with a cached running balance."""
    __tablename__ = "members"

    activity_id = Column(Integer, ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    balance = Column(Float, nullable=False, default=0.0)  # Sum of this member's non-voided transaction amounts

    # Relationships
    activity = relationship("Activity", back_populates="members")
    transactions = relationship("Transaction", back_populates="member", cascade="all, delete-orphan")
