"""
Activity model for a recurring shared-cost event.
"""
from sqlalchemy import Column, String, Float, Enum as SQLEnum
from sqlalchemy.orm import relationship
from kitty.db.base import BaseModel
from kitty.core.config import settings
import enum


class ActivityType(str, enum.Enum):
    """How a charge is divided among participants."""
    PER_USE = "per_use"  # Weighted by units (games) played
    SPLIT = "split"  # Weighted by heads (member + guests)


class Activity(BaseModel):
    """Activity model owning a set of members and their transactions."""
    __tablename__ = "activities"

    name = Column(String(200), nullable=False)
    type = Column(
        SQLEnum(ActivityType, values_callable=lambda e: [m.value for m in e]),
        default=ActivityType.PER_USE,
        nullable=False
    )
    cost_per_unit = Column(Float, nullable=False, default=0.0)
    alert_threshold = Column(Float, nullable=False, default=settings.DEFAULT_ALERT_THRESHOLD)

    # Relationships
    members = relationship(
        "Member", back_populates="activity", cascade="all, delete-orphan", order_by="Member.name"
    )
    transactions = relationship("Transaction", back_populates="activity", cascade="all, delete-orphan")
