"""
Pydantic schemas for Activity entity.
"""
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from kitty.models.activity import ActivityType
from kitty.schemas.member import MemberResponse
from kitty.schemas.transaction import TransactionResponse


class ActivityBase(BaseModel):
    """Base activity schema."""
    name: str
    type: Optional[ActivityType] = None
    cost_per_unit: Optional[float] = None  # Suggested cost per game or per session
    alert_threshold: Optional[float] = None  # Balance below which a member is flagged


class ActivityCreate(ActivityBase):
    """Schema for activity creation."""
    pass


class ActivityUpdate(BaseModel):
    """Schema for activity settings update."""
    name: Optional[str] = None
    cost_per_unit: Optional[float] = None
    alert_threshold: Optional[float] = None


class ActivityResponse(BaseModel):
    """Schema for activity response."""
    id: int
    name: str
    type: ActivityType
    cost_per_unit: float
    alert_threshold: float
    created_at: datetime

    class Config:
        from_attributes = True


class ActivityDashboardResponse(BaseModel):
    """Schema for the activity dashboard with low-balance alerts."""
    activity: ActivityResponse
    members: List[MemberResponse] = []
    alert_members: List[MemberResponse] = []


class ShareSummaryResponse(BaseModel):
    """Schema for the read-only summary shared with members."""
    activity: ActivityResponse
    members: List[MemberResponse] = []
    transactions: List[TransactionResponse] = []


class BalanceAuditItem(BaseModel):
    """Schema for one member's balance check."""
    member_id: int
    name: str
    stored_balance: float
    computed_balance: float
    drift: float  # stored - computed

    class Config:
        from_attributes = True
