"""
Pydantic schemas for Transaction entity and batch operations.
"""
from pydantic import BaseModel
from typing import Dict, List, Optional, Union
from datetime import datetime
from kitty.models.transaction import TransactionKind


class ParticipantInput(BaseModel):
    """One participant of a charge."""
    member_id: int
    count: Optional[int] = None  # Games played (per-use) or guests brought (split)
    use_pool: bool = True  # False: the member pays their share in cash


class ChargeCreate(BaseModel):
    """Schema for recording a shared charge."""
    total_cost: Optional[Union[float, str]] = None
    participants: List[ParticipantInput] = []


class BatchUpdate(BaseModel):
    """Schema for editing a batch's total and/or participants."""
    new_total: Optional[Union[float, str]] = None
    participants: Optional[List[ParticipantInput]] = None


class BatchTimestampUpdate(BatchUpdate):
    """Schema for editing a legacy batch located by its exact timestamp."""
    timestamp: datetime
    description: Optional[str] = None  # Narrow the match to rows with this exact description


class TransactionResponse(BaseModel):
    """Schema for transaction response."""
    id: int
    activity_id: int
    member_id: int
    member_name: Optional[str] = None
    kind: TransactionKind
    amount: float
    description: str
    timestamp: datetime
    batch_id: Optional[str] = None
    batch_total: Optional[float] = None
    weight: Optional[float] = None
    paid_cash: bool = False

    class Config:
        from_attributes = True


class BatchOutcomeResponse(BaseModel):
    """Schema for the result of a charge or reconciliation."""
    applied: bool
    reason: Optional[str] = None
    batch_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    total: Optional[float] = None
    transactions: List[TransactionResponse] = []
    balance_deltas: Dict[int, float] = {}  # member_id -> net balance change


class HistoryGroupResponse(BaseModel):
    """Schema for one group of the history view."""
    key: str
    timestamp: datetime
    batch_id: Optional[str] = None
    kind: TransactionKind
    total: float
    records: List[TransactionResponse] = []
