"""
Pydantic schemas for Member entity.
"""
from pydantic import BaseModel
from typing import Optional, Union


class MemberCreate(BaseModel):
    """Schema for member creation."""
    name: Optional[str] = None


class MemberUpdate(BaseModel):
    """Schema for member rename."""
    name: str


class MemberResponse(BaseModel):
    """Schema for member response."""
    id: int
    activity_id: int
    name: str
    balance: float

    class Config:
        from_attributes = True


class DepositCreate(BaseModel):
    """Schema for a deposit into a member's balance."""
    member_id: int
    amount: Optional[Union[float, str]] = None  # Non-positive or non-numeric amounts are ignored
