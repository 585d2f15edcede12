"""Assignment and returning request schemas"""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class AssignmentCreate(BaseModel):
    asset_id: int
    assignee_id: int = Field(..., description="User the asset is assigned to")
    assigned_date: date
    note: Optional[str] = Field(None, max_length=1000)


class AssignmentUpdate(BaseModel):
    asset_id: int
    assignee_id: int
    assigned_date: date = Field(..., description="Same as or later than the current assigned date")
    note: Optional[str] = Field(None, max_length=1000)


class AssignmentResponse(BaseModel):
    id: int
    asset_id: int
    assigned_to_user_id: int
    assigned_by_user_id: int
    assigned_date: date
    state: str                 # waiting_for_acceptance | accepted | declined | returned
    note: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AssignmentListResponse(BaseModel):
    items: List[AssignmentResponse]
    total: int


class ReturningRequestResponse(BaseModel):
    id: int
    assignment_id: int
    requested_by_user_id: int
    accepted_by_user_id: Optional[int] = None
    return_date: Optional[date] = None
    state: str                 # waiting_for_returning | completed | cancelled
    created_at: datetime

    class Config:
        from_attributes = True


class ReturningRequestListResponse(BaseModel):
    items: List[ReturningRequestResponse]
    total: int
