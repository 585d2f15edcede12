"""Asset schemas"""
from datetime import date

from pydantic import BaseModel, Field


class AssetStateUpdate(BaseModel):
    state: str = Field(..., description="available | not_available | waiting_for_recycling | recycled")


class AssetResponse(BaseModel):
    id: int
    code: str
    name: str
    category_id: int
    location_id: int
    state: str
    is_assigned: bool          # derived from open assignments, never stored
    installed_date: date
