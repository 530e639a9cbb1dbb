"""
Pydantic schemas for activity log responses.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict


class CauserResponse(BaseModel):
    id: int
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class ActivityLogResponse(BaseModel):
    """Schema for activity log response."""
    id: int
    log_name: str
    description: str
    event: Optional[str] = None
    subject_type: Optional[str] = None
    subject_id: Optional[int] = None
    causer_id: Optional[int] = None
    causer: Optional[CauserResponse] = None
    properties: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
