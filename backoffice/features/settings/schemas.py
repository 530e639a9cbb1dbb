"""
Pydantic schemas for settings endpoints.
"""
from typing import Optional
from pydantic import BaseModel


class SystemSettingsUpdate(BaseModel):
    """Fields left out keep their current value."""
    registration_enabled: Optional[bool] = None
