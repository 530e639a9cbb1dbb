"""
Pydantic schemas for permission management.

Request and response models for permissions, roles, generation and checks.
"""
from datetime import datetime
from typing import Dict, List, Optional, Union
from pydantic import BaseModel, Field, ConfigDict, field_validator


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionBase(BaseModel):
    """Base permission schema."""
    name: str = Field(..., min_length=1, max_length=255, description="Permission name, e.g. 'view_users' or 'edit posts'")
    guard_name: Optional[str] = Field(None, min_length=1, max_length=255, description="Guard (defaults to 'web')")


class PermissionCreate(PermissionBase):
    """Schema for creating a new permission."""

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('The name field is required.')
        return v.strip()


class PermissionResponse(BaseModel):
    """Schema for permission response."""
    id: int
    name: str
    guard_name: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=255, description="Role name, unique within its guard")
    guard_name: Optional[str] = Field(None, min_length=1, max_length=255, description="Guard (defaults to 'web')")

    # HTML forms post ids as strings; the service coerces them
    permissions: List[Union[int, str]] = Field(default_factory=list, description="Permission ids")

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('The name field is required.')
        return v.strip()

    @field_validator('permissions', mode='before')
    @classmethod
    def permissions_default(cls, v):
        return [] if v is None else v


class RoleCreate(RoleBase):
    """Schema for creating a new role."""


class RoleUpdate(RoleBase):
    """Schema for updating a role. The permission set is replaced, not merged."""


class RoleResponse(BaseModel):
    """Schema for role response."""
    id: int
    name: str
    guard_name: str
    permissions_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleWithPermissions(RoleResponse):
    """Schema for role with permissions."""
    permissions: List[PermissionResponse] = []

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Generator Schemas
# ============================================================================

class GeneratePermissionsRequest(BaseModel):
    """Schema for generating CRUD permissions for resources."""
    models: List[str] = Field(..., min_length=1, description="Model names, e.g. ['User', 'Product']")
    actions: Optional[List[str]] = Field(None, description="Actions (defaults to create, edit, delete, view)")
    guard_name: Optional[str] = Field(None, description="Guard (defaults to 'web')")
    force: bool = Field(False, description="Recreate permissions that already exist")


class GeneratePermissionsResponse(BaseModel):
    created: Dict[str, List[str]]
    total_created: int


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking whether the current user may perform an action."""
    action: str = Field(..., min_length=1, description="Ability or permission name, e.g. 'delete' or 'view telescope'")
    resource_type: Optional[str] = Field(None, description="Resource type, e.g. 'users'")
    resource_id: Optional[int] = Field(None, description="Resource id for record-level checks")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    has_permission: bool
    reason: Optional[str] = None


class UserGrantsResponse(BaseModel):
    """Roles and effective permissions of the current user."""
    user_id: int
    guard_name: str
    roles: List[str] = []
    permissions: List[str] = []
