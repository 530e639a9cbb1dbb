"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from typing import Optional, Union
from pydantic import BaseModel, EmailStr, Field, computed_field

from backoffice.features.permissions.schemas import RoleResponse


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)


class UserCreate(UserBase):
    """
    Schema for creating a user from the back office.

    The password is generated and mailed to the user. Without a role the
    user gets the default "user" role.
    """
    role: Optional[Union[int, str]] = Field(None, description="Role id")


class UserUpdate(UserBase):
    """Schema for updating a user from the back office."""
    password: Optional[str] = Field(None, min_length=8, max_length=255)
    role: Union[int, str] = Field(..., description="Role id")


class ProfileUpdate(BaseModel):
    """Schema for users updating their own profile."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=8, max_length=255)


class UserRegister(UserBase):
    """Schema for self-service registration."""
    password: str = Field(..., min_length=8, max_length=255)


class TokenRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(UserBase):
    """Schema for user responses."""
    id: int
    is_active: bool
    email_verified_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    roles: list[RoleResponse] = []

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def current_role(self) -> Optional[str]:
        """Capitalized name of the first assigned role."""
        if not self.roles:
            return None
        name = self.roles[0].name
        return name[:1].upper() + name[1:]
