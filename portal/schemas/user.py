from typing import Dict, Optional
from uuid import UUID
from pydantic import BaseModel, EmailStr, Field

from portal.core.permissions import PermissionAction, PermissionSet
from portal.models.user import UserRole


# ---------------------------------------------------------
# BASE
# ---------------------------------------------------------
class UserBase(BaseModel):
    name: str
    email: EmailStr


# ---------------------------------------------------------
# CREATE STAFF (Access Control)
# ---------------------------------------------------------
class StaffCreate(UserBase):
    password: str = Field(min_length=6)
    role: UserRole = UserRole.Employee
    must_reset_password: bool = True


# ---------------------------------------------------------
# ADMIN EDITS
# ---------------------------------------------------------
class RoleUpdate(BaseModel):
    role: UserRole


class PermissionsUpdate(BaseModel):
    permissions: Dict[str, PermissionSet]


class PermissionFlagUpdate(BaseModel):
    """Either one flag (`action` + `value`) or the full-access switch."""
    action: Optional[PermissionAction] = None
    value: bool
    full_access: bool = False


# ---------------------------------------------------------
# SELF-SERVICE
# ---------------------------------------------------------
class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None


class PasswordChange(BaseModel):
    current: str
    new_password: str = Field(min_length=6)


class InitialPassword(BaseModel):
    new_password: str = Field(min_length=6)


# ---------------------------------------------------------
# READ USER (response)
# ---------------------------------------------------------
class UserRead(UserBase):
    id: UUID
    role: UserRole
    permissions: Dict[str, PermissionSet] = {}
    must_reset_password: bool = False

    class Config:
        from_attributes = True


class StaffCreated(BaseModel):
    added_user: Optional[dict] = None
    all_users: list
