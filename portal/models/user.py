# portal/models/user.py

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON, Boolean, DateTime, String
from sqlalchemy import Enum as PGEnum
from datetime import datetime, timezone
import uuid
from enum import Enum
from typing import Any, Dict

class UserRole(str, Enum):
    Admin = "Admin"
    Employee = "Employee"   # staff portal
    Student = "Student"     # student portal

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class User(SQLModel, table=True):
    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    name: str = Field(nullable=False)
    email: str = Field(sa_column=Column(String, nullable=False, index=True, unique=True))
    password_hash: str = Field(nullable=False)

    role: UserRole = Field(
        sa_column=Column(PGEnum(UserRole, name="user_role"), nullable=False)
    )

    # { "CRM": {"read": true, "create": true, ...}, ... }
    # Seeded from the role defaults, then overridden per user by an Admin.
    permissions: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    must_reset_password: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False)
    )

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
