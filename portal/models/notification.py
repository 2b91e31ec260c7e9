# portal/models/notification.py

from sqlmodel import SQLModel, Field
from sqlalchemy import JSON, Boolean, Column, DateTime
from typing import Any, Dict, List, Optional
from datetime import datetime

from portal.models.user import utcnow

class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)

    title: str
    description: str

    timestamp: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    # The only column that ever changes after insert
    read: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))

    # Both empty -> broadcast to staff
    recipient_user_ids: Optional[List[str]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    recipient_roles: Optional[List[str]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    # {"type": "lead", "id": 42}
    link_to: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
