#portal/models/audit.py

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime
from typing import Optional
from datetime import datetime

from portal.models.user import utcnow

class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    # Autoincrement id doubles as the insertion sequence
    id: Optional[int] = Field(default=None, primary_key=True)

    # Snapshot of the REAL actor's name, never an impersonated one
    actor_name: str

    action: str

    timestamp: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
