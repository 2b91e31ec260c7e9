from typing import Any, List, Optional

from pydantic import BaseModel

from portal.schemas.audit import AuditLogRead
from portal.schemas.notification import NotificationRead


class MutationResultRead(BaseModel):
    status: str
    collection: str
    items: List[Any]
    audit_entry: Optional[AuditLogRead] = None
    notification: Optional[NotificationRead] = None

    class Config:
        from_attributes = True
