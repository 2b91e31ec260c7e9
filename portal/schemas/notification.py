from datetime import datetime
from typing import Any, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel

from portal.models.user import UserRole


class LinkTo(BaseModel):
    type: str           # "lead", "visitor", "invoice", ...
    id: Union[int, str]


# ---------------------------------------------------------
# CREATE (pipeline side effect)
# ---------------------------------------------------------
class NotificationCreate(BaseModel):
    title: str
    description: str
    link_to: Optional[LinkTo] = None
    recipient_user_ids: Optional[List[Union[UUID, str]]] = None
    recipient_roles: Optional[List[UserRole]] = None

    @property
    def is_broadcast(self) -> bool:
        return not self.recipient_user_ids and not self.recipient_roles


# ---------------------------------------------------------
# READ (response)
# ---------------------------------------------------------
class NotificationRead(BaseModel):
    id: int
    title: str
    description: str
    timestamp: datetime
    read: bool
    link_to: Optional[dict[str, Any]] = None
    recipient_user_ids: Optional[List[str]] = None
    recipient_roles: Optional[List[str]] = None

    class Config:
        from_attributes = True
