from pydantic import BaseModel
from datetime import datetime

class AuditLogRead(BaseModel):
    id: int
    actor_name: str
    action: str
    timestamp: datetime

    class Config:
        from_attributes = True
