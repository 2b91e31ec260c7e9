# portal/api/endpoints/logs.py

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import get_db_session
from portal.core.permissions import PermissionAction, ResourceName
from portal.core.rbac import RequirePermission
from portal.schemas.audit import AuditLogRead
from portal.services import audit_service

router = APIRouter(prefix="/api/logs", tags=["Activity Logs"])


@router.get(
    "/activity",
    response_model=List[AuditLogRead],
    dependencies=[Depends(RequirePermission(ResourceName.AccessControl, PermissionAction.read))],
)
async def get_activity(
    limit: int | None = Query(None, ge=1, le=500),
    session: AsyncSession = Depends(get_db_session),
):
    """Newest first."""
    return await audit_service.list_activity(session, limit=limit)
