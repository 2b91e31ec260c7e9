# portal/api/endpoints/notifications.py

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import get_active_console, get_current_user, get_db_session
from portal.core.identity import UserIdentity
from portal.schemas.notification import NotificationRead
from portal.services import notification_service
from portal.services.notification_service import MarkReadScope

router = APIRouter(
    prefix="/api/notifications",
    tags=["Notifications"],
    dependencies=[Depends(get_active_console)],
)


# -------------------------------------------------------------------
# VISIBLE NOTIFICATIONS (effective identity)
# -------------------------------------------------------------------
@router.get("/", response_model=List[NotificationRead])
async def list_notifications(
    viewer: UserIdentity = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    return await notification_service.list_for_viewer(session, viewer)


@router.get("/unread-count")
async def unread_count(
    viewer: UserIdentity = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    return {"unread": await notification_service.count_unread(session, viewer)}


# -------------------------------------------------------------------
# MARK ALL READ
# -------------------------------------------------------------------
@router.post("/mark-all-read", response_model=List[NotificationRead])
async def mark_all_read(
    scope: MarkReadScope = Query(MarkReadScope.visible),
    viewer: UserIdentity = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    return await notification_service.mark_all_read(session, viewer, scope=scope)
