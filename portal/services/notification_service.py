# portal/services/notification_service.py

from enum import Enum
from typing import Any, List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from portal.core import database
from portal.models.notification import Notification
from portal.models.user import UserRole
from portal.schemas.notification import NotificationCreate


class MarkReadScope(str, Enum):
    visible = "visible"   # only what the viewer can see
    globally = "global"   # every stored notification


def _role_value(role: Any) -> str:
    return role.value if isinstance(role, Enum) else str(role)


# ============================================================================
# VISIBILITY
# ============================================================================
def visible_to(notification: Any, viewer: Any) -> bool:
    """
    Broadcasts (no user ids, no roles) reach every non-Student viewer.
    Targeted notifications reach listed user ids and listed roles.
    """
    user_ids = {str(uid) for uid in (notification.recipient_user_ids or [])}
    roles = {_role_value(role) for role in (notification.recipient_roles or [])}
    viewer_role = _role_value(viewer.role)

    if not user_ids and not roles:
        return viewer_role != UserRole.Student.value

    return str(viewer.id) in user_ids or viewer_role in roles


# ============================================================================
# CREATE
# ============================================================================
async def create_notification(
    spec: NotificationCreate,
    session_factory: Optional[async_sessionmaker] = None,
) -> Notification:
    factory = session_factory or database.AsyncSessionLocal

    notification = Notification(
        title=spec.title,
        description=spec.description,
        link_to=spec.link_to.model_dump() if spec.link_to else None,
        recipient_user_ids=[str(uid) for uid in spec.recipient_user_ids] if spec.recipient_user_ids else None,
        recipient_roles=[_role_value(role) for role in spec.recipient_roles] if spec.recipient_roles else None,
    )

    async with factory() as session:
        session.add(notification)
        await session.commit()
        await session.refresh(notification)

    if spec.is_broadcast:
        logger.info("Notification #{} '{}' -> broadcast", notification.id, notification.title)
    else:
        logger.info(
            "Notification #{} '{}' -> users={} roles={}",
            notification.id, notification.title,
            notification.recipient_user_ids or "-", notification.recipient_roles or "-",
        )
    return notification


# ============================================================================
# READ
# ============================================================================
async def list_notifications(session: AsyncSession) -> List[Notification]:
    result = await session.execute(select(Notification).order_by(Notification.id.desc()))
    return list(result.scalars().all())


async def list_for_viewer(session: AsyncSession, viewer: Any) -> List[Notification]:
    return [n for n in await list_notifications(session) if visible_to(n, viewer)]


async def count_unread(session: AsyncSession, viewer: Any) -> int:
    return sum(1 for n in await list_for_viewer(session, viewer) if not n.read)


# ============================================================================
# MARK ALL READ
# ============================================================================
async def mark_all_read(
    session: AsyncSession,
    viewer: Any,
    scope: MarkReadScope = MarkReadScope.visible,
) -> List[Notification]:
    """
    Default scope marks only what `viewer` can see; notifications aimed at
    other users or roles keep their read flag. Returns the viewer's list.
    """
    changed = 0
    for notification in await list_notifications(session):
        if notification.read:
            continue
        if scope == MarkReadScope.visible and not visible_to(notification, viewer):
            continue
        notification.read = True
        session.add(notification)
        changed += 1

    await session.commit()
    logger.info("Marked {} notification(s) read for {} (scope={})", changed, viewer.id, scope.value)
    return await list_for_viewer(session, viewer)
