# portal/services/audit_service.py

from typing import List, Optional

from loguru import logger
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from portal.core import database
from portal.core.config import settings
from portal.models.audit import AuditLog


# This function manages its own session so concurrent pipeline runs never
# share one.
async def record_activity(
    actor_name: str,
    action: str,
    session_factory: Optional[async_sessionmaker] = None,
) -> Optional[AuditLog]:
    """
    Appends an audit log entry in a separate DB session.
    Never raises: a failed write is logged and the caller carries on.
    """
    factory = session_factory or database.AsyncSessionLocal

    async with factory() as session:
        try:
            entry = AuditLog(actor_name=actor_name, action=action)
            session.add(entry)
            await session.commit()
            await session.refresh(entry)
            logger.info("AUDIT [{}] {}", actor_name, action)
            return entry

        except Exception:
            logger.exception("Audit log write failed: {} / {}", actor_name, action)
            await session.rollback()
            return None


async def list_activity(session: AsyncSession, limit: Optional[int] = None) -> List[AuditLog]:
    """Newest first. Insertion order (the id sequence) is the source of truth."""
    query = (
        select(AuditLog)
        .order_by(AuditLog.id.desc())
        .limit(limit or settings.ACTIVITY_LOG_LIMIT)
    )
    result = await session.execute(query)
    return list(result.scalars().all())


async def count_activity(session: AsyncSession) -> int:
    result = await session.execute(select(func.count()).select_from(AuditLog))
    return result.scalar_one()
