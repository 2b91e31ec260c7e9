# portal/services/identity_service.py

from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from portal.core.identity import UserIdentity
from portal.services.audit_service import record_activity
from portal.services.sessions import ConsoleSession


async def start_impersonation(
    console: ConsoleSession,
    target: UserIdentity,
    session_factory: Optional[async_sessionmaker] = None,
) -> UserIdentity:
    """Raises ImpersonationError (no state change) unless a real Admin targets someone else."""
    state = console.identity.start_impersonation(target)

    logger.info("{} started impersonating {}", state.real.email, target.email)
    await record_activity(
        state.real.name,
        f"Started impersonating {target.name}.",
        session_factory=session_factory,
    )
    return target


async def stop_impersonation(
    console: ConsoleSession,
    session_factory: Optional[async_sessionmaker] = None,
) -> UserIdentity:
    finished = console.identity.stop_impersonation()

    logger.info("{} stopped impersonating {}", finished.real.email, finished.target.email)
    await record_activity(
        finished.real.name,
        f"Stopped impersonating {finished.target.name}.",
        session_factory=session_factory,
    )
    return finished.real
