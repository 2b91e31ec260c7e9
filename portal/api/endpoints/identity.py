# portal/api/endpoints/identity.py

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portal.api.deps import get_console, get_db_session, get_session_factory, require_admin
from portal.api.endpoints.auth import session_read
from portal.core.identity import ImpersonationError, UserIdentity
from portal.schemas.auth import SessionRead
from portal.services import identity_service
from portal.services.sessions import ConsoleSession
from portal.services.user_service import get_user_by_id

router = APIRouter(prefix="/api/identity", tags=["Impersonation"])


# -------------------------------------------------------------------
# START IMPERSONATION (real identity must be Admin)
# -------------------------------------------------------------------
@router.post("/impersonate/{user_id}", response_model=SessionRead)
async def impersonate(
    user_id: str,
    console: ConsoleSession = Depends(get_console),
    session: AsyncSession = Depends(get_db_session),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    _: UserIdentity = Depends(require_admin),
):
    target = await get_user_by_id(session, user_id)
    if not target:
        raise HTTPException(status_code=404, detail="User not found")

    try:
        await identity_service.start_impersonation(
            console, UserIdentity.from_user(target), session_factory=session_factory
        )
    except ImpersonationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return session_read(console)


# -------------------------------------------------------------------
# STOP IMPERSONATION
# -------------------------------------------------------------------
@router.post("/stop", response_model=SessionRead)
async def stop(
    console: ConsoleSession = Depends(get_console),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    _: UserIdentity = Depends(require_admin),
):
    try:
        await identity_service.stop_impersonation(console, session_factory=session_factory)
    except ImpersonationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return session_read(console)
