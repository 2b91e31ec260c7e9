# portal/api/endpoints/account.py

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portal.api.deps import (
    get_active_console,
    get_console,
    get_db_session,
    get_session_factory,
    get_session_registry,
)
from portal.core.identity import UserIdentity
from portal.schemas.user import InitialPassword, PasswordChange, ProfileUpdate, UserRead
from portal.services import notification_service, user_service
from portal.services.commands import notify_password_changed
from portal.services.sessions import ConsoleSession, SessionRegistry

router = APIRouter(prefix="/api/account", tags=["Account"])


def _require_self(console: ConsoleSession) -> UserIdentity:
    # Account changes apply to the signed-in user, never to an impersonated one
    if console.identity.is_impersonating:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Stop impersonating before changing account settings.")
    return console.identity.real_identity()


# -------------------------------------------------------------------
# PROFILE
# -------------------------------------------------------------------
@router.put("/profile", response_model=UserRead)
async def update_profile(
    payload: ProfileUpdate,
    console: ConsoleSession = Depends(get_active_console),
    session: AsyncSession = Depends(get_db_session),
    registry: SessionRegistry = Depends(get_session_registry),
):
    me = _require_self(console)

    try:
        user = await user_service.update_profile(session, me.id, name=payload.name, email=payload.email)
    except user_service.DuplicateEmailError as e:
        raise HTTPException(status.HTTP_409_CONFLICT, str(e))
    except ValueError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))

    registry.refresh_user(UserIdentity.from_user(user))
    return user


# -------------------------------------------------------------------
# CHANGE PASSWORD
# -------------------------------------------------------------------
@router.post("/change-password")
async def change_password(
    payload: PasswordChange,
    console: ConsoleSession = Depends(get_active_console),
    session: AsyncSession = Depends(get_db_session),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    me = _require_self(console)

    try:
        await user_service.change_password(session, me.id, payload.current, payload.new_password)
    except ValueError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))

    logger.info("Password changed for {}", me.email)
    await notification_service.create_notification(
        notify_password_changed(me), session_factory=session_factory
    )
    return {"detail": "Password updated successfully."}


# -------------------------------------------------------------------
# FIRST LOGIN: replace the temporary password
# -------------------------------------------------------------------
@router.post("/set-initial-password", response_model=UserRead)
async def set_initial_password(
    payload: InitialPassword,
    console: ConsoleSession = Depends(get_console),
    session: AsyncSession = Depends(get_db_session),
    registry: SessionRegistry = Depends(get_session_registry),
):
    me = _require_self(console)

    try:
        user = await user_service.set_initial_password(session, me.id, payload.new_password)
    except PermissionError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))

    registry.refresh_user(UserIdentity.from_user(user))
    return user
