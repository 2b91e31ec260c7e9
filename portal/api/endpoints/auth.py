# portal/api/endpoints/auth.py

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import (
    get_console,
    get_db_session,
    get_session_registry,
    get_token_claims,
)
from portal.core.config import settings
from portal.core.identity import UserIdentity
from portal.core.security import create_access_token
from portal.models.user import UserRole
from portal.schemas.auth import LoginRequest, SessionRead, StudentRegisterRequest, TokenWithUser
from portal.schemas.user import UserRead
from portal.services.sessions import ConsoleSession, SessionRegistry
from portal.services.user_service import DuplicateEmailError, authenticate_user, create_user

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def open_console(registry: SessionRegistry, identity: UserIdentity) -> TokenWithUser:
    console = registry.open(identity)
    token = create_access_token(
        subject=str(identity.id),
        data={"role": identity.role.value, "sid": console.sid},
    )
    return TokenWithUser(
        access_token=token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserRead.model_validate(identity),
    )


def session_read(console: ConsoleSession) -> SessionRead:
    return SessionRead(
        user=UserRead.model_validate(console.identity.effective_identity()),
        real_user=UserRead.model_validate(console.identity.real_identity()),
        impersonating=console.identity.is_impersonating,
    )


# -------------------------------------------------------------------
# LOGIN (staff and students)
# -------------------------------------------------------------------
@router.post("/login", response_model=TokenWithUser)
async def login(
    payload: LoginRequest,
    session: AsyncSession = Depends(get_db_session),
    registry: SessionRegistry = Depends(get_session_registry),
):
    user = await authenticate_user(session, payload.email, payload.password)

    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password.")

    return open_console(registry, UserIdentity.from_user(user))


# -------------------------------------------------------------------
# STUDENT SELF-REGISTRATION (LMS read-only)
# -------------------------------------------------------------------
@router.post("/register", response_model=TokenWithUser, status_code=status.HTTP_201_CREATED)
async def register_student(
    payload: StudentRegisterRequest,
    session: AsyncSession = Depends(get_db_session),
    registry: SessionRegistry = Depends(get_session_registry),
):
    try:
        user = await create_user(
            session,
            name=payload.name,
            email=payload.email,
            password=payload.password,
            role=UserRole.Student,
        )
    except DuplicateEmailError as e:
        raise HTTPException(status.HTTP_409_CONFLICT, str(e))
    except ValueError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))

    return open_console(registry, UserIdentity.from_user(user))


# -------------------------------------------------------------------
# LOGOUT
# -------------------------------------------------------------------
@router.post("/logout")
async def logout(
    claims: dict = Depends(get_token_claims),
    registry: SessionRegistry = Depends(get_session_registry),
):
    registry.close(claims["sid"])
    return {"detail": "Logged out"}


# -------------------------------------------------------------------
# CURRENT SESSION
# -------------------------------------------------------------------
@router.get("/me", response_model=SessionRead)
async def me(console: ConsoleSession = Depends(get_console)):
    return session_read(console)
