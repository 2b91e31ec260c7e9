# portal/api/deps.py

from typing import AsyncGenerator

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portal.core import database
from portal.core.identity import UserIdentity
from portal.core.security import decode_token
from portal.models.user import UserRole
from portal.services.mutation_service import HttpMutationService, MutationService, RoutingMutationService
from portal.services.pipeline import MutationPipeline
from portal.services.sessions import ConsoleSession, SessionRegistry, session_registry
from portal.services.user_directory import UserDirectory


# ------------------------------------------------------------
# HTTP Bearer Authentication
# ------------------------------------------------------------
bearer_scheme = HTTPBearer(auto_error=True)


# ------------------------------------------------------------
# DB Session
# ------------------------------------------------------------
def get_session_factory() -> async_sessionmaker:
    return database.AsyncSessionLocal


async def get_db_session(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


def get_session_registry() -> SessionRegistry:
    return session_registry


# ------------------------------------------------------------
# Console session from JWT
# ------------------------------------------------------------
def get_token_claims(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> dict:
    try:
        payload = decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(401, "Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(401, "Could not validate credentials")

    if not payload.get("sub") or not payload.get("sid"):
        raise HTTPException(401, "Invalid token payload")
    return payload


async def get_console(
    claims: dict = Depends(get_token_claims),
    registry: SessionRegistry = Depends(get_session_registry),
) -> ConsoleSession:
    console = registry.get(claims["sid"])
    if console is None:
        raise HTTPException(401, "Session expired. Please log in again.")
    return console


async def get_current_user(console: ConsoleSession = Depends(get_console)) -> UserIdentity:
    """The EFFECTIVE identity: the impersonated user while impersonating."""
    return console.identity.effective_identity()


async def get_active_console(console: ConsoleSession = Depends(get_console)) -> ConsoleSession:
    # Accounts created with a temporary password must set their own first
    real = console.identity.real_identity()
    if real.must_reset_password:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Password reset required")
    return console


# ------------------------------------------------------------
# Role check (real identity)
# ------------------------------------------------------------
def role_required(*allowed_roles: UserRole):
    allowed = {UserRole(r) for r in allowed_roles}

    async def checker(console: ConsoleSession = Depends(get_console)) -> UserIdentity:
        real = console.identity.real_identity()
        if real.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail=f"Access denied for role '{real.role.value}'"
            )
        return real

    return checker


require_admin = role_required(UserRole.Admin)


# ------------------------------------------------------------
# Mutation pipeline
# ------------------------------------------------------------
def get_mutation_service(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> MutationService:
    # The caller's bearer credential is forwarded to the data API
    return RoutingMutationService(
        default=HttpMutationService(token=credentials.credentials),
        routes={"users": UserDirectory(session_factory)},
    )


def get_pipeline(
    service: MutationService = Depends(get_mutation_service),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    registry: SessionRegistry = Depends(get_session_registry),
) -> MutationPipeline:
    return MutationPipeline(service, session_factory=session_factory, registry=registry)
