# portal/services/user_service.py

from typing import Any, List, Mapping
import uuid

from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from portal.core.permissions import default_matrix_for, matrix_to_json
from portal.core.security import hash_password, verify_password
from portal.models.user import User, UserRole


class DuplicateEmailError(ValueError):
    pass


def _as_uuid(user_id: Any) -> uuid.UUID:
    if isinstance(user_id, uuid.UUID):
        return user_id
    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        raise LookupError(f"User '{user_id}' not found") from None


# ============================================================================
# FETCH
# ============================================================================
async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user_by_id(session: AsyncSession, user_id: Any) -> User | None:
    try:
        return await session.get(User, _as_uuid(user_id))
    except LookupError:
        return None


async def require_user(session: AsyncSession, user_id: Any) -> User:
    user = await get_user_by_id(session, user_id)
    if not user:
        raise LookupError(f"User '{user_id}' not found")
    return user


async def list_users(session: AsyncSession) -> List[User]:
    result = await session.execute(select(User).order_by(User.created_at, User.email))
    return list(result.scalars().all())


async def count_admins(session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count()).select_from(User).where(User.role == UserRole.Admin)
    )
    return result.scalar_one()


async def commit_or_duplicate(session: AsyncSession) -> None:
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise DuplicateEmailError("User with this email already exists")


# ============================================================================
# CREATE USER (matrix seeded from the role defaults)
# ============================================================================
async def create_user(
    session: AsyncSession,
    name: str,
    email: str,
    password: str,
    role: UserRole,
    must_reset_password: bool = False,
) -> User:
    if not name or not name.strip():
        raise ValueError("Name is required")
    if not password:
        raise ValueError("Password is required")

    role = UserRole(role)
    user = User(
        id=uuid.uuid4(),
        name=name.strip(),
        email=email.strip().lower(),
        password_hash=hash_password(password),
        role=role,
        permissions=matrix_to_json(default_matrix_for(role)),
        must_reset_password=must_reset_password,
    )

    session.add(user)

    try:
        await session.commit()
        await session.refresh(user)
        logger.info("Created {} account {}", role.value, user.email)
        return user

    except IntegrityError:
        await session.rollback()
        raise DuplicateEmailError("User with this email already exists")


# ============================================================================
# AUTHENTICATE
# ============================================================================
async def authenticate_user(session: AsyncSession, email: str, password: str) -> User | None:
    user = await get_user_by_email(session, email.strip().lower())
    if not user:
        return None

    if not verify_password(password, user.password_hash):
        return None

    return user


# ============================================================================
# ROLE & PERMISSIONS (Admin edits)
# ============================================================================
async def update_user_role(session: AsyncSession, user_id: Any, role: UserRole, commit: bool = True) -> User:
    """A role change resets the matrix to that role's defaults.

    With `commit=False` the change is only staged on the session and the
    caller commits (or rolls back) the whole unit of work.
    """
    user = await require_user(session, user_id)
    role = UserRole(role)

    if user.role == UserRole.Admin and role != UserRole.Admin:
        if await count_admins(session) <= 1:
            raise ValueError("Cannot demote the only administrator.")

    user.role = role
    user.permissions = matrix_to_json(default_matrix_for(role))
    session.add(user)
    if commit:
        await session.commit()
        await session.refresh(user)
    logger.info("Role of {} set to {}", user.email, role.value)
    return user


async def update_user_permissions(
    session: AsyncSession, user_id: Any, permissions: Mapping[str, Any], commit: bool = True
) -> User:
    user = await require_user(session, user_id)

    # Normalised through the permission model: writes imply read, empties drop out
    user.permissions = matrix_to_json(permissions)
    session.add(user)
    if commit:
        await session.commit()
        await session.refresh(user)
    logger.info("Permissions of {} replaced ({} resources)", user.email, len(user.permissions))
    return user


async def delete_user(session: AsyncSession, user_id: Any) -> None:
    user = await require_user(session, user_id)
    if user.role == UserRole.Admin and await count_admins(session) <= 1:
        raise ValueError("Cannot remove the only administrator.")

    await session.delete(user)
    await session.commit()


# ============================================================================
# PROFILE & PASSWORDS (self-service)
# ============================================================================
async def update_profile(
    session: AsyncSession,
    user_id: Any,
    name: str | None = None,
    email: str | None = None,
    commit: bool = True,
) -> User:
    user = await require_user(session, user_id)

    if name is not None:
        if not name.strip():
            raise ValueError("Name cannot be empty")
        user.name = name.strip()
    if email is not None:
        user.email = email.strip().lower()

    session.add(user)
    if commit:
        await commit_or_duplicate(session)
        await session.refresh(user)
    return user


async def change_password(session: AsyncSession, user_id: Any, current: str, new_password: str) -> User:
    user = await require_user(session, user_id)

    if not verify_password(current, user.password_hash):
        raise ValueError("Incorrect current password.")

    user.password_hash = hash_password(new_password)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def set_initial_password(session: AsyncSession, user_id: Any, new_password: str) -> User:
    user = await require_user(session, user_id)

    if not user.must_reset_password:
        raise PermissionError("Password reset not required.")

    user.password_hash = hash_password(new_password)
    user.must_reset_password = False
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user
