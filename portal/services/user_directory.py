# portal/services/user_directory.py

from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portal.core import database
from portal.core.errors import MutationFailed
from portal.schemas.user import PermissionsUpdate, ProfileUpdate, RoleUpdate, StaffCreate, UserRead
from portal.services import user_service
from portal.services.mutation_service import EntityId, MutationService


class UserDirectory(MutationService):
    """
    The `users` collection. Users are owned here, not by the remote data
    API, but the pipeline talks to this exactly as it talks to any other
    Mutation Service: every call answers with the full user list.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or database.AsyncSessionLocal

    @staticmethod
    async def _all(session: AsyncSession) -> List[Dict[str, Any]]:
        users = await user_service.list_users(session)
        return [UserRead.model_validate(u).model_dump(mode="json") for u in users]

    @staticmethod
    def _failure(exc: Exception) -> MutationFailed:
        if isinstance(exc, ValidationError):
            return MutationFailed(422, str(exc))
        if isinstance(exc, user_service.DuplicateEmailError):
            return MutationFailed(409, str(exc))
        if isinstance(exc, LookupError):
            return MutationFailed(404, str(exc))
        return MutationFailed(400, str(exc))

    async def _run(self, operation, *args) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            try:
                await operation(session, *args)
            except (ValidationError, LookupError, ValueError) as exc:
                # Nothing staged by a failed operation survives
                await session.rollback()
                raise self._failure(exc) from exc
            return await self._all(session)

    async def list(self, collection: str) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            return await self._all(session)

    async def create(self, collection: str, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        async def _create(session: AsyncSession):
            data = StaffCreate.model_validate(payload)
            await user_service.create_user(
                session,
                name=data.name,
                email=data.email,
                password=data.password,
                role=data.role,
                must_reset_password=data.must_reset_password,
            )

        return await self._run(_create)

    async def update(self, collection: str, entity_id: EntityId, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            role = RoleUpdate.model_validate(payload).role if "role" in payload else None
            permissions = PermissionsUpdate.model_validate(payload).permissions if "permissions" in payload else None
            profile = ProfileUpdate.model_validate(payload) if "name" in payload or "email" in payload else None
        except ValidationError as exc:
            raise self._failure(exc) from exc

        # One transaction: the role resets the matrix, an explicit matrix then overrides it
        async def _update(session: AsyncSession):
            if role is not None:
                await user_service.update_user_role(session, entity_id, role, commit=False)
            if permissions is not None:
                await user_service.update_user_permissions(session, entity_id, permissions, commit=False)
            if profile is not None:
                await user_service.update_profile(
                    session, entity_id, name=profile.name, email=profile.email, commit=False
                )
            await user_service.commit_or_duplicate(session)

        return await self._run(_update)

    async def delete(self, collection: str, entity_id: EntityId) -> List[Dict[str, Any]]:
        return await self._run(user_service.delete_user, entity_id)
