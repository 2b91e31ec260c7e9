# portal/api/endpoints/access_control.py

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, status

from portal.api.deps import get_active_console, get_pipeline
from portal.core.permissions import (
    PermissionAction,
    ResourceName,
    matrix_to_json,
    set_full_access,
    set_permission,
)
from portal.schemas.user import (
    PermissionFlagUpdate,
    PermissionsUpdate,
    RoleUpdate,
    StaffCreate,
    StaffCreated,
)
from portal.services.commands import build_command
from portal.services.pipeline import MutationPipeline
from portal.services.sessions import ConsoleSession

router = APIRouter(prefix="/api/users", tags=["Access Control"])

COLLECTION = "users"


def _find_user(items: List[Any], user_id: Any) -> Dict[str, Any] | None:
    for item in items:
        if str(item.get("id")) == str(user_id):
            return item
    return None


async def _loaded_users(console: ConsoleSession, pipeline: MutationPipeline) -> List[Any]:
    users = console.collections.get(COLLECTION)
    if not users:
        users = (await pipeline.load(console, COLLECTION, raise_on_denied=True)).items
    return users


async def _update_user(
    console: ConsoleSession,
    pipeline: MutationPipeline,
    user_id: str,
    payload: Dict[str, Any],
) -> List[Any]:
    result = await pipeline.execute(
        console,
        build_command(COLLECTION, PermissionAction.update, payload, entity_id=user_id, raise_on_denied=True),
    )
    return result.items


# -------------------------------------------------------------------
# LIST USERS
# -------------------------------------------------------------------
@router.get("/", response_model=list)
async def list_users(
    console: ConsoleSession = Depends(get_active_console),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    result = await pipeline.load(console, COLLECTION, raise_on_denied=True)
    return result.items


# -------------------------------------------------------------------
# CREATE STAFF MEMBER
# -------------------------------------------------------------------
@router.post("/", response_model=StaffCreated, status_code=status.HTTP_201_CREATED)
async def create_staff(
    payload: StaffCreate,
    console: ConsoleSession = Depends(get_active_console),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    result = await pipeline.execute(
        console,
        build_command(
            COLLECTION,
            PermissionAction.create,
            payload.model_dump(mode="json"),
            raise_on_denied=True,
        ),
    )

    added = next(
        (u for u in result.items if str(u.get("email", "")).lower() == payload.email.lower()),
        None,
    )
    return StaffCreated(added_user=added, all_users=result.items)


# -------------------------------------------------------------------
# CHANGE ROLE (matrix resets to the new role's defaults)
# -------------------------------------------------------------------
@router.put("/{user_id}/role", response_model=list)
async def update_role(
    user_id: str,
    payload: RoleUpdate,
    console: ConsoleSession = Depends(get_active_console),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    return await _update_user(console, pipeline, user_id, payload.model_dump(mode="json"))


# -------------------------------------------------------------------
# REPLACE WHOLE MATRIX
# -------------------------------------------------------------------
@router.put("/{user_id}/permissions", response_model=list)
async def update_permissions(
    user_id: str,
    payload: PermissionsUpdate,
    console: ConsoleSession = Depends(get_active_console),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    body = {"permissions": matrix_to_json(payload.permissions)}
    return await _update_user(console, pipeline, user_id, body)


# -------------------------------------------------------------------
# TOGGLE ONE FLAG (or full access) ON ONE RESOURCE
# -------------------------------------------------------------------
@router.put("/{user_id}/permissions/{resource}", response_model=list)
async def update_permission_flag(
    user_id: str,
    resource: ResourceName,
    payload: PermissionFlagUpdate,
    console: ConsoleSession = Depends(get_active_console),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    if not payload.full_access and payload.action is None:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, "Either 'action' or 'full_access' is required")

    # Edit against the session's copy of the user, then send the whole matrix
    users = await _loaded_users(console, pipeline)

    target = _find_user(users, user_id)
    if target is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")

    current = target.get("permissions") or {}
    if payload.full_access:
        updated = set_full_access(current, resource, payload.value)
    else:
        updated = set_permission(current, resource, payload.action, payload.value)

    body = {"permissions": matrix_to_json(updated)}
    return await _update_user(console, pipeline, user_id, body)


# -------------------------------------------------------------------
# DELETE USER
# -------------------------------------------------------------------
@router.delete("/{user_id}", response_model=list)
async def delete_user(
    user_id: str,
    console: ConsoleSession = Depends(get_active_console),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    # The audit entry names the user from the pre-delete collection
    await _loaded_users(console, pipeline)
    result = await pipeline.execute(
        console,
        build_command(COLLECTION, PermissionAction.delete, entity_id=user_id, raise_on_denied=True),
    )
    return result.items
