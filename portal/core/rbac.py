# portal/core/rbac.py

from fastapi import Depends, HTTPException, status

from portal.api.deps import get_active_console
from portal.core.identity import UserIdentity
from portal.core.permissions import ActionKey, PermissionAction, ResourceName, has_permission
from portal.services.sessions import ConsoleSession


def RequirePermission(resource: ResourceName, action: ActionKey = PermissionAction.read):
    """
    Route-level gate on the EFFECTIVE identity's matrix.
    No role bypass: an Admin passes because its matrix says so.
    """
    action = PermissionAction(action)

    async def permission_checker(console: ConsoleSession = Depends(get_active_console)) -> UserIdentity:
        user = console.identity.effective_identity()

        if not has_permission(user, resource, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing '{action.value}' permission on '{resource.value}'"
            )

        return user

    return permission_checker
