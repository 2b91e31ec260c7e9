# portal/core/permissions.py
"""
Capability matrices: one PermissionSet per resource, per user.

A matrix is a value. Every update function below returns a new dict and
leaves its input untouched, so the same matrix can sit in a console session
snapshot, a request and a database row at once.
"""

from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator

from portal.models.user import UserRole


# ==========================================================
# RESOURCES & ACTIONS
# ==========================================================
class ResourceName(str, Enum):
    Dashboard = "Dashboard"
    Contacts = "Contacts"
    LMS = "LMS"
    CRM = "CRM"
    Calendar = "Calendar"
    Discuss = "Discuss"
    Accounting = "Accounting"
    Sales = "Sales"
    Inventory = "Inventory"
    Manufacturing = "Manufacturing"
    Website = "Website"
    PointOfSale = "Point of Sale"
    Marketing = "Marketing"
    Todo = "To-do"
    Reception = "Reception"
    Settings = "Settings"
    AccessControl = "Access Control"


class PermissionAction(str, Enum):
    read = "read"
    create = "create"
    update = "update"
    delete = "delete"


WRITE_ACTIONS = (PermissionAction.create, PermissionAction.update, PermissionAction.delete)

ResourceKey = Union[ResourceName, str]
ActionKey = Union[PermissionAction, str]


class PermissionSet(BaseModel):
    """Four independent flags for one resource. Any write flag implies read."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    read: bool = False
    create: bool = False
    update: bool = False
    delete: bool = False

    @model_validator(mode="before")
    @classmethod
    def writes_imply_read(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            data = {k: bool(v) for k, v in data.items() if k in cls.model_fields}
            if any(data.get(a.value) for a in WRITE_ACTIONS):
                data["read"] = True
        return data

    def allows(self, action: ActionKey) -> bool:
        return getattr(self, PermissionAction(action).value) is True

    @property
    def is_empty(self) -> bool:
        return not (self.read or self.create or self.update or self.delete)

    @property
    def is_full(self) -> bool:
        return self.read and self.create and self.update and self.delete


FULL_ACCESS = PermissionSet(read=True, create=True, update=True, delete=True)
READ_ONLY = PermissionSet(read=True)

PermissionMatrix = Dict[str, PermissionSet]


def resource_key(resource: ResourceKey) -> str:
    return resource.value if isinstance(resource, ResourceName) else str(resource)


def _coerce(entry: Any) -> Optional[PermissionSet]:
    if entry is None or isinstance(entry, PermissionSet):
        return entry
    if isinstance(entry, Mapping):
        return PermissionSet(**entry)
    return None


# ==========================================================
# EVALUATION
# ==========================================================
def has_permission(user: Any, resource: ResourceKey, action: ActionKey) -> bool:
    """
    True iff the user's matrix has an entry for `resource` with `action` set.
    Accepts any object with a `permissions` mapping (User row, identity
    snapshot); entries may be PermissionSet values or raw JSON dicts.
    """
    if user is None:
        return False

    permissions = getattr(user, "permissions", None) or {}
    entry = permissions.get(resource_key(resource))
    if entry is None:
        return False

    if isinstance(entry, PermissionSet):
        return entry.allows(action)
    if isinstance(entry, Mapping):
        return entry.get(PermissionAction(action).value) is True
    return False


# ==========================================================
# PURE UPDATES
# ==========================================================
def set_permission(
    matrix: Mapping[str, Any],
    resource: ResourceKey,
    action: ActionKey,
    value: bool,
) -> PermissionMatrix:
    key = resource_key(resource)
    action = PermissionAction(action)

    current = _coerce(matrix.get(key)) or PermissionSet()
    flags = current.model_dump()
    flags[action.value] = value

    if action is PermissionAction.read and not value:
        # Losing read takes every write capability with it
        flags = {a.value: False for a in PermissionAction}
    elif action is not PermissionAction.read and value:
        flags["read"] = True

    updated = as_matrix(matrix)
    new_entry = PermissionSet(**flags)
    if new_entry.is_empty:
        updated.pop(key, None)
    else:
        updated[key] = new_entry
    return updated


def set_full_access(matrix: Mapping[str, Any], resource: ResourceKey, value: bool) -> PermissionMatrix:
    key = resource_key(resource)
    updated = as_matrix(matrix)
    if value:
        updated[key] = FULL_ACCESS
    else:
        updated.pop(key, None)
    return updated


# ==========================================================
# SERIALIZATION (JSON column <-> matrix)
# ==========================================================
def as_matrix(raw: Optional[Mapping[str, Any]]) -> PermissionMatrix:
    """Copy `raw` into a fresh matrix, dropping empty or unreadable entries."""
    matrix: PermissionMatrix = {}
    for key, entry in (raw or {}).items():
        perms = _coerce(entry)
        if perms is not None and not perms.is_empty:
            matrix[resource_key(key)] = perms
    return matrix


def matrix_to_json(matrix: Optional[Mapping[str, Any]]) -> Dict[str, Dict[str, bool]]:
    return {key: perms.model_dump() for key, perms in as_matrix(matrix).items()}


# ==========================================================
# ROLE DEFAULTS (seed values for new users)
# ==========================================================
EMPLOYEE_FULL_ACCESS = frozenset({
    ResourceName.Contacts, ResourceName.CRM, ResourceName.Calendar,
    ResourceName.Discuss, ResourceName.Todo, ResourceName.Reception,
    ResourceName.Sales, ResourceName.Marketing, ResourceName.LMS,
})
EMPLOYEE_READ_ONLY = frozenset({
    ResourceName.Dashboard, ResourceName.Accounting, ResourceName.Inventory,
    ResourceName.Manufacturing, ResourceName.Website, ResourceName.PointOfSale,
})


def _employee_defaults() -> PermissionMatrix:
    matrix: PermissionMatrix = {}
    for resource in ResourceName:
        if resource in EMPLOYEE_FULL_ACCESS:
            matrix[resource.value] = FULL_ACCESS
        elif resource in EMPLOYEE_READ_ONLY:
            matrix[resource.value] = READ_ONLY
    return matrix


DEFAULT_PERMISSIONS: Dict[UserRole, PermissionMatrix] = {
    UserRole.Admin: {resource.value: FULL_ACCESS for resource in ResourceName},
    UserRole.Employee: _employee_defaults(),
    UserRole.Student: {ResourceName.LMS.value: READ_ONLY},
}


def default_matrix_for(role: Union[UserRole, str]) -> PermissionMatrix:
    return dict(DEFAULT_PERMISSIONS[UserRole(role)])
