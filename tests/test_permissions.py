import uuid

from portal.core.identity import UserIdentity
from portal.core.permissions import (
    FULL_ACCESS,
    PermissionAction,
    PermissionSet,
    ResourceName,
    as_matrix,
    default_matrix_for,
    has_permission,
    matrix_to_json,
    set_full_access,
    set_permission,
)
from portal.models.user import UserRole


def identity_with(matrix):
    return UserIdentity(
        id=uuid.uuid4(),
        name="Test",
        email="test@example.com",
        role=UserRole.Employee,
        permissions=as_matrix(matrix),
    )


def test_write_flags_imply_read():
    perms = PermissionSet(update=True)
    assert perms.read is True
    assert perms.update is True
    assert perms.create is False


def test_has_permission_is_false_for_missing_entries():
    user = identity_with({"CRM": {"read": True}})
    assert has_permission(user, ResourceName.CRM, PermissionAction.read)
    assert not has_permission(user, ResourceName.CRM, PermissionAction.create)
    assert not has_permission(user, ResourceName.Accounting, PermissionAction.read)
    assert not has_permission(None, ResourceName.CRM, PermissionAction.read)


def test_admin_has_no_bypass():
    admin = UserIdentity(
        id=uuid.uuid4(), name="A", email="a@example.com", role=UserRole.Admin, permissions={}
    )
    assert not has_permission(admin, ResourceName.Dashboard, PermissionAction.read)


def test_granting_write_grants_read():
    matrix = set_permission({}, ResourceName.CRM, PermissionAction.delete, True)
    assert matrix["CRM"].read is True
    assert matrix["CRM"].delete is True


def test_revoking_read_clears_every_write():
    matrix = set_full_access({}, ResourceName.Sales, True)
    matrix = set_permission(matrix, ResourceName.Sales, PermissionAction.read, False)
    assert "Sales" not in matrix


def test_updates_do_not_mutate_input():
    original = {"CRM": FULL_ACCESS}
    updated = set_permission(original, ResourceName.CRM, PermissionAction.create, False)
    assert original["CRM"].create is True
    assert updated["CRM"].create is False
    assert updated["CRM"].read is True


def test_revoking_a_write_keeps_read():
    # Employee with CRM full access loses create only
    user = identity_with(default_matrix_for(UserRole.Employee))
    assert has_permission(user, ResourceName.CRM, PermissionAction.create)

    updated = identity_with(set_permission(user.permissions, ResourceName.CRM, PermissionAction.create, False))

    assert not has_permission(updated, ResourceName.CRM, PermissionAction.create)
    assert has_permission(updated, ResourceName.CRM, PermissionAction.read)
    assert has_permission(updated, ResourceName.CRM, PermissionAction.update)
    assert has_permission(updated, ResourceName.CRM, PermissionAction.delete)


def test_full_access_toggle_off_drops_entry():
    matrix = set_full_access({"CRM": {"read": True}}, ResourceName.CRM, False)
    assert matrix == {}


def test_empty_entries_are_dropped_on_normalisation():
    assert matrix_to_json({"CRM": {}, "LMS": {"read": False}, "Sales": {"create": True}}) == {
        "Sales": {"read": True, "create": True, "update": False, "delete": False}
    }


def test_role_defaults():
    admin = default_matrix_for(UserRole.Admin)
    assert set(admin) == {r.value for r in ResourceName}
    assert all(p.is_full for p in admin.values())

    student = default_matrix_for(UserRole.Student)
    assert list(student) == ["LMS"]
    assert student["LMS"].read and not student["LMS"].create

    employee = default_matrix_for(UserRole.Employee)
    assert employee["CRM"].is_full
    assert employee["Accounting"].read and not employee["Accounting"].create
    assert "Access Control" not in employee


def test_full_access_is_all_four_flags_and_round_trips():
    granted = set_full_access({}, ResourceName.Contacts, True)
    assert granted["Contacts"] == PermissionSet(read=True, create=True, update=True, delete=True)

    assert set_full_access(granted, ResourceName.Contacts, False) == {}
