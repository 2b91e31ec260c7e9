import pytest

from portal.core.errors import MutationFailed


# ------------------------------------------------------------------
# AUTH / SESSION
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_root_health(client):
    res = await client.get("/")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_login_and_me(client, admin_user, login):
    headers = await login("admin@example.com", "admin-pass")

    res = await client.get("/api/auth/me", headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["user"]["email"] == "admin@example.com"
    assert body["real_user"]["email"] == "admin@example.com"
    assert body["impersonating"] is False


@pytest.mark.asyncio
async def test_bad_credentials(client, admin_user):
    res = await client.post("/api/auth/login", json={"email": "admin@example.com", "password": "wrong"})
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_logout_kills_the_session(client, admin_user, login):
    headers = await login("admin@example.com", "admin-pass")

    assert (await client.post("/api/auth/logout", headers=headers)).status_code == 200
    assert (await client.get("/api/auth/me", headers=headers)).status_code == 401


@pytest.mark.asyncio
async def test_student_registration_gets_lms_only(client):
    res = await client.post(
        "/api/auth/register",
        json={"name": "New Student", "email": "new.student@example.com", "password": "secret1"},
    )
    assert res.status_code == 201
    assert list(res.json()["user"]["permissions"]) == ["LMS"]

    headers = {"Authorization": f"Bearer {res.json()['access_token']}"}
    denied = await client.get("/api/data/leads", headers=headers)
    assert denied.status_code == 403


@pytest.mark.asyncio
async def test_garbage_token_is_rejected(client):
    res = await client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


# ------------------------------------------------------------------
# IMPERSONATION
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_impersonation_round_trip(client, admin_user, student_user, login):
    headers = await login("admin@example.com", "admin-pass")

    res = await client.post(f"/api/identity/impersonate/{student_user.id}", headers=headers)
    assert res.status_code == 200
    assert res.json()["user"]["email"] == "student@example.com"
    assert res.json()["real_user"]["email"] == "admin@example.com"

    # Gate follows the student's matrix now
    assert (await client.get("/api/data/leads", headers=headers)).status_code == 403
    assert (await client.get("/api/data/courses", headers=headers)).status_code == 200

    res = await client.post("/api/identity/stop", headers=headers)
    assert res.status_code == 200
    assert res.json()["impersonating"] is False

    logs = await client.get("/api/logs/activity", headers=headers)
    assert [entry["action"] for entry in logs.json()] == [
        "Stopped impersonating Sam Student.",
        "Started impersonating Sam Student.",
    ]
    assert {entry["actor_name"] for entry in logs.json()} == {"Ada Admin"}


@pytest.mark.asyncio
async def test_employee_cannot_impersonate(client, employee_user, student_user, login):
    headers = await login("employee@example.com", "employee-pass")
    res = await client.post(f"/api/identity/impersonate/{student_user.id}", headers=headers)
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_admin_cannot_impersonate_self(client, admin_user, login):
    headers = await login("admin@example.com", "admin-pass")
    res = await client.post(f"/api/identity/impersonate/{admin_user.id}", headers=headers)
    assert res.status_code == 400


# ------------------------------------------------------------------
# ACCESS CONTROL
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_admin_creates_staff_and_it_is_audited(client, admin_user, login):
    headers = await login("admin@example.com", "admin-pass")

    res = await client.post(
        "/api/users/",
        json={"name": "Nia New", "email": "nia@example.com", "password": "temp-pass"},
        headers=headers,
    )
    assert res.status_code == 201
    assert res.json()["added_user"]["email"] == "nia@example.com"
    assert len(res.json()["all_users"]) == 2

    logs = (await client.get("/api/logs/activity", headers=headers)).json()
    assert logs[0]["action"] == "Created new staff member Nia New (Employee)."


@pytest.mark.asyncio
async def test_employee_cannot_manage_users(client, employee_user, login):
    headers = await login("employee@example.com", "employee-pass")

    assert (await client.get("/api/users/", headers=headers)).status_code == 403
    assert (await client.get("/api/logs/activity", headers=headers)).status_code == 403


@pytest.mark.asyncio
async def test_flag_edit_reaches_the_open_session(client, admin_user, employee_user, login):
    admin_headers = await login("admin@example.com", "admin-pass")
    employee_headers = await login("employee@example.com", "employee-pass")

    res = await client.put(
        f"/api/users/{employee_user.id}/permissions/CRM",
        json={"action": "create", "value": False},
        headers=admin_headers,
    )
    assert res.status_code == 200
    eli = next(u for u in res.json() if u["email"] == "employee@example.com")
    assert eli["permissions"]["CRM"] == {"read": True, "create": False, "update": True, "delete": True}

    # Employee's live console sees the new matrix without logging in again
    assert (await client.get("/api/data/leads", headers=employee_headers)).status_code == 200
    res = await client.post("/api/data/leads", json={"name": "Acme"}, headers=employee_headers)
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_role_change_is_audited(client, admin_user, employee_user, login):
    headers = await login("admin@example.com", "admin-pass")

    res = await client.put(f"/api/users/{employee_user.id}/role", json={"role": "Admin"}, headers=headers)
    assert res.status_code == 200

    logs = (await client.get("/api/logs/activity", headers=headers)).json()
    assert logs[0]["action"] == "Changed role for Eli Employee to Admin."


@pytest.mark.asyncio
async def test_generic_user_route_reaches_the_open_session(client, admin_user, employee_user, login):
    admin_headers = await login("admin@example.com", "admin-pass")
    employee_headers = await login("employee@example.com", "employee-pass")

    res = await client.put(f"/api/data/users/{employee_user.id}", json={"role": "Student"}, headers=admin_headers)
    assert res.status_code == 200

    res = await client.post("/api/data/leads", json={"name": "Acme"}, headers=employee_headers)
    assert res.status_code == 403
    me = (await client.get("/api/auth/me", headers=employee_headers)).json()
    assert me["user"]["role"] == "Student"


@pytest.mark.asyncio
async def test_rejected_user_update_changes_nothing(client, admin_user, employee_user, login):
    headers = await login("admin@example.com", "admin-pass")

    res = await client.put(
        f"/api/data/users/{employee_user.id}",
        json={"role": "Admin", "permissions": {"CRM": "nonsense"}},
        headers=headers,
    )
    assert res.status_code == 422

    users = (await client.get("/api/users/", headers=headers)).json()
    eli = next(u for u in users if u["email"] == "employee@example.com")
    assert eli["role"] == "Employee"
    assert (await client.get("/api/logs/activity", headers=headers)).json() == []


@pytest.mark.asyncio
async def test_removed_user_loses_their_session(client, admin_user, employee_user, login):
    admin_headers = await login("admin@example.com", "admin-pass")
    employee_headers = await login("employee@example.com", "employee-pass")

    res = await client.delete(f"/api/users/{employee_user.id}", headers=admin_headers)
    assert res.status_code == 200
    assert [u["email"] for u in res.json()] == ["admin@example.com"]

    res = await client.post("/api/data/leads", json={"name": "Acme"}, headers=employee_headers)
    assert res.status_code == 401

    logs = (await client.get("/api/logs/activity", headers=admin_headers)).json()
    assert logs[0]["action"] == "Removed user Eli Employee."


@pytest.mark.asyncio
async def test_demoting_the_only_admin_fails(client, admin_user, login):
    headers = await login("admin@example.com", "admin-pass")
    res = await client.put(f"/api/users/{admin_user.id}/role", json={"role": "Employee"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Cannot demote the only administrator."


# ------------------------------------------------------------------
# DATA + NOTIFICATIONS
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_new_lead_notifies_staff(client, admin_user, employee_user, login):
    employee_headers = await login("employee@example.com", "employee-pass")
    admin_headers = await login("admin@example.com", "admin-pass")

    res = await client.post("/api/data/leads", json={"name": "Acme"}, headers=employee_headers)
    assert res.status_code == 201
    body = res.json()
    assert body["status"] == "applied"
    assert body["items"][0]["name"] == "Acme"
    assert body["notification"]["title"] == "New Lead"

    notes = (await client.get("/api/notifications/", headers=admin_headers)).json()
    assert [n["title"] for n in notes] == ["New Lead"]

    marked = (await client.post("/api/notifications/mark-all-read", headers=admin_headers)).json()
    assert all(n["read"] for n in marked)


@pytest.mark.asyncio
async def test_unknown_collection_is_404(client, admin_user, login):
    headers = await login("admin@example.com", "admin-pass")
    assert (await client.get("/api/data/spaceships", headers=headers)).status_code == 404


@pytest.mark.asyncio
async def test_upstream_auth_failure_ends_the_session(client, admin_user, data_api, login):
    headers = await login("admin@example.com", "admin-pass")
    data_api.fail_with = MutationFailed(401, "Token expired")

    res = await client.post("/api/data/tasks", json={"title": "x"}, headers=headers)
    assert res.status_code == 401

    data_api.fail_with = None
    assert (await client.get("/api/auth/me", headers=headers)).status_code == 401


@pytest.mark.asyncio
async def test_upstream_server_error_is_bad_gateway(client, admin_user, data_api, login):
    headers = await login("admin@example.com", "admin-pass")
    data_api.fail_with = MutationFailed(500, "Internal error")

    res = await client.post("/api/data/tasks", json={"title": "x"}, headers=headers)
    assert res.status_code == 502
    assert (await client.get("/api/auth/me", headers=headers)).status_code == 200


# ------------------------------------------------------------------
# ACCOUNT
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_password_change_sends_a_private_notification(client, admin_user, employee_user, login):
    employee_headers = await login("employee@example.com", "employee-pass")
    admin_headers = await login("admin@example.com", "admin-pass")

    res = await client.post(
        "/api/account/change-password",
        json={"current": "employee-pass", "new_password": "better-pass"},
        headers=employee_headers,
    )
    assert res.status_code == 200

    mine = (await client.get("/api/notifications/", headers=employee_headers)).json()
    assert [n["title"] for n in mine] == ["Password Changed"]
    assert (await client.get("/api/notifications/", headers=admin_headers)).json() == []


@pytest.mark.asyncio
async def test_temporary_password_must_be_replaced(client, admin_user, login):
    admin_headers = await login("admin@example.com", "admin-pass")
    await client.post(
        "/api/users/",
        json={"name": "Nia New", "email": "nia@example.com", "password": "temp-pass"},
        headers=admin_headers,
    )

    headers = await login("nia@example.com", "temp-pass")
    assert (await client.get("/api/data/leads", headers=headers)).status_code == 403

    res = await client.post("/api/account/set-initial-password", json={"new_password": "mine-now"}, headers=headers)
    assert res.status_code == 200
    assert res.json()["must_reset_password"] is False

    assert (await client.get("/api/data/leads", headers=headers)).status_code == 200
