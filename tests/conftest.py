import os
from typing import Any, Dict, List

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# ------------------------------------------------------------------
# FORCE TESTING MODE
# Must be set BEFORE importing portal.main so the module-level engine
# and settings never touch a real database.
# ------------------------------------------------------------------
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DISCARD_STALE_RESPONSES"] = "false"

from portal.api import deps  # noqa: E402
from portal.core.database import build_engine, init_db  # noqa: E402
from portal.core.identity import UserIdentity  # noqa: E402
from portal.core.errors import MutationFailed  # noqa: E402
from portal.main import app  # noqa: E402
from portal.models.user import UserRole  # noqa: E402
from portal.services.mutation_service import EntityId, MutationService, RoutingMutationService  # noqa: E402
from portal.services.sessions import session_registry  # noqa: E402
from portal.services.user_directory import UserDirectory  # noqa: E402
from portal.services.user_service import create_user  # noqa: E402


# ------------------------------------------------------------------
# IN-MEMORY DATA API
# Behaves like the remote service: every call answers with the
# whole collection after the change.
# ------------------------------------------------------------------
class FakeDataApi(MutationService):
    def __init__(self):
        self.data: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.fail_with: MutationFailed | None = None
        self._next_id = 1

    def _collection(self, collection: str) -> List[Dict[str, Any]]:
        return self.data.setdefault(collection, [])

    def _check(self, *call):
        self.calls.append(call)
        if self.fail_with is not None:
            raise self.fail_with

    async def list(self, collection: str) -> List[Any]:
        self._check("list", collection)
        return list(self._collection(collection))

    async def create(self, collection: str, payload: Dict[str, Any]) -> List[Any]:
        self._check("create", collection, payload)
        item = {"id": self._next_id, **payload}
        self._next_id += 1
        self._collection(collection).append(item)
        return list(self._collection(collection))

    async def update(self, collection: str, entity_id: EntityId, payload: Dict[str, Any]) -> List[Any]:
        self._check("update", collection, entity_id, payload)
        for item in self._collection(collection):
            if str(item["id"]) == str(entity_id):
                item.update(payload)
                return list(self._collection(collection))
        raise MutationFailed(404, "Not found")

    async def delete(self, collection: str, entity_id: EntityId) -> List[Any]:
        self._check("delete", collection, entity_id)
        self.data[collection] = [i for i in self._collection(collection) if str(i["id"]) != str(entity_id)]
        return list(self._collection(collection))


# ------------------------------------------------------------------
# DATABASE (fresh in-memory SQLite per test)
# ------------------------------------------------------------------
@pytest_asyncio.fixture
async def session_factory():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await init_db(bind=engine)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def clean_registry():
    session_registry.clear()
    yield
    session_registry.clear()


@pytest.fixture
def data_api():
    return FakeDataApi()


# ------------------------------------------------------------------
# USERS
# ------------------------------------------------------------------
@pytest_asyncio.fixture
async def admin_user(db_session):
    return await create_user(db_session, "Ada Admin", "admin@example.com", "admin-pass", UserRole.Admin)


@pytest_asyncio.fixture
async def employee_user(db_session):
    return await create_user(db_session, "Eli Employee", "employee@example.com", "employee-pass", UserRole.Employee)


@pytest_asyncio.fixture
async def student_user(db_session):
    return await create_user(db_session, "Sam Student", "student@example.com", "student-pass", UserRole.Student)


@pytest.fixture
def admin(admin_user):
    return UserIdentity.from_user(admin_user)


@pytest.fixture
def employee(employee_user):
    return UserIdentity.from_user(employee_user)


@pytest.fixture
def student(student_user):
    return UserIdentity.from_user(student_user)


# ------------------------------------------------------------------
# HTTP CLIENT
# ------------------------------------------------------------------
@pytest_asyncio.fixture
async def client(session_factory, data_api):
    app.dependency_overrides[deps.get_session_factory] = lambda: session_factory
    app.dependency_overrides[deps.get_mutation_service] = lambda: RoutingMutationService(
        default=data_api,
        routes={"users": UserDirectory(session_factory)},
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def login(client: AsyncClient):
    async def _login(email: str, password: str) -> Dict[str, str]:
        res = await client.post("/api/auth/login", json={"email": email, "password": password})
        assert res.status_code == 200, res.text
        return {"Authorization": f"Bearer {res.json()['access_token']}"}

    return _login
