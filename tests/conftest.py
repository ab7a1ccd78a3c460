import pytest
from fastapi.testclient import TestClient

from opsportal.core.access import permission_cache
from opsportal.core.dependencies import get_current_user
from opsportal.database.supabase_client import get_supabase
from opsportal.main import app
from opsportal.modules.auth.routes import get_identity_provider
from opsportal.modules.auth.service import ClaimService
from opsportal.modules.invitations.service import InvitationService
from opsportal.modules.users.service import UserService
from tests.fakes import FakeIdentityProvider, FakeSupabase


@pytest.fixture(autouse=True)
def clear_permission_cache():
    permission_cache.clear()
    yield
    permission_cache.clear()


@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture
def idp():
    return FakeIdentityProvider()


@pytest.fixture
def claim_service(db, idp):
    return ClaimService(idp, UserService(db), InvitationService(db))


@pytest.fixture
def seed_role(db):
    def _seed_role(name, permission_names, is_system=False):
        role = db.add("roles", name=name, display_name=name.replace("_", " ").title(), is_system=is_system)
        for permission_name in permission_names:
            resource, action = permission_name.split(":")
            existing = [p for p in db.rows("permissions") if p["name"] == permission_name]
            permission = existing[0] if existing else db.add(
                "permissions", name=permission_name, resource=resource, action=action
            )
            db.add("role_permissions", role_id=role["id"], permission_id=permission["id"])
        return role
    return _seed_role


@pytest.fixture
def client(db, idp):
    app.dependency_overrides[get_supabase] = lambda: db
    app.dependency_overrides[get_identity_provider] = lambda: idp
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def login_as(db):
    """Make the bearer token "token-<id>" resolve to the given profile's identity."""
    def _login_as(profile):
        app.dependency_overrides[get_current_user] = lambda: {
            "id": profile["id"], "email": profile["email"], "user_metadata": {}
        }
        return {"Authorization": f"Bearer token-{profile['id']}"}
    return _login_as
