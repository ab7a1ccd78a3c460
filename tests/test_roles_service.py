import pytest
from fastapi import HTTPException

from opsportal.modules.roles.schemas import RoleCreate, RoleUpdate
from opsportal.modules.roles.service import PermissionService, RoleService
from opsportal.modules.users.service import UserService


@pytest.fixture
def roles(db):
    return RoleService(db)


class TestRoleDeletion:
    def test_deleting_referenced_role_leaves_profile_role_less(self, db, roles, seed_role):
        role = seed_role("dispatcher", ["work_orders:manage"])
        db.add("user_profiles", id="u1", email="a@x.com", display_name="A", role_id=role["id"])

        result = roles.delete_role(role["id"])

        assert result.unassigned_profiles == 1
        profile = UserService(db).find_by_id("u1")
        assert profile is not None
        assert profile.role_id is None
        assert not roles.find_role_permissions(profile.role_id)
        assert db.rows("roles") == []
        assert db.rows("role_permissions") == []
        assert len(db.rows("permissions")) == 1

    def test_failed_role_delete_keeps_profiles_and_grants(self, db, roles, seed_role):
        role = seed_role("dispatcher", ["work_orders:manage"])
        db.add("user_profiles", id="u1", email="a@x.com", display_name="A", role_id=role["id"])
        db.fail("roles", "delete")

        with pytest.raises(HTTPException) as exc:
            roles.delete_role(role["id"])

        assert exc.value.status_code == 500
        assert len(db.rows("roles")) == 1
        profile = UserService(db).find_by_id("u1")
        assert profile.role_id == role["id"]
        assert roles.find_role_permissions(role["id"]).names() == ["work_orders:manage"]

    def test_system_role_cannot_be_deleted(self, db, roles, seed_role):
        role = seed_role("super_admin", ["users:manage"], is_system=True)

        with pytest.raises(HTTPException) as exc:
            roles.delete_role(role["id"])

        assert exc.value.status_code == 400
        assert len(db.rows("roles")) == 1

    def test_system_role_can_be_edited(self, roles, seed_role):
        role = seed_role("technician", [], is_system=True)

        updated = roles.update_role(role["id"], RoleUpdate(display_name="Field Technician"))

        assert updated.display_name == "Field Technician"
        assert updated.is_system is True

    def test_missing_role(self, roles):
        with pytest.raises(HTTPException) as exc:
            roles.delete_role("does-not-exist")
        assert exc.value.status_code == 404


class TestRoleCrud:
    def test_created_roles_are_never_system_roles(self, roles):
        role = roles.create_role(RoleCreate(name="dispatcher", display_name="Dispatcher"))
        assert role.is_system is False

    def test_duplicate_name(self, roles):
        roles.create_role(RoleCreate(name="dispatcher", display_name="Dispatcher"))
        with pytest.raises(HTTPException) as exc:
            roles.create_role(RoleCreate(name="dispatcher", display_name="Other"))
        assert exc.value.status_code == 400

    def test_role_with_permissions(self, roles, seed_role):
        role = seed_role("dispatcher", ["work_orders:read", "work_orders:assign"])
        result = roles.get_role_with_permissions(role["id"])
        assert sorted(p.name for p in result.permissions) == ["work_orders:assign", "work_orders:read"]


class TestRolePermissions:
    def test_find_role_permissions(self, roles, seed_role):
        role = seed_role("dispatcher", ["work_orders:manage", "clients:read"])
        permissions = roles.find_role_permissions(role["id"])
        assert permissions.names() == ["clients:read", "work_orders:manage"]
        assert permissions.has_permission("work_orders:read")
        assert not permissions.has_permission("clients:update")

    def test_no_role_means_no_permissions(self, roles):
        assert len(roles.find_role_permissions(None)) == 0

    def test_assign_is_idempotent(self, db, roles, seed_role):
        role = seed_role("dispatcher", [])
        permission = db.add("permissions", name="vehicles:read", resource="vehicles", action="read")

        roles.assign_permission_to_role(role["id"], permission["id"])
        roles.assign_permission_to_role(role["id"], permission["id"])

        assert len(db.rows("role_permissions")) == 1

    def test_assign_unknown_permission(self, roles, seed_role):
        role = seed_role("dispatcher", [])
        with pytest.raises(HTTPException) as exc:
            roles.assign_permission_to_role(role["id"], "missing")
        assert exc.value.status_code == 404

    def test_replace_and_remove(self, db, roles, seed_role):
        role = seed_role("dispatcher", ["work_orders:read"])
        vehicles = db.add("permissions", name="vehicles:read", resource="vehicles", action="read")
        clients = db.add("permissions", name="clients:read", resource="clients", action="read")

        result = roles.replace_role_permissions(role["id"], [vehicles["id"], clients["id"], vehicles["id"]])
        assert sorted(p.name for p in result) == ["clients:read", "vehicles:read"]

        assert roles.remove_permission_from_role(role["id"], clients["id"]) is True
        assert roles.find_role_permissions(role["id"]).names() == ["vehicles:read"]

    def test_replace_rejects_unknown_ids(self, db, roles, seed_role):
        role = seed_role("dispatcher", ["work_orders:read"])
        with pytest.raises(HTTPException) as exc:
            roles.replace_role_permissions(role["id"], ["missing"])
        assert exc.value.status_code == 400
        assert roles.find_role_permissions(role["id"]).names() == ["work_orders:read"]


def test_permissions_grouped_by_resource(db):
    db.add("permissions", name="work_orders:read", resource="work_orders", action="read")
    db.add("permissions", name="work_orders:manage", resource="work_orders", action="manage")
    db.add("permissions", name="custom:read", resource="custom", action="read")

    groups = PermissionService(db).list_permissions_grouped()

    assert [(g.resource, g.display_name) for g in groups] == [("custom", "custom"), ("work_orders", "Work Orders")]
    assert [p.action for p in groups[1].permissions] == ["manage", "read"]
