"""
Expected Supabase table structure:

permissions:
- id: uuid (primary key)
- name: text (not null, unique) - "resource:action", e.g. "work_orders:read"
- resource: text (not null) - e.g. "work_orders", "technicians", "users"
- action: text (not null) - e.g. "create", "read", "update", "delete", "assign", "manage"
- description: text (nullable)
- created_at: timestamp (default: now())
- unique constraint on (resource, action)

"manage" is a wildcard action: it grants every action on its resource.

roles:
- id: uuid (primary key)
- name: text (not null, unique) - machine key, e.g. "super_admin", "technician"
- display_name: text (not null) - e.g. "Super Admin"
- description: text (nullable)
- is_system: boolean (default: false) - seed roles, editable but never deletable
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

role_permissions:
- role_id: uuid (foreign key to roles.id, on delete cascade)
- permission_id: uuid (foreign key to permissions.id, on delete cascade)
- created_at: timestamp (default: now())
- primary key (role_id, permission_id)

user_profiles.role_id references roles.id with ON DELETE SET NULL, so deleting a
role leaves its profiles role-less instead of failing.
"""

from supabase import Client
from opsportal.modules.roles.schemas import (
    PermissionResponse, PermissionGroup,
    RoleCreate, RoleUpdate, RoleResponse, RoleWithPermissionsResponse,
    RoleDeleteResponse
)
from opsportal.config.permissions_config import get_resource_display_names
from opsportal.core.permissions import Permission, PermissionSet, InvalidPermission
from typing import List, Optional
from datetime import datetime, timezone
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


class PermissionService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def list_permissions(self, resource: Optional[str] = None) -> List[PermissionResponse]:
        """List permissions ordered by resource then action, optionally filtered by resource"""
        try:
            query = self.supabase.table("permissions").select("*")
            if resource:
                query = query.eq("resource", resource)
            result = query.order("resource").order("action").execute()
            return [PermissionResponse(**permission) for permission in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_permissions_grouped(self) -> List[PermissionGroup]:
        """Permissions grouped by resource for the role editor"""
        display_names = get_resource_display_names()
        groups = {}
        for permission in self.list_permissions():
            if permission.resource not in groups:
                groups[permission.resource] = PermissionGroup(
                    resource=permission.resource,
                    display_name=display_names.get(permission.resource, permission.resource),
                    permissions=[],
                )
            groups[permission.resource].permissions.append(permission)
        return list(groups.values())


class RoleService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _fetch_role(self, role_id: str) -> Optional[dict]:
        result = self.supabase.table("roles")\
            .select("*")\
            .eq("id", role_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def create_role(self, role_data: RoleCreate) -> RoleResponse:
        """Create a new role. User-created roles are never system roles."""
        try:
            existing = self.supabase.table("roles")\
                .select("id")\
                .eq("name", role_data.name)\
                .execute()
            if existing.data:
                raise HTTPException(status_code=400, detail="A role with this name already exists")

            result = self.supabase.table("roles").insert({
                "name": role_data.name,
                "display_name": role_data.display_name,
                "description": role_data.description,
                "is_system": False
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create role")

            return RoleResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_roles(self) -> List[RoleResponse]:
        """List all roles, oldest first"""
        try:
            result = self.supabase.table("roles")\
                .select("*")\
                .order("created_at")\
                .execute()
            return [RoleResponse(**role) for role in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_role_by_id(self, role_id: str) -> RoleResponse:
        """Get role by ID"""
        try:
            role = self._fetch_role(role_id)
            if not role:
                raise HTTPException(status_code=404, detail="Role not found")
            return RoleResponse(**role)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_role_with_permissions(self, role_id: str) -> RoleWithPermissionsResponse:
        """Get role with all associated permissions"""
        try:
            role = self._fetch_role(role_id)
            if not role:
                raise HTTPException(status_code=404, detail="Role not found")

            permissions = [PermissionResponse(**p) for p in self._fetch_role_permission_rows(role_id)]
            return RoleWithPermissionsResponse(**role, permissions=permissions)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_role(self, role_id: str, role_data: RoleUpdate) -> RoleResponse:
        """Update role display fields. System roles may be edited."""
        try:
            update_data = {"updated_at": datetime.now(timezone.utc).isoformat()}
            if role_data.display_name:
                update_data["display_name"] = role_data.display_name
            if role_data.description is not None:
                update_data["description"] = role_data.description

            result = self.supabase.table("roles")\
                .update(update_data)\
                .eq("id", role_id)\
                .execute()

            if not result.data:
                raise HTTPException(status_code=404, detail="Role not found")

            return RoleResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_role(self, role_id: str) -> RoleDeleteResponse:
        """
        Delete a non-system role.

        Profiles holding the role are not deleted: once the role row is gone they
        end up with no role (and therefore an empty permission set).
        """
        try:
            role = self._fetch_role(role_id)
            if not role:
                raise HTTPException(status_code=404, detail="Role not found")
            if role.get("is_system"):
                raise HTTPException(status_code=400, detail="Cannot delete system roles")

            referencing = self.supabase.table("user_profiles")\
                .select("id")\
                .eq("role_id", role_id)\
                .execute()
            unassigned = len(referencing.data or [])

            self.supabase.table("roles")\
                .delete()\
                .eq("id", role_id)\
                .eq("is_system", False)\
                .execute()

            # Mirrors the foreign keys: SET NULL on profiles, CASCADE on grants
            self.supabase.table("user_profiles")\
                .update({"role_id": None})\
                .eq("role_id", role_id)\
                .execute()
            self.supabase.table("role_permissions")\
                .delete()\
                .eq("role_id", role_id)\
                .execute()
            if unassigned:
                logger.info(f"Role {role['name']} deleted: {unassigned} profile(s) are now role-less")

            return RoleDeleteResponse(
                role_id=role_id,
                unassigned_profiles=unassigned,
                message=f"Role {role['name']} deleted"
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _fetch_role_permission_rows(self, role_id: str) -> List[dict]:
        links = self.supabase.table("role_permissions")\
            .select("permission_id")\
            .eq("role_id", role_id)\
            .execute()
        permission_ids = [link["permission_id"] for link in links.data or []]
        if not permission_ids:
            return []
        result = self.supabase.table("permissions")\
            .select("*")\
            .in_("id", permission_ids)\
            .execute()
        return result.data or []

    def get_role_permissions(self, role_id: str) -> List[PermissionResponse]:
        """Get all permissions for a role"""
        try:
            return [PermissionResponse(**p) for p in self._fetch_role_permission_rows(role_id)]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def find_role_permissions(self, role_id: Optional[str]) -> PermissionSet:
        """Resolve the permission set granted by a role. No role means no permissions.

        Store errors propagate; callers decide whether an unreadable role is fatal.
        """
        if not role_id:
            return PermissionSet.empty()
        grants = []
        for row in self._fetch_role_permission_rows(role_id):
            try:
                grants.append(Permission(resource=row["resource"], action=row["action"]))
            except (KeyError, InvalidPermission):
                logger.warning(f"Skipping malformed permission row on role {role_id}: {row}")
        return PermissionSet(grants)

    def assign_permission_to_role(self, role_id: str, permission_id: str) -> None:
        """Assign a permission to a role. Assigning an already held permission is a no-op."""
        try:
            if not self._fetch_role(role_id):
                raise HTTPException(status_code=404, detail="Role not found")
            permission = self.supabase.table("permissions")\
                .select("id")\
                .eq("id", permission_id)\
                .execute()
            if not permission.data:
                raise HTTPException(status_code=404, detail="Permission not found")

            existing = self.supabase.table("role_permissions")\
                .select("permission_id")\
                .eq("role_id", role_id)\
                .eq("permission_id", permission_id)\
                .execute()
            if existing.data:
                return

            self.supabase.table("role_permissions").insert({
                "role_id": role_id,
                "permission_id": permission_id
            }).execute()
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def remove_permission_from_role(self, role_id: str, permission_id: str) -> bool:
        """Remove a permission from a role"""
        try:
            result = self.supabase.table("role_permissions")\
                .delete()\
                .eq("role_id", role_id)\
                .eq("permission_id", permission_id)\
                .execute()
            return len(result.data or []) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def replace_role_permissions(self, role_id: str, permission_ids: List[str]) -> List[PermissionResponse]:
        """Replace all permissions of a role with the given set"""
        try:
            if not self._fetch_role(role_id):
                raise HTTPException(status_code=404, detail="Role not found")

            wanted = list(dict.fromkeys(permission_ids))
            if wanted:
                known = self.supabase.table("permissions")\
                    .select("id")\
                    .in_("id", wanted)\
                    .execute()
                known_ids = {p["id"] for p in known.data or []}
                unknown = [pid for pid in wanted if pid not in known_ids]
                if unknown:
                    raise HTTPException(status_code=400, detail=f"Unknown permission ids: {', '.join(unknown)}")

            self.supabase.table("role_permissions")\
                .delete()\
                .eq("role_id", role_id)\
                .execute()

            if wanted:
                self.supabase.table("role_permissions").insert([
                    {"role_id": role_id, "permission_id": pid} for pid in wanted
                ]).execute()

            return self.get_role_permissions(role_id)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
