from fastapi import APIRouter, Depends
from opsportal.database.supabase_client import get_supabase
from opsportal.modules.roles.schemas import (
    PermissionResponse, PermissionGroup,
    RoleCreate, RoleUpdate, RoleResponse, RoleWithPermissionsResponse,
    RolePermissionAssign, RolePermissionsReplace, RoleDeleteResponse
)
from opsportal.modules.roles.service import RoleService, PermissionService
from opsportal.modules.users.schemas import ProfileResponse
from opsportal.core.dependencies import require_permission
from supabase import Client
from typing import List, Optional

router = APIRouter(prefix="/roles", tags=["roles"])


def get_role_service(supabase: Client = Depends(get_supabase)) -> RoleService:
    return RoleService(supabase)


def get_permission_service(supabase: Client = Depends(get_supabase)) -> PermissionService:
    return PermissionService(supabase)


# Permission endpoints
@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    resource: Optional[str] = None,
    profile: ProfileResponse = Depends(require_permission("roles:read")),
    service: PermissionService = Depends(get_permission_service)
):
    return service.list_permissions(resource=resource)


@router.get("/permissions/grouped", response_model=List[PermissionGroup])
async def list_permissions_grouped(
    profile: ProfileResponse = Depends(require_permission("roles:read")),
    service: PermissionService = Depends(get_permission_service)
):
    """Permissions grouped by resource for the role editor"""
    return service.list_permissions_grouped()


# Role endpoints
@router.post("", response_model=RoleResponse, status_code=201)
async def create_role(
    role_data: RoleCreate,
    profile: ProfileResponse = Depends(require_permission("roles:create")),
    service: RoleService = Depends(get_role_service)
):
    return service.create_role(role_data)


@router.get("", response_model=List[RoleResponse])
async def list_roles(
    profile: ProfileResponse = Depends(require_permission("roles:read")),
    service: RoleService = Depends(get_role_service)
):
    return service.list_roles()


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: str,
    profile: ProfileResponse = Depends(require_permission("roles:read")),
    service: RoleService = Depends(get_role_service)
):
    return service.get_role_by_id(role_id)


@router.get("/{role_id}/with-permissions", response_model=RoleWithPermissionsResponse)
async def get_role_with_permissions(
    role_id: str,
    profile: ProfileResponse = Depends(require_permission("roles:read")),
    service: RoleService = Depends(get_role_service)
):
    return service.get_role_with_permissions(role_id)


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_data: RoleUpdate,
    profile: ProfileResponse = Depends(require_permission("roles:update")),
    service: RoleService = Depends(get_role_service)
):
    return service.update_role(role_id, role_data)


@router.delete("/{role_id}", response_model=RoleDeleteResponse)
async def delete_role(
    role_id: str,
    profile: ProfileResponse = Depends(require_permission("roles:delete")),
    service: RoleService = Depends(get_role_service)
):
    """Delete a non-system role; its users become role-less"""
    return service.delete_role(role_id)


# Role-Permission association endpoints
@router.get("/{role_id}/permissions", response_model=List[PermissionResponse])
async def get_role_permissions(
    role_id: str,
    profile: ProfileResponse = Depends(require_permission("roles:read")),
    service: RoleService = Depends(get_role_service)
):
    return service.get_role_permissions(role_id)


@router.post("/{role_id}/permissions", status_code=204)
async def assign_permission_to_role(
    role_id: str,
    permission_assign: RolePermissionAssign,
    profile: ProfileResponse = Depends(require_permission("roles:update")),
    service: RoleService = Depends(get_role_service)
):
    service.assign_permission_to_role(role_id, permission_assign.permission_id)
    return None


@router.delete("/{role_id}/permissions/{permission_id}", status_code=204)
async def remove_permission_from_role(
    role_id: str,
    permission_id: str,
    profile: ProfileResponse = Depends(require_permission("roles:update")),
    service: RoleService = Depends(get_role_service)
):
    service.remove_permission_from_role(role_id, permission_id)
    return None


@router.put("/{role_id}/permissions", response_model=List[PermissionResponse])
async def replace_role_permissions(
    role_id: str,
    bulk_data: RolePermissionsReplace,
    profile: ProfileResponse = Depends(require_permission("roles:update")),
    service: RoleService = Depends(get_role_service)
):
    """Replace all permissions of a role"""
    return service.replace_role_permissions(role_id, bulk_data.permission_ids)
