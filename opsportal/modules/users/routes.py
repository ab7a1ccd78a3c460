from fastapi import APIRouter, Depends, HTTPException, status
from opsportal.database.supabase_client import get_supabase
from opsportal.modules.users.schemas import ProfileUpdate, ProfileResponse, OnboardingComplete, RoleAssign
from opsportal.modules.users.service import UserService
from opsportal.core.dependencies import require_permission, get_current_user
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/users", tags=["users"])


def get_user_service(supabase: Client = Depends(get_supabase)) -> UserService:
    return UserService(supabase)


@router.get("", response_model=List[ProfileResponse])
async def list_users(
    include_inactive: bool = False,
    limit: int = 50,
    offset: int = 0,
    profile: ProfileResponse = Depends(require_permission("users:read")),
    service: UserService = Depends(get_user_service)
):
    """List users; archived users only when include_inactive is set"""
    return service.list_users(include_inactive=include_inactive, limit=limit, offset=offset)


@router.post("/me/onboarding", response_model=ProfileResponse)
async def complete_onboarding(
    data: OnboardingComplete,
    user_data: Dict = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    """Finish onboarding for the caller's own profile"""
    current = service.get_user_by_id(user_data["id"])
    if not current.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account deactivated")
    return service.complete_onboarding(current.id, data)


@router.get("/{user_id}", response_model=ProfileResponse)
async def get_user(
    user_id: str,
    profile: ProfileResponse = Depends(require_permission("users:read")),
    service: UserService = Depends(get_user_service)
):
    return service.get_user_by_id(user_id)


@router.put("/{user_id}", response_model=ProfileResponse)
async def update_user(
    user_id: str,
    user_data: ProfileUpdate,
    profile: ProfileResponse = Depends(require_permission("users:update")),
    service: UserService = Depends(get_user_service)
):
    return service.update_user(user_id, user_data)


@router.put("/{user_id}/role", response_model=ProfileResponse)
async def assign_role(
    user_id: str,
    role_data: RoleAssign,
    profile: ProfileResponse = Depends(require_permission("roles:update")),
    service: UserService = Depends(get_user_service)
):
    """Assign or clear a user's role. Takes effect on that user's next permission refresh."""
    return service.assign_role(user_id, role_data.role_id)


@router.post("/{user_id}/archive", response_model=ProfileResponse)
async def archive_user(
    user_id: str,
    profile: ProfileResponse = Depends(require_permission("users:delete")),
    service: UserService = Depends(get_user_service)
):
    """Soft delete: the profile stays, is_active becomes false"""
    if user_id == profile.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot archive yourself")
    return service.set_active(user_id, False)


@router.post("/{user_id}/restore", response_model=ProfileResponse)
async def restore_user(
    user_id: str,
    profile: ProfileResponse = Depends(require_permission("users:delete")),
    service: UserService = Depends(get_user_service)
):
    return service.set_active(user_id, True)
