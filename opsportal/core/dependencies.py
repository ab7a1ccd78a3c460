"""
Core dependencies for route protection and permission checking (the Access Guard)
"""

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from opsportal.config.settings import settings
from opsportal.core.access import permission_cache
from opsportal.core.permissions import PermissionSet
from opsportal.database.supabase_client import get_supabase
from opsportal.modules.auth.service import AuthService
from opsportal.modules.roles.service import RoleService
from opsportal.modules.users.schemas import ProfileResponse
from opsportal.modules.users.service import UserService
from supabase import Client
from typing import List, Optional, Dict
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_session_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> str:
    """Session token from the Authorization header, else from the session cookie"""
    if credentials and credentials.credentials:
        return credentials.credentials
    token = request.cookies.get(settings.access_token_cookie)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def get_current_user(
    token: str = Depends(get_session_token),
    auth_service: AuthService = Depends(get_auth_service)
) -> Dict:
    """Authenticated identity ({id, email, user_metadata}) behind the session token"""
    return auth_service.get_current_user(token)


def get_current_profile(
    user_data: Dict = Depends(get_current_user),
    supabase: Client = Depends(get_supabase)
) -> ProfileResponse:
    """The caller's profile. Unclaimed identities and archived users are refused."""
    try:
        profile = UserService(supabase).find_by_id(user_data["id"])
    except Exception as e:
        logger.error(f"Error loading profile {user_data['id']}: {e}")
        raise HTTPException(status_code=500, detail="Could not load user profile")
    if profile is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No profile for this account")
    if not profile.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account deactivated")
    return profile


def load_permission_set(profile: ProfileResponse, supabase: Client) -> PermissionSet:
    """Permission set reachable through the profile's role; empty without a role."""
    return RoleService(supabase).find_role_permissions(profile.role_id)


def get_permission_set(
    token: str = Depends(get_session_token),
    profile: ProfileResponse = Depends(get_current_profile),
    supabase: Client = Depends(get_supabase)
) -> PermissionSet:
    """Session-scoped permission set, resolved on first use and reused afterwards"""
    try:
        return permission_cache.get_or_load(token, lambda: load_permission_set(profile, supabase))
    except Exception as e:
        logger.error(f"Error getting user permissions: {e}")
        raise HTTPException(status_code=500, detail="Could not load permissions")


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def require_permission(required_permission: str):
    """Factory function to create permission check dependency"""
    def check_permission(
        profile: ProfileResponse = Depends(get_current_profile),
        permissions: PermissionSet = Depends(get_permission_set)
    ) -> ProfileResponse:
        if not permissions.has_permission(required_permission):
            raise _forbidden(f"Insufficient permissions. Required: {required_permission}")
        return profile
    return check_permission


def require_any_permission(required_permissions: List[str]):
    def check_permission(
        profile: ProfileResponse = Depends(get_current_profile),
        permissions: PermissionSet = Depends(get_permission_set)
    ) -> ProfileResponse:
        if not permissions.has_any_permission(required_permissions):
            raise _forbidden(f"Insufficient permissions. Required one of: {', '.join(required_permissions)}")
        return profile
    return check_permission


def require_all_permissions(required_permissions: List[str]):
    def check_permission(
        profile: ProfileResponse = Depends(get_current_profile),
        permissions: PermissionSet = Depends(get_permission_set)
    ) -> ProfileResponse:
        if not permissions.has_all_permissions(required_permissions):
            raise _forbidden(f"Insufficient permissions. Required: {', '.join(required_permissions)}")
        return profile
    return check_permission
