from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from opsportal.config.settings import settings
from opsportal.core.access import permission_cache
from opsportal.core.dependencies import (
    get_auth_service, get_current_profile, get_session_token, load_permission_set, get_permission_set
)
from opsportal.core.permissions import PermissionSet
from opsportal.database.supabase_client import SupabaseClient, get_supabase
from opsportal.modules.auth.errors import ClaimError
from opsportal.modules.auth.identity import CodeVerifierStorage, SupabaseIdentityProvider
from opsportal.modules.auth.redirects import (
    build_redirect_url, decide_redirect, resolve_base_url, sanitize_next_path,
    sign_in_error_path, unauthorized_path
)
from opsportal.modules.auth.schemas import AuthSession, ClaimOutcome, MeResponse
from opsportal.modules.auth.service import AuthService, ClaimService
from opsportal.modules.invitations.service import InvitationService
from opsportal.modules.roles.service import RoleService
from opsportal.modules.users.schemas import ProfileResponse
from opsportal.modules.users.service import UserService
from supabase import Client
from typing import Optional
from urllib.parse import urlencode
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def get_identity_provider() -> SupabaseIdentityProvider:
    storage = CodeVerifierStorage()
    return SupabaseIdentityProvider(SupabaseClient.create_auth_client(storage), storage)


def get_claim_service(
    identity_provider=Depends(get_identity_provider),
    supabase: Client = Depends(get_supabase)
) -> ClaimService:
    return ClaimService(identity_provider, UserService(supabase), InvitationService(supabase))


def _base_url(request: Request) -> str:
    return resolve_base_url(
        request_origin=f"{request.url.scheme}://{request.url.netloc}",
        forwarded_host=request.headers.get("x-forwarded-host"),
        is_local=settings.is_local,
        allowed_forwarded_hosts=settings.get_allowed_forwarded_hosts(),
        site_url=settings.site_url,
    )


def _redirect(request: Request, path: str) -> RedirectResponse:
    response = RedirectResponse(build_redirect_url(_base_url(request), path))
    response.delete_cookie(settings.code_verifier_cookie)
    return response


def _clear_session_cookies(response: RedirectResponse) -> RedirectResponse:
    response.delete_cookie(settings.access_token_cookie)
    response.delete_cookie(settings.refresh_token_cookie)
    return response


def _set_session_cookies(response: RedirectResponse, session: AuthSession) -> RedirectResponse:
    cookie_options = {
        "httponly": True,
        "secure": not settings.is_local,
        "samesite": "lax",
        "max_age": session.expires_in,
    }
    response.set_cookie(settings.access_token_cookie, session.access_token, **cookie_options)
    if session.refresh_token:
        response.set_cookie(settings.refresh_token_cookie, session.refresh_token, **cookie_options)
    return response


@router.get("/login")
async def login(
    request: Request,
    next: Optional[str] = None,
    identity_provider=Depends(get_identity_provider)
):
    """Start the OAuth sign-in and keep the PKCE code verifier for the callback"""
    redirect_to = build_redirect_url(_base_url(request), settings.auth_callback_path)
    next_path = sanitize_next_path(next)
    if next_path:
        redirect_to = f"{redirect_to}?{urlencode({'next': next_path})}"

    try:
        authorize_url, code_verifier = identity_provider.start_sign_in(settings.oauth_provider, redirect_to)
    except Exception as e:
        logger.error(f"Could not start {settings.oauth_provider} sign-in: {e}")
        return _redirect(request, sign_in_error_path(settings.sign_in_error_path))

    response = RedirectResponse(authorize_url)
    if code_verifier:
        response.set_cookie(
            settings.code_verifier_cookie,
            code_verifier,
            httponly=True,
            secure=not settings.is_local,
            samesite="lax",
            max_age=settings.code_verifier_max_age_seconds,
        )
    return response


@router.get("/callback")
async def auth_callback(
    request: Request,
    code: Optional[str] = None,
    next: Optional[str] = None,
    service: ClaimService = Depends(get_claim_service),
    supabase: Client = Depends(get_supabase)
):
    """OAuth redirect target: claim or resume a profile, then redirect exactly once"""
    if not code:
        return _clear_session_cookies(_redirect(request, sign_in_error_path(settings.sign_in_error_path)))

    try:
        result = service.handle_callback(code, request.cookies.get(settings.code_verifier_cookie))
    except ClaimError as e:
        logger.info(f"Auth callback failed: {type(e).__name__}: {e}")
        return _clear_session_cookies(_redirect(request, sign_in_error_path(settings.sign_in_error_path)))

    if result.outcome == ClaimOutcome.NOT_INVITED:
        path = unauthorized_path(settings.unauthorized_path, email=result.identity.email)
        return _clear_session_cookies(_redirect(request, path))
    if result.outcome == ClaimOutcome.DEACTIVATED:
        path = unauthorized_path(settings.unauthorized_path, reason="deactivated")
        return _clear_session_cookies(_redirect(request, path))

    try:
        permission_cache.put(result.session.access_token, load_permission_set(result.profile, supabase))
    except Exception as e:
        # Loaded lazily by the access guard on first use instead
        logger.warning(f"Could not preload permissions for {result.profile.id}: {e}")

    path = decide_redirect(
        result.profile,
        sanitize_next_path(next),
        onboarding_path=settings.onboarding_path,
        default_path=settings.default_next_path,
    )
    return _set_session_cookies(_redirect(request, path), result.session)


@router.get("/me", response_model=MeResponse)
async def get_me(
    profile: ProfileResponse = Depends(get_current_profile),
    permissions: PermissionSet = Depends(get_permission_set),
    supabase: Client = Depends(get_supabase)
):
    """Current profile, role and permissions (for frontend UI)"""
    role = RoleService(supabase).get_role_by_id(profile.role_id) if profile.role_id else None
    return MeResponse(profile=profile, role=role, permissions=permissions.names())


@router.post("/permissions/refresh", response_model=MeResponse)
async def refresh_permissions(
    token: str = Depends(get_session_token),
    profile: ProfileResponse = Depends(get_current_profile),
    supabase: Client = Depends(get_supabase)
):
    """Reload this session's permission set, e.g. after its role changed"""
    permissions = load_permission_set(profile, supabase)
    permission_cache.put(token, permissions)
    role = RoleService(supabase).get_role_by_id(profile.role_id) if profile.role_id else None
    return MeResponse(profile=profile, role=role, permissions=permissions.names())


@router.post("/logout", status_code=200)
async def logout(
    response: Response,
    token: str = Depends(get_session_token),
    service: AuthService = Depends(get_auth_service)
):
    """Revoke the session and drop its cached permissions"""
    permission_cache.invalidate(token)
    service.logout(token)
    response.delete_cookie(settings.access_token_cookie)
    response.delete_cookie(settings.refresh_token_cookie)
    return {"message": "Logged out successfully"}
