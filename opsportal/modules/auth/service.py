import hashlib
import time
import logging
from supabase import Client
from fastapi import HTTPException
from typing import Dict, Any, Optional

from opsportal.modules.auth.errors import ClaimError, CodeExchangeFailed, ProfileWriteFailed
from opsportal.modules.auth.schemas import (
    AuthenticatedIdentity, AuthSession, ClaimOutcome, ClaimResult
)
from opsportal.modules.invitations.schemas import InvitationResponse
from opsportal.modules.invitations.service import InvitationService
from opsportal.modules.users.schemas import ProfileResponse
from opsportal.modules.users.service import UserService, user_types_from_flags

logger = logging.getLogger(__name__)

# In-memory cache for get_current_user to reduce Supabase auth calls (e.g. many parallel requests with same token)
_AUTH_USER_CACHE: Dict[str, tuple] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500


class AuthService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Get current user details from Supabase Auth token. Uses short TTL cache to reduce auth API calls."""
        try:
            cache_key = hashlib.sha256(token.encode()).hexdigest()
            now = time.monotonic()
            if cache_key in _AUTH_USER_CACHE:
                user_data, expiry = _AUTH_USER_CACHE[cache_key]
                if now < expiry:
                    return user_data
                del _AUTH_USER_CACHE[cache_key]
            user_response = self.supabase.auth.get_user(jwt=token)
            if not user_response or not user_response.user:
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            user = user_response.user
            user_data = {
                "id": user.id,
                "email": (user.email or "").lower(),
                "user_metadata": user.user_metadata or {},
            }
            if len(_AUTH_USER_CACHE) < _AUTH_CACHE_MAX_SIZE:
                _AUTH_USER_CACHE[cache_key] = (user_data, now + _AUTH_CACHE_TTL_SEC)
            return user_data
        except HTTPException:
            raise
        except Exception as e:
            error_msg = str(e)
            if "JWT" in error_msg or "expired" in error_msg.lower() or "invalid" in error_msg.lower():
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            raise HTTPException(status_code=401, detail="Authentication failed")

    def logout(self, token: str) -> bool:
        """Revoke the session behind token and forget it locally"""
        _AUTH_USER_CACHE.pop(hashlib.sha256(token.encode()).hexdigest(), None)
        try:
            self.supabase.auth.admin.sign_out(token)
            return True
        except Exception as e:
            logger.warning(f"Session revoke on logout failed: {e}")
            return False


class ClaimService:
    """
    Runs once per authentication callback.

    Turns a one-time code into a profile-backed session: returning users are
    found by subject id, new users must match an invitation by email, and
    everyone else has their fresh session revoked.
    """

    def __init__(self, identity_provider, profiles: UserService, invitations: InvitationService):
        self.identity_provider = identity_provider
        self.profiles = profiles
        self.invitations = invitations

    def handle_callback(self, code: str, code_verifier: Optional[str] = None) -> ClaimResult:
        try:
            identity, session = self.identity_provider.exchange_code(code, code_verifier)
        except CodeExchangeFailed:
            raise
        except Exception as e:
            raise CodeExchangeFailed("Identity provider error") from e

        try:
            profile = self.profiles.find_by_id(identity.subject_id)
        except Exception as e:
            logger.error(f"Profile lookup failed for {identity.email}: {e}")
            self._revoke(session)
            raise ClaimError("Profile lookup failed") from e

        if profile is not None:
            return self._returning(identity, session, profile)

        return self._claim(identity, session)

    def _returning(self, identity: AuthenticatedIdentity, session: AuthSession, profile: ProfileResponse) -> ClaimResult:
        if not profile.is_active:
            logger.info(f"Deactivated user {identity.email} signed in, revoking session")
            self._revoke(session)
            return ClaimResult(outcome=ClaimOutcome.DEACTIVATED, identity=identity, profile=profile)
        logger.info(f"User {identity.email} already has profile, proceeding")
        return ClaimResult(outcome=ClaimOutcome.RETURNING, identity=identity, profile=profile, session=session)

    def _claim(self, identity: AuthenticatedIdentity, session: AuthSession) -> ClaimResult:
        subject_id = identity.subject_id
        try:
            invitation = self.invitations.find_by_email_case_insensitive(identity.email)
            reserved = (
                invitation is not None
                and invitation.claimed_by in (None, subject_id)
                and self.invitations.reserve(invitation.id, subject_id)
            )
        except Exception as e:
            logger.error(f"Invitation lookup failed for {identity.email}: {e}")
            self._revoke(session)
            raise ClaimError("Invitation lookup failed") from e

        if not reserved:
            # A concurrent callback for the same subject may have claimed it meanwhile
            try:
                profile = self.profiles.find_by_id(subject_id)
            except Exception as e:
                logger.error(f"Profile lookup failed for {identity.email}: {e}")
                self._revoke(session)
                raise ClaimError("Profile lookup failed") from e
            if profile is not None:
                return self._returning(identity, session, profile)

            logger.warning(f"Unauthorized access attempt: {identity.email} not in guest list")
            self._revoke(session)
            return ClaimResult(outcome=ClaimOutcome.NOT_INVITED, identity=identity)

        try:
            profile = self.profiles.upsert_by_id(subject_id, self._profile_fields(identity, invitation))
        except Exception as e:
            logger.error(f"Error creating profile for {identity.email}: {e}")
            self._release(invitation, subject_id)
            self._revoke(session)
            raise ProfileWriteFailed("Profile could not be created") from e

        try:
            if not self.invitations.delete_claimed(invitation.id, subject_id):
                logger.warning(f"Claimed invitation {invitation.id} was not removed (no matching row)")
        except Exception as e:
            # The profile is found by subject id from now on, so a stale row is only cleanup debt
            logger.warning(f"Invitation cleanup failed for {invitation.id}: {e}")

        logger.info(f"Claimed invitation {invitation.id} for {identity.email} as {subject_id}")
        return ClaimResult(outcome=ClaimOutcome.CLAIMED, identity=identity, profile=profile, session=session)

    @staticmethod
    def _profile_fields(identity: AuthenticatedIdentity, invitation: InvitationResponse) -> Dict[str, Any]:
        return {
            "email": identity.email,
            "display_name": invitation.display_name or identity.provider_display_name,
            "nick_name": invitation.nick_name,
            "avatar_url": identity.user_metadata.get("avatar_url"),
            "role_id": invitation.role_id,
            "user_types": user_types_from_flags(invitation.is_technician, invitation.is_office_staff),
            "job_title": invitation.job_title,
            "skills": invitation.skills,
            "is_active": True,
            "onboarding_completed": invitation.onboarding_completed,
        }

    def _release(self, invitation: InvitationResponse, subject_id: str) -> None:
        try:
            self.invitations.release(invitation.id, subject_id)
        except Exception as e:
            logger.error(f"Could not release invitation {invitation.id} after failed claim: {e}")

    def _revoke(self, session: AuthSession) -> None:
        try:
            self.identity_provider.revoke(session)
        except Exception as e:
            logger.warning(f"Session revoke failed: {e}")
