"""
Supabase Auth as the identity provider.

Supabase Auth owns the OAuth handshake; this backend starts it (PKCE), exchanges
the one-time code returned on the redirect for a session, and signs sessions out.
"""

from supabase import Client
from typing import Optional, Tuple
from opsportal.modules.auth.errors import CodeExchangeFailed
from opsportal.modules.auth.schemas import AuthenticatedIdentity, AuthSession
import logging

logger = logging.getLogger(__name__)


class CodeVerifierStorage:
    """Per-request auth storage; the PKCE code verifier is the only item a sign-in writes."""

    def __init__(self):
        self.items = {}

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)

    def code_verifier(self) -> Optional[str]:
        for key, value in self.items.items():
            if key.endswith("-code-verifier"):
                return value
        return None


class SupabaseIdentityProvider:
    def __init__(self, supabase: Client, storage: Optional[CodeVerifierStorage] = None):
        self.supabase = supabase
        self.storage = storage

    def start_sign_in(self, provider: str, redirect_to: str) -> Tuple[str, Optional[str]]:
        """Return the provider authorize URL and the code verifier the callback must present."""
        response = self.supabase.auth.sign_in_with_oauth({
            "provider": provider,
            "options": {"redirect_to": redirect_to},
        })
        code_verifier = self.storage.code_verifier() if self.storage else None
        return response.url, code_verifier

    def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> Tuple[AuthenticatedIdentity, AuthSession]:
        """Exchange a one-time auth code for the authenticated identity and its session."""
        params = {"auth_code": code}
        if code_verifier:
            params["code_verifier"] = code_verifier
        try:
            auth_response = self.supabase.auth.exchange_code_for_session(params)
        except Exception as e:
            logger.info(f"Auth code exchange rejected: {e}")
            raise CodeExchangeFailed("Could not authenticate user") from e

        user = auth_response.user
        session = auth_response.session
        if not user or not session or not user.email:
            raise CodeExchangeFailed("Identity provider returned no user")

        identity = AuthenticatedIdentity(
            subject_id=user.id,
            email=user.email.strip().lower(),
            user_metadata=user.user_metadata or {},
        )
        return identity, AuthSession(
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            expires_in=session.expires_in,
        )

    def revoke(self, session: AuthSession) -> None:
        """Sign out this session only; other sessions of the same user stay valid."""
        self.supabase.auth.admin.sign_out(session.access_token, scope="local")
