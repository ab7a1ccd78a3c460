"""Redirect decisions for the auth callback. Everything here is pure."""

from typing import Iterable, Optional
from urllib.parse import urlencode, urlsplit

ONBOARDING_PATH = "/onboarding"
DEFAULT_NEXT_PATH = "/dashboard"
SIGN_IN_ERROR_MESSAGE = "Could not authenticate user"


def decide_redirect(
    profile,
    requested_next: Optional[str],
    onboarding_path: str = ONBOARDING_PATH,
    default_path: str = DEFAULT_NEXT_PATH,
) -> str:
    """Onboarding always wins until it is completed; otherwise honour the requested path."""
    if not profile.onboarding_completed:
        return onboarding_path
    return requested_next or default_path


def sanitize_next_path(next_path: Optional[str]) -> Optional[str]:
    """Accept only same-site absolute paths. Anything else is dropped (None)."""
    if not next_path:
        return None
    if not next_path.startswith("/") or next_path.startswith("//") or "\\" in next_path:
        return None
    parts = urlsplit(next_path)
    if parts.scheme or parts.netloc:
        return None
    return next_path


def resolve_base_url(
    request_origin: str,
    forwarded_host: Optional[str],
    is_local: bool,
    allowed_forwarded_hosts: Iterable[str],
    site_url: Optional[str] = None,
) -> str:
    """
    Externally reachable base URL for the redirect.

    Locally the request origin is used as is. Behind a proxy, X-Forwarded-Host
    is only trusted when it is on the configured allow-list.
    """
    if is_local:
        return request_origin.rstrip("/")
    if forwarded_host:
        host = forwarded_host.split(",")[0].strip().lower()
        if host and host in {h.lower() for h in allowed_forwarded_hosts}:
            return f"https://{host}"
    if site_url:
        return site_url.rstrip("/")
    return request_origin.rstrip("/")


def build_redirect_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


def unauthorized_path(unauthorized: str, email: Optional[str] = None, reason: Optional[str] = None) -> str:
    params = {}
    if email is not None:
        params["email"] = email
    if reason:
        params["reason"] = reason
    return f"{unauthorized}?{urlencode(params)}" if params else unauthorized


def sign_in_error_path(sign_in_error: str) -> str:
    return f"{sign_in_error}?{urlencode({'error': SIGN_IN_ERROR_MESSAGE})}"
