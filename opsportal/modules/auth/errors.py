class ClaimError(Exception):
    """Generic failure of an authentication callback. Users see the sign-in error page."""


class CodeExchangeFailed(ClaimError):
    """The one-time code was invalid or expired, or the identity provider failed."""


class ProfileWriteFailed(ClaimError):
    """Profile upsert failed during claiming. The invitation is left claimable."""
