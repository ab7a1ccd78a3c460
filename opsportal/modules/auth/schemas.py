from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from opsportal.modules.users.schemas import ProfileResponse
from opsportal.modules.roles.schemas import RoleResponse


class AuthenticatedIdentity(BaseModel):
    subject_id: str
    email: str
    user_metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def provider_display_name(self) -> str:
        return (
            self.user_metadata.get("full_name")
            or self.user_metadata.get("name")
            or self.email.split("@")[0]
            or "User"
        )


class AuthSession(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


class ClaimOutcome(str, Enum):
    RETURNING = "returning"
    CLAIMED = "claimed"
    NOT_INVITED = "not_invited"
    DEACTIVATED = "deactivated"


class ClaimResult(BaseModel):
    outcome: ClaimOutcome
    identity: AuthenticatedIdentity
    profile: Optional[ProfileResponse] = None
    session: Optional[AuthSession] = None  # None once the session has been revoked

    @property
    def rejected(self) -> bool:
        return self.outcome in (ClaimOutcome.NOT_INVITED, ClaimOutcome.DEACTIVATED)


class MeResponse(BaseModel):
    profile: ProfileResponse
    role: Optional[RoleResponse] = None
    permissions: List[str]
