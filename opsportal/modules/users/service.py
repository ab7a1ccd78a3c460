"""
Expected Supabase table structure:

user_profiles:
- id: uuid (primary key, references auth.users.id) - the identity provider's
  subject id; immutable, written only by the claiming process
- email: text (not null) - stored lowercased
- display_name: text (not null)
- nick_name: text (nullable)
- avatar_url: text (nullable)
- phone: text (nullable)
- job_title: text (nullable)
- skills: text[] (nullable)
- user_types: text[] (default: '{}') - "technician", "office_staff"
- role_id: uuid (nullable, references roles.id ON DELETE SET NULL)
- is_active: boolean (default: true) - archival flips this, rows are never deleted
- onboarding_completed: boolean (default: false)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

Note: Authentication data (password, tokens) is stored in auth.users table
managed by Supabase Auth. This table only stores profile information.
"""

from supabase import Client
from opsportal.modules.users.schemas import ProfileUpdate, ProfileResponse, OnboardingComplete
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
from fastapi import HTTPException

TECHNICIAN = "technician"
OFFICE_STAFF = "office_staff"


def user_types_from_flags(is_technician: bool, is_office_staff: bool) -> List[str]:
    user_types = []
    if is_technician:
        user_types.append(TECHNICIAN)
    if is_office_staff:
        user_types.append(OFFICE_STAFF)
    return user_types


def to_profile(row: Dict[str, Any]) -> ProfileResponse:
    return ProfileResponse(**{**row, "user_types": row.get("user_types") or []})


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class UserService:
    """Profile store. Rows are keyed by the identity provider's subject id."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    # Claiming process: store errors propagate to the caller unchanged

    def find_by_id(self, subject_id: str) -> Optional[ProfileResponse]:
        result = self.supabase.table("user_profiles")\
            .select("*")\
            .eq("id", subject_id)\
            .limit(1)\
            .execute()
        return to_profile(result.data[0]) if result.data else None

    def upsert_by_id(self, subject_id: str, fields: Dict[str, Any]) -> ProfileResponse:
        """Insert or update the profile row for subject_id. Idempotent on id."""
        row = {**fields, "id": subject_id}
        result = self.supabase.table("user_profiles")\
            .upsert(row, on_conflict="id")\
            .execute()
        if not result.data:
            raise RuntimeError(f"Profile upsert for {subject_id} returned no row")
        return to_profile(result.data[0])

    # Admin / settings screens

    def get_user_by_id(self, user_id: str) -> ProfileResponse:
        """Get user profile by ID"""
        try:
            profile = self.find_by_id(user_id)
            if not profile:
                raise HTTPException(status_code=404, detail="User not found")
            return profile
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_users(
        self,
        include_inactive: bool = False,
        limit: int = 50,
        offset: int = 0
    ) -> List[ProfileResponse]:
        """List profiles ordered by display name"""
        try:
            query = self.supabase.table("user_profiles").select("*")
            if not include_inactive:
                query = query.eq("is_active", True)
            result = query.order("display_name")\
                .limit(limit)\
                .offset(offset)\
                .execute()
            return [to_profile(user) for user in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _update(self, user_id: str, update_data: Dict[str, Any]) -> ProfileResponse:
        update_data["updated_at"] = _now()
        result = self.supabase.table("user_profiles")\
            .update(update_data)\
            .eq("id", user_id)\
            .execute()
        if not result.data:
            raise HTTPException(status_code=404, detail="User not found")
        return to_profile(result.data[0])

    def update_user(self, user_id: str, user_data: ProfileUpdate) -> ProfileResponse:
        """Update user profile display fields and type flags"""
        try:
            update_data = user_data.model_dump(
                exclude_unset=True,
                exclude={"is_technician", "is_office_staff"}
            )
            if user_data.is_technician is not None or user_data.is_office_staff is not None:
                current = self.get_user_by_id(user_id)
                is_technician = user_data.is_technician
                if is_technician is None:
                    is_technician = TECHNICIAN in current.user_types
                is_office_staff = user_data.is_office_staff
                if is_office_staff is None:
                    is_office_staff = OFFICE_STAFF in current.user_types
                update_data["user_types"] = user_types_from_flags(is_technician, is_office_staff)
            return self._update(user_id, update_data)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def assign_role(self, user_id: str, role_id: Optional[str]) -> ProfileResponse:
        """Assign a role to a user, or clear it with None"""
        try:
            if role_id:
                role = self.supabase.table("roles")\
                    .select("id")\
                    .eq("id", role_id)\
                    .execute()
                if not role.data:
                    raise HTTPException(status_code=404, detail="Role not found")
            return self._update(user_id, {"role_id": role_id})
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def set_active(self, user_id: str, is_active: bool) -> ProfileResponse:
        """Archive (False) or restore (True) a user. Profiles are never deleted."""
        try:
            return self._update(user_id, {"is_active": is_active})
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def complete_onboarding(self, user_id: str, data: OnboardingComplete) -> ProfileResponse:
        try:
            update_data = data.model_dump(exclude_none=True)
            update_data["onboarding_completed"] = True
            return self._update(user_id, update_data)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
