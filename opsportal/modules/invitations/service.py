"""
Expected Supabase table structure:

invitations:
- id: uuid (primary key)
- email: text (not null, unique) - stored lowercased, matched case-insensitively
- display_name: text (not null)
- nick_name: text (nullable)
- role_id: uuid (nullable, references roles.id ON DELETE SET NULL)
- is_technician: boolean (default: false)
- is_office_staff: boolean (default: false)
- skills: text[] (nullable)
- job_title: text (nullable)
- onboarding_completed: boolean (default: false) - copied into the profile on claim
- invited_by: uuid (nullable, references auth.users.id)
- created_at: timestamp (default: now())
- claimed_at: timestamp (nullable) - set while a callback is claiming the row
- claimed_by: uuid (nullable) - subject id of the claimant

An invitation is deleted once its profile has been written. A row whose
claimed_by differs from the caller's subject id belongs to another identity
and cannot be claimed again.
"""

from supabase import Client
from opsportal.modules.invitations.schemas import InvitationCreate, InvitationUpdate, InvitationResponse
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ilike performs a case-insensitive exact match.

    PostgREST also reads `*` as `%` and offers no escape for it, so callers
    must re-check candidate rows with `same_email`.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def same_email(row: Dict[str, Any], normalized: str) -> bool:
    return (row.get("email") or "").strip().lower() == normalized


def to_invitation(row: Dict[str, Any]) -> InvitationResponse:
    return InvitationResponse(**{
        **row,
        "is_technician": bool(row.get("is_technician")),
        "is_office_staff": bool(row.get("is_office_staff")),
        "onboarding_completed": bool(row.get("onboarding_completed")),
    })


class InvitationService:
    """The guest list: pre-provisioned invitations keyed by email."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    # Claiming process: store errors propagate to the caller unchanged

    def find_by_email_case_insensitive(self, email: str) -> Optional[InvitationResponse]:
        normalized = (email or "").strip().lower()
        if not normalized:
            return None
        result = self.supabase.table("invitations")\
            .select("*")\
            .ilike("email", escape_like(normalized))\
            .order("created_at")\
            .execute()
        rows = [row for row in result.data or [] if same_email(row, normalized)]
        if not rows:
            return None
        if len(rows) > 1:
            logger.warning(f"{len(rows)} invitations share email {normalized}; using the oldest")
        return to_invitation(rows[0])

    def reserve(self, invitation_id: str, subject_id: str) -> bool:
        """Mark the invitation as being claimed by subject_id.

        Succeeds only if the row is unclaimed or already reserved by the same
        subject, so two identities can never claim the same row.
        """
        result = self.supabase.table("invitations")\
            .update({"claimed_at": datetime.now(timezone.utc).isoformat(), "claimed_by": subject_id})\
            .eq("id", invitation_id)\
            .is_("claimed_at", "null")\
            .execute()
        if result.data:
            return True
        current = self.supabase.table("invitations")\
            .select("claimed_by")\
            .eq("id", invitation_id)\
            .execute()
        return bool(current.data) and current.data[0].get("claimed_by") == subject_id

    def release(self, invitation_id: str, subject_id: str) -> None:
        """Undo a reservation so the invitation stays claimable on retry."""
        self.supabase.table("invitations")\
            .update({"claimed_at": None, "claimed_by": None})\
            .eq("id", invitation_id)\
            .eq("claimed_by", subject_id)\
            .execute()

    def delete_claimed(self, invitation_id: str, subject_id: str) -> bool:
        """Compare-and-delete: removes only the row captured at lookup and reserved by subject_id."""
        result = self.supabase.table("invitations")\
            .delete()\
            .eq("id", invitation_id)\
            .eq("claimed_by", subject_id)\
            .execute()
        return bool(result.data)

    # Admin screens

    def email_is_invited(self, email: str, exclude_id: Optional[str] = None) -> bool:
        normalized = email.strip().lower()
        query = self.supabase.table("invitations")\
            .select("id, email")\
            .ilike("email", escape_like(normalized))
        if exclude_id:
            query = query.neq("id", exclude_id)
        return any(same_email(row, normalized) for row in query.execute().data or [])

    def _email_has_profile(self, email: str) -> bool:
        normalized = email.strip().lower()
        result = self.supabase.table("user_profiles")\
            .select("id, email")\
            .ilike("email", escape_like(normalized))\
            .execute()
        return any(same_email(row, normalized) for row in result.data or [])

    def _ensure_email_available(self, email: str, exclude_id: Optional[str] = None) -> None:
        if self.email_is_invited(email, exclude_id=exclude_id):
            raise HTTPException(status_code=400, detail="This email already has a pending invitation")
        if self._email_has_profile(email):
            raise HTTPException(status_code=400, detail="This email already belongs to a user")

    def list_pending(self) -> List[InvitationResponse]:
        """Get invitations not yet claimed, newest first"""
        try:
            result = self.supabase.table("invitations")\
                .select("*")\
                .is_("claimed_at", "null")\
                .order("created_at", desc=True)\
                .execute()
            return [to_invitation(row) for row in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_invitation(self, invitation_id: str) -> InvitationResponse:
        try:
            result = self.supabase.table("invitations")\
                .select("*")\
                .eq("id", invitation_id)\
                .limit(1)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Invitation not found")
            return to_invitation(result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def create_invitation(self, data: InvitationCreate, invited_by: Optional[str] = None) -> InvitationResponse:
        """Pre-register a user. One invitation per email, and never for an existing user."""
        try:
            email = data.email.strip().lower()
            self._ensure_email_available(email)
            result = self.supabase.table("invitations").insert({
                "email": email,
                "display_name": data.display_name,
                "nick_name": data.nick_name,
                "role_id": data.role_id,
                "is_technician": data.is_technician,
                "is_office_staff": data.is_office_staff,
                "skills": data.skills,
                "job_title": data.job_title,
                "onboarding_completed": False,
                "invited_by": invited_by,
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create invitation")
            logger.info(f"Invitation created for {email}")
            return to_invitation(result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_invitation(self, invitation_id: str, data: InvitationUpdate) -> InvitationResponse:
        try:
            update_data = data.model_dump(exclude_unset=True)
            if update_data.get("email"):
                update_data["email"] = update_data["email"].strip().lower()
                self._ensure_email_available(update_data["email"], exclude_id=invitation_id)
            if not update_data:
                return self.get_invitation(invitation_id)
            result = self.supabase.table("invitations")\
                .update(update_data)\
                .eq("id", invitation_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Invitation not found")
            return to_invitation(result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_invitation(self, invitation_id: str) -> bool:
        try:
            result = self.supabase.table("invitations")\
                .delete()\
                .eq("id", invitation_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Invitation not found")
            return True
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
