from fastapi import APIRouter, Depends
from opsportal.database.supabase_client import get_supabase
from opsportal.modules.invitations.schemas import InvitationCreate, InvitationUpdate, InvitationResponse
from opsportal.modules.invitations.service import InvitationService
from opsportal.modules.users.schemas import ProfileResponse
from opsportal.core.dependencies import require_permission
from supabase import Client
from typing import List

router = APIRouter(prefix="/invitations", tags=["invitations"])


def get_invitation_service(supabase: Client = Depends(get_supabase)) -> InvitationService:
    return InvitationService(supabase)


@router.get("", response_model=List[InvitationResponse])
async def list_invitations(
    profile: ProfileResponse = Depends(require_permission("users:read")),
    service: InvitationService = Depends(get_invitation_service)
):
    """Pending (unclaimed) invitations"""
    return service.list_pending()


@router.get("/{invitation_id}", response_model=InvitationResponse)
async def get_invitation(
    invitation_id: str,
    profile: ProfileResponse = Depends(require_permission("users:read")),
    service: InvitationService = Depends(get_invitation_service)
):
    return service.get_invitation(invitation_id)


@router.post("", response_model=InvitationResponse, status_code=201)
async def create_invitation(
    invitation_data: InvitationCreate,
    profile: ProfileResponse = Depends(require_permission("users:create")),
    service: InvitationService = Depends(get_invitation_service)
):
    """Add an email to the guest list"""
    return service.create_invitation(invitation_data, invited_by=profile.id)


@router.put("/{invitation_id}", response_model=InvitationResponse)
async def update_invitation(
    invitation_id: str,
    invitation_data: InvitationUpdate,
    profile: ProfileResponse = Depends(require_permission("users:update")),
    service: InvitationService = Depends(get_invitation_service)
):
    return service.update_invitation(invitation_id, invitation_data)


@router.delete("/{invitation_id}", status_code=204)
async def delete_invitation(
    invitation_id: str,
    profile: ProfileResponse = Depends(require_permission("users:delete")),
    service: InvitationService = Depends(get_invitation_service)
):
    """Withdraw an invitation"""
    service.delete_invitation(invitation_id)
    return None
