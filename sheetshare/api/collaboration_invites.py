"""
sheetshare/api/collaboration_invites.py
FastAPI routes for collaboration invitations and collaborator management.
"""

from fastapi import APIRouter, Depends

from sheetshare.api.deps import get_current_user, get_invitation_service
from sheetshare.features.collaboration.invite_service import InvitationService
from sheetshare.models.invite import (
    AcceptInvitationRequest,
    ChangeRoleRequest,
    CollaborationView,
    CreateInvitationRequest,
)

router = APIRouter(prefix="/api")


@router.post("/collaborations/{upload_id}/invite")
def create_invitation(
    upload_id: str,
    request: CreateInvitationRequest,
    user: str = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
):
    """
    Invite a collaborator by email.

    Request body:
        email: Invitee address
        role: "viewer" | "editor"
        message?: Personal note included in the email

    Returns:
        The pending collaboration (the token only travels by email) and
        emailSent, false when the invitation exists but the email did not go out
    """
    invitation = service.create_invitation(
        upload_id,
        email=request.email,
        role=request.role,
        inviter=user,
        message=request.message,
        send_email=False,
    )
    email_sent = service.notify_invitee(invitation, message=request.message)
    return {
        "success": True,
        "message": "Invitation sent successfully" if email_sent else "Invitation created but the email could not be sent",
        "emailSent": email_sent,
        "data": CollaborationView.from_invitation(invitation).to_response(),
    }


@router.get("/collaborate/{token}")
def get_invitation(token: str, service: InvitationService = Depends(get_invitation_service)):
    """Invitation landing page data: collaboration and upload summary."""
    resolution = service.resolve_invitation(token)
    return {"success": True, "data": resolution.to_response()}


@router.post("/collaborate/{token}")
def accept_invitation(
    token: str,
    request: AcceptInvitationRequest,
    service: InvitationService = Depends(get_invitation_service),
):
    service.accept_invitation(token, email=request.user_email, name=request.user_name)
    return {"success": True, "message": "Invitation accepted successfully"}


@router.get("/collaborations/{upload_id}/collaborators")
def list_collaborators(upload_id: str, service: InvitationService = Depends(get_invitation_service)):
    collaborators = service.list_collaborators(upload_id)
    return {
        "success": True,
        "count": len(collaborators),
        "data": [c.to_response() for c in collaborators],
    }


@router.patch("/collaborations/{upload_id}/collaborators/{collaborator_id}")
def change_role(
    upload_id: str,
    collaborator_id: str,
    request: ChangeRoleRequest,
    service: InvitationService = Depends(get_invitation_service),
):
    service.change_role(upload_id, collaborator_id, request.role)
    return {"success": True, "message": "Role updated successfully"}


@router.delete("/collaborations/{upload_id}/collaborators/{collaborator_id}")
def remove_collaborator(
    upload_id: str,
    collaborator_id: str,
    service: InvitationService = Depends(get_invitation_service),
):
    service.remove_collaborator(upload_id, collaborator_id)
    return {"success": True, "message": "Collaborator removed successfully"}


@router.post("/collaborations/{upload_id}/invitations/{invitation_id}/revoke")
def revoke_invitation(
    upload_id: str,
    invitation_id: str,
    service: InvitationService = Depends(get_invitation_service),
):
    service.revoke_invitation(upload_id, invitation_id)
    return {"success": True, "message": "Invitation revoked"}
