"""
sheetshare/models/invite.py
Collaboration invitation models: state-tagged lifecycle plus API views.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from sheetshare.features.access.permissions import Permissions, Role, permissions_for
from sheetshare.models.base import ApiModel
from sheetshare.models.upload import UploadSummary


class InvitationStatus(str, Enum):
    """Invitation lifecycle: pending -> active OR revoked (expiry is derived, never stored)"""

    PENDING = "pending"
    ACTIVE = "active"
    REVOKED = "revoked"


class PendingState(BaseModel):
    """Only pending invitations carry a token"""

    model_config = ConfigDict(frozen=True)

    status: Literal["pending"] = "pending"
    token: str = Field(repr=False)


class ActiveState(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["active"] = "active"
    accepted_at: datetime
    last_active: Optional[datetime] = None


class RevokedState(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["revoked"] = "revoked"
    revoked_at: Optional[datetime] = None


InvitationState = Annotated[
    Union[PendingState, ActiveState, RevokedState],
    Field(discriminator="status"),
]


class Invitation(BaseModel):
    """Invitation to collaborate on an upload, bound to one email"""

    model_config = ConfigDict(frozen=True)

    id: str
    upload_id: str
    email: str
    name: str
    role: Role
    invited_by: Optional[str] = None
    invited_at: datetime
    file_name: Optional[str] = None
    avatar: Optional[str] = None
    state: InvitationState

    @property
    def status(self) -> InvitationStatus:
        return InvitationStatus(self.state.status)

    def expires_at(self, ttl: timedelta) -> datetime:
        return self.invited_at + ttl

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return now > self.expires_at(ttl)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Invitation":
        status = doc["status"]
        if status == InvitationStatus.PENDING.value:
            state = {"status": status, "token": doc["invitation_token"]}
        elif status == InvitationStatus.ACTIVE.value:
            state = {"status": status, "accepted_at": doc["accepted_at"], "last_active": doc.get("last_active")}
        else:
            state = {"status": status, "revoked_at": doc.get("revoked_at")}
        return cls(
            id=doc["id"],
            upload_id=doc["upload_id"],
            email=doc["email"],
            name=doc.get("name") or doc["email"].split("@", 1)[0],
            role=doc["role"],
            invited_by=doc.get("invited_by"),
            invited_at=doc["invited_at"],
            file_name=doc.get("file_name"),
            avatar=doc.get("avatar"),
            state=state,
        )


class CollaborationView(ApiModel):
    """Safe projection shown to the invitee (no token)"""

    id: str
    email: str
    role: Role
    file_name: Optional[str] = None
    invited_by: Optional[str] = None
    invited_at: datetime

    @classmethod
    def from_invitation(cls, invitation: Invitation) -> "CollaborationView":
        return cls(
            id=invitation.id,
            email=invitation.email,
            role=invitation.role,
            file_name=invitation.file_name,
            invited_by=invitation.invited_by,
            invited_at=invitation.invited_at,
        )


class InvitationResolution(ApiModel):
    collaboration: CollaborationView
    upload: UploadSummary


class CollaboratorView(ApiModel):
    """Derived collaborator entry (revoked invitations are never listed)"""

    id: str
    email: str
    name: str
    role: Role
    status: InvitationStatus
    invited_at: datetime
    accepted_at: Optional[datetime] = None
    last_active: Optional[datetime] = None
    avatar: Optional[str] = None
    permissions: Permissions

    @classmethod
    def from_invitation(cls, invitation: Invitation) -> "CollaboratorView":
        state = invitation.state
        return cls(
            id=invitation.id,
            email=invitation.email,
            name=invitation.name,
            role=invitation.role,
            status=invitation.status,
            invited_at=invitation.invited_at,
            accepted_at=getattr(state, "accepted_at", None),
            last_active=getattr(state, "last_active", None),
            avatar=invitation.avatar,
            permissions=permissions_for(invitation.role),
        )


class CreateInvitationRequest(ApiModel):
    email: str
    role: str
    message: Optional[str] = Field(default=None, max_length=2000)


class AcceptInvitationRequest(ApiModel):
    user_email: str
    user_name: Optional[str] = None


class ChangeRoleRequest(ApiModel):
    role: str
