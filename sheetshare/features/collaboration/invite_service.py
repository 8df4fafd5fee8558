"""
sheetshare/features/collaboration/invite_service.py
Invitation creation, resolution, one-time acceptance and revocation,
plus the collaborator view derived from invitations.

Acceptance is a single conditional update on (token, pending, within window):
of two concurrent attempts exactly one matches, the other sees NotFound.
Expiry is evaluated at access time; nothing sweeps stale invitations.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sheetshare.core.config import settings
from sheetshare.core.database import COLLABORATIONS
from sheetshare.core.errors import ConflictError, ExpiredError, NotFoundError
from sheetshare.core.logging import token_hint
from sheetshare.core.store import DESCENDING, DocumentStore, DuplicateKeyError, Update
from sheetshare.core.validation import email_local_part, normalize_email, validate_identifier
from sheetshare.features.access import tokens
from sheetshare.features.access.permissions import parse_role
from sheetshare.features.collaboration.mailer import InvitationMailer
from sheetshare.features.uploads.service import require_upload
from sheetshare.models.invite import (
    CollaborationView,
    CollaboratorView,
    Invitation,
    InvitationResolution,
    InvitationStatus,
    PendingState,
)
from sheetshare.models.upload import UploadSummary

logger = logging.getLogger("sheetshare")

INVALID_INVITATION = "Invalid or expired invitation"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def invitee_key(upload_id: str, email: str) -> str:
    return f"{upload_id}:{email}"


class InvitationService:
    """Invitation Lifecycle Manager over the collaborations collection."""

    def __init__(
        self,
        store: DocumentStore,
        mailer: Optional[InvitationMailer] = None,
        ttl: Optional[timedelta] = None,
    ):
        self.store = store
        self.mailer = mailer
        self.ttl = ttl or timedelta(days=settings.INVITATION_TTL_DAYS)

    def create_invitation(
        self,
        upload_id: str,
        email: str,
        role: str,
        inviter: Optional[str],
        message: Optional[str] = None,
        now: Optional[datetime] = None,
        send_email: bool = True,
    ) -> Invitation:
        """
        Invite ``email`` to collaborate on an upload.

        With ``send_email`` the invitee is mailed right away; callers that
        need the delivery result pass False and call ``notify_invitee``.

        Returns:
            The pending invitation; its token lives on ``invitation.state``

        Raises:
            InvalidArgumentError: bad upload id, email or role
            DanglingReferenceError: upload does not exist
            ConflictError: email already holds a non-revoked invitation

        The up-front lookup gives the friendly error; the unique invitee key
        on the record settles concurrent invitations for the same address.
        """
        upload_id = validate_identifier(upload_id, "upload ID")
        email = normalize_email(email)
        parsed_role = parse_role(role)
        now = now or _utcnow()

        existing = self.store.find_one(
            COLLABORATIONS,
            {"upload_id": upload_id, "email": email, "status": {"$ne": InvitationStatus.REVOKED.value}},
        )
        if existing:
            raise ConflictError("User is already a collaborator")

        upload = require_upload(self.store, upload_id, message="Upload not found")

        token = tokens.issue()
        doc = {
            "upload_id": upload_id,
            "email": email,
            "name": email_local_part(email),
            "role": parsed_role.value,
            "status": InvitationStatus.PENDING.value,
            "invited_at": now,
            "invitation_token": token,
            "file_name": upload.get("file_name"),
            "invited_by": inviter,
            "invitee_key": invitee_key(upload_id, email),
        }
        try:
            doc["id"] = self.store.insert_one(COLLABORATIONS, doc)
        except DuplicateKeyError:
            if self.store.find_one(COLLABORATIONS, {"invitee_key": doc["invitee_key"]}):
                raise ConflictError("User is already a collaborator") from None
            raise ConflictError("Invitation token collision, please retry") from None

        invitation = Invitation.from_document(doc)
        logger.info(
            "invitation.created",
            extra={"upload_id": upload_id, "collaboration_id": invitation.id, "token_hint": token_hint(token)},
        )

        if send_email:
            self.notify_invitee(invitation, message=message)
        return invitation

    def notify_invitee(self, invitation: Invitation, message: Optional[str] = None) -> bool:
        """Mail the invitation link; False when no mailer is wired or the send failed."""
        if self.mailer is None or not isinstance(invitation.state, PendingState):
            return False
        sent = self.mailer.send_invitation(
            to=invitation.email,
            file_name=invitation.file_name or "",
            role=invitation.role,
            token=invitation.state.token,
            message=message,
        )
        if not sent:
            logger.warning(
                "invitation.email_failed",
                extra={"upload_id": invitation.upload_id, "collaboration_id": invitation.id},
            )
        return bool(sent)

    def resolve_invitation(self, token: str, now: Optional[datetime] = None) -> InvitationResolution:
        """
        Validate a presented token and describe what it grants.

        Raises:
            NotFoundError: no pending invitation holds the token
            ExpiredError: the 7-day window has passed
            DanglingReferenceError: the upload was deleted
        """
        now = now or _utcnow()
        doc = self.store.find_one(
            COLLABORATIONS,
            {"invitation_token": token, "status": InvitationStatus.PENDING.value},
        )
        if not doc:
            raise NotFoundError(INVALID_INVITATION)

        invitation = Invitation.from_document(doc)
        if invitation.is_expired(now, self.ttl):
            raise ExpiredError("Invitation has expired")

        upload = require_upload(self.store, invitation.upload_id)
        return InvitationResolution(
            collaboration=CollaborationView.from_invitation(invitation),
            upload=UploadSummary.from_document(upload),
        )

    def accept_invitation(
        self,
        token: str,
        email: str,
        name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Consume an invitation token: pending -> active, token discarded.

        A second attempt with the same token always fails NotFound, whether the
        token never existed or was already used.
        """
        email = normalize_email(email)
        now = now or _utcnow()

        matched = self.store.update_one(
            COLLABORATIONS,
            {
                "invitation_token": token,
                "status": InvitationStatus.PENDING.value,
                "invited_at": {"$gte": now - self.ttl},
            },
            Update(
                set_fields={
                    "status": InvitationStatus.ACTIVE.value,
                    "accepted_at": now,
                    "last_active": now,
                    "name": (name or "").strip() or email_local_part(email),
                },
                unset=("invitation_token",),
            ),
        )
        if matched:
            logger.info("invitation.accepted", extra={"token_hint": token_hint(token)})
            return

        stale = self.store.find_one(
            COLLABORATIONS,
            {"invitation_token": token, "status": InvitationStatus.PENDING.value},
        )
        if stale is not None:
            raise ExpiredError("Invitation has expired")
        raise NotFoundError(INVALID_INVITATION)

    def revoke_invitation(self, upload_id: str, invitation_id: str, now: Optional[datetime] = None) -> None:
        """Owner action: pending -> revoked. Active or revoked invitations are NotFound."""
        upload_id = validate_identifier(upload_id, "upload ID")
        invitation_id = validate_identifier(invitation_id, "collaborator ID")
        now = now or _utcnow()

        matched = self.store.update_one(
            COLLABORATIONS,
            {"id": invitation_id, "upload_id": upload_id, "status": InvitationStatus.PENDING.value},
            Update(
                set_fields={"status": InvitationStatus.REVOKED.value, "revoked_at": now, "updated_at": now},
                unset=("invitation_token", "invitee_key"),
            ),
        )
        if not matched:
            raise NotFoundError("Pending invitation not found")
        logger.info("invitation.revoked", extra={"upload_id": upload_id, "collaboration_id": invitation_id})

    def get_invitation(self, invitation_id: str) -> Optional[Invitation]:
        doc = self.store.find_one(COLLABORATIONS, {"id": invitation_id})
        return Invitation.from_document(doc) if doc else None

    def list_collaborators(self, upload_id: str) -> List[CollaboratorView]:
        """Newest first; revoked invitations are excluded."""
        upload_id = validate_identifier(upload_id, "upload ID")
        docs = self.store.find(
            COLLABORATIONS,
            {"upload_id": upload_id, "status": {"$ne": InvitationStatus.REVOKED.value}},
            sort=[("invited_at", DESCENDING)],
        )
        return [CollaboratorView.from_invitation(Invitation.from_document(doc)) for doc in docs]

    def change_role(self, upload_id: str, collaborator_id: str, role: str, now: Optional[datetime] = None) -> None:
        upload_id = validate_identifier(upload_id, "upload ID")
        collaborator_id = validate_identifier(collaborator_id, "collaborator ID")
        parsed_role = parse_role(role)
        now = now or _utcnow()

        matched = self.store.update_one(
            COLLABORATIONS,
            {"id": collaborator_id, "upload_id": upload_id},
            Update(set_fields={"role": parsed_role.value, "updated_at": now}),
        )
        if not matched:
            raise NotFoundError("Collaboration not found")

    def remove_collaborator(self, upload_id: str, collaborator_id: str) -> None:
        upload_id = validate_identifier(upload_id, "upload ID")
        collaborator_id = validate_identifier(collaborator_id, "collaborator ID")

        deleted = self.store.delete_one(COLLABORATIONS, {"id": collaborator_id, "upload_id": upload_id})
        if not deleted:
            raise NotFoundError("Collaboration not found")
        logger.info("collaborator.removed", extra={"upload_id": upload_id, "collaboration_id": collaborator_id})
