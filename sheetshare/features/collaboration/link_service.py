"""
sheetshare/features/collaboration/link_service.py
Shareable links: durable, multi-use, role-scoped tokens for an upload.

A link resolves while it is active and unexpired. Each resolution bumps
access_count and last_accessed in one conditional store update, so N
concurrent resolutions add exactly N.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sheetshare.core.config import settings
from sheetshare.core.database import SHAREABLE_LINKS
from sheetshare.core.errors import ConflictError, ExpiredError, InvalidArgumentError, NotFoundError
from sheetshare.core.logging import token_hint
from sheetshare.core.store import DESCENDING, DocumentStore, DuplicateKeyError, Update
from sheetshare.core.validation import validate_identifier
from sheetshare.features.access import tokens
from sheetshare.features.access.permissions import parse_role
from sheetshare.features.uploads.service import require_upload
from sheetshare.models.share_link import LinkResolution, ShareableLink, SharedLinkView
from sheetshare.models.upload import UploadData

logger = logging.getLogger("sheetshare")

INVALID_LINK = "Invalid or inactive link"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShareableLinkService:
    def __init__(self, store: DocumentStore, app_url: Optional[str] = None):
        self.store = store
        self.app_url = app_url or settings.APP_URL

    def create_link(
        self,
        upload_id: str,
        role: str,
        expires_at: Optional[datetime] = None,
        created_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ShareableLink:
        """
        Create a link for an upload.

        Raises:
            InvalidArgumentError: bad role or upload id, or expires_at not in the future
            DanglingReferenceError: upload does not exist
        """
        upload_id = validate_identifier(upload_id, "upload ID")
        parsed_role = parse_role(role)
        now = now or _utcnow()

        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            expires_at = expires_at.astimezone(timezone.utc)
            if expires_at <= now:
                raise InvalidArgumentError("expiresAt must be in the future")

        upload = require_upload(self.store, upload_id, message="Upload not found")

        token = tokens.issue()
        doc = {
            "upload_id": upload_id,
            "token": token,
            "role": parsed_role.value,
            "expires_at": expires_at,
            "is_active": True,
            "access_count": 0,
            "created_at": now,
            "last_accessed": None,
            "created_by": created_by,
            "file_name": upload.get("file_name"),
        }
        try:
            doc["id"] = self.store.insert_one(SHAREABLE_LINKS, doc)
        except DuplicateKeyError:
            raise ConflictError("Link token collision, please retry") from None

        logger.info(
            "share_link.created",
            extra={"upload_id": upload_id, "link_id": doc["id"], "token_hint": token_hint(token)},
        )
        return ShareableLink.from_document(doc)

    def list_links(self, upload_id: str) -> List[ShareableLink]:
        upload_id = validate_identifier(upload_id, "upload ID")
        docs = self.store.find(
            SHAREABLE_LINKS,
            {"upload_id": upload_id},
            sort=[("created_at", DESCENDING)],
        )
        return [ShareableLink.from_document(doc) for doc in docs]

    def resolve_link(self, token: str, now: Optional[datetime] = None) -> LinkResolution:
        """
        Resolve a link token to the upload it grants, counting the access.

        Expiry is checked before the active flag, so an expired link reports
        Expired whether or not it was also deactivated.

        Raises:
            NotFoundError: unknown token or inactive link
            ExpiredError: expires_at has passed
            DanglingReferenceError: the upload was deleted
        """
        now = now or _utcnow()
        doc = self.store.find_one(SHAREABLE_LINKS, {"token": token})
        if not doc:
            raise NotFoundError(INVALID_LINK)

        link = ShareableLink.from_document(doc)
        if link.is_expired(now):
            raise ExpiredError("Link has expired")
        if not link.is_active:
            raise NotFoundError(INVALID_LINK)

        upload = require_upload(self.store, link.upload_id)

        # Re-assert active and unexpired inside the update itself
        updated = self.store.find_one_and_update(
            SHAREABLE_LINKS,
            {
                "id": link.id,
                "is_active": True,
                "expires_at": None if link.expires_at is None else {"$gte": now},
            },
            Update(inc={"access_count": 1}, set_fields={"last_accessed": now}),
        )
        if updated is None:
            raise NotFoundError(INVALID_LINK)

        link = ShareableLink.from_document(updated)
        logger.info(
            "share_link.resolved",
            extra={"upload_id": link.upload_id, "link_id": link.id, "token_hint": token_hint(token)},
        )
        return LinkResolution(link=SharedLinkView.from_link(link), upload=UploadData.from_document(upload))

    def set_active(self, upload_id: str, link_id: str, is_active: bool, now: Optional[datetime] = None) -> None:
        upload_id = validate_identifier(upload_id, "upload ID")
        link_id = validate_identifier(link_id, "link ID")
        now = now or _utcnow()

        matched = self.store.update_one(
            SHAREABLE_LINKS,
            {"id": link_id, "upload_id": upload_id},
            Update(set_fields={"is_active": bool(is_active), "updated_at": now}),
        )
        if not matched:
            raise NotFoundError("Link not found")
        logger.info("share_link.toggled", extra={"upload_id": upload_id, "link_id": link_id})

    def delete_link(self, upload_id: str, link_id: str) -> None:
        upload_id = validate_identifier(upload_id, "upload ID")
        link_id = validate_identifier(link_id, "link ID")

        deleted = self.store.delete_one(SHAREABLE_LINKS, {"id": link_id, "upload_id": upload_id})
        if not deleted:
            raise NotFoundError("Link not found")
        logger.info("share_link.deleted", extra={"upload_id": upload_id, "link_id": link_id})
