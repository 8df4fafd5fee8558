"""
sheetshare/models/share_link.py
Shareable link models: durable, multi-use, role-scoped access tokens.
"""

from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from sheetshare.features.access.permissions import Permissions, Role, permissions_for
from sheetshare.models.base import ApiModel
from sheetshare.models.upload import UploadData


class ShareableLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    upload_id: str
    token: str = Field(repr=False)
    role: Role
    expires_at: Optional[datetime] = None
    is_active: bool = True
    access_count: int = 0
    created_at: datetime
    last_accessed: Optional[datetime] = None
    created_by: Optional[str] = None
    file_name: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "ShareableLink":
        return cls.model_validate({k: v for k, v in doc.items() if k in cls.model_fields and v is not None})


def share_url(app_url: str, token: str) -> str:
    return f"{app_url.rstrip('/')}/shared/{token}"


class ShareableLinkView(ApiModel):
    """Owner-facing listing entry"""

    id: str
    url: str
    role: Role
    expires_at: Optional[datetime] = None
    is_active: bool
    access_count: int
    created_at: datetime
    last_accessed: Optional[datetime] = None

    @classmethod
    def from_link(cls, link: ShareableLink, app_url: str) -> "ShareableLinkView":
        return cls(
            id=link.id,
            url=share_url(app_url, link.token),
            role=link.role,
            expires_at=link.expires_at,
            is_active=link.is_active,
            access_count=link.access_count,
            created_at=link.created_at,
            last_accessed=link.last_accessed,
        )


class SharedLinkView(ApiModel):
    """What a link holder sees about the link itself (post-increment)"""

    role: Role
    expires_at: Optional[datetime] = None
    access_count: int
    last_accessed: Optional[datetime] = None
    permissions: Permissions

    @classmethod
    def from_link(cls, link: ShareableLink) -> "SharedLinkView":
        return cls(
            role=link.role,
            expires_at=link.expires_at,
            access_count=link.access_count,
            last_accessed=link.last_accessed,
            permissions=permissions_for(link.role),
        )


class LinkResolution(ApiModel):
    link: SharedLinkView
    upload: UploadData


class CreateLinkRequest(ApiModel):
    role: str
    expires_at: Optional[datetime] = None


class CreateLinkResponse(ApiModel):
    success: bool = True
    link_id: str
    url: str


class ToggleActiveRequest(ApiModel):
    is_active: bool
