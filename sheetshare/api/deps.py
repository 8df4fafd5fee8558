"""
sheetshare/api/deps.py
FastAPI dependencies: the store wired at startup, the caller identity and
per-request services.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from sheetshare.core.config import settings
from sheetshare.core.store import DocumentStore
from sheetshare.features.collaboration.invite_service import InvitationService
from sheetshare.features.collaboration.link_service import ShareableLinkService
from sheetshare.features.webhooks.service import WebhookService


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


async def get_current_user(
    x_user_email: Optional[str] = Header(None, description="Session identity forwarded by the gateway"),
) -> str:
    """
    Identity of the acting user.

    Session handling lives in front of this service; the gateway forwards the
    authenticated email in X-User-Email.

    Raises:
        HTTPException 401: header missing
    """
    if not x_user_email or not x_user_email.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_email.strip().lower()


def get_invitation_service(request: Request, store: DocumentStore = Depends(get_store)) -> InvitationService:
    return InvitationService(store, mailer=getattr(request.app.state, "mailer", None))


def get_link_service(store: DocumentStore = Depends(get_store)) -> ShareableLinkService:
    return ShareableLinkService(store, app_url=settings.APP_URL)


def get_webhook_service(request: Request, store: DocumentStore = Depends(get_store)) -> WebhookService:
    return WebhookService(store, client_factory=getattr(request.app.state, "webhook_client_factory", None))
