"""
sheetshare/api/share_links.py
FastAPI routes for shareable links (owner management + public resolution).
"""

from fastapi import APIRouter, Depends

from sheetshare.api.deps import get_current_user, get_link_service
from sheetshare.features.collaboration.link_service import ShareableLinkService
from sheetshare.models.share_link import (
    CreateLinkRequest,
    CreateLinkResponse,
    ShareableLinkView,
    ToggleActiveRequest,
    share_url,
)

router = APIRouter(prefix="/api")


@router.get("/collaborations/{upload_id}/links")
def list_links(upload_id: str, service: ShareableLinkService = Depends(get_link_service)):
    links = service.list_links(upload_id)
    return {
        "success": True,
        "count": len(links),
        "data": [ShareableLinkView.from_link(link, service.app_url).to_response() for link in links],
    }


@router.post("/collaborations/{upload_id}/links")
def create_link(
    upload_id: str,
    request: CreateLinkRequest,
    user: str = Depends(get_current_user),
    service: ShareableLinkService = Depends(get_link_service),
):
    """
    Create a shareable link.

    Request body:
        role: "viewer" | "editor"
        expiresAt?: ISO-8601 instant, must be in the future
    """
    link = service.create_link(upload_id, role=request.role, expires_at=request.expires_at, created_by=user)
    response = CreateLinkResponse(link_id=link.id, url=share_url(service.app_url, link.token))
    return response.to_response()


@router.patch("/collaborations/{upload_id}/links/{link_id}")
def toggle_link(
    upload_id: str,
    link_id: str,
    request: ToggleActiveRequest,
    service: ShareableLinkService = Depends(get_link_service),
):
    service.set_active(upload_id, link_id, request.is_active)
    return {"success": True, "message": "Link updated successfully"}


@router.delete("/collaborations/{upload_id}/links/{link_id}")
def delete_link(upload_id: str, link_id: str, service: ShareableLinkService = Depends(get_link_service)):
    service.delete_link(upload_id, link_id)
    return {"success": True, "message": "Link deleted successfully"}


@router.get("/shared/{token}")
def resolve_shared(token: str, service: ShareableLinkService = Depends(get_link_service)):
    """Public entry point for link holders; each call counts one access."""
    resolution = service.resolve_link(token)
    return {"success": True, "data": resolution.to_response()}
