"""
sheetshare/api/webhooks.py
Admin routes for outbound webhook registrations.
"""

from fastapi import APIRouter, Depends

from sheetshare.api.deps import get_webhook_service
from sheetshare.features.webhooks.service import WebhookService
from sheetshare.models.share_link import ToggleActiveRequest
from sheetshare.models.webhook import RegisterWebhookRequest, WebhookView

router = APIRouter(prefix="/api/admin/webhooks")


@router.get("")
def list_webhooks(service: WebhookService = Depends(get_webhook_service)):
    registrations = service.list_registrations()
    return {
        "success": True,
        "count": len(registrations),
        "data": [WebhookView.from_registration(r).to_response() for r in registrations],
    }


@router.post("")
def register_webhook(request: RegisterWebhookRequest, service: WebhookService = Depends(get_webhook_service)):
    # The signing secret is never returned, not even on creation
    registration = service.register(request.name, request.url, request.events)
    return {
        "success": True,
        "message": "Webhook created successfully",
        "data": WebhookView.from_registration(registration).to_response(),
    }


@router.patch("/{webhook_id}/toggle")
def toggle_webhook(
    webhook_id: str,
    request: ToggleActiveRequest,
    service: WebhookService = Depends(get_webhook_service),
):
    service.set_active(webhook_id, request.is_active)
    return {"success": True, "message": "Webhook updated successfully"}


@router.delete("/{webhook_id}")
def delete_webhook(webhook_id: str, service: WebhookService = Depends(get_webhook_service)):
    service.delete(webhook_id)
    return {"success": True, "message": "Webhook deleted successfully"}


@router.post("/{webhook_id}/test")
async def test_webhook(webhook_id: str, service: WebhookService = Depends(get_webhook_service)):
    """Send a webhook.test delivery. A failed delivery is still a 200 with success=false."""
    outcome = await service.test(webhook_id)
    return outcome.to_response()
