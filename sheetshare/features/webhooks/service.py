"""
sheetshare/features/webhooks/service.py
Outbound webhook registrations and signed, single-attempt delivery.

Every attempt ends in exactly one counter increment: success_count (with
last_triggered) for a 2xx answer, failure_count for anything else including
transport errors. Delivery never raises; the outcome is returned as data.
Retries are left to receivers.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from sheetshare.core.config import Settings, settings as default_settings
from sheetshare.core.database import WEBHOOKS
from sheetshare.core.errors import InvalidArgumentError, NotFoundError, StoreError
from sheetshare.core.logging import log_event
from sheetshare.core.store import DESCENDING, DocumentStore, Update
from sheetshare.core.validation import validate_http_url, validate_identifier
from sheetshare.features.access import tokens
from sheetshare.features.webhooks.signing import (
    SIGNATURE_HEADER,
    build_envelope,
    serialize_envelope,
    sign_payload,
)
from sheetshare.models.webhook import KNOWN_EVENTS, TEST_EVENT, DeliveryOutcome, WebhookRegistration

logger = logging.getLogger("sheetshare")

TRANSPORT_FAILURE = "Failed to send webhook"
TEST_MESSAGE = "This is a test webhook from Excel Analysis Platform"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate_events(events: Optional[Iterable[str]]) -> List[str]:
    if isinstance(events, str):
        events = [events]
    ordered: List[str] = []
    for event in events or ():
        if event not in KNOWN_EVENTS:
            raise InvalidArgumentError(f"Unknown event: {event!r}")
        if event not in ordered:
            ordered.append(event)
    if not ordered:
        raise InvalidArgumentError("At least one event is required")
    return ordered


class WebhookService:
    """Webhook Delivery Engine."""

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[Settings] = None,
        client_factory: Optional[Callable[..., Any]] = None,
    ):
        cfg = settings or default_settings
        self.store = store
        self.timeout = cfg.WEBHOOK_TIMEOUT_SECONDS
        self.user_agent = cfg.WEBHOOK_USER_AGENT
        self._client_factory = client_factory

    def _client(self):
        # Resolved per call so tests can monkeypatch httpx.AsyncClient.
        # Redirects are followed; only the final answer decides the outcome.
        factory = self._client_factory or httpx.AsyncClient
        return factory(timeout=self.timeout, follow_redirects=True)

    def register(self, name: str, url: str, events: Iterable[str], now: Optional[datetime] = None) -> WebhookRegistration:
        """
        Register a destination for one or more known events.

        Raises:
            InvalidArgumentError: empty name, non-http(s) URL, empty or unknown events
        """
        name = (name or "").strip()
        if not name:
            raise InvalidArgumentError("Webhook name is required")
        url = validate_http_url(url)
        events = _validate_events(events)
        now = now or _utcnow()

        doc = {
            "name": name,
            "url": url,
            "events": events,
            "secret": tokens.issue_signing_secret(),
            "is_active": True,
            "success_count": 0,
            "failure_count": 0,
            "last_triggered": None,
            "created_at": now,
        }
        doc["id"] = self.store.insert_one(WEBHOOKS, doc)
        logger.info("webhook.registered", extra={"webhook_id": doc["id"]})
        return WebhookRegistration.from_document(doc)

    def list_registrations(self) -> List[WebhookRegistration]:
        docs = self.store.find(WEBHOOKS, {}, sort=[("created_at", DESCENDING)])
        return [WebhookRegistration.from_document(doc) for doc in docs]

    def get(self, webhook_id: str) -> WebhookRegistration:
        webhook_id = validate_identifier(webhook_id, "webhook ID")
        doc = self.store.find_one(WEBHOOKS, {"id": webhook_id})
        if not doc:
            raise NotFoundError("Webhook not found")
        return WebhookRegistration.from_document(doc)

    def set_active(self, webhook_id: str, is_active: bool, now: Optional[datetime] = None) -> None:
        webhook_id = validate_identifier(webhook_id, "webhook ID")
        matched = self.store.update_one(
            WEBHOOKS,
            {"id": webhook_id},
            Update(set_fields={"is_active": bool(is_active), "updated_at": now or _utcnow()}),
        )
        if not matched:
            raise NotFoundError("Webhook not found")

    def delete(self, webhook_id: str) -> None:
        webhook_id = validate_identifier(webhook_id, "webhook ID")
        if not self.store.delete_one(WEBHOOKS, {"id": webhook_id}):
            raise NotFoundError("Webhook not found")
        logger.info("webhook.deleted", extra={"webhook_id": webhook_id})

    def _record_attempt(self, webhook_id: str, success: bool, now: datetime) -> None:
        if success:
            update = Update(inc={"success_count": 1}, set_fields={"last_triggered": now})
        else:
            update = Update(inc={"failure_count": 1})
        try:
            self.store.update_one(WEBHOOKS, {"id": webhook_id}, update)
        except StoreError:
            # The attempt already happened; losing the counter must not fail the caller
            logger.error(
                "webhook.counter_update_failed",
                exc_info=True,
                extra={"webhook_id": webhook_id, "error_code": "internal_error"},
            )

    async def deliver(
        self,
        registration: WebhookRegistration,
        event: str,
        data: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> DeliveryOutcome:
        """Send one signed POST and record its outcome. Never raises."""
        now = now or _utcnow()
        body_bytes = serialize_envelope(build_envelope(event, data, now))
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: sign_payload(registration.secret, body_bytes),
            "User-Agent": self.user_agent,
        }

        try:
            async with self._client() as client:
                response = await client.post(registration.url, content=body_bytes, headers=headers)
        except Exception as exc:
            log_event(
                "warning",
                "webhook.delivery_failed",
                event_type=event,
                error_code=type(exc).__name__,
                extra={"webhook_id": registration.id},
            )
            self._record_attempt(registration.id, success=False, now=now)
            return DeliveryOutcome(success=False, error=TRANSPORT_FAILURE)

        success = response.is_success
        self._record_attempt(registration.id, success=success, now=now)
        log_event(
            "info",
            "webhook.delivered",
            event_type=event,
            extra={"webhook_id": registration.id, "status": response.status_code},
        )
        return DeliveryOutcome(success=success, status=response.status_code, status_text=response.reason_phrase)

    async def test(self, webhook_id: str, now: Optional[datetime] = None) -> DeliveryOutcome:
        """Operator connectivity check; counted like any other delivery."""
        registration = self.get(webhook_id)
        data = {
            "message": TEST_MESSAGE,
            "webhook_id": registration.id,
            "webhook_name": registration.name,
        }
        return await self.deliver(registration, TEST_EVENT, data, now=now)

    async def dispatch(self, event: str, data: Dict[str, Any], now: Optional[datetime] = None) -> List[DeliveryOutcome]:
        """Fan an event out to every active registration subscribed to it."""
        if event not in KNOWN_EVENTS:
            raise InvalidArgumentError(f"Unknown event: {event!r}")
        now = now or _utcnow()
        docs = self.store.find(WEBHOOKS, {"is_active": True})
        targets = [
            WebhookRegistration.from_document(doc)
            for doc in docs
            if event in (doc.get("events") or ())
        ]
        if not targets:
            return []
        return list(await asyncio.gather(*(self.deliver(r, event, data, now=now) for r in targets)))
