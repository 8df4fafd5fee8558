"""
sheetshare/models/webhook.py
Outbound webhook registrations and delivery outcomes.
"""

from datetime import datetime
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from sheetshare.models.base import ApiModel

KNOWN_EVENTS = frozenset({
    "file.uploaded",
    "analysis.completed",
    "chart.created",
    "error.occurred",
})

# Synthetic event used by operator-triggered test deliveries
TEST_EVENT = "webhook.test"


class WebhookRegistration(BaseModel):
    """Internal record including the signing secret (never rendered to clients)"""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    url: str
    events: List[str]
    secret: str = Field(repr=False)
    is_active: bool = True
    success_count: int = 0
    failure_count: int = 0
    last_triggered: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "WebhookRegistration":
        return cls.model_validate({k: v for k, v in doc.items() if k in cls.model_fields and v is not None})


class WebhookView(ApiModel):
    id: str
    name: str
    url: str
    events: List[str]
    is_active: bool
    success_count: int
    failure_count: int
    last_triggered: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_registration(cls, registration: WebhookRegistration) -> "WebhookView":
        return cls.model_validate(registration.model_dump(exclude={"secret"}))


class RegisterWebhookRequest(ApiModel):
    name: str
    url: str
    events: List[str]


class DeliveryOutcome(ApiModel):
    """Result of exactly one delivery attempt; failures are data, not exceptions"""

    success: bool
    status: Optional[int] = None
    status_text: Optional[str] = None
    error: Optional[str] = None

    def to_response(self, **kwargs) -> dict:
        return super().to_response(exclude_none=True, **kwargs)
