"""Inbound webhook models and the webhook audit log entry."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WebhookSource(str, Enum):
    """Platform that sent a webhook."""

    POS = "pos"
    MARKETPLACE = "marketplace"


class WebhookLogEntry(BaseModel):
    """Append-only audit record of one inbound webhook.

    Created before any business logic runs. Only `processed` and `error` are
    updated afterwards. Stored in DynamoDB with log_id as partition key.
    """

    log_id: str = Field(..., description="Unique log entry identifier")
    tenant_id: str = Field(..., description="Tenant the webhook was addressed to")
    source: WebhookSource = Field(..., description="Sending platform")
    event_type: str = Field(..., description="Event type reported by the sender")
    payload: str = Field(..., description="Raw request body")
    processed: bool = Field(default=False)
    error: str | None = Field(None, description="Error raised while processing")
    received_at: datetime = Field(..., description="When the webhook arrived")

    def to_dynamodb_item(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "log_id": self.log_id,
            "tenant_id": self.tenant_id,
            "source": self.source.value,
            "event_type": self.event_type,
            "payload": self.payload,
            "processed": self.processed,
            "received_at": self.received_at.isoformat(),
        }
        if self.error is not None:
            item["error"] = self.error
        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "WebhookLogEntry":
        return cls(
            log_id=item["log_id"],
            tenant_id=item["tenant_id"],
            source=WebhookSource(item["source"]),
            event_type=item.get("event_type", ""),
            payload=item.get("payload", ""),
            processed=item.get("processed", False),
            error=item.get("error"),
            received_at=datetime.fromisoformat(item["received_at"]),
        )


class InventoryCount(BaseModel):
    """One per-item count record from a Square inventory webhook."""

    model_config = ConfigDict(extra="ignore")

    catalog_object_id: str
    state: str = ""
    quantity: Decimal = Decimal("0")
    location_id: str | None = None


class PosWebhookEvent(BaseModel):
    """Envelope of a Square webhook notification."""

    model_config = ConfigDict(extra="allow")

    type: str = ""
    merchant_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def raw_inventory_counts(self) -> list[dict[str, Any]]:
        """Count records under `data.object.inventory_counts`, unparsed."""
        counts = (self.data.get("object") or {}).get("inventory_counts") or []
        return [count for count in counts if isinstance(count, dict)]


class MarketplaceWebhookEvent(BaseModel):
    """Envelope of an Uber Eats webhook notification."""

    model_config = ConfigDict(extra="allow")

    event_type: str = ""
    order_id: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)
    order: dict[str, Any] | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def resolved_order_id(self) -> str | None:
        """Order id from the top level, then `meta.order_id`, then `meta.resource_id`."""
        return self.order_id or self.meta.get("order_id") or self.meta.get("resource_id")

    @property
    def order_payload(self) -> dict[str, Any]:
        """Order body from `order`, falling back to `data.order`."""
        return self.order or self.data.get("order") or {}
