"""Inbound webhook ingress for POS stock events and marketplace order events.

Every authentic webhook is recorded in the webhook log before any business
logic runs. Business failures are recorded on the log entry and never change
the acknowledgment, so senders do not retry a delivery that was already
logged. Signature mismatches (401), unparseable bodies (400) and tenants
whose settings cannot be read (503) are rejected.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from marketplace_bridge.auth.webhook_signatures import verify_marketplace_signature, verify_pos_signature
from marketplace_bridge.exceptions import AuthError, BridgeError, StorageError, ValidationError
from marketplace_bridge.models.settings_models import TenantSettings
from marketplace_bridge.models.webhook_models import (
    MarketplaceWebhookEvent,
    PosWebhookEvent,
    WebhookLogEntry,
    WebhookSource,
)
from marketplace_bridge.observability.metrics import record_webhook_received
from marketplace_bridge.repositories.log_repositories import WebhookLogRepository
from marketplace_bridge.repositories.menu_repositories import SettingsRepository
from marketplace_bridge.services.availability_service import AvailabilityService
from marketplace_bridge.services.order_service import OrderService

logger = logging.getLogger(__name__)

POS_SIGNATURE_HEADER = "x-square-hmacsha256-signature"
MARKETPLACE_SIGNATURE_HEADER = "x-uber-signature"

INVENTORY_COUNT_UPDATED = "inventory.count.updated"
ORDER_PLACED_EVENTS = frozenset({"orders.order.scheduled", "orders.order.upcoming", "eats.order"})
ORDER_CANCELLED_EVENT = "orders.order.cancel_order"
MALFORMED_EVENT_TYPE = "malformed"


class WebhookHandler:
    """Verifies, logs and dispatches inbound webhooks for one tenant at a time."""

    def __init__(
        self,
        settings_repository: SettingsRepository,
        webhook_log_repository: WebhookLogRepository,
        order_service: OrderService,
        availability_service: AvailabilityService,
        pos_signature_key: str | None = None,
        marketplace_webhook_secret: str | None = None,
    ) -> None:
        """Initialize the webhook handler.

        Args:
            settings_repository: Repository for tenant settings
            webhook_log_repository: Repository for the webhook log
            order_service: Handles marketplace order events
            availability_service: Handles POS inventory events
            pos_signature_key: Fallback Square signature key
            marketplace_webhook_secret: Fallback Uber Eats webhook secret
        """
        self.settings_repository = settings_repository
        self.webhook_log_repository = webhook_log_repository
        self.order_service = order_service
        self.availability_service = availability_service
        self.pos_signature_key = pos_signature_key
        self.marketplace_webhook_secret = marketplace_webhook_secret

    async def handle_pos_webhook(
        self,
        tenant_id: str,
        body: bytes,
        signature: str | None,
        notification_url: str,
    ) -> dict[str, Any]:
        """Process a Square webhook.

        Raises:
            AuthError: If the signature does not match
            StorageError: If the tenant settings could not be read
            ValidationError: If the body is not a JSON object
        """
        settings = self.settings_repository.get_settings(tenant_id, strict=True)
        key = (settings.pos_webhook_signature_key if settings else None) or self.pos_signature_key
        if key and not verify_pos_signature(key, notification_url, body, signature):
            logger.warning(f"Rejected Square webhook with invalid signature for tenant {tenant_id}")
            raise AuthError("Invalid signature")

        payload = body.decode("utf-8", errors="replace")
        event = self._parse(PosWebhookEvent, tenant_id, WebhookSource.POS, payload)
        entry = self._record(tenant_id, WebhookSource.POS, event.type, payload)

        async def dispatch() -> None:
            if event.type == INVENTORY_COUNT_UPDATED:
                await self.availability_service.handle_inventory_event(
                    tenant_id=tenant_id, counts=event.raw_inventory_counts
                )
            else:
                logger.info(f"Ignoring Square event {event.type or '<none>'}")

        await self._run(entry, dispatch)
        return {"ok": True}

    async def handle_marketplace_webhook(self, tenant_id: str, body: bytes, signature: str | None) -> dict[str, Any]:
        """Process an Uber Eats webhook.

        Raises:
            AuthError: If the signature does not match
            StorageError: If the tenant settings could not be read
            ValidationError: If the body is not a JSON object
        """
        settings = self.settings_repository.get_settings(tenant_id, strict=True)
        secret = self._marketplace_secret(settings)
        if secret and not verify_marketplace_signature(secret, body, signature):
            logger.warning(f"Rejected Uber Eats webhook with invalid signature for tenant {tenant_id}")
            raise AuthError("Invalid signature")

        payload = body.decode("utf-8", errors="replace")
        event = self._parse(MarketplaceWebhookEvent, tenant_id, WebhookSource.MARKETPLACE, payload)
        entry = self._record(tenant_id, WebhookSource.MARKETPLACE, event.event_type, payload)

        async def dispatch() -> None:
            if event.event_type in ORDER_PLACED_EVENTS:
                await self.order_service.handle_order_placed(
                    tenant_id=tenant_id, event=event, raw_body=payload
                )
            elif event.event_type == ORDER_CANCELLED_EVENT:
                order_id = event.resolved_order_id
                if not order_id:
                    raise ValidationError("Cancellation event has no order id")
                await self.order_service.handle_order_cancelled(
                    tenant_id=tenant_id, marketplace_order_id=order_id
                )
            else:
                logger.info(f"Ignoring Uber Eats event {event.event_type or '<none>'}")

        await self._run(entry, dispatch)
        return {"ok": True}

    def list_recent(self, tenant_id: str, limit: int = 50) -> list[WebhookLogEntry]:
        return self.webhook_log_repository.list_recent(tenant_id, limit=limit)

    def _marketplace_secret(self, settings: TenantSettings | None) -> str | None:
        return (settings.marketplace_webhook_secret if settings else None) or self.marketplace_webhook_secret

    def _parse(self, model: type[Any], tenant_id: str, source: WebhookSource, payload: str) -> Any:
        """Parse the body, logging it as a malformed event on failure."""
        try:
            return model.model_validate_json(payload)
        except PydanticValidationError as e:
            error = f"Malformed webhook body: {e.errors()[0].get('msg', 'invalid JSON')}"
            entry = self._record(tenant_id, source, MALFORMED_EVENT_TYPE, payload)
            self.webhook_log_repository.mark_processed(entry.log_id, error=error)
            raise ValidationError(error) from e

    def _record(self, tenant_id: str, source: WebhookSource, event_type: str, payload: str) -> WebhookLogEntry:
        entry = WebhookLogEntry(
            log_id=uuid.uuid4().hex,
            tenant_id=tenant_id,
            source=source,
            event_type=event_type,
            payload=payload,
            received_at=datetime.now(UTC),
        )
        self.webhook_log_repository.append(entry)
        record_webhook_received(source.value, event_type)
        return entry

    async def _run(self, entry: WebhookLogEntry, dispatch: Callable[[], Awaitable[None]]) -> None:
        """Run business logic and flag the log entry processed either way."""
        error: str | None = None
        try:
            await dispatch()
        except BridgeError as e:
            logger.error(f"Webhook {entry.log_id} ({entry.event_type}) failed: {e}")
            error = str(e)
        except Exception as e:
            logger.exception(f"Unexpected error processing webhook {entry.log_id}")
            error = str(e) or type(e).__name__

        self.webhook_log_repository.mark_processed(entry.log_id, error=error)


class WebhookAck(BaseModel):
    """Acknowledgment returned to webhook senders."""

    ok: bool


def create_webhook_router(webhook_handler: WebhookHandler, public_base_url: str | None = None) -> APIRouter:
    """Create the router exposing the webhook endpoints.

    Args:
        webhook_handler: Handler processing the webhooks
        public_base_url: Externally visible base URL the POS notifies; used
            to rebuild the signed notification URL behind proxies

    Returns:
        APIRouter with the POS and marketplace webhook routes
    """
    router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
    base_url = public_base_url.rstrip("/") if public_base_url else None

    def _reject(error: BridgeError) -> JSONResponse:
        if isinstance(error, AuthError):
            status_code = 401
        elif isinstance(error, StorageError):
            status_code = 503
        else:
            status_code = 400
        return JSONResponse(status_code=status_code, content={"error": str(error)})

    @router.post("/pos/{tenant_id}", response_model=WebhookAck)
    async def receive_pos_webhook(tenant_id: str, request: Request) -> Any:
        """Receive a Square webhook for a tenant."""
        notification_url = f"{base_url}{request.url.path}" if base_url else str(request.url)
        try:
            return await webhook_handler.handle_pos_webhook(
                tenant_id,
                await request.body(),
                request.headers.get(POS_SIGNATURE_HEADER),
                notification_url,
            )
        except (AuthError, StorageError, ValidationError) as e:
            return _reject(e)

    @router.post("/marketplace/{tenant_id}", response_model=WebhookAck)
    async def receive_marketplace_webhook(tenant_id: str, request: Request) -> Any:
        """Receive an Uber Eats webhook for a tenant."""
        try:
            return await webhook_handler.handle_marketplace_webhook(
                tenant_id,
                await request.body(),
                request.headers.get(MARKETPLACE_SIGNATURE_HEADER),
            )
        except (AuthError, StorageError, ValidationError) as e:
            return _reject(e)

    return router
