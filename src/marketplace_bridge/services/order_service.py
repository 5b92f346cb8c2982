"""Order bridge: materializes marketplace orders as POS orders."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from marketplace_bridge.adapters.base_adapter import PosAdapter, PosOrderLine
from marketplace_bridge.adapters.square_adapter import SquareAdapter
from marketplace_bridge.exceptions import BridgeError, ConfigurationError, ValidationError
from marketplace_bridge.models.order_models import Order, OrderLineItem, OrderStatusEnum, can_transition
from marketplace_bridge.models.settings_models import TenantSettings
from marketplace_bridge.models.webhook_models import MarketplaceWebhookEvent
from marketplace_bridge.observability.decorators import traced
from marketplace_bridge.observability.metrics import record_order_bridged
from marketplace_bridge.repositories.menu_repositories import SettingsRepository
from marketplace_bridge.repositories.order_repositories import OrderRepository
from marketplace_bridge.services.pricing import from_minor_units, to_minor_units
from marketplace_bridge.services.settings_service import require_settings

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER_NAME = "Uber Customer"
DEFAULT_LINE_NAME = "Item"

PosAdapterFactory = Callable[[TenantSettings], PosAdapter]


@dataclass
class OrderDetails:
    """Fields extracted from a marketplace order payload.

    Attributes:
        customer_name: Eater display name or a placeholder
        line_items: Ordered lines with unit prices in currency units
        total_amount: Order total in currency units
    """

    customer_name: str
    line_items: list[OrderLineItem] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")


def pos_idempotency_key(marketplace_order_id: str) -> str:
    """Idempotency key for the POS order of a marketplace order.

    Derived from the marketplace order id alone, so every retry and every
    duplicate delivery maps to the same POS order.
    """
    return f"uber-{marketplace_order_id}"


def _as_int(value: Any, default: int) -> int:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return default


def _line_name(title: Any) -> str:
    if isinstance(title, dict):
        translations = title.get("translations") or {}
        if isinstance(translations, dict) and translations:
            return str(translations.get("en") or next(iter(translations.values())))
        return DEFAULT_LINE_NAME
    return str(title) if title else DEFAULT_LINE_NAME


def extract_order_details(event: MarketplaceWebhookEvent) -> OrderDetails:
    """Extract customer, lines and total from an order event.

    Customer name comes from `eater.name`, then `consumer.name`. Lines come
    from `cart.items` or `items`, with prices in minor units.
    """
    order = event.order_payload
    customer_name = (
        (order.get("eater") or {}).get("name")
        or (order.get("consumer") or {}).get("name")
        or DEFAULT_CUSTOMER_NAME
    )

    raw_items = (order.get("cart") or {}).get("items") or order.get("items") or []
    line_items = [
        OrderLineItem(
            name=_line_name(raw.get("title")),
            quantity=max(0, _as_int(raw.get("quantity") or 1, 1)),
            unit_price=from_minor_units(max(0, _as_int(raw.get("price") or 0, 0))),
        )
        for raw in raw_items
        if isinstance(raw, dict)
    ]

    total = ((order.get("payment") or {}).get("charges") or {}).get("total") or {}
    total_minor = max(0, _as_int(total.get("amount") or 0, 0))

    return OrderDetails(
        customer_name=str(customer_name),
        line_items=line_items,
        total_amount=from_minor_units(total_minor),
    )


class OrderService:
    """Records marketplace orders and bridges them into the POS.

    The order row is written before any POS call so that an audit trail
    exists even when bridging fails.
    """

    def __init__(
        self,
        settings_repository: SettingsRepository,
        order_repository: OrderRepository,
        pos_adapter_factory: PosAdapterFactory = SquareAdapter.from_settings,
    ) -> None:
        """Initialize the OrderService.

        Args:
            settings_repository: Repository for tenant settings
            order_repository: Repository for orders
            pos_adapter_factory: Builds a POS adapter from tenant settings
        """
        self.settings_repository = settings_repository
        self.order_repository = order_repository
        self.pos_adapter_factory = pos_adapter_factory

    @traced("order_placed", attributes=("tenant_id",))
    async def handle_order_placed(self, tenant_id: str, event: MarketplaceWebhookEvent, raw_body: str) -> Order:
        """Record a newly placed order and create it in the POS.

        A duplicate delivery of an order that is still pending re-attempts
        the POS call, which the idempotency key makes safe. Duplicates of
        orders past pending are ignored.

        Args:
            tenant_id: Tenant the webhook was addressed to
            event: Parsed webhook envelope
            raw_body: Webhook body, stored verbatim on the order

        Returns:
            Order: The order in its resulting state

        Raises:
            ValidationError: If the event carries no order id
        """
        marketplace_order_id = event.resolved_order_id
        if not marketplace_order_id:
            raise ValidationError(f"Order event {event.event_type} has no order id")

        details = extract_order_details(event)
        order = Order(
            tenant_id=tenant_id,
            marketplace_order_id=marketplace_order_id,
            customer_name=details.customer_name,
            status=OrderStatusEnum.PENDING,
            total_amount=details.total_amount,
            raw_payload=raw_body,
            line_items=details.line_items,
            created_at=datetime.now(UTC),
        )

        if not self.order_repository.create_order(order):
            existing = self.order_repository.get_order(tenant_id, marketplace_order_id)
            if existing is None or not can_transition(existing.status, OrderStatusEnum.ACCEPTED):
                logger.info(f"Ignoring duplicate delivery of order {marketplace_order_id}")
                return existing or order
            logger.info(f"Retrying bridge for pending order {marketplace_order_id}")
            order = existing

        return await self._bridge(order)

    async def _bridge(self, order: Order) -> Order:
        """Create the POS order and move the local order to accepted or failed."""
        try:
            settings = require_settings(self.settings_repository, order.tenant_id)
            if not settings.pos_location_id:
                raise ConfigurationError("No Square location configured. Please add it in Settings.")
            adapter = self.pos_adapter_factory(settings)

            lines = [
                PosOrderLine(
                    name=li.name,
                    quantity=li.quantity,
                    unit_price_minor=to_minor_units(li.unit_price),
                )
                for li in order.line_items
            ]
            pos_order_id = await adapter.create_order(
                location_id=settings.pos_location_id,
                lines=lines,
                marketplace_order_id=order.marketplace_order_id,
                customer_name=order.customer_name,
                currency_code=settings.currency_code,
                idempotency_key=pos_idempotency_key(order.marketplace_order_id),
            )
        except BridgeError as e:
            logger.error(f"Failed to create POS order for {order.marketplace_order_id}: {e}")
            return self._mark(order, OrderStatusEnum.FAILED)
        except Exception:
            logger.exception(f"Unexpected error bridging order {order.marketplace_order_id}")
            return self._mark(order, OrderStatusEnum.FAILED)

        return self._mark(order, OrderStatusEnum.ACCEPTED, pos_order_id=pos_order_id)

    def _mark(self, order: Order, status: OrderStatusEnum, pos_order_id: str | None = None) -> Order:
        now = datetime.now(UTC)
        updated = self.order_repository.update_status(
            order.tenant_id,
            order.marketplace_order_id,
            status,
            updated_at=now,
            pos_order_id=pos_order_id,
        )
        record_order_bridged(status.value)
        if not updated:
            return self.order_repository.get_order(order.tenant_id, order.marketplace_order_id) or order

        changes: dict[str, Any] = {"status": status, "updated_at": now}
        if pos_order_id is not None:
            changes["pos_order_id"] = pos_order_id
        return order.model_copy(update=changes)

    @traced("order_cancelled", attributes=("tenant_id", "marketplace_order_id"))
    async def handle_order_cancelled(self, tenant_id: str, marketplace_order_id: str) -> bool:
        """Mark an order cancelled regardless of its current status.

        Returns:
            bool: True if the order existed and was updated
        """
        cancelled = self.order_repository.update_status(
            tenant_id,
            marketplace_order_id,
            OrderStatusEnum.CANCELLED,
            updated_at=datetime.now(UTC),
        )
        if cancelled:
            logger.info(f"Cancelled order {marketplace_order_id} for tenant {tenant_id}")
        return cancelled

    def list_orders(self, tenant_id: str, limit: int = 50) -> list[Order]:
        return self.order_repository.list_orders(tenant_id, limit=limit)
