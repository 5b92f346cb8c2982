"""Unit tests for data models and their DynamoDB conversions."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from marketplace_bridge.models.menu_models import (
    AutomaticPrice,
    ManualPrice,
    MarkupKind,
    MarkupPolicy,
    MenuItem,
    PriceMode,
    PriceModeUpdate,
    price_mode_from_dynamodb,
    price_mode_to_dynamodb,
)
from marketplace_bridge.models.order_models import (
    Order,
    OrderLineItem,
    OrderStatusEnum,
    can_transition,
)
from marketplace_bridge.models.settings_models import TenantSettings
from marketplace_bridge.models.sync_models import (
    ItemSyncResult,
    SyncLogEntry,
    SyncOutcomeEnum,
    SyncTypeEnum,
    summarize_outcome,
)
from marketplace_bridge.models.webhook_models import (
    MarketplaceWebhookEvent,
    PosWebhookEvent,
    WebhookLogEntry,
    WebhookSource,
)


@pytest.mark.unit
class TestPriceMode:
    """Test suite for the price mode union."""

    def test_discriminator_selects_manual(self) -> None:
        """Test that the mode tag picks the right variant."""
        parsed = TypeAdapter(PriceMode).validate_python({"mode": "manual", "value": "12.50"})

        assert isinstance(parsed, ManualPrice)
        assert parsed.value == Decimal("12.50")

    def test_manual_price_rejects_negative_value(self) -> None:
        with pytest.raises(PydanticValidationError):
            ManualPrice(value=Decimal("-1"))

    def test_automatic_dynamodb_round_trip_with_policy(self) -> None:
        price_mode = AutomaticPrice(
            policy=MarkupPolicy(kind=MarkupKind.FIXED, value=Decimal("2")),
            cached_price=Decimal("12.00"),
        )

        data = price_mode_to_dynamodb(price_mode)

        assert data == {
            "mode": "automatic",
            "policy": {"kind": "fixed", "value": Decimal("2")},
            "cached_price": Decimal("12.00"),
        }
        assert price_mode_from_dynamodb(data) == price_mode

    def test_missing_price_mode_defaults_to_automatic(self) -> None:
        assert price_mode_from_dynamodb(None) == AutomaticPrice()


@pytest.mark.unit
class TestMenuItem:
    """Test suite for MenuItem."""

    def test_markup_type_classification(self, menu_item: MenuItem) -> None:
        """Test the flat markup type derived from the price mode."""
        assert menu_item.markup_type == "none"

        percent = menu_item.model_copy(
            update={
                "price_mode": AutomaticPrice(
                    policy=MarkupPolicy(kind=MarkupKind.PERCENT, value=Decimal("10"))
                )
            }
        )
        manual = menu_item.model_copy(update={"price_mode": ManualPrice(value=Decimal("5"))})

        assert percent.markup_type == "percent"
        assert manual.markup_type == "manual"
        assert manual.adjusted_price == Decimal("5")

    def test_dynamodb_round_trip_omits_unset_fields(self, linked_menu_item: MenuItem) -> None:
        """Test conversion to and from DynamoDB items."""
        item = linked_menu_item.model_copy(update={"image_url": None})

        dynamodb_item = item.to_dynamodb_item()

        assert "image_url" not in dynamodb_item
        assert dynamodb_item["marketplace_item_id"] == "UBER_1"
        assert dynamodb_item["price_mode"] == {"mode": "automatic"}
        assert MenuItem.from_dynamodb_item(dynamodb_item) == item

    def test_json_dump_serializes_decimals_as_strings(self, menu_item: MenuItem) -> None:
        dumped = menu_item.model_dump(mode="json")

        assert "json_encoders" not in MenuItem.model_config
        assert dumped["base_price"] == "10.00"

    def test_negative_base_price_rejected(self, tenant_id: str) -> None:
        with pytest.raises(PydanticValidationError):
            MenuItem(tenant_id=tenant_id, pos_item_id="X", name="X", base_price=Decimal("-1"))


@pytest.mark.unit
class TestPriceModeUpdate:
    """Test suite for PriceModeUpdate validation."""

    def test_none_needs_no_value(self) -> None:
        assert PriceModeUpdate(markup_type="none").value is None

    @pytest.mark.parametrize("markup_type", ["percent", "fixed", "manual"])
    def test_value_required_for_other_types(self, markup_type: str) -> None:
        with pytest.raises(PydanticValidationError):
            PriceModeUpdate(markup_type=markup_type)

    def test_unknown_markup_type_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            PriceModeUpdate(markup_type="discount", value=Decimal("1"))


@pytest.mark.unit
class TestTenantSettings:
    """Test suite for TenantSettings."""

    def test_defaults(self, tenant_id: str) -> None:
        settings = TenantSettings(tenant_id=tenant_id)

        assert settings.global_markup == MarkupPolicy(kind=MarkupKind.PERCENT, value=Decimal("30"))
        assert settings.currency_code == "AUD"
        assert settings.auto_pause_on_stock_out is False

    def test_token_valid_outside_refresh_buffer(
        self, tenant_settings: TenantSettings, now: datetime
    ) -> None:
        assert tenant_settings.marketplace_token_is_valid(now) is True

    def test_token_invalid_inside_refresh_buffer(
        self, tenant_settings: TenantSettings, now: datetime
    ) -> None:
        """Test that a token expiring within five minutes counts as expired."""
        settings = tenant_settings.model_copy(
            update={"marketplace_token_expiry": now + timedelta(minutes=4)}
        )

        assert settings.marketplace_token_is_valid(now) is False

    def test_token_invalid_without_access_token(
        self, tenant_settings: TenantSettings, now: datetime
    ) -> None:
        settings = tenant_settings.model_copy(update={"marketplace_access_token": None})

        assert settings.marketplace_token_is_valid(now) is False

    def test_dynamodb_round_trip(self, tenant_settings: TenantSettings) -> None:
        item = tenant_settings.to_dynamodb_item()

        assert item["marketplace_token_expiry"] == tenant_settings.marketplace_token_expiry.isoformat()
        assert "pos_webhook_signature_key" not in item
        assert TenantSettings.from_dynamodb_item(item) == tenant_settings


@pytest.mark.unit
class TestOrderModels:
    """Test suite for order models and status transitions."""

    @pytest.mark.parametrize(
        ("current", "target", "allowed"),
        [
            (OrderStatusEnum.PENDING, OrderStatusEnum.ACCEPTED, True),
            (OrderStatusEnum.ACCEPTED, OrderStatusEnum.COMPLETED, True),
            (OrderStatusEnum.PENDING, OrderStatusEnum.COMPLETED, False),
            (OrderStatusEnum.ACCEPTED, OrderStatusEnum.FAILED, True),
            (OrderStatusEnum.FAILED, OrderStatusEnum.ACCEPTED, False),
            (OrderStatusEnum.COMPLETED, OrderStatusEnum.CANCELLED, True),
            (OrderStatusEnum.PENDING, OrderStatusEnum.PENDING, False),
        ],
    )
    def test_can_transition(
        self, current: OrderStatusEnum, target: OrderStatusEnum, allowed: bool
    ) -> None:
        assert can_transition(current, target) is allowed

    def test_dynamodb_round_trip(self, tenant_id: str) -> None:
        order = Order(
            tenant_id=tenant_id,
            marketplace_order_id="uber_order_1",
            customer_name="Sam",
            total_amount=Decimal("24.50"),
            raw_payload='{"event_type": "orders.order.scheduled"}',
            line_items=[OrderLineItem(name="Latte", quantity=2, unit_price=Decimal("5.00"))],
            created_at=datetime(2025, 3, 1, tzinfo=UTC),
        )

        item = order.to_dynamodb_item()

        assert item["status"] == "pending"
        assert "pos_order_id" not in item
        assert item["line_items"] == [
            {"name": "Latte", "quantity": 2, "unit_price": Decimal("5.00")}
        ]
        assert Order.from_dynamodb_item(item) == order


@pytest.mark.unit
class TestSyncModels:
    """Test suite for sync result models."""

    @pytest.mark.parametrize(
        ("synced", "errors", "expected"),
        [
            (3, 0, SyncOutcomeEnum.SUCCESS),
            (0, 0, SyncOutcomeEnum.SUCCESS),
            (2, 1, SyncOutcomeEnum.PARTIAL),
            (0, 2, SyncOutcomeEnum.FAILED),
        ],
    )
    def test_summarize_outcome(self, synced: int, errors: int, expected: SyncOutcomeEnum) -> None:
        assert summarize_outcome(synced, errors) == expected

    def test_item_sync_result_ok(self) -> None:
        assert ItemSyncResult("ITEM_1", "Latte").ok is True
        assert ItemSyncResult("ITEM_1", "Latte", error="boom").ok is False

    def test_sync_log_entry_round_trip(self, tenant_id: str) -> None:
        entry = SyncLogEntry(
            tenant_id=tenant_id,
            created_at=datetime(2025, 3, 1, tzinfo=UTC),
            sync_type=SyncTypeEnum.MENU_PUSH,
            outcome=SyncOutcomeEnum.PARTIAL,
            items_synced=2,
            message="Latte: timeout",
        )

        assert SyncLogEntry.from_dynamodb_item(entry.to_dynamodb_item()) == entry


@pytest.mark.unit
class TestWebhookModels:
    """Test suite for webhook envelopes and log entries."""

    def test_marketplace_order_id_resolution_order(self) -> None:
        """Test that the top-level order id wins over meta fields."""
        event = MarketplaceWebhookEvent(
            order_id="top", meta={"order_id": "meta", "resource_id": "resource"}
        )
        meta_only = MarketplaceWebhookEvent(meta={"resource_id": "resource"})

        assert event.resolved_order_id == "top"
        assert meta_only.resolved_order_id == "resource"
        assert MarketplaceWebhookEvent().resolved_order_id is None

    def test_order_payload_falls_back_to_data(self) -> None:
        event = MarketplaceWebhookEvent(data={"order": {"id": "o1"}})

        assert event.order_payload == {"id": "o1"}

    def test_raw_inventory_counts_skips_non_objects(self) -> None:
        event = PosWebhookEvent(
            type="inventory.count.updated",
            data={"object": {"inventory_counts": [{"catalog_object_id": "A"}, "junk"]}},
        )

        assert event.raw_inventory_counts == [{"catalog_object_id": "A"}]

    def test_raw_inventory_counts_empty_without_object(self) -> None:
        assert PosWebhookEvent(type="catalog.version.updated").raw_inventory_counts == []

    def test_webhook_log_entry_round_trip(self, tenant_id: str) -> None:
        entry = WebhookLogEntry(
            log_id="abc",
            tenant_id=tenant_id,
            source=WebhookSource.POS,
            event_type="inventory.count.updated",
            payload="{}",
            received_at=datetime(2025, 3, 1, tzinfo=UTC),
        )

        item = entry.to_dynamodb_item()

        assert "error" not in item
        assert WebhookLogEntry.from_dynamodb_item(item) == entry
