"""Shared pytest fixtures and configuration for all tests."""

import os
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

# Entry-point modules skip building real AWS dependencies in test mode.
os.environ.setdefault("ENVIRONMENT", "test")

from marketplace_bridge.models.menu_models import (  # noqa: E402
    AutomaticPrice,
    MarkupKind,
    MarkupPolicy,
    MenuItem,
)
from marketplace_bridge.models.settings_models import TenantSettings  # noqa: E402


@pytest.fixture
def tenant_id() -> str:
    """Fixture providing a standard test tenant ID."""
    return "tenant_123"


@pytest.fixture
def now() -> datetime:
    """Fixed point in time used by clock-dependent tests."""
    return datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def tenant_settings(tenant_id: str, now: datetime) -> TenantSettings:
    """Fully configured tenant settings with a valid marketplace token."""
    return TenantSettings(
        tenant_id=tenant_id,
        pos_access_token="sq_token",
        pos_location_id="LOC_1",
        marketplace_client_id="uber_client",
        marketplace_client_secret="uber_secret",
        marketplace_store_id="store_1",
        marketplace_access_token="uber_access",
        marketplace_refresh_token="uber_refresh",
        marketplace_token_expiry=now + timedelta(hours=1),
        global_markup=MarkupPolicy(kind=MarkupKind.PERCENT, value=Decimal("30")),
    )


@pytest.fixture
def menu_item(tenant_id: str) -> MenuItem:
    """A pulled but never published menu item."""
    return MenuItem(
        tenant_id=tenant_id,
        pos_item_id="ITEM_1",
        name="Flat White",
        description="Double shot",
        base_price=Decimal("10.00"),
        category_name="Coffee",
        price_mode=AutomaticPrice(),
    )


@pytest.fixture
def linked_menu_item(menu_item: MenuItem, now: datetime) -> MenuItem:
    """A menu item that has been published to the marketplace."""
    return menu_item.model_copy(
        update={"marketplace_item_id": "UBER_1", "synced": True, "last_synced_at": now}
    )
