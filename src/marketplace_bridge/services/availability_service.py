"""Availability propagator: applies POS stock changes locally and on the marketplace."""

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from marketplace_bridge.adapters.base_adapter import MarketplaceAdapter
from marketplace_bridge.adapters.ubereats_adapter import UberEatsAdapter
from marketplace_bridge.exceptions import BridgeError
from marketplace_bridge.models.menu_models import MenuItem
from marketplace_bridge.models.settings_models import TenantSettings
from marketplace_bridge.models.webhook_models import InventoryCount
from marketplace_bridge.observability.decorators import traced
from marketplace_bridge.observability.metrics import record_pause_call
from marketplace_bridge.repositories.menu_repositories import MenuItemRepository, SettingsRepository
from marketplace_bridge.services.token_service import TokenService

logger = logging.getLogger(__name__)

# Count states that describe sellable stock; other states are ignored
TRACKED_STATES = frozenset({"IN_STOCK", "SOLD"})

MarketplaceAdapterFactory = Callable[[TenantSettings], MarketplaceAdapter]


class AvailabilityService:
    """Updates item availability from inventory counts.

    Marketplace pause calls are best effort: a failure is logged and
    counted, and never undoes the local update.
    """

    def __init__(
        self,
        settings_repository: SettingsRepository,
        menu_repository: MenuItemRepository,
        token_service: TokenService,
        marketplace_adapter_factory: MarketplaceAdapterFactory = UberEatsAdapter.from_settings,
    ) -> None:
        self.settings_repository = settings_repository
        self.menu_repository = menu_repository
        self.token_service = token_service
        self.marketplace_adapter_factory = marketplace_adapter_factory

    @traced("inventory_update")
    async def handle_inventory_event(self, tenant_id: str, counts: list[dict[str, Any]]) -> int:
        """Apply inventory counts for a tenant.

        Args:
            tenant_id: Tenant the webhook was addressed to
            counts: Raw count records from the webhook

        Returns:
            int: Number of local items whose availability was written
        """
        settings: TenantSettings | None = None
        settings_loaded = False
        updated = 0

        for raw in counts:
            try:
                count = InventoryCount.model_validate(raw)
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed inventory count: {e.errors()[0].get('msg')}")
                continue

            if count.state not in TRACKED_STATES:
                continue

            available = count.quantity > 0
            item = self.menu_repository.update_availability(tenant_id, count.catalog_object_id, available)
            if item is None:
                continue
            updated += 1

            if not (item.marketplace_item_id and item.synced):
                continue

            if not settings_loaded:
                settings = self.settings_repository.get_settings(tenant_id)
                settings_loaded = True
            if settings is None or not settings.auto_pause_on_stock_out:
                continue

            await self._propagate(settings, item, available)

        logger.info(f"Applied {updated} availability changes for tenant {tenant_id}")
        return updated

    async def _propagate(self, settings: TenantSettings, item: MenuItem, available: bool) -> None:
        paused = not available
        try:
            access_token = await self.token_service.get_access_token(settings)
            adapter = self.marketplace_adapter_factory(settings)
            await adapter.set_item_paused(access_token, item.marketplace_item_id or "", paused)
        except BridgeError as e:
            logger.error(f"Failed to set paused={paused} for item {item.pos_item_id}: {e}")
            record_pause_call(paused, success=False)
            return
        except Exception:
            logger.exception(f"Unexpected error setting paused={paused} for item {item.pos_item_id}")
            record_pause_call(paused, success=False)
            return

        record_pause_call(paused, success=True)
