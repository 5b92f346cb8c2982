"""Catalog reconciler: pulls the POS catalog into local menu items."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from marketplace_bridge.adapters.base_adapter import PosAdapter
from marketplace_bridge.adapters.square_adapter import SquareAdapter
from marketplace_bridge.exceptions import BridgeError, ConfigurationError
from marketplace_bridge.models.menu_models import CatalogItem
from marketplace_bridge.models.settings_models import TenantSettings
from marketplace_bridge.models.sync_models import SyncLogEntry, SyncOutcomeEnum, SyncTypeEnum, summarize_outcome
from marketplace_bridge.observability.decorators import traced
from marketplace_bridge.observability.metrics import record_catalog_pull
from marketplace_bridge.repositories.log_repositories import SyncLogRepository
from marketplace_bridge.repositories.menu_repositories import MenuItemRepository, SettingsRepository
from marketplace_bridge.services.pricing import from_minor_units
from marketplace_bridge.services.settings_service import require_settings

logger = logging.getLogger(__name__)

UNNAMED_ITEM = "Unnamed Item"

PosAdapterFactory = Callable[[TenantSettings], PosAdapter]


def build_catalog_indices(objects: list[dict[str, Any]]) -> tuple[dict[str, str], dict[str, str]]:
    """Index IMAGE and CATEGORY records by id.

    Args:
        objects: Raw catalog objects of every type

    Returns:
        tuple: (image id -> url, category id -> name)
    """
    images: dict[str, str] = {}
    categories: dict[str, str] = {}

    for obj in objects:
        obj_id = obj.get("id")
        if not obj_id:
            continue
        if obj.get("type") == "IMAGE":
            url = (obj.get("image_data") or {}).get("url")
            if url:
                images[obj_id] = url
        elif obj.get("type") == "CATEGORY":
            name = (obj.get("category_data") or {}).get("name")
            if name:
                categories[obj_id] = name

    return images, categories


def normalize_catalog_item(
    obj: dict[str, Any],
    images: dict[str, str],
    categories: dict[str, str],
) -> CatalogItem | None:
    """Convert one ITEM record into provider-sourced item fields.

    Only the first price variation, image and category are used. Records
    without an id or item data are skipped.

    Returns:
        CatalogItem, or None if the record is not a usable item
    """
    item_data = obj.get("item_data")
    if obj.get("type", "ITEM") != "ITEM" or not obj.get("id") or not item_data:
        return None

    price_minor = 0
    variations = item_data.get("variations") or []
    if variations:
        price_money = (variations[0].get("item_variation_data") or {}).get("price_money") or {}
        price_minor = int(price_money.get("amount") or 0)

    image_ids = item_data.get("image_ids") or []
    image_url = images.get(image_ids[0]) if image_ids else None

    category_entries = item_data.get("categories") or []
    category_id = category_entries[0].get("id") if category_entries else item_data.get("category_id")
    category_name = categories.get(category_id) if category_id else None

    return CatalogItem(
        pos_item_id=obj["id"],
        name=item_data.get("name") or UNNAMED_ITEM,
        description=item_data.get("description") or None,
        base_price=from_minor_units(price_minor),
        image_url=image_url,
        category_name=category_name,
        available=not obj.get("is_deleted", False),
    )


class CatalogService:
    """Pulls a tenant's POS catalog and upserts it into local menu items.

    Provider fields are overwritten on every pull; price mode and
    marketplace linkage are left untouched. Items missing from the POS
    catalog are not deleted locally.
    """

    def __init__(
        self,
        settings_repository: SettingsRepository,
        menu_repository: MenuItemRepository,
        sync_log_repository: SyncLogRepository,
        pos_adapter_factory: PosAdapterFactory = SquareAdapter.from_settings,
    ) -> None:
        """Initialize the CatalogService.

        Args:
            settings_repository: Repository for tenant settings
            menu_repository: Repository for menu items
            sync_log_repository: Repository for sync log entries
            pos_adapter_factory: Builds a POS adapter from tenant settings
        """
        self.settings_repository = settings_repository
        self.menu_repository = menu_repository
        self.sync_log_repository = sync_log_repository
        self.pos_adapter_factory = pos_adapter_factory

    @traced("catalog_pull")
    async def pull(self, tenant_id: str) -> int:
        """Pull the full catalog for a tenant.

        Args:
            tenant_id: Tenant identifier

        Returns:
            int: Number of items upserted

        Raises:
            ConfigurationError: If settings or the POS access token are missing
            UpstreamError: If a catalog page cannot be fetched
        """
        try:
            settings = require_settings(self.settings_repository, tenant_id)
            adapter = self.pos_adapter_factory(settings)
            objects = await adapter.list_catalog()
        except BridgeError as e:
            logger.error(f"Catalog pull failed for tenant {tenant_id}: {e}")
            self._write_log(tenant_id, SyncOutcomeEnum.FAILED, 0, str(e))
            raise

        images, categories = build_catalog_indices(objects)
        pulled_at = datetime.now(UTC)

        count = 0
        failed: list[str] = []
        for obj in objects:
            item = normalize_catalog_item(obj, images, categories)
            if item is None:
                continue
            if self.menu_repository.upsert_catalog_item(tenant_id, item, pulled_at):
                count += 1
            else:
                failed.append(item.name)

        record_catalog_pull(count)
        outcome = summarize_outcome(count, len(failed))
        message = f"Pulled {count} items from Square"
        if failed:
            message += f"; failed to store {len(failed)}: {', '.join(failed)}"
            logger.warning(f"Catalog pull for tenant {tenant_id} stored {count}/{count + len(failed)} items")
        self._write_log(tenant_id, outcome, count, message)
        logger.info(f"Pulled {count} catalog items for tenant {tenant_id}")
        return count

    async def check_connection(self, tenant_id: str) -> dict[str, Any]:
        """Look up the configured POS location to confirm the credentials work.

        Returns:
            dict: Location id, name and business name

        Raises:
            ConfigurationError: If the access token or location id is missing
            UpstreamError: If the POS rejects the lookup
        """
        settings = require_settings(self.settings_repository, tenant_id)
        if not settings.pos_location_id:
            raise ConfigurationError("No location ID configured")

        location = await self.pos_adapter_factory(settings).get_location(settings.pos_location_id)
        return {
            "location_id": settings.pos_location_id,
            "location_name": location.get("name") or "Unknown",
            "business_name": location.get("business_name"),
        }

    def _write_log(self, tenant_id: str, outcome: SyncOutcomeEnum, count: int, message: str) -> None:
        self.sync_log_repository.save_entry(
            SyncLogEntry(
                tenant_id=tenant_id,
                created_at=datetime.now(UTC),
                sync_type=SyncTypeEnum.MENU_PULL,
                outcome=outcome,
                items_synced=count,
                message=message,
            )
        )
