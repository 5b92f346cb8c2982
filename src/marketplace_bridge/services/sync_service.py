"""Publish orchestrator: pushes priced menu items to the marketplace."""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from marketplace_bridge.adapters.base_adapter import MarketplaceAdapter, MarketplaceListing
from marketplace_bridge.adapters.ubereats_adapter import UberEatsAdapter
from marketplace_bridge.exceptions import AuthError, BridgeError, ConfigurationError
from marketplace_bridge.models.menu_models import AutomaticPrice, MarkupPolicy
from marketplace_bridge.models.settings_models import TenantSettings
from marketplace_bridge.models.sync_models import (
    ItemSyncResult,
    PublishResult,
    SyncLogEntry,
    SyncOutcomeEnum,
    SyncTypeEnum,
    summarize_outcome,
)
from marketplace_bridge.observability.decorators import traced
from marketplace_bridge.observability.metrics import record_publish_batch
from marketplace_bridge.repositories.log_repositories import SyncLogRepository
from marketplace_bridge.repositories.menu_repositories import MenuItemRepository, SettingsRepository
from marketplace_bridge.services.pricing import resolve_effective_price, to_minor_units
from marketplace_bridge.services.settings_service import require_settings
from marketplace_bridge.services.token_service import TokenService

logger = logging.getLogger(__name__)

MarketplaceAdapterFactory = Callable[[TenantSettings], MarketplaceAdapter]


class SyncService:
    """Publishes a batch of menu items to the marketplace.

    The batch is best effort: each item is pushed independently and its
    failure is recorded without aborting the others. Missing configuration
    and unrecoverable auth problems are detected once, before any item is
    pushed, and raised to the caller.
    """

    def __init__(
        self,
        settings_repository: SettingsRepository,
        menu_repository: MenuItemRepository,
        sync_log_repository: SyncLogRepository,
        token_service: TokenService,
        marketplace_adapter_factory: MarketplaceAdapterFactory = UberEatsAdapter.from_settings,
        max_concurrency: int = 5,
    ) -> None:
        """Initialize the SyncService.

        Args:
            settings_repository: Repository for tenant settings
            menu_repository: Repository for menu items
            sync_log_repository: Repository for sync log entries
            token_service: Provides marketplace access tokens
            marketplace_adapter_factory: Builds a marketplace adapter from tenant settings
            max_concurrency: Maximum number of items pushed at once
        """
        self.settings_repository = settings_repository
        self.menu_repository = menu_repository
        self.sync_log_repository = sync_log_repository
        self.token_service = token_service
        self.marketplace_adapter_factory = marketplace_adapter_factory
        self.max_concurrency = max(1, max_concurrency)

    @traced("menu_publish")
    async def publish(
        self,
        tenant_id: str,
        item_ids: list[str],
        global_policy: MarkupPolicy | None = None,
    ) -> PublishResult:
        """Push the selected items to the marketplace.

        This method orchestrates the complete publish flow:
        1. Resolve settings, adapter and access token (fail fast)
        2. Price, format and push every item concurrently
        3. Record linkage for each pushed item
        4. Write one SyncLogEntry summarizing the batch

        Args:
            tenant_id: Tenant identifier
            item_ids: POS item ids to publish
            global_policy: Markup for items without their own policy
                (defaults to the tenant's global markup)

        Returns:
            PublishResult with the synced count and per-item errors

        Raises:
            ConfigurationError: If settings, client credentials or store id are missing
            AuthError: If no usable access token can be obtained
        """
        try:
            settings = require_settings(self.settings_repository, tenant_id)
            adapter = self.marketplace_adapter_factory(settings)
            if not settings.marketplace_store_id:
                raise ConfigurationError("Uber Store ID not configured in Settings")
            access_token = await self.token_service.get_access_token(settings)
        except (ConfigurationError, AuthError) as e:
            logger.error(f"Publish aborted for tenant {tenant_id}: {e}")
            self._write_log(tenant_id, SyncOutcomeEnum.FAILED, 0, str(e))
            raise

        policy = global_policy or settings.global_markup
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(item_id: str) -> ItemSyncResult:
            async with semaphore:
                return await self._publish_item(settings, adapter, access_token, policy, item_id)

        # Duplicate ids would race on the same listing
        unique_ids = list(dict.fromkeys(item_ids))
        results = await asyncio.gather(*(bounded(item_id) for item_id in unique_ids))

        synced_count = sum(1 for r in results if r.ok)
        errors = [f"{r.item_name}: {r.error}" for r in results if not r.ok]
        outcome = summarize_outcome(synced_count, len(errors))

        message = "; ".join(errors) if errors else f"{synced_count} items synced to Uber Eats"
        self._write_log(tenant_id, outcome, synced_count, message)
        record_publish_batch(synced_count, len(errors))

        logger.info(
            f"Published {synced_count}/{len(unique_ids)} items for tenant {tenant_id} ({outcome.value})"
        )
        return PublishResult(synced_count=synced_count, errors=errors, outcome=outcome)

    async def _publish_item(
        self,
        settings: TenantSettings,
        adapter: MarketplaceAdapter,
        access_token: str,
        policy: MarkupPolicy,
        item_id: str,
    ) -> ItemSyncResult:
        """Push one item. Never raises; failures are returned in the result."""
        item = self.menu_repository.get_item(settings.tenant_id, item_id)
        if item is None:
            return ItemSyncResult(item_id=item_id, item_name=item_id, error="Item not found")

        try:
            price = resolve_effective_price(item.base_price, item.price_mode, policy)
            listing = MarketplaceListing(
                name=item.name,
                description=item.description,
                price_minor=to_minor_units(price),
                currency_code=settings.currency_code,
                tax_rate=settings.tax_rate,
                tax_type=settings.tax_type,
                image_url=item.image_url if settings.sync_images else None,
            )
            payload = adapter.format_item(listing)

            if item.marketplace_item_id:
                await adapter.update_item(access_token, item.marketplace_item_id, payload)
                marketplace_item_id = item.marketplace_item_id
            else:
                marketplace_item_id = await adapter.create_item(access_token, payload)
        except BridgeError as e:
            logger.warning(f"Failed to publish item {item_id} for tenant {settings.tenant_id}: {e}")
            return ItemSyncResult(item_id=item_id, item_name=item.name, error=str(e))
        except Exception as e:
            logger.exception(f"Unexpected error publishing item {item_id}")
            return ItemSyncResult(item_id=item_id, item_name=item.name, error=str(e) or type(e).__name__)

        recorded = self.menu_repository.mark_synced(
            settings.tenant_id,
            item_id,
            marketplace_item_id,
            datetime.now(UTC),
            price if isinstance(item.price_mode, AutomaticPrice) else None,
        )
        if not recorded:
            return ItemSyncResult(
                item_id=item_id,
                item_name=item.name,
                error=f"Pushed as {marketplace_item_id} but failed to record the link",
            )

        return ItemSyncResult(item_id=item_id, item_name=item.name)

    def list_sync_logs(self, tenant_id: str, limit: int = 50) -> list[SyncLogEntry]:
        """Return the tenant's most recent pull and publish records."""
        return self.sync_log_repository.list_for_tenant(tenant_id, limit=limit)

    def _write_log(self, tenant_id: str, outcome: SyncOutcomeEnum, count: int, message: str) -> None:
        self.sync_log_repository.save_entry(
            SyncLogEntry(
                tenant_id=tenant_id,
                created_at=datetime.now(UTC),
                sync_type=SyncTypeEnum.MENU_PUSH,
                outcome=outcome,
                items_synced=count,
                message=message,
            )
        )
