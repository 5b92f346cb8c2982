"""Operator pricing edits and price previews."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from marketplace_bridge.exceptions import ItemNotFoundError
from marketplace_bridge.models.menu_models import (
    DEFAULT_GLOBAL_MARKUP,
    AutomaticPrice,
    ManualPrice,
    MarkupKind,
    MarkupPolicy,
    MenuItem,
    PriceModeUpdate,
)
from marketplace_bridge.repositories.menu_repositories import MenuItemRepository, SettingsRepository
from marketplace_bridge.services.pricing import adjust_price, resolve_effective_price, round_currency

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricedMenuItem:
    """A menu item with the price it would be published at."""

    item: MenuItem
    effective_price: Decimal


def build_price_mode(update: PriceModeUpdate, base_price: Decimal) -> AutomaticPrice | ManualPrice:
    """Translate an operator edit into a price mode.

    Item policies get their cached price computed immediately from the
    current base price.
    """
    if update.markup_type == "none":
        return AutomaticPrice()

    value = update.value if update.value is not None else Decimal("0")
    if update.markup_type == "manual":
        return ManualPrice(value=round_currency(value))

    policy = MarkupPolicy(kind=MarkupKind(update.markup_type), value=value)
    return AutomaticPrice(policy=policy, cached_price=adjust_price(base_price, policy))


class MarkupService:
    """Sets per-item price modes and previews effective prices."""

    def __init__(
        self,
        settings_repository: SettingsRepository,
        menu_repository: MenuItemRepository,
    ) -> None:
        self.settings_repository = settings_repository
        self.menu_repository = menu_repository

    def set_price_mode(self, tenant_id: str, item_id: str, update: PriceModeUpdate) -> MenuItem:
        """Apply a pricing edit to one item.

        Args:
            tenant_id: Tenant identifier
            item_id: POS item id
            update: Manual price, item policy, or clear

        Returns:
            MenuItem: The item with its new price mode

        Raises:
            ItemNotFoundError: If the item does not exist
        """
        item = self.menu_repository.get_item(tenant_id, item_id)
        if item is None:
            raise ItemNotFoundError(f"Menu item {item_id} not found")

        price_mode = build_price_mode(update, item.base_price)
        if not self.menu_repository.save_price_mode(tenant_id, item_id, price_mode):
            raise ItemNotFoundError(f"Menu item {item_id} could not be updated")

        logger.info(f"Set price mode of item {item_id} to {update.markup_type} for tenant {tenant_id}")
        return item.model_copy(update={"price_mode": price_mode})

    def _global_policy(self, tenant_id: str) -> MarkupPolicy:
        settings = self.settings_repository.get_settings(tenant_id)
        return settings.global_markup if settings else DEFAULT_GLOBAL_MARKUP

    def preview(self, tenant_id: str, item: MenuItem) -> PricedMenuItem:
        """Price one item under the tenant's current global markup."""
        effective_price = resolve_effective_price(
            item.base_price, item.price_mode, self._global_policy(tenant_id)
        )
        return PricedMenuItem(item=item, effective_price=effective_price)

    def list_items(self, tenant_id: str) -> list[PricedMenuItem]:
        """List a tenant's items with the price each would be published at.

        Items without their own policy are priced with the tenant's global
        markup, or the default markup if the tenant has no settings yet.
        """
        global_policy = self._global_policy(tenant_id)
        return [
            PricedMenuItem(
                item=item,
                effective_price=resolve_effective_price(item.base_price, item.price_mode, global_policy),
            )
            for item in self.menu_repository.list_items(tenant_id)
        ]
