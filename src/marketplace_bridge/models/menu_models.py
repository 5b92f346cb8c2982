"""Menu data models.

MenuItem is the canonical local copy of one sellable POS item together with
its Marketplace linkage and pricing mode. Items are keyed by
(tenant_id, pos_item_id) in DynamoDB.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MarkupKind(str, Enum):
    """How a markup policy inflates a base price."""

    PERCENT = "percent"
    FIXED = "fixed"


class MarkupPolicy(BaseModel):
    """A (kind, value) pair describing a price markup."""

    model_config = ConfigDict(frozen=True)

    kind: MarkupKind = Field(..., description="Percent or fixed amount")
    value: Decimal = Field(..., description="Percentage points or currency amount")

    def to_dynamodb_item(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "value": self.value}

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "MarkupPolicy":
        return cls(kind=MarkupKind(item["kind"]), value=Decimal(str(item["value"])))


DEFAULT_GLOBAL_MARKUP = MarkupPolicy(kind=MarkupKind.PERCENT, value=Decimal("30"))


class AutomaticPrice(BaseModel):
    """Price computed from a markup policy at publish time.

    With no policy the item follows the tenant's global markup and
    cached_price is informational only. With a policy, cached_price is a
    cache that may be recomputed at any time.
    """

    model_config = ConfigDict(frozen=True)

    mode: Literal["automatic"] = "automatic"
    policy: MarkupPolicy | None = None
    cached_price: Decimal | None = None


class ManualPrice(BaseModel):
    """Operator-set exact Marketplace price, bypassing markup formulas."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["manual"] = "manual"
    value: Decimal = Field(..., ge=0)


PriceMode = Annotated[Union[AutomaticPrice, ManualPrice], Field(discriminator="mode")]


def price_mode_to_dynamodb(price_mode: AutomaticPrice | ManualPrice) -> dict[str, Any]:
    """Serialize a price mode into a DynamoDB map attribute."""
    if isinstance(price_mode, ManualPrice):
        return {"mode": "manual", "value": price_mode.value}

    data: dict[str, Any] = {"mode": "automatic"}
    if price_mode.policy is not None:
        data["policy"] = price_mode.policy.to_dynamodb_item()
    if price_mode.cached_price is not None:
        data["cached_price"] = price_mode.cached_price
    return data


def price_mode_from_dynamodb(data: dict[str, Any] | None) -> AutomaticPrice | ManualPrice:
    """Parse a DynamoDB map attribute into a price mode."""
    if not data:
        return AutomaticPrice()

    if data.get("mode") == "manual":
        return ManualPrice(value=Decimal(str(data["value"])))

    policy = data.get("policy")
    cached = data.get("cached_price")
    return AutomaticPrice(
        policy=MarkupPolicy.from_dynamodb_item(policy) if policy else None,
        cached_price=Decimal(str(cached)) if cached is not None else None,
    )


class CatalogItem(BaseModel):
    """Provider-sourced fields of one item, as normalized from a catalog pull."""

    pos_item_id: str = Field(..., description="Stable POS catalog identifier")
    name: str = Field(..., description="Display name")
    description: str | None = Field(None, description="Item description")
    base_price: Decimal = Field(..., description="Base price in currency units", ge=0)
    image_url: str | None = Field(None, description="URL of the first item image")
    category_name: str | None = Field(None, description="Name of the first category")
    available: bool = Field(default=True, description="False when deleted in the POS")


class MenuItem(BaseModel):
    """Local menu item with Marketplace linkage and price mode."""

    tenant_id: str = Field(..., description="Tenant that owns the item")
    pos_item_id: str = Field(..., description="Stable POS catalog identifier")
    name: str = Field(..., description="Item name")
    description: str | None = Field(None, description="Item description")
    base_price: Decimal = Field(..., description="POS price", ge=0)
    image_url: str | None = Field(None, description="URL to item image")
    category_name: str | None = Field(None, description="POS category name")
    available: bool = Field(default=True, description="Whether item is currently available")
    marketplace_item_id: str | None = Field(None, description="Marketplace listing id")
    synced: bool = Field(default=False, description="Whether the last publish succeeded")
    last_synced_at: datetime | None = Field(None, description="Time of the last publish")
    price_mode: PriceMode = AutomaticPrice()
    updated_at: datetime | None = Field(None, description="Time of the last catalog pull")

    @property
    def markup_type(self) -> str:
        """Flat markup classification: none, percent, fixed or manual."""
        if isinstance(self.price_mode, ManualPrice):
            return "manual"
        if self.price_mode.policy is None:
            return "none"
        return self.price_mode.policy.kind.value

    @property
    def adjusted_price(self) -> Decimal | None:
        if isinstance(self.price_mode, ManualPrice):
            return self.price_mode.value
        return self.price_mode.cached_price

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        item: dict[str, Any] = {
            "tenant_id": self.tenant_id,
            "pos_item_id": self.pos_item_id,
            "name": self.name,
            "base_price": self.base_price,
            "available": self.available,
            "synced": self.synced,
            "price_mode": price_mode_to_dynamodb(self.price_mode),
        }

        for key in ("description", "image_url", "category_name", "marketplace_item_id"):
            value = getattr(self, key)
            if value is not None:
                item[key] = value

        if self.last_synced_at is not None:
            item["last_synced_at"] = self.last_synced_at.isoformat()
        if self.updated_at is not None:
            item["updated_at"] = self.updated_at.isoformat()

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "MenuItem":
        """Create MenuItem from DynamoDB item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            MenuItem: Parsed model instance
        """
        data: dict[str, Any] = {
            "tenant_id": item["tenant_id"],
            "pos_item_id": item["pos_item_id"],
            "name": item["name"],
            "base_price": Decimal(str(item["base_price"])),
            "available": item.get("available", True),
            "synced": item.get("synced", False),
            "price_mode": price_mode_from_dynamodb(item.get("price_mode")),
        }

        for key in ("description", "image_url", "category_name", "marketplace_item_id"):
            if key in item:
                data[key] = item[key]

        if "last_synced_at" in item:
            data["last_synced_at"] = datetime.fromisoformat(item["last_synced_at"])
        if "updated_at" in item:
            data["updated_at"] = datetime.fromisoformat(item["updated_at"])

        return cls(**data)


class PriceModeUpdate(BaseModel):
    """Operator edit of an item's pricing.

    `none` clears any item-level markup so the item follows the global
    policy; `percent` and `fixed` set an item policy; `manual` sets an exact
    price.
    """

    markup_type: Literal["none", "percent", "fixed", "manual"]
    value: Decimal | None = Field(None, ge=0)

    @model_validator(mode="after")
    def _require_value(self) -> "PriceModeUpdate":
        if self.markup_type != "none" and self.value is None:
            raise ValueError(f"value is required for markup_type '{self.markup_type}'")
        return self
