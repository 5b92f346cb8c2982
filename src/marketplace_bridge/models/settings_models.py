"""Per-tenant configuration: credentials, pricing policy and automation toggles."""

from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from marketplace_bridge.models.menu_models import DEFAULT_GLOBAL_MARKUP, MarkupPolicy

# Tokens this close to expiry are treated as already expired.
TOKEN_REFRESH_BUFFER = timedelta(minutes=5)

# Written only by the token service, under its compare-and-swap
MARKETPLACE_TOKEN_FIELDS = frozenset(
    {"marketplace_access_token", "marketplace_refresh_token", "marketplace_token_expiry"}
)


class PosEnvironment(str, Enum):
    """POS API environment."""

    SANDBOX = "sandbox"
    PRODUCTION = "production"


class TenantSettings(BaseModel):
    """Settings row for one tenant, keyed by tenant_id."""

    tenant_id: str = Field(..., description="Tenant identifier")

    pos_access_token: str | None = Field(None, description="Square access token")
    pos_location_id: str | None = Field(None, description="Square location for new orders")
    pos_environment: PosEnvironment = Field(default=PosEnvironment.SANDBOX)
    pos_webhook_signature_key: str | None = Field(None, description="Square webhook key")

    marketplace_client_id: str | None = Field(None, description="Uber Eats OAuth client id")
    marketplace_client_secret: str | None = Field(None, description="Uber Eats OAuth secret")
    marketplace_store_id: str | None = Field(None, description="Uber Eats store id")
    marketplace_access_token: str | None = Field(None, description="Current access token")
    marketplace_refresh_token: str | None = Field(None, description="OAuth refresh token")
    marketplace_token_expiry: datetime | None = Field(None, description="Access token expiry")
    marketplace_webhook_secret: str | None = Field(None, description="Uber Eats webhook secret")

    global_markup: MarkupPolicy = Field(default=DEFAULT_GLOBAL_MARKUP)
    currency_code: str = Field(default="AUD", min_length=3, max_length=3)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0)
    tax_type: str = Field(default="GST")

    auto_pause_on_stock_out: bool = Field(default=False)
    sync_hours: bool = Field(default=False)
    sync_images: bool = Field(default=True)

    def marketplace_token_is_valid(self, now: datetime) -> bool:
        """Return True if the stored access token can be used at `now`."""
        if not self.marketplace_access_token or self.marketplace_token_expiry is None:
            return False
        return self.marketplace_token_expiry - TOKEN_REFRESH_BUFFER > now

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format, omitting unset optional fields."""
        item: dict[str, Any] = {
            "tenant_id": self.tenant_id,
            "pos_environment": self.pos_environment.value,
            "global_markup": self.global_markup.to_dynamodb_item(),
            "currency_code": self.currency_code,
            "tax_rate": self.tax_rate,
            "tax_type": self.tax_type,
            "auto_pause_on_stock_out": self.auto_pause_on_stock_out,
            "sync_hours": self.sync_hours,
            "sync_images": self.sync_images,
        }

        for key in _OPTIONAL_STRING_FIELDS:
            value = getattr(self, key)
            if value is not None:
                item[key] = value

        if self.marketplace_token_expiry is not None:
            item["marketplace_token_expiry"] = self.marketplace_token_expiry.isoformat()

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "TenantSettings":
        data: dict[str, Any] = {
            "tenant_id": item["tenant_id"],
            "pos_environment": PosEnvironment(item.get("pos_environment", "sandbox")),
            "currency_code": item.get("currency_code", "AUD"),
            "tax_rate": Decimal(str(item.get("tax_rate", "0"))),
            "tax_type": item.get("tax_type", "GST"),
            "auto_pause_on_stock_out": item.get("auto_pause_on_stock_out", False),
            "sync_hours": item.get("sync_hours", False),
            "sync_images": item.get("sync_images", True),
        }

        if "global_markup" in item:
            data["global_markup"] = MarkupPolicy.from_dynamodb_item(item["global_markup"])

        for key in _OPTIONAL_STRING_FIELDS:
            if key in item:
                data[key] = item[key]

        if "marketplace_token_expiry" in item:
            data["marketplace_token_expiry"] = datetime.fromisoformat(
                item["marketplace_token_expiry"]
            )

        return cls(**data)


_OPTIONAL_STRING_FIELDS = (
    "pos_access_token",
    "pos_location_id",
    "pos_webhook_signature_key",
    "marketplace_client_id",
    "marketplace_client_secret",
    "marketplace_store_id",
    "marketplace_access_token",
    "marketplace_refresh_token",
    "marketplace_webhook_secret",
)
