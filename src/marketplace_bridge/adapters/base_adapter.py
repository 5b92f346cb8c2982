"""Base adapters for the POS and Marketplace integrations.

Adapters are thin HTTP clients: they translate between local models and a
platform's wire format and raise UpstreamError (or AuthError for rejected
credentials) when a call fails. Retry and error isolation decisions belong to
the services.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class PosOrderLine:
    """One line of an order to create in the POS.

    Attributes:
        name: Line item name
        quantity: Number of units
        unit_price_minor: Unit price in integer minor units
    """

    name: str
    quantity: int
    unit_price_minor: int


@dataclass(frozen=True)
class MarketplaceListing:
    """Marketplace-facing view of one menu item.

    Attributes:
        name: Localized title
        description: Localized description, if any
        price_minor: Listing price in integer minor units
        currency_code: ISO currency code
        tax_rate: Tax rate reported to the Marketplace
        tax_type: Tax type label (e.g. "GST")
        image_url: Image to attach, if image sync is enabled
    """

    name: str
    description: str | None
    price_minor: int
    currency_code: str
    tax_rate: Decimal
    tax_type: str
    image_url: str | None = None


@dataclass(frozen=True)
class TokenGrant:
    """Tokens returned by an OAuth token endpoint."""

    access_token: str
    refresh_token: str | None
    expires_in: int


class PosAdapter(ABC):
    """Abstract base class for point-of-sale adapters."""

    def __init__(self, platform_name: str) -> None:
        """Initialize the adapter.

        Args:
            platform_name: Name of the POS platform (e.g., 'square')
        """
        self.platform_name = platform_name

    @abstractmethod
    async def list_catalog(self) -> list[dict[str, Any]]:
        """Fetch every item, image and category record, exhausting all pages."""

    @abstractmethod
    async def create_order(
        self,
        location_id: str,
        lines: list[PosOrderLine],
        marketplace_order_id: str,
        customer_name: str,
        currency_code: str,
        idempotency_key: str,
    ) -> str:
        """Create an order and return its POS id."""

    @abstractmethod
    async def get_location(self, location_id: str) -> dict[str, Any]:
        """Fetch a location, used to check that credentials work."""


class MarketplaceAdapter(ABC):
    """Abstract base class for delivery marketplace adapters."""

    def __init__(self, platform_name: str) -> None:
        self.platform_name = platform_name

    @abstractmethod
    def format_item(self, listing: MarketplaceListing) -> dict[str, Any]:
        """Transform a listing to the platform's menu-item payload."""

    @abstractmethod
    async def create_item(self, access_token: str, payload: dict[str, Any]) -> str:
        """Create a listing and return the Marketplace item id."""

    @abstractmethod
    async def update_item(self, access_token: str, item_id: str, payload: dict[str, Any]) -> None:
        """Replace an existing listing."""

    @abstractmethod
    async def set_item_paused(self, access_token: str, item_id: str, paused: bool) -> None:
        """Pause or unpause a listing."""

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Exchange a refresh token for a new access token."""

    @abstractmethod
    async def exchange_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for tokens."""

    @abstractmethod
    def authorization_url(self, state: str) -> str:
        """Build the URL the operator visits to authorize the integration."""
