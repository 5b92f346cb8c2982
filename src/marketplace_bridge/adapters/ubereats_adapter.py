"""Uber Eats marketplace adapter.

Handles OAuth token grants and menu-item create/update/pause calls against the
Uber Eats store API.
"""

import logging
import time
from typing import Any
from urllib.parse import urlencode

import httpx

from marketplace_bridge.adapters.base_adapter import MarketplaceAdapter, MarketplaceListing, TokenGrant
from marketplace_bridge.exceptions import AuthError, ConfigurationError, UpstreamError
from marketplace_bridge.models.settings_models import TenantSettings
from marketplace_bridge.observability.metrics import record_platform_api_call

logger = logging.getLogger(__name__)

UBER_API_BASE = "https://api.uber.com/v1"
UBER_AUTHORIZE_URL = "https://login.uber.com/oauth/v2/authorize"
UBER_TOKEN_URL = "https://login.uber.com/oauth/v2/token"
UBER_SCOPES = "eats.store eats.order"


class UberEatsAdapter(MarketplaceAdapter):
    """Adapter for the Uber Eats store and OAuth APIs.

    Client credentials and the store id are per tenant; the access token is
    passed to each call so that token refresh stays in the token service.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        store_id: str | None = None,
        redirect_uri: str = "",
        timeout_seconds: float = 10.0,
    ) -> None:
        """Initialize Uber Eats adapter.

        Args:
            client_id: Uber OAuth client ID
            client_secret: Uber OAuth client secret
            store_id: Uber Eats store the menu items belong to
            redirect_uri: OAuth redirect URI registered with Uber
            timeout_seconds: Timeout applied to each HTTP call
        """
        super().__init__("ubereats")
        self.client_id = client_id
        self.client_secret = client_secret
        self.store_id = store_id
        self.redirect_uri = redirect_uri
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(
        cls,
        settings: TenantSettings,
        redirect_uri: str = "",
        timeout_seconds: float = 10.0,
    ) -> "UberEatsAdapter":
        """Build an adapter from tenant settings.

        Raises:
            ConfigurationError: If the OAuth client id is not configured
        """
        if not settings.marketplace_client_id:
            raise ConfigurationError("Set Uber Client ID in Settings first")
        return cls(
            client_id=settings.marketplace_client_id,
            client_secret=settings.marketplace_client_secret or "",
            store_id=settings.marketplace_store_id,
            redirect_uri=redirect_uri,
            timeout_seconds=timeout_seconds,
        )

    def authorization_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": UBER_SCOPES,
            "state": state,
        }
        return f"{UBER_AUTHORIZE_URL}?{urlencode(params)}"

    def format_item(self, listing: MarketplaceListing) -> dict[str, Any]:
        """Transform a listing to the Uber Eats menu-item format.

        Uber Eats expects localized title/description, prices in minor units
        and tax information on every item.

        Args:
            listing: Marketplace-facing view of the item

        Returns:
            dict: Uber Eats menu-item payload
        """
        payload: dict[str, Any] = {
            "title": {"translations": {"en": listing.name}},
            "price_info": {
                "price": listing.price_minor,
                "currency_code": listing.currency_code,
            },
            "tax_info": {"tax_rate": float(listing.tax_rate), "tax_type": listing.tax_type},
        }

        if listing.description:
            payload["description"] = {"translations": {"en": listing.description}}
        if listing.image_url:
            payload["image_url"] = listing.image_url

        return payload

    async def create_item(self, access_token: str, payload: dict[str, Any]) -> str:
        data = await self._api_request(
            "POST", f"{self._store_path()}/menus/items", "create_item", access_token, json=payload
        )
        item_id = data.get("id") or data.get("item_id")
        if not item_id:
            raise UpstreamError("Uber Eats create_item response did not include an id", "ubereats")
        return str(item_id)

    async def update_item(self, access_token: str, item_id: str, payload: dict[str, Any]) -> None:
        await self._api_request(
            "PUT",
            f"{self._store_path()}/menus/items/{item_id}",
            "update_item",
            access_token,
            json=payload,
        )

    async def set_item_paused(self, access_token: str, item_id: str, paused: bool) -> None:
        await self._api_request(
            "PATCH",
            f"{self._store_path()}/menus/items/{item_id}/pause",
            "pause_item",
            access_token,
            json={"paused": paused},
        )
        logger.info(f"Set Uber Eats item {item_id} paused={paused}")

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            "refresh_token",
        )

    async def exchange_code(self, code: str) -> TokenGrant:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
            "exchange_code",
        )

    def _store_path(self) -> str:
        if not self.store_id:
            raise ConfigurationError("Uber Store ID not configured in Settings")
        return f"{UBER_API_BASE}/eats/stores/{self.store_id}"

    async def _token_request(self, form: dict[str, str], operation: str) -> TokenGrant:
        """POST to the token endpoint with client credentials.

        Raises:
            AuthError: If Uber rejects the grant (4xx)
            UpstreamError: On transport errors or 5xx responses
        """
        data = {**form, "client_id": self.client_id, "client_secret": self.client_secret}
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(UBER_TOKEN_URL, data=data)
        except httpx.RequestError as e:
            raise UpstreamError(f"Uber Eats {operation} failed: {e}", "ubereats") from e
        finally:
            record_platform_api_call("ubereats", operation, time.perf_counter() - started)

        if 400 <= response.status_code < 500:
            raise AuthError(f"Uber Eats rejected {operation} grant ({response.status_code})")
        if response.is_error:
            raise UpstreamError(
                f"Uber Eats {operation} returned {response.status_code}",
                "ubereats",
                status_code=response.status_code,
            )

        try:
            body = response.json()
            return TokenGrant(
                access_token=body["access_token"],
                refresh_token=body.get("refresh_token"),
                expires_in=int(body.get("expires_in", 0)),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise UpstreamError(
                f"Uber Eats {operation} returned an unreadable token response", "ubereats"
            ) from e

    async def _api_request(
        self,
        method: str,
        url: str,
        operation: str,
        access_token: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as e:
            raise UpstreamError(f"Uber Eats {operation} failed: {e}", "ubereats") from e
        finally:
            record_platform_api_call("ubereats", operation, time.perf_counter() - started)

        if response.is_error:
            raise UpstreamError(
                f"Uber Eats {operation} returned {response.status_code}",
                "ubereats",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            # Some store endpoints acknowledge with plain text
            logger.debug(f"Uber Eats {operation} returned a non-JSON body")
            return {}
        return body if isinstance(body, dict) else {}
