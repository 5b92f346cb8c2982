"""Square POS adapter.

Reads the catalog and creates orders through the Square REST API
(Catalog, Orders and Locations endpoints).
"""

import logging
import time
from typing import Any

import httpx

from marketplace_bridge.adapters.base_adapter import PosAdapter, PosOrderLine
from marketplace_bridge.exceptions import ConfigurationError, UpstreamError
from marketplace_bridge.models.settings_models import PosEnvironment, TenantSettings
from marketplace_bridge.observability.metrics import record_platform_api_call

logger = logging.getLogger(__name__)

SQUARE_API_VERSION = "2024-10-17"
CATALOG_TYPES = "ITEM,IMAGE,CATEGORY"


class SquareAdapter(PosAdapter):
    """Adapter for the Square REST API.

    Authenticates with a per-tenant access token. Every call is bounded by
    the configured timeout.
    """

    def __init__(
        self,
        access_token: str,
        environment: PosEnvironment | str = PosEnvironment.SANDBOX,
        timeout_seconds: float = 10.0,
    ) -> None:
        """Initialize Square adapter.

        Args:
            access_token: Square access token
            environment: API environment ('sandbox' or 'production')
            timeout_seconds: Timeout applied to each HTTP call
        """
        super().__init__("square")
        self.access_token = access_token
        self.environment = PosEnvironment(environment)
        self.timeout_seconds = timeout_seconds

        if self.environment == PosEnvironment.PRODUCTION:
            self.base_url = "https://connect.squareup.com"
        else:
            self.base_url = "https://connect.squareupsandbox.com"

    @classmethod
    def from_settings(cls, settings: TenantSettings, timeout_seconds: float = 10.0) -> "SquareAdapter":
        """Build an adapter from tenant settings.

        Raises:
            ConfigurationError: If no access token is configured
        """
        if not settings.pos_access_token:
            raise ConfigurationError("No Square access token configured. Please add it in Settings.")
        return cls(
            access_token=settings.pos_access_token,
            environment=settings.pos_environment,
            timeout_seconds=timeout_seconds,
        )

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Square-Version": SQUARE_API_VERSION,
            "Content-Type": "application/json",
        }

    async def list_catalog(self) -> list[dict[str, Any]]:
        """Fetch all ITEM, IMAGE and CATEGORY objects.

        Follows the `cursor` returned by each page until the catalog is
        exhausted.

        Returns:
            list: Raw Square catalog objects in the order returned

        Raises:
            UpstreamError: If any page fails; pages already fetched are discarded
        """
        objects: list[dict[str, Any]] = []
        cursor: str | None = None

        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            while True:
                params = {"types": CATALOG_TYPES}
                if cursor:
                    params["cursor"] = cursor

                data = await self._request(
                    client, "GET", "/v2/catalog/list", "list_catalog", params=params
                )
                objects.extend(data.get("objects", []))

                cursor = data.get("cursor")
                if not cursor:
                    break

        logger.info(f"Fetched {len(objects)} catalog objects from Square")
        return objects

    async def create_order(
        self,
        location_id: str,
        lines: list[PosOrderLine],
        marketplace_order_id: str,
        customer_name: str,
        currency_code: str,
        idempotency_key: str,
    ) -> str:
        """Create an OPEN order for a Marketplace order.

        Args:
            location_id: Square location receiving the order
            lines: Order lines with minor-unit prices
            marketplace_order_id: Uber Eats order id, stored as metadata
            customer_name: Customer display name for the ticket
            currency_code: ISO currency code for all amounts
            idempotency_key: Square idempotency key

        Returns:
            str: The Square order id
        """
        body = {
            "idempotency_key": idempotency_key,
            "order": {
                "location_id": location_id,
                "state": "OPEN",
                "ticket_name": f"UBER – {customer_name}",
                "line_items": [
                    {
                        "name": line.name,
                        "quantity": str(line.quantity),
                        "base_price_money": {
                            "amount": line.unit_price_minor,
                            "currency": currency_code,
                        },
                        "note": f"UBER - {customer_name}",
                    }
                    for line in lines
                ],
                "metadata": {
                    "uber_order_id": marketplace_order_id,
                    "customer_name": customer_name,
                    "source": "uber_eats",
                },
            },
        }

        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            data = await self._request(client, "POST", "/v2/orders", "create_order", json=body)

        order_id = (data.get("order") or {}).get("id")
        if not order_id:
            raise UpstreamError("Square order response did not include an order id", "square")

        logger.info(f"Created Square order {order_id} for Uber order {marketplace_order_id}")
        return str(order_id)

    async def get_location(self, location_id: str) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            data = await self._request(
                client, "GET", f"/v2/locations/{location_id}", "get_location"
            )
        return dict(data.get("location") or {})

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        operation: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises:
            UpstreamError: On transport errors or non-2xx responses
        """
        started = time.perf_counter()
        try:
            response = await client.request(
                method, f"{self.base_url}{path}", headers=self.headers, **kwargs
            )
        except httpx.RequestError as e:
            raise UpstreamError(f"Square {operation} failed: {e}", "square") from e
        finally:
            record_platform_api_call("square", operation, time.perf_counter() - started)

        if response.is_error:
            raise UpstreamError(
                f"Square {operation} returned {response.status_code}: {_error_detail(response)}",
                "square",
                status_code=response.status_code,
            )

        try:
            result: dict[str, Any] = response.json()
        except ValueError as e:
            raise UpstreamError(f"Square {operation} returned a non-JSON body", "square") from e
        return result


def _error_detail(response: httpx.Response) -> str:
    """Extract the first Square error detail from a response, if any."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors:
        return str(errors[0].get("detail") or errors[0].get("code"))
    return response.reason_phrase
