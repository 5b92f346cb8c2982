"""FastAPI application for the admin API, OAuth callback and webhooks."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from marketplace_bridge.auth.api_dependencies import require_api_key
from marketplace_bridge.auth.api_key_validator import APIKeyValidator
from marketplace_bridge.exceptions import (
    AuthError,
    BridgeError,
    ConfigurationError,
    ItemNotFoundError,
    StorageError,
    UpstreamError,
    ValidationError,
)
from marketplace_bridge.handlers.webhook_handler import WebhookHandler, create_webhook_router
from marketplace_bridge.models.menu_models import ManualPrice, MarkupPolicy, PriceModeUpdate
from marketplace_bridge.models.order_models import Order
from marketplace_bridge.models.settings_models import PosEnvironment, TenantSettings
from marketplace_bridge.models.sync_models import SyncLogEntry, SyncOutcomeEnum
from marketplace_bridge.models.webhook_models import WebhookLogEntry
from marketplace_bridge.services.catalog_service import CatalogService
from marketplace_bridge.services.markup_service import MarkupService, PricedMenuItem
from marketplace_bridge.services.order_service import OrderService
from marketplace_bridge.services.settings_service import SettingsService
from marketplace_bridge.services.sync_service import SyncService
from marketplace_bridge.services.token_service import TokenService

logger = logging.getLogger(__name__)

# Most specific classes first
ERROR_STATUS_CODES: tuple[tuple[type[BridgeError], int], ...] = (
    (ItemNotFoundError, 404),
    (ValidationError, 422),
    (ConfigurationError, 400),
    (AuthError, 401),
    (UpstreamError, 502),
    (StorageError, 503),
)


def status_code_for(error: BridgeError) -> int:
    """Map a bridge error to the HTTP status returned to admin callers."""
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return 500


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str


class SettingsUpdateRequest(BaseModel):
    """Partial settings update; omitted fields keep their stored value."""

    model_config = ConfigDict(extra="forbid")

    pos_access_token: str | None = None
    pos_location_id: str | None = None
    pos_environment: PosEnvironment | None = None
    pos_webhook_signature_key: str | None = None
    marketplace_client_id: str | None = None
    marketplace_client_secret: str | None = None
    marketplace_store_id: str | None = None
    marketplace_webhook_secret: str | None = None
    global_markup: MarkupPolicy | None = None
    currency_code: str | None = Field(None, min_length=3, max_length=3)
    tax_rate: Decimal | None = Field(None, ge=0)
    tax_type: str | None = None
    auto_pause_on_stock_out: bool | None = None
    sync_hours: bool | None = None
    sync_images: bool | None = None


class SettingsResponse(BaseModel):
    """Settings summary; credentials are reported as configured or not."""

    tenant_id: str
    pos_environment: PosEnvironment
    pos_location_id: str | None
    pos_configured: bool
    marketplace_store_id: str | None
    marketplace_configured: bool
    marketplace_connected: bool
    global_markup: MarkupPolicy
    currency_code: str
    tax_rate: Decimal
    tax_type: str
    auto_pause_on_stock_out: bool
    sync_hours: bool
    sync_images: bool

    @classmethod
    def from_settings(cls, settings: TenantSettings) -> "SettingsResponse":
        return cls(
            tenant_id=settings.tenant_id,
            pos_environment=settings.pos_environment,
            pos_location_id=settings.pos_location_id,
            pos_configured=bool(settings.pos_access_token),
            marketplace_store_id=settings.marketplace_store_id,
            marketplace_configured=bool(settings.marketplace_client_id and settings.marketplace_client_secret),
            marketplace_connected=bool(settings.marketplace_refresh_token),
            global_markup=settings.global_markup,
            currency_code=settings.currency_code,
            tax_rate=settings.tax_rate,
            tax_type=settings.tax_type,
            auto_pause_on_stock_out=settings.auto_pause_on_stock_out,
            sync_hours=settings.sync_hours,
            sync_images=settings.sync_images,
        )


class ConnectionResponse(BaseModel):
    ok: bool
    location_id: str
    location_name: str
    business_name: str | None = None


class AuthorizeResponse(BaseModel):
    authorization_url: str


class OAuthCallbackResponse(BaseModel):
    tenant_id: str
    connected: bool


class CatalogPullResponse(BaseModel):
    tenant_id: str
    items_pulled: int


class MenuItemResponse(BaseModel):
    """Menu item as shown to operators, with its effective price."""

    pos_item_id: str
    name: str
    description: str | None
    base_price: Decimal
    image_url: str | None
    category_name: str | None
    available: bool
    marketplace_item_id: str | None
    synced: bool
    last_synced_at: datetime | None
    markup_type: str
    markup_value: Decimal | None
    effective_price: Decimal | None

    @classmethod
    def from_priced_item(cls, priced: PricedMenuItem) -> "MenuItemResponse":
        item = priced.item
        price_mode = item.price_mode
        if isinstance(price_mode, ManualPrice):
            markup_value: Decimal | None = price_mode.value
        else:
            markup_value = price_mode.policy.value if price_mode.policy else None

        return cls(
            pos_item_id=item.pos_item_id,
            name=item.name,
            description=item.description,
            base_price=item.base_price,
            image_url=item.image_url,
            category_name=item.category_name,
            available=item.available,
            marketplace_item_id=item.marketplace_item_id,
            synced=item.synced,
            last_synced_at=item.last_synced_at,
            markup_type=item.markup_type,
            markup_value=markup_value,
            effective_price=priced.effective_price,
        )


class PublishRequest(BaseModel):
    item_ids: list[str] = Field(..., min_length=1)
    global_markup: MarkupPolicy | None = None


class PublishResponse(BaseModel):
    tenant_id: str
    synced_count: int
    errors: list[str]
    outcome: SyncOutcomeEnum


def create_app(
    settings_service: SettingsService,
    catalog_service: CatalogService,
    sync_service: SyncService,
    markup_service: MarkupService,
    token_service: TokenService,
    order_service: OrderService,
    webhook_handler: WebhookHandler,
    api_keys: list[str],
    public_base_url: str | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings_service: Service for tenant settings
        catalog_service: Service for catalog pulls and POS connection checks
        sync_service: Service for publishing items to the marketplace
        markup_service: Service for per-item pricing
        token_service: Service for marketplace OAuth
        order_service: Service for bridged orders
        webhook_handler: Handler for inbound webhooks
        api_keys: List of valid API keys for the admin endpoints
        public_base_url: Externally visible base URL, used for POS webhook signatures

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Marketplace Bridge Admin API",
        description="Bridges a POS catalog and orders with a delivery marketplace",
        version="1.0.0",
    )

    # Store services in app state for access in route handlers
    app.state.settings_service = settings_service
    app.state.catalog_service = catalog_service
    app.state.sync_service = sync_service
    app.state.markup_service = markup_service
    app.state.token_service = token_service
    app.state.order_service = order_service
    app.state.webhook_handler = webhook_handler
    app.state.api_key_validator = APIKeyValidator(api_keys=api_keys)

    @app.exception_handler(BridgeError)
    async def handle_bridge_error(_request: Request, error: BridgeError) -> JSONResponse:
        status_code = status_code_for(error)
        if status_code >= 500:
            logger.error(f"Request failed: {error}")
        return JSONResponse(status_code=status_code, content={"detail": str(error)})

    app.include_router(create_webhook_router(webhook_handler, public_base_url=public_base_url))

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        return HealthResponse(status="healthy")

    def validate_api_key(x_api_key: str | None = Header(None)) -> str:
        """Dependency to validate API key."""
        return require_api_key(x_api_key=x_api_key, validator=app.state.api_key_validator)

    @app.put(
        "/admin/tenants/{tenant_id}/settings",
        response_model=SettingsResponse,
        tags=["Settings"],
    )
    async def update_settings(
        tenant_id: str,
        request: SettingsUpdateRequest,
        _api_key: str = Depends(validate_api_key),
    ) -> SettingsResponse:
        """Create or partially update a tenant's settings."""
        settings = app.state.settings_service.update_settings(
            tenant_id, request.model_dump(exclude_unset=True)
        )
        return SettingsResponse.from_settings(settings)

    @app.get(
        "/admin/tenants/{tenant_id}/pos/connection",
        response_model=ConnectionResponse,
        tags=["Settings"],
    )
    async def check_pos_connection(
        tenant_id: str,
        _api_key: str = Depends(validate_api_key),
    ) -> ConnectionResponse:
        """Confirm the Square credentials by looking up the configured location."""
        location = await app.state.catalog_service.check_connection(tenant_id=tenant_id)
        return ConnectionResponse(ok=True, **location)

    @app.get(
        "/admin/tenants/{tenant_id}/marketplace/authorize",
        response_model=AuthorizeResponse,
        tags=["Settings"],
    )
    async def marketplace_authorize(
        tenant_id: str,
        _api_key: str = Depends(validate_api_key),
    ) -> AuthorizeResponse:
        """Return the URL an operator visits to connect Uber Eats."""
        return AuthorizeResponse(authorization_url=app.state.token_service.authorization_url(tenant_id))

    @app.get(
        "/oauth/marketplace/callback",
        response_model=OAuthCallbackResponse,
        tags=["Settings"],
    )
    async def marketplace_oauth_callback(
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
    ) -> OAuthCallbackResponse:
        """Complete the Uber Eats authorization-code grant.

        The `state` parameter carries the tenant id.
        """
        if error:
            raise AuthError(f"Uber Eats authorization was denied: {error}")
        if not code or not state:
            raise ValidationError("Missing code or state parameter")

        await app.state.token_service.exchange_code(tenant_id=state, code=code)
        return OAuthCallbackResponse(tenant_id=state, connected=True)

    @app.post(
        "/admin/tenants/{tenant_id}/catalog/pull",
        response_model=CatalogPullResponse,
        tags=["Catalog"],
    )
    async def pull_catalog(
        tenant_id: str,
        _api_key: str = Depends(validate_api_key),
    ) -> CatalogPullResponse:
        """Pull the Square catalog into local menu items."""
        logger.info(f"Manual catalog pull triggered for tenant {tenant_id}")
        count = await app.state.catalog_service.pull(tenant_id=tenant_id)
        return CatalogPullResponse(tenant_id=tenant_id, items_pulled=count)

    @app.get(
        "/admin/tenants/{tenant_id}/items",
        response_model=list[MenuItemResponse],
        tags=["Catalog"],
    )
    async def list_items(
        tenant_id: str,
        _api_key: str = Depends(validate_api_key),
    ) -> list[MenuItemResponse]:
        """List menu items with the price each would be published at."""
        priced_items = app.state.markup_service.list_items(tenant_id)
        return [MenuItemResponse.from_priced_item(priced) for priced in priced_items]

    @app.patch(
        "/admin/tenants/{tenant_id}/items/{item_id}/price",
        response_model=MenuItemResponse,
        tags=["Catalog"],
    )
    async def set_item_price(
        tenant_id: str,
        item_id: str,
        update: PriceModeUpdate,
        _api_key: str = Depends(validate_api_key),
    ) -> MenuItemResponse:
        """Set a manual price or item markup, or clear the item's markup."""
        item = app.state.markup_service.set_price_mode(tenant_id, item_id, update)
        return MenuItemResponse.from_priced_item(app.state.markup_service.preview(tenant_id, item))

    @app.post(
        "/admin/tenants/{tenant_id}/publish",
        response_model=PublishResponse,
        tags=["Publish"],
    )
    async def publish_items(
        tenant_id: str,
        request: PublishRequest,
        _api_key: str = Depends(validate_api_key),
    ) -> Any:
        """Push the selected items to Uber Eats.

        Returns 207 when some items were pushed and some failed.
        """
        logger.info(f"Publish of {len(request.item_ids)} items triggered for tenant {tenant_id}")
        result = await app.state.sync_service.publish(
            tenant_id=tenant_id,
            item_ids=request.item_ids,
            global_policy=request.global_markup,
        )
        response = PublishResponse(
            tenant_id=tenant_id,
            synced_count=result.synced_count,
            errors=result.errors,
            outcome=result.outcome,
        )

        if result.outcome == SyncOutcomeEnum.PARTIAL:
            return JSONResponse(status_code=207, content=response.model_dump(mode="json"))
        return response

    @app.get(
        "/admin/tenants/{tenant_id}/orders",
        response_model=list[Order],
        tags=["Orders"],
    )
    async def list_orders(
        tenant_id: str,
        limit: int = 50,
        _api_key: str = Depends(validate_api_key),
    ) -> list[Order]:
        orders: list[Order] = app.state.order_service.list_orders(tenant_id, limit=limit)
        return orders

    @app.get(
        "/admin/tenants/{tenant_id}/sync-logs",
        response_model=list[SyncLogEntry],
        tags=["Logs"],
    )
    async def list_sync_logs(
        tenant_id: str,
        limit: int = 50,
        _api_key: str = Depends(validate_api_key),
    ) -> list[SyncLogEntry]:
        entries: list[SyncLogEntry] = app.state.sync_service.list_sync_logs(tenant_id, limit=limit)
        return entries

    @app.get(
        "/admin/tenants/{tenant_id}/webhook-logs",
        response_model=list[WebhookLogEntry],
        tags=["Logs"],
    )
    async def list_webhook_logs(
        tenant_id: str,
        limit: int = 50,
        _api_key: str = Depends(validate_api_key),
    ) -> list[WebhookLogEntry]:
        entries: list[WebhookLogEntry] = app.state.webhook_handler.list_recent(tenant_id, limit=limit)
        return entries

    return app
