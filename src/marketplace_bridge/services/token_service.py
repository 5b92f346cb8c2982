"""Marketplace OAuth token management.

Access tokens are refreshed on demand. Refreshers for the same tenant are
serialised by an in-process lock, and the new token is stored with a
compare-and-swap on the previous expiry so that separate processes converge
on a single token.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from marketplace_bridge.adapters.base_adapter import MarketplaceAdapter
from marketplace_bridge.adapters.ubereats_adapter import UberEatsAdapter
from marketplace_bridge.exceptions import AuthError, ConfigurationError, UpstreamError
from marketplace_bridge.models.settings_models import TenantSettings
from marketplace_bridge.observability.decorators import traced
from marketplace_bridge.repositories.menu_repositories import SettingsRepository
from marketplace_bridge.services.settings_service import require_settings

logger = logging.getLogger(__name__)

MarketplaceAdapterFactory = Callable[[TenantSettings], MarketplaceAdapter]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenService:
    """Provides valid Marketplace access tokens for a tenant."""

    def __init__(
        self,
        settings_repository: SettingsRepository,
        marketplace_adapter_factory: MarketplaceAdapterFactory = UberEatsAdapter.from_settings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the TokenService.

        Args:
            settings_repository: Repository for tenant settings
            marketplace_adapter_factory: Builds a marketplace adapter from tenant settings
            clock: Returns the current time (timezone-aware)
        """
        self.settings_repository = settings_repository
        self.marketplace_adapter_factory = marketplace_adapter_factory
        self.clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        return self._locks.setdefault(tenant_id, asyncio.Lock())

    async def get_access_token(self, settings: TenantSettings) -> str:
        """Return a usable access token, refreshing it if needed.

        Args:
            settings: Tenant settings as currently known to the caller

        Returns:
            str: Access token valid for at least the refresh buffer

        Raises:
            AuthError: If there is no refresh token or the refresh is rejected
            ConfigurationError: If the OAuth client is not configured
        """
        if settings.marketplace_token_is_valid(self.clock()):
            return settings.marketplace_access_token  # type: ignore[return-value]

        async with self._lock_for(settings.tenant_id):
            # Another refresher may have finished while we waited
            current = self.settings_repository.get_settings(settings.tenant_id) or settings
            if current.marketplace_token_is_valid(self.clock()):
                return current.marketplace_access_token  # type: ignore[return-value]

            return await self._refresh(current)

    async def _refresh(self, settings: TenantSettings) -> str:
        if not settings.marketplace_refresh_token:
            raise AuthError("Uber Eats token expired and no refresh token is stored; reconnect Uber Eats in Settings")

        adapter = self.marketplace_adapter_factory(settings)
        try:
            grant = await adapter.refresh_access_token(settings.marketplace_refresh_token)
        except (AuthError, UpstreamError) as e:
            raise AuthError(f"Uber Eats token refresh failed ({e}); reconnect Uber Eats in Settings") from e

        expiry = self.clock() + timedelta(seconds=grant.expires_in)
        written = self.settings_repository.save_marketplace_tokens(
            settings.tenant_id,
            grant.access_token,
            grant.refresh_token,
            expiry,
            expected_expiry=settings.marketplace_token_expiry,
        )
        if written:
            logger.info(f"Refreshed Uber Eats token for tenant {settings.tenant_id}")
            return grant.access_token

        winner = self.settings_repository.get_settings(settings.tenant_id)
        if winner is not None and winner.marketplace_token_is_valid(self.clock()):
            return winner.marketplace_access_token  # type: ignore[return-value]

        logger.warning(f"Using unsaved refreshed token for tenant {settings.tenant_id}")
        return grant.access_token

    def authorization_url(self, tenant_id: str) -> str:
        """Build the Uber Eats authorization URL, with the tenant id as state.

        Raises:
            ConfigurationError: If settings or the OAuth client id are missing
        """
        settings = require_settings(self.settings_repository, tenant_id)
        return self.marketplace_adapter_factory(settings).authorization_url(state=tenant_id)

    @traced("marketplace_exchange_code")
    async def exchange_code(self, tenant_id: str, code: str) -> None:
        """Exchange an authorization code and store the resulting tokens.

        Raises:
            ConfigurationError: If settings are missing or cannot be saved
            AuthError: If the code is rejected
            UpstreamError: If the token endpoint fails
        """
        settings = require_settings(self.settings_repository, tenant_id)
        grant = await self.marketplace_adapter_factory(settings).exchange_code(code)

        saved = self.settings_repository.save_marketplace_tokens(
            tenant_id,
            grant.access_token,
            grant.refresh_token,
            self.clock() + timedelta(seconds=grant.expires_in),
            guarded=False,
        )
        if not saved:
            raise ConfigurationError(f"Failed to store Uber Eats tokens for tenant {tenant_id}")

        logger.info(f"Connected Uber Eats for tenant {tenant_id}")
