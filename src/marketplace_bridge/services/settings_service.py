"""Tenant settings lookups and partial updates."""

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from marketplace_bridge.exceptions import ConfigurationError, ValidationError
from marketplace_bridge.models.settings_models import MARKETPLACE_TOKEN_FIELDS, TenantSettings
from marketplace_bridge.repositories.menu_repositories import SettingsRepository

logger = logging.getLogger(__name__)


def require_settings(settings_repository: SettingsRepository, tenant_id: str) -> TenantSettings:
    """Load a tenant's settings.

    Raises:
        ConfigurationError: If the tenant has never been configured
    """
    settings = settings_repository.get_settings(tenant_id)
    if settings is None:
        raise ConfigurationError(f"Tenant {tenant_id} is not configured. Please save Settings first.")
    return settings


class SettingsService:
    """Applies operator edits to tenant settings without clobbering tokens."""

    def __init__(self, settings_repository: SettingsRepository) -> None:
        self.settings_repository = settings_repository

    def update_settings(self, tenant_id: str, changes: dict[str, Any]) -> TenantSettings:
        """Validate `changes` against the stored settings and write only them.

        Only the attributes named in `changes` are written, and marketplace
        tokens are never among them, so a token refresh that lands during
        the edit is kept. A tenant without settings is created from defaults.

        Args:
            tenant_id: Tenant identifier
            changes: Field values to overwrite

        Returns:
            TenantSettings: The settings as stored after the edit

        Raises:
            ValidationError: If the merged settings are invalid
            ConfigurationError: If the settings could not be stored
        """
        writable = {
            field: value
            for field, value in changes.items()
            if field in TenantSettings.model_fields
            and field != "tenant_id"
            and field not in MARKETPLACE_TOKEN_FIELDS
        }

        current = self.settings_repository.get_settings(tenant_id) or TenantSettings(tenant_id=tenant_id)
        try:
            merged = TenantSettings.model_validate(
                {**current.model_dump(), **writable, "tenant_id": tenant_id}
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid settings: {e.errors()[0].get('msg')}") from e

        if not writable:
            return merged

        item = merged.to_dynamodb_item()
        saved = self.settings_repository.update_fields(
            tenant_id, {field: item.get(field) for field in writable}
        )
        if saved is None:
            raise ConfigurationError(f"Failed to save settings for tenant {tenant_id}")

        logger.info(f"Updated settings for tenant {tenant_id}: {sorted(writable)}")
        return saved
