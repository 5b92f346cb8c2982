"""Unit tests for SettingsService."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from marketplace_bridge.exceptions import ConfigurationError, ValidationError
from marketplace_bridge.models.menu_models import MarkupKind, MarkupPolicy
from marketplace_bridge.models.settings_models import TenantSettings
from marketplace_bridge.repositories.menu_repositories import SettingsRepository
from marketplace_bridge.services.settings_service import SettingsService, require_settings


@pytest.mark.unit
class TestRequireSettings:
    """Tests for require_settings."""

    def test_returns_stored_settings(self, tenant_settings: TenantSettings) -> None:
        repo = MagicMock(spec=SettingsRepository)
        repo.get_settings.return_value = tenant_settings

        assert require_settings(repo, "tenant_123") is tenant_settings

    def test_missing_settings_raise_configuration_error(self) -> None:
        repo = MagicMock(spec=SettingsRepository)
        repo.get_settings.return_value = None

        with pytest.raises(ConfigurationError, match="not configured"):
            require_settings(repo, "tenant_123")


@pytest.mark.unit
class TestSettingsService:
    """Test suite for SettingsService."""

    @pytest.fixture
    def mock_repo(self, tenant_settings: TenantSettings) -> MagicMock:
        """Create a mock settings repository that echoes the stored row."""
        repo = MagicMock(spec=SettingsRepository)
        repo.update_fields.return_value = tenant_settings
        return repo

    @pytest.fixture
    def service(self, mock_repo: MagicMock) -> SettingsService:
        return SettingsService(settings_repository=mock_repo)

    def test_update_writes_only_changed_fields(
        self, service: SettingsService, mock_repo: MagicMock, tenant_settings: TenantSettings
    ) -> None:
        """Test that a settings edit writes the edited attributes and nothing else."""
        mock_repo.get_settings.return_value = tenant_settings

        result = service.update_settings("tenant_123", {"marketplace_store_id": "store_2"})

        assert result is tenant_settings
        mock_repo.update_fields.assert_called_once_with("tenant_123", {"marketplace_store_id": "store_2"})

    def test_update_never_writes_marketplace_tokens(
        self, service: SettingsService, mock_repo: MagicMock, tenant_settings: TenantSettings
    ) -> None:
        """Test that tokens sent with an edit cannot overwrite a concurrent refresh."""
        mock_repo.get_settings.return_value = tenant_settings

        service.update_settings(
            "tenant_123",
            {
                "sync_images": False,
                "marketplace_access_token": "stale_access",
                "marketplace_refresh_token": "stale_refresh",
                "marketplace_token_expiry": "2020-01-01T00:00:00+00:00",
            },
        )

        written = mock_repo.update_fields.call_args.args[1]
        assert written == {"sync_images": False}

    def test_update_serializes_nested_values(self, service: SettingsService, mock_repo: MagicMock) -> None:
        mock_repo.get_settings.return_value = None

        service.update_settings(
            "tenant_new",
            {"pos_access_token": "sq", "global_markup": {"kind": "fixed", "value": "2.00"}},
        )

        tenant_id, written = mock_repo.update_fields.call_args.args
        assert tenant_id == "tenant_new"
        assert written == {
            "pos_access_token": "sq",
            "global_markup": MarkupPolicy(kind=MarkupKind.FIXED, value=Decimal("2.00")).to_dynamodb_item(),
        }

    def test_cleared_optional_field_is_removed(
        self, service: SettingsService, mock_repo: MagicMock, tenant_settings: TenantSettings
    ) -> None:
        mock_repo.get_settings.return_value = tenant_settings

        service.update_settings("tenant_123", {"pos_location_id": None})

        mock_repo.update_fields.assert_called_once_with("tenant_123", {"pos_location_id": None})

    def test_tenant_id_cannot_be_overwritten(self, service: SettingsService, mock_repo: MagicMock) -> None:
        mock_repo.get_settings.return_value = None

        result = service.update_settings("tenant_123", {"tenant_id": "someone_else"})

        assert result.tenant_id == "tenant_123"
        mock_repo.update_fields.assert_not_called()

    def test_invalid_changes_raise_validation_error(self, service: SettingsService, mock_repo: MagicMock) -> None:
        mock_repo.get_settings.return_value = None

        with pytest.raises(ValidationError, match="Invalid settings"):
            service.update_settings("tenant_123", {"tax_rate": "-1"})

        mock_repo.update_fields.assert_not_called()

    def test_failed_save_raises_configuration_error(self, service: SettingsService, mock_repo: MagicMock) -> None:
        mock_repo.get_settings.return_value = None
        mock_repo.update_fields.return_value = None

        with pytest.raises(ConfigurationError, match="Failed to save"):
            service.update_settings("tenant_123", {"sync_images": False})
