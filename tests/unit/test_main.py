"""Unit tests for main application entry point."""

import os
from unittest.mock import MagicMock, Mock, patch

import pytest
from fastapi import FastAPI

from src.main import create_application


@pytest.mark.unit
class TestCreateApplication:
    """Tests for create_application function."""

    @patch("src.main.setup_observability")
    @patch("src.main.get_fastapi_app")
    @patch("src.main.configure_logging")
    @patch.dict(os.environ, {"LOG_LEVEL": "DEBUG"}, clear=True)
    def test_creates_application_with_observability(
        self,
        mock_configure_logging: Mock,
        mock_get_fastapi_app: Mock,
        mock_setup_observability: Mock,
    ) -> None:
        """Test that logging, the app and instrumentation are wired together."""
        mock_app = MagicMock(spec=FastAPI)
        mock_get_fastapi_app.return_value = mock_app

        result = create_application()

        mock_configure_logging.assert_called_once_with("DEBUG")
        mock_get_fastapi_app.assert_called_once_with()
        mock_setup_observability.assert_called_once_with(mock_app)
        assert result == mock_app

    @patch("src.main.setup_observability")
    @patch("src.main.get_fastapi_app")
    @patch("src.main.configure_logging")
    @patch.dict(os.environ, {}, clear=True)
    def test_uses_default_log_level(
        self,
        mock_configure_logging: Mock,
        mock_get_fastapi_app: Mock,
        mock_setup_observability: Mock,
    ) -> None:
        create_application()

        mock_configure_logging.assert_called_once_with("INFO")
