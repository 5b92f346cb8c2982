"""Unit tests for API key validation."""

import pytest

from marketplace_bridge.auth.api_key_validator import APIKeyValidator


@pytest.mark.unit
class TestAPIKeyValidator:
    """Test suite for APIKeyValidator."""

    def test_validator_initialization_with_multiple_keys(self) -> None:
        """Test that validator keeps every configured key."""
        validator = APIKeyValidator(api_keys=["key1", "key2", "key3"])
        assert validator.api_keys == ("key1", "key2", "key3")

    def test_validator_initialization_with_empty_list_raises_error(self) -> None:
        """Test that initializing with empty key list raises ValueError."""
        with pytest.raises(ValueError, match="At least one API key must be provided"):
            APIKeyValidator(api_keys=[])

    def test_blank_keys_are_ignored(self) -> None:
        """Test that blank entries from a trailing comma do not count as keys."""
        with pytest.raises(ValueError):
            APIKeyValidator(api_keys=["", "   "])

        validator = APIKeyValidator(api_keys=[" key1 ", "", "key1"])
        assert validator.api_keys == ("key1",)

    def test_validate_returns_true_for_valid_key(self) -> None:
        validator = APIKeyValidator(api_keys=["valid-key"])
        assert validator.validate("valid-key") is True

    def test_validate_returns_false_for_invalid_key(self) -> None:
        validator = APIKeyValidator(api_keys=["valid-key"])
        assert validator.validate("invalid-key") is False
        assert validator.validate("") is False

    def test_validate_works_with_multiple_valid_keys(self) -> None:
        """Test that validate accepts any of multiple valid keys."""
        validator = APIKeyValidator(api_keys=["key1", "key2", "key3"])
        assert validator.validate("key1") is True
        assert validator.validate("key3") is True
        assert validator.validate("invalid") is False

    def test_validate_is_case_sensitive(self) -> None:
        validator = APIKeyValidator(api_keys=["TestKey123"])
        assert validator.validate("TestKey123") is True
        assert validator.validate("testkey123") is False

    def test_validate_does_not_strip_candidate(self) -> None:
        validator = APIKeyValidator(api_keys=["key-with-no-spaces"])
        assert validator.validate(" key-with-no-spaces") is False
