"""API key validation for admin endpoints.

Keys are configured as a list and compared in constant time.
"""

import hmac


class APIKeyValidator:
    """Validates API keys for admin endpoint authentication."""

    def __init__(self, api_keys: list[str]) -> None:
        """Initialize validator with list of valid API keys.

        Args:
            api_keys: List of valid API key strings; blank entries are ignored

        Raises:
            ValueError: If no non-blank API key is provided
        """
        keys = [key.strip() for key in api_keys if key and key.strip()]
        if not keys:
            raise ValueError("At least one API key must be provided")

        self.api_keys = tuple(dict.fromkeys(keys))

    def validate(self, api_key: str) -> bool:
        """Validate an API key.

        Every configured key is compared so timing does not reveal which
        key matched.

        Returns:
            bool: True if valid, False otherwise
        """
        candidate = api_key.encode()
        matched = False
        for key in self.api_keys:
            if hmac.compare_digest(candidate, key.encode()):
                matched = True
        return matched
