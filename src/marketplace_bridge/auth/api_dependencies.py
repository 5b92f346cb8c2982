"""FastAPI dependencies for admin API authentication."""

from typing import Annotated

from fastapi import Header, HTTPException

from marketplace_bridge.auth.api_key_validator import APIKeyValidator


def require_api_key(
    x_api_key: Annotated[str | None, Header()] = None,
    validator: APIKeyValidator | None = None,
) -> str:
    """Extract and validate the X-API-Key header.

    Args:
        x_api_key: API key from X-API-Key header (injected by FastAPI)
        validator: Validator holding the configured keys

    Returns:
        str: The validated API key

    Raises:
        HTTPException: 401 if the API key is missing or invalid
    """
    if not x_api_key:
        raise HTTPException(status_code=401, detail="Missing API key")

    if validator is None or not validator.validate(x_api_key):
        raise HTTPException(status_code=401, detail="Invalid API key")

    return x_api_key
