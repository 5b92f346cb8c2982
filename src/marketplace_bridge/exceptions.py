"""Error taxonomy for the marketplace bridge.

Services raise these for expected failures so that callers can decide whether
to surface them (admin actions) or record them (webhook-triggered work).
"""


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ConfigurationError(BridgeError):
    """A credential or identifier required for the operation is missing.

    Raised before any network call is attempted.
    """


class AuthError(BridgeError):
    """Signature mismatch, or a token that is expired and cannot be refreshed."""


class UpstreamError(BridgeError):
    """A call to the POS or the Marketplace failed.

    Attributes:
        platform: Which platform the call was made to
        status_code: HTTP status returned, or None for transport errors
    """

    def __init__(self, message: str, platform: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.platform = platform
        self.status_code = status_code


class ValidationError(BridgeError):
    """An inbound payload or request is malformed."""


class ItemNotFoundError(ValidationError):
    """A referenced menu item does not exist for the tenant."""


class StorageError(BridgeError):
    """The persistent store could not be read, so the outcome is unknown."""
