"""Exception taxonomy for the OAuth2 relay.

Every error carries the OAuth2 error code reported to the device and the HTTP
status used by the JSON endpoints. Errors with a 5xx status are server-side
and logged at error level; the rest are logged as warnings.
"""

from typing import Optional


class RelayError(Exception):
    """Base exception for relay operations."""

    code: str = "server_error"
    status_code: int = 500

    def __init__(self, message: str = "", code: Optional[str] = None):
        super().__init__(message or self.__class__.__doc__)
        if code:
            self.code = code

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class ConfigurationError(RelayError):
    """The relay is missing required configuration."""


class DeviceIdMissingError(RelayError):
    """The request did not carry a device id."""

    code = "invalid_request"
    status_code = 400


class ProviderNotFoundError(RelayError):
    """Unknown provider."""

    code = "not_found"
    status_code = 404


class TokenNotFoundError(RelayError):
    """No token on record for this device and provider."""

    code = "not_found"
    status_code = 404


class StateMismatchError(RelayError):
    """The callback state does not match the device."""

    code = "invalid_request"
    status_code = 400


class ProviderRefusedError(RelayError):
    """The provider rejected the token request."""

    status_code = 502


class ProviderUnavailableError(RelayError):
    """The provider's token endpoint could not be reached."""

    status_code = 502


class ProviderTimeoutError(RelayError):
    """The provider did not answer in time."""

    code = "temporarily_unavailable"
    status_code = 504


class StorageError(RelayError):
    """The token store failed."""
