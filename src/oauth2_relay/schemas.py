"""Token data shapes shared by the client, the stores and the orchestrator."""

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class OAuth2ErrorCode(str, Enum):
    """Error codes a provider may return (RFC 6749 sections 4.1.2.1 and 5.2)."""

    INVALID_REQUEST = "invalid_request"
    UNAUTHORIZED_CLIENT = "unauthorized_client"
    ACCESS_DENIED = "access_denied"
    UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"
    INVALID_SCOPE = "invalid_scope"
    SERVER_ERROR = "server_error"
    TEMPORARILY_UNAVAILABLE = "temporarily_unavailable"
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"

    @classmethod
    def coerce(cls, value: object) -> "OAuth2ErrorCode":
        """Map a raw provider value onto a known code, falling back to server_error."""
        try:
            return cls(value)
        except (TypeError, ValueError):
            return cls.SERVER_ERROR


class TokenRecord(BaseModel):
    """Persisted tokens for one (device_id, provider) pair."""

    access_token: str
    expires_at: Optional[float] = None  # Unix timestamp, None never expires
    refresh_token: Optional[str] = None


class TokenSuccess(BaseModel):
    """Successful token endpoint response."""

    kind: Literal["success"] = "success"
    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    expires_at: Optional[float] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None

    @field_validator("expires_in", mode="before")
    @classmethod
    def _whole_seconds(cls, value):
        # Some providers send fractional lifetimes
        if isinstance(value, float) or (isinstance(value, str) and "." in value):
            try:
                return int(float(value))
            except OverflowError as e:
                raise ValueError("expires_in out of range") from e
        return value

    def to_record(self, fallback_refresh_token: Optional[str] = None) -> TokenRecord:
        return TokenRecord(
            access_token=self.access_token,
            expires_at=self.expires_at,
            refresh_token=self.refresh_token or fallback_refresh_token,
        )


class TokenError(BaseModel):
    """Error response from a token endpoint or an authorization callback."""

    kind: Literal["error"] = "error"
    error: OAuth2ErrorCode
    error_description: Optional[str] = None
    error_uri: Optional[str] = None
    state: Optional[str] = None


ProviderTokenResponse = Annotated[Union[TokenSuccess, TokenError], Field(discriminator="kind")]


class TokenGrant(BaseModel):
    """Token handed back to the device."""

    access_token: str
    expires_in: Optional[int] = None


class DisconnectResponse(BaseModel):
    status: str = "disconnected"
    provider: str


class ProviderSummary(BaseModel):
    name: str
    scope: Optional[str] = None


class ProvidersResponse(BaseModel):
    providers: list[ProviderSummary]
