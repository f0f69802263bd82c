"""OAuth2 client side of the relay: code exchange, refresh and revocation."""

import logging
import time
from collections.abc import Callable
from typing import Any, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from .errors import ProviderTimeoutError, ProviderUnavailableError
from .providers import ProviderConfig
from .schemas import OAuth2ErrorCode, ProviderTokenResponse, TokenError, TokenSuccess

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

# Subtracted from expires_in to absorb clock skew and request latency
DEFAULT_EXPIRY_MARGIN = 5

_TOKEN_REQUEST_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/x-www-form-urlencoded",
}

_response_adapter = TypeAdapter(ProviderTokenResponse)


class OAuth2Client:
    """Talks to provider token endpoints on behalf of devices.

    Both token operations return a ``TokenSuccess`` or a ``TokenError``;
    the HTTP status decides which. Network failures are raised as
    ``ProviderTimeoutError`` or ``ProviderUnavailableError``. Nothing is
    retried.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
        expiry_margin: int = DEFAULT_EXPIRY_MARGIN,
        clock: Callable[[], float] = time.time,
    ):
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self.timeout = timeout
        self.expiry_margin = expiry_margin
        self._clock = clock

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def exchange_code(
        self, provider: ProviderConfig, auth_code: str, redirect_uri: str
    ) -> ProviderTokenResponse:
        """Exchange an authorization code for tokens."""
        return await self._token_request(
            provider,
            {
                "client_id": provider.client_id,
                "client_secret": provider.client_secret,
                "code": auth_code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
            },
        )

    async def refresh(self, provider: ProviderConfig, refresh_token: str) -> ProviderTokenResponse:
        """Trade a refresh token for a new access token."""
        return await self._token_request(
            provider,
            {
                "client_id": provider.client_id,
                "client_secret": provider.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
        )

    async def revoke(
        self, provider: ProviderConfig, token: str, bearer_token: Optional[str] = None
    ) -> bool:
        """Revoke a token at the provider. Returns False when unsupported or refused.

        ``token`` goes in the ``token`` query parameter (Google). Bearer-style
        endpoints (Dropbox) only accept an access token, passed as
        ``bearer_token``; it defaults to ``token``.
        """
        if not provider.revoke_uri:
            return False

        try:
            response = await self._http.post(
                provider.revoke_uri,
                params={"token": token},
                headers={"Authorization": f"Bearer {bearer_token or token}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Token revocation failed for {provider.name}: {e!r}")
            return False

        if not response.is_success:
            logger.warning(
                f"Token revocation refused by {provider.name} (HTTP {response.status_code})"
            )
        return response.is_success

    async def _token_request(self, provider: ProviderConfig, data: dict[str, str]) -> ProviderTokenResponse:
        grant_type = data["grant_type"]
        try:
            response = await self._http.post(
                provider.token_uri,
                data=data,
                headers=_TOKEN_REQUEST_HEADERS,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Token request ({grant_type}) to {provider.name} timed out: {e!r}")
            raise ProviderTimeoutError(f"{provider.name} token endpoint timed out") from e
        except httpx.RequestError as e:
            logger.warning(f"Token request ({grant_type}) to {provider.name} failed: {e!r}")
            raise ProviderUnavailableError(
                f"{provider.name} token endpoint unreachable", code="server_error"
            ) from e

        return self.parse_token_response(provider, response)

    def parse_token_response(self, provider: ProviderConfig, response: httpx.Response) -> ProviderTokenResponse:
        """Classify a token endpoint response by HTTP status."""
        try:
            body: Any = response.json()
        except ValueError:
            body = None

        if response.is_success:
            return self._parse_success(provider, response.status_code, body)

        result = _error_from_body(body, response)
        logger.warning(
            f"Token request to {provider.name} failed: "
            f"status={response.status_code} error={result.error.value} "
            f"description={result.error_description!r}"
        )
        return result

    def _parse_success(self, provider: ProviderConfig, status_code: int, body: Any) -> ProviderTokenResponse:
        if not isinstance(body, dict):
            logger.warning(f"Token response from {provider.name} was not a JSON object")
            return TokenError(
                error=OAuth2ErrorCode.SERVER_ERROR,
                error_description="Malformed token response",
            )

        expires_in = body.get("expires_in")
        try:
            result = _response_adapter.validate_python(
                {
                    **body,
                    "kind": "success",
                    "expires_at": self._expires_at(expires_in),
                }
            )
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning(f"Token response from {provider.name} failed validation: {e}")
            return TokenError(
                error=OAuth2ErrorCode.SERVER_ERROR,
                error_description="Malformed token response",
            )

        logger.debug(
            f"Acquired tokens from {provider.name}: status={status_code} "
            f"access_token={bool(result.access_token)} expires_in={result.expires_in} "
            f"refresh_token={bool(result.refresh_token)} token_type={result.token_type}"
        )
        return result

    def _expires_at(self, expires_in: Any) -> Optional[float]:
        if not expires_in:
            return None
        return self._clock() + float(expires_in) - self.expiry_margin


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _error_from_body(body: Any, response: httpx.Response) -> TokenError:
    if isinstance(body, dict) and body.get("error"):
        raw = body["error"]
        code = OAuth2ErrorCode.coerce(raw)
        description = body.get("error_description")
        if description is None and code.value != raw:
            description = str(raw)
        try:
            return TokenError(
                error=code,
                error_description=str(description) if description is not None else None,
                error_uri=_optional_str(body.get("error_uri")),
                state=_optional_str(body.get("state")),
            )
        except ValidationError as e:
            logger.warning(f"Unusable error body (HTTP {response.status_code}): {e}")

    return TokenError(
        error=OAuth2ErrorCode.SERVER_ERROR,
        error_description=f"HTTP {response.status_code}: {response.text[:200]}",
    )


def callback_error(params: dict[str, str]) -> Optional[TokenError]:
    """Return the provider's error from authorization callback parameters, if any."""
    raw = params.get("error")
    if not raw:
        return None
    code = OAuth2ErrorCode.coerce(raw)
    return TokenError(
        error=code,
        error_description=params.get("error_description") or (raw if code.value != raw else None),
        error_uri=_optional_str(params.get("error_uri")),
        state=_optional_str(params.get("state")),
    )
