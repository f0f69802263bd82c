"""Authorization-code flow orchestration.

A session for one (device_id, provider) pair moves through::

    INIT -> AUTH_REDIRECTED -> CALLBACK_RECEIVED -> TOKEN_SAVED | FLOW_ERROR

and the record it leaves behind through::

    NO_TOKEN -> VALID -> STALE -> REFRESHED (VALID again) | UNREFRESHABLE (deleted)

The orchestrator never touches HTTP requests or responses directly. The
caller hands it a ``RequestContext`` and turns its results into redirects,
cookies and JSON.
"""

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlencode

from .client import OAuth2Client, callback_error
from .errors import (
    ProviderRefusedError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    StorageError,
    TokenNotFoundError,
)
from .providers import ProviderConfig, ProviderRegistry
from .schemas import OAuth2ErrorCode, TokenError, TokenGrant, TokenRecord
from .state import StateTokenGenerator
from .stores import TokenStore

logger = logging.getLogger(__name__)

# Tokens closer than this to expiry are refreshed before being handed out
DEFAULT_FRESHNESS_WINDOW = 60


@dataclass(frozen=True)
class RequestContext:
    """Per-request inputs threaded through the flow."""

    device_id: str
    provider_name: str
    redirect_uri: str


class TokenState(str, Enum):
    NO_TOKEN = "no_token"
    VALID = "valid"
    STALE = "stale"


class FlowOrchestrator:
    """Ties the registry, state tokens, OAuth2 client and token store together."""

    def __init__(
        self,
        registry: ProviderRegistry,
        states: StateTokenGenerator,
        client: OAuth2Client,
        store: TokenStore,
        return_uri: str,
        freshness_window: int = DEFAULT_FRESHNESS_WINDOW,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.states = states
        self.client = client
        self.store = store
        self.return_uri = return_uri
        self.freshness_window = freshness_window
        self._clock = clock

    # ============================================
    # Authorization
    # ============================================

    def begin_auth(self, ctx: RequestContext) -> str:
        """Build the provider authorization URL for this device."""
        provider = self.registry.lookup(ctx.provider_name)
        state = self.states.generate(ctx.device_id)

        params = {
            "client_id": provider.client_id,
            "redirect_uri": ctx.redirect_uri,
            "response_type": "code",
        }
        if provider.scope:
            params["scope"] = provider.scope
        params["state"] = state
        for key, value in provider.extra_params.items():
            params.setdefault(key, value)

        logger.debug(f"Redirecting device {ctx.device_id} to {provider.name} authorization")
        return f"{provider.authorization_uri}?{urlencode(params)}"

    async def handle_callback(self, ctx: RequestContext, params: Mapping[str, str]) -> str:
        """Complete the flow and return the app-return URL for the device.

        Every outcome is a redirect. Failures carry an OAuth2 error code in the
        fragment; success carries the access token.
        """
        provider = self.registry.lookup(ctx.provider_name)
        params = dict(params)

        if not self.states.verify(ctx.device_id, params.get("state")):
            # The expected state is wrong. Possible forgery.
            logger.warning(
                f"Callback state mismatch: device_id={ctx.device_id} provider={provider.name} "
                f"presented_state={params.get('state')!r} error={params.get('error')!r}"
            )
            return self.error_redirect(provider.name, OAuth2ErrorCode.INVALID_REQUEST.value)

        declined = callback_error(params)
        if declined is not None:
            logger.warning(
                f"Provider returned an error: device_id={ctx.device_id} provider={provider.name} "
                f"error={declined.error.value} description={declined.error_description!r}"
            )
            return self.error_redirect(provider.name, declined.error.value)

        code = params.get("code")
        if not code:
            logger.warning(
                f"Callback without code or error: device_id={ctx.device_id} provider={provider.name}"
            )
            return self.error_redirect(provider.name, OAuth2ErrorCode.INVALID_REQUEST.value)

        try:
            result = await self.client.exchange_code(provider, code, ctx.redirect_uri)
        except (ProviderTimeoutError, ProviderUnavailableError):
            return self.error_redirect(provider.name, OAuth2ErrorCode.SERVER_ERROR.value)

        if isinstance(result, TokenError):
            logger.warning(
                f"Code exchange failed: device_id={ctx.device_id} provider={provider.name} "
                f"error={result.error.value} description={result.error_description!r}"
            )
            return self.error_redirect(provider.name, result.error.value)

        try:
            await self.store.save(ctx.device_id, provider.name, result.to_record())
        except StorageError as e:
            logger.error(
                f"Error saving tokens: device_id={ctx.device_id} provider={provider.name} error={e}"
            )
            return self.error_redirect(provider.name, OAuth2ErrorCode.SERVER_ERROR.value)

        logger.info(
            f"Exchanged auth code for tokens: device_id={ctx.device_id} provider={provider.name} "
            f"expires_in={result.expires_in} refresh_token={bool(result.refresh_token)}"
        )
        return self._redirect(
            {
                "provider": provider.name,
                "access_token": result.access_token,
                "expires_in": result.expires_in,
            }
        )

    # ============================================
    # Token retrieval
    # ============================================

    def classify(self, record: Optional[TokenRecord]) -> TokenState:
        """Freshness of a stored record at the current time."""
        if record is None:
            return TokenState.NO_TOKEN
        if record.expires_at is not None and record.expires_at - self._clock() < self.freshness_window:
            return TokenState.STALE
        return TokenState.VALID

    async def get_token(self, ctx: RequestContext) -> TokenGrant:
        """Return a usable access token, refreshing it first if it is stale."""
        provider = self.registry.lookup(ctx.provider_name)
        record = await self.store.load(ctx.device_id, provider.name)
        state = self.classify(record)

        if state is TokenState.NO_TOKEN:
            raise TokenNotFoundError(f"No {provider.name} token for device")

        if state is TokenState.VALID:
            return self._grant(record)

        if not record.refresh_token:
            # Expired and cannot be refreshed; the device has to authorize again
            logger.info(
                f"Deleting unrefreshable tokens: device_id={ctx.device_id} provider={provider.name}"
            )
            await self.store.delete(ctx.device_id, provider.name)
            raise TokenNotFoundError(f"{provider.name} token expired")

        return await self._refresh(ctx, provider, record)

    async def _refresh(self, ctx: RequestContext, provider: ProviderConfig, record: TokenRecord) -> TokenGrant:
        logger.info(f"Refreshing tokens: device_id={ctx.device_id} provider={provider.name}")
        result = await self.client.refresh(provider, record.refresh_token)

        if isinstance(result, TokenError):
            logger.warning(
                f"Refresh rejected, deleting tokens: device_id={ctx.device_id} "
                f"provider={provider.name} error={result.error.value} "
                f"description={result.error_description!r}"
            )
            await self.store.delete(ctx.device_id, provider.name)
            raise ProviderRefusedError(
                f"{provider.name} refused to refresh the token", code=result.error.value
            )

        refreshed = result.to_record(fallback_refresh_token=record.refresh_token)
        await self.store.save(ctx.device_id, provider.name, refreshed)

        logger.info(
            f"Refreshed and saved new tokens: device_id={ctx.device_id} provider={provider.name} "
            f"expires_in={result.expires_in} refresh_token={bool(result.refresh_token)}"
        )
        return self._grant(refreshed)

    # ============================================
    # Disconnect
    # ============================================

    async def revoke(self, ctx: RequestContext) -> bool:
        """Forget the device's tokens, revoking them at the provider when possible.

        Returns whether a record existed.
        """
        provider = self.registry.lookup(ctx.provider_name)
        record = await self.store.load(ctx.device_id, provider.name)
        if record is None:
            return False

        # Revocation is best effort; the local record goes either way
        revoked = await self.client.revoke(
            provider,
            record.refresh_token or record.access_token,
            bearer_token=record.access_token,
        )
        await self.store.delete(ctx.device_id, provider.name)

        logger.info(
            f"Disconnected device: device_id={ctx.device_id} provider={provider.name} revoked={revoked}"
        )
        return True

    # ============================================
    # Helpers
    # ============================================

    def _grant(self, record: TokenRecord) -> TokenGrant:
        expires_in = None
        if record.expires_at is not None:
            expires_in = max(int(record.expires_at - self._clock()), 0)
        return TokenGrant(access_token=record.access_token, expires_in=expires_in)

    def error_redirect(self, provider_name: str, error: str) -> str:
        """App-return URL reporting a failed flow."""
        return self._redirect({"provider": provider_name, "error": error})

    def _redirect(self, params: dict[str, object]) -> str:
        # Tokens only ever travel in the fragment, never the query string
        fragment = urlencode({key: value for key, value in params.items() if value is not None})
        return f"{self.return_uri}#{fragment}"
