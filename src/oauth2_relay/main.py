"""OAuth2 Relay - Main FastAPI application."""

import logging
import time
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError

from .client import OAuth2Client
from .config import Settings, get_settings
from .errors import ConfigurationError, DeviceIdMissingError, RelayError, TokenNotFoundError
from .flow import FlowOrchestrator, RequestContext
from .providers import ProviderRegistry
from .schemas import DisconnectResponse, ProviderSummary, ProvidersResponse, TokenGrant
from .state import StateTokenGenerator
from .stores import TokenStore, create_store

logger = logging.getLogger(__name__)

router = APIRouter()


def configure_logging(settings: Settings) -> None:
    level = logging.DEBUG if settings.debug else settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# ============================================
# Dependencies
# ============================================

def get_orchestrator(request: Request) -> FlowOrchestrator:
    return request.app.state.orchestrator


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def read_device_id(request: Request) -> Optional[str]:
    """Device id from the flow cookie, else from the header."""
    settings = get_app_settings(request)
    return (
        request.cookies.get(settings.device_cookie_name)
        or request.headers.get(settings.device_header_name)
        or None
    )


def require_device_id(request: Request) -> str:
    device_id = read_device_id(request)
    if not device_id:
        raise DeviceIdMissingError("device_id not defined.")
    return device_id


def callback_uri(request: Request, provider: str) -> str:
    """This relay's own callback URL for a provider."""
    settings = get_app_settings(request)
    if settings.base_url:
        return f"{settings.base_url}{settings.route_prefix}/{provider}/callback"
    return str(request.url_for("oauth_callback", provider=provider))


def get_context(
    provider: str,
    request: Request,
    device_id: str = Depends(require_device_id),
    orchestrator: FlowOrchestrator = Depends(get_orchestrator),
) -> RequestContext:
    # Unknown providers are rejected before any flow work
    orchestrator.registry.lookup(provider)
    return RequestContext(
        device_id=device_id,
        provider_name=provider,
        redirect_uri=callback_uri(request, provider),
    )


def _cookie_options(settings: Settings) -> dict:
    return {"httponly": True, "secure": settings.secure_cookies, "samesite": "lax"}


# ============================================
# Provider Listing
# ============================================

@router.get("/providers", response_model=ProvidersResponse)
async def list_providers(orchestrator: FlowOrchestrator = Depends(get_orchestrator)):
    """List configured OAuth2 providers."""
    return ProvidersResponse(
        providers=[
            ProviderSummary(name=provider.name, scope=provider.scope)
            for provider in orchestrator.registry
        ]
    )


# ============================================
# OAuth Flow Endpoints
# ============================================

@router.get("/{provider}/auth", name="oauth_auth")
async def start_oauth(
    ctx: RequestContext = Depends(get_context),
    orchestrator: FlowOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
):
    """Start OAuth flow - redirects to provider's authorization page."""
    auth_url = orchestrator.begin_auth(ctx)

    response = RedirectResponse(url=auth_url, status_code=302)
    # Lets the callback find the device even when the browser drops the header
    response.set_cookie(settings.device_cookie_name, ctx.device_id, **_cookie_options(settings))
    return response


@router.get("/{provider}/callback", name="oauth_callback")
async def oauth_callback(
    provider: str,
    request: Request,
    orchestrator: FlowOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
):
    """OAuth callback - exchanges the code and sends the device back to the app."""
    orchestrator.registry.lookup(provider)
    device_id = read_device_id(request)

    if not device_id:
        logger.warning(f"Callback for {provider} without a device_id")
        url = orchestrator.error_redirect(provider, "invalid_request")
    else:
        ctx = RequestContext(
            device_id=device_id,
            provider_name=provider,
            redirect_uri=callback_uri(request, provider),
        )
        url = await orchestrator.handle_callback(ctx, request.query_params)

    response = RedirectResponse(url=url, status_code=302)
    response.delete_cookie(settings.device_cookie_name, **_cookie_options(settings))
    return response


# ============================================
# Token Retrieval
# ============================================

@router.get("/{provider}/tokens", response_model=TokenGrant)
async def get_tokens(
    ctx: RequestContext = Depends(get_context),
    orchestrator: FlowOrchestrator = Depends(get_orchestrator),
):
    """Current access token for the device, refreshed if it is about to expire."""
    return await orchestrator.get_token(ctx)


@router.delete("/{provider}/tokens", response_model=DisconnectResponse)
async def disconnect(
    ctx: RequestContext = Depends(get_context),
    orchestrator: FlowOrchestrator = Depends(get_orchestrator),
):
    """Forget the device's tokens for a provider."""
    if not await orchestrator.revoke(ctx):
        raise TokenNotFoundError(f"No {ctx.provider_name} token for device")
    return DisconnectResponse(provider=ctx.provider_name)


# ============================================
# Error Handling
# ============================================

async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    message = f"{request.method} {request.url.path} failed: {exc.__class__.__name__}: {exc}"
    if exc.is_server_error:
        logger.error(message)
    else:
        logger.warning(message)

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "error_description": str(exc)},
    )


# ============================================
# Application
# ============================================

def create_app(
    settings: Optional[Settings] = None,
    *,
    registry: Optional[ProviderRegistry] = None,
    store: Optional[TokenStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Build the relay application.

    Refuses to build when required configuration is missing.
    """
    if settings is None:
        try:
            settings = get_settings()
        except ValidationError as e:
            logger.critical(f"Invalid configuration: {e}")
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    configure_logging(settings)

    if registry is None:
        registry = ProviderRegistry.from_settings(settings)
    token_store = store if store is not None else create_store(settings)
    client = OAuth2Client(
        http_client=http_client,
        timeout=settings.http_timeout,
        expiry_margin=settings.expiry_margin,
        clock=clock,
    )
    orchestrator = FlowOrchestrator(
        registry=registry,
        states=StateTokenGenerator(settings.state_secret),
        client=client,
        store=token_store,
        return_uri=settings.return_uri,
        freshness_window=settings.freshness_window,
        clock=clock,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await token_store.init()
        yield
        await client.aclose()
        await token_store.close()

    app = FastAPI(
        title="OAuth2 Relay",
        description="Performs OAuth2 code exchange and token refresh on behalf of devices",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    app.add_exception_handler(RelayError, relay_error_handler)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "service": settings.service_name}

    app.include_router(router, prefix=settings.route_prefix)
    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "oauth2_relay.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        proxy_headers=True,
    )


if __name__ == "__main__":
    run()
