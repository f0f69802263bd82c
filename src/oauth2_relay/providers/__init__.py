"""OAuth2 providers."""

import logging
from collections.abc import Mapping
from types import MappingProxyType

from ..config import Settings
from ..errors import ConfigurationError, ProviderNotFoundError
from . import dropbox, google
from .base import ProviderConfig

logger = logging.getLogger(__name__)

# Built-in provider templates
PROVIDERS = {
    dropbox.name: dropbox.template,
    google.name: google.template,
}


class ProviderRegistry:
    """Immutable name -> ProviderConfig mapping, built once at startup."""

    def __init__(self, providers: Mapping[str, ProviderConfig]):
        if not providers:
            raise ConfigurationError("No OAuth2 providers are configured")
        self._providers = MappingProxyType(dict(providers))

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderRegistry":
        """Build the registry from the credentials present in settings.

        Providers without any credentials are skipped. Half-configured
        providers are a configuration error.
        """
        providers = {}
        for provider_name, template in PROVIDERS.items():
            data = template(settings)
            if not data["client_id"] and not data["client_secret"]:
                logger.warning(f"No credentials for {provider_name}, provider disabled")
                continue
            if not data["client_id"] or not data["client_secret"]:
                logger.critical(
                    f"Missing {provider_name} client_id or client_secret "
                    f"(client_id={data['client_id']!r}, client_secret={bool(data['client_secret'])})"
                )
                raise ConfigurationError(f"Incomplete credentials for provider: {provider_name}")
            providers[provider_name] = ProviderConfig(**data)

        logger.info(f"Configured OAuth2 providers: {', '.join(sorted(providers)) or 'none'}")
        return cls(providers)

    def lookup(self, name: str) -> ProviderConfig:
        provider = self._providers.get(name)
        if provider is None:
            raise ProviderNotFoundError(f"Unknown provider: {name}")
        return provider

    def names(self) -> list[str]:
        return sorted(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __iter__(self):
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)


__all__ = ["PROVIDERS", "ProviderConfig", "ProviderRegistry"]
