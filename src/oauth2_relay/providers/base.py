"""Provider configuration model."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProviderConfig(BaseModel):
    """Endpoints and app-level credentials for one OAuth2 provider.

    ``client_secret`` is only ever sent to the provider's token endpoint.
    ``extra_params`` are merged into the authorization request.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    authorization_uri: str = Field(min_length=1)
    token_uri: str = Field(min_length=1)
    revoke_uri: Optional[str] = None
    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1, repr=False)
    scope: Optional[str] = None
    extra_params: dict[str, str] = Field(default_factory=dict)
