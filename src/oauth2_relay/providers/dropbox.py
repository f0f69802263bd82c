"""Dropbox OAuth2 provider."""

from typing import Any

from ..config import Settings

name = "dropbox"
authorization_uri = "https://www.dropbox.com/oauth2/authorize"
token_uri = "https://api.dropboxapi.com/oauth2/token"
revoke_uri = "https://api.dropboxapi.com/2/auth/token/revoke"


def template(settings: Settings) -> dict[str, Any]:
    """Dropbox settings. Dropbox does not use scopes in the classic flow."""
    return {
        "name": name,
        "authorization_uri": authorization_uri,
        "token_uri": token_uri,
        "revoke_uri": revoke_uri,
        "client_id": settings.dropbox_client_id,
        "client_secret": settings.dropbox_client_secret,
        "scope": None,
        "extra_params": {"force_reapprove": "true"},
    }
