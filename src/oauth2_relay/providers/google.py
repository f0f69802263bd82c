"""Google OAuth2 provider."""

from typing import Any

from ..config import Settings

name = "google"
authorization_uri = "https://accounts.google.com/o/oauth2/v2/auth"
token_uri = "https://www.googleapis.com/oauth2/v4/token"
revoke_uri = "https://accounts.google.com/o/oauth2/revoke"


def template(settings: Settings) -> dict[str, Any]:
    """Google settings."""
    return {
        "name": name,
        "authorization_uri": authorization_uri,
        "token_uri": token_uri,
        "revoke_uri": revoke_uri,
        "client_id": settings.google_client_id,
        "client_secret": settings.google_client_secret,
        "scope": settings.google_scope or None,
        "extra_params": {
            "access_type": "offline",  # To get refresh token
            "prompt": "select_account",
        },
    }
