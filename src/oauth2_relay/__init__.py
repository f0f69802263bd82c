"""OAuth2 authorization-code relay for devices."""

__version__ = "1.0.0"
