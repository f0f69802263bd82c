"""Anti-CSRF state tokens bound to a device id.

The state is an HMAC of the device id under a server secret, so it can be
recomputed on callback without any server-side storage. It blocks forged
callbacks but not replay of an earlier callback from the same device.
"""

import base64
import hashlib
import hmac
from typing import Optional

from .errors import ConfigurationError


class StateTokenGenerator:
    """Generates and verifies deterministic OAuth2 ``state`` values."""

    def __init__(self, secret: str):
        if not secret:
            raise ConfigurationError("State secret must not be empty")
        self._secret = secret.encode("utf-8")

    def generate(self, device_id: str) -> str:
        digest = hmac.new(self._secret, device_id.encode("utf-8"), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")

    def verify(
        self,
        device_id: str,
        presented_state: Optional[str],
        expected_state: Optional[str] = None,
    ) -> bool:
        """Constant-time comparison of the presented state with the expected one."""
        if not presented_state:
            return False
        expected = expected_state if expected_state is not None else self.generate(device_id)
        return hmac.compare_digest(presented_state.encode("utf-8"), expected.encode("utf-8"))
