"""Bearer credential consumed by the sync engine."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import time
from collections.abc import Callable

from racesync.state.storage import StorageBackend

_logger = logging.getLogger(__name__)

#: Seconds of slack before a token's ``exp`` at which it is treated as expired.
EXPIRY_SKEW_SECONDS: float = 30.0


def _decode_jwt_exp(token: str) -> float | None:
    """Return the ``exp`` claim of a JWT, or ``None`` for opaque tokens.

    The signature is not verified: the server does that. This only avoids
    sending a credential we already know is stale.
    """
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (binascii.Error, ValueError):
        return None
    exp = claims.get("exp") if isinstance(claims, dict) else None
    if isinstance(exp, (int, float)) and not isinstance(exp, bool):
        return float(exp)
    return None


class CredentialStore:
    """Holds the bearer token and writes it through to storage immediately.

    Unlike slice state, the credential is never debounced: a token obtained
    just before the process dies must survive.
    """

    def __init__(
        self,
        storage: StorageBackend,
        *,
        key: str = "raceSync:authToken",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._key = key
        self._clock = clock
        self._token: str | None = None
        try:
            self._token = storage.get_item(key) or None
        except Exception:
            _logger.warning("Cannot read stored credential", exc_info=True)

    @property
    def token(self) -> str | None:
        return self._token

    def set_token(self, token: str) -> None:
        self._token = token
        self._storage.set_item(self._key, token)

    def clear(self) -> None:
        self._token = None
        try:
            self._storage.remove_item(self._key)
        except Exception:
            _logger.warning("Cannot remove stored credential", exc_info=True)

    def has_credential(self) -> bool:
        return bool(self._token)

    def has_valid_credential(self) -> bool:
        """A token is present and, when it is a JWT, not past its ``exp``."""
        if not self._token:
            return False
        exp = _decode_jwt_exp(self._token)
        if exp is None:
            return True
        return self._clock() < exp - EXPIRY_SKEW_SECONDS

    def auth_headers(self) -> dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}
