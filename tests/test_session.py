from __future__ import annotations

import base64
import json

from racesync.session import CredentialStore
from racesync.state.storage import MemoryStorage

from conftest import FakeClock


def _jwt(exp: float) -> str:
    def part(data: dict[str, object]) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")

    return f"{part({'alg': 'HS256'})}.{part({'exp': exp})}.signature"


def test_token_is_written_through_and_cleared() -> None:
    storage = MemoryStorage()
    credentials = CredentialStore(storage)

    credentials.set_token("opaque")
    assert storage.get_item("raceSync:authToken") == "opaque"
    assert CredentialStore(storage).token == "opaque"
    assert credentials.auth_headers() == {"Authorization": "Bearer opaque"}

    credentials.clear()
    assert storage.get_item("raceSync:authToken") is None
    assert credentials.auth_headers() == {}
    assert not credentials.has_valid_credential()


def test_jwt_expiry_is_honoured_with_skew() -> None:
    clock = FakeClock(1000.0)
    credentials = CredentialStore(MemoryStorage(), clock=clock)

    credentials.set_token(_jwt(exp=1100.0))
    assert credentials.has_valid_credential()

    clock.advance(75)
    assert credentials.has_credential()
    assert not credentials.has_valid_credential()


def test_opaque_tokens_never_expire_locally() -> None:
    credentials = CredentialStore(MemoryStorage(), clock=FakeClock(10**12))

    credentials.set_token("not.a-jwt")
    assert credentials.has_valid_credential()
