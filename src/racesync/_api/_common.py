"""Shared helpers for endpoint modules.

Internal to racesync and may change at any time.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import ValidationError

from racesync.exceptions import RaceSyncValidationError
from racesync.models._base import RaceModel

M = TypeVar("M", bound=RaceModel)


def parse_response(model: type[M], body: dict[str, Any], *, endpoint: str) -> M:
    """Validate a response body, raising :class:`RaceSyncValidationError` on mismatch."""
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise RaceSyncValidationError(
            f"Unexpected response shape from {endpoint}: {exc.error_count()} error(s)"
        ) from exc


def identity_params(race_id: str, device_id: str, device_name: str) -> dict[str, str]:
    """Query parameters every poll carries; the service uses them as a heartbeat."""
    return {"raceId": race_id, "deviceId": device_id, "deviceName": device_name}
