"""User settings persisted per device."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from racesync._constants import MAX_DEVICE_NAME_LENGTH
from racesync.models._base import RaceModel


class Language(StrEnum):
    EN = "en"
    DE = "de"


class Settings(RaceModel):
    """Device preferences.

    Only ``sync`` and ``sync_photos`` influence this library; the rest are
    carried for the UI collaborators that own them.
    """

    auto: bool = True
    haptic: bool = True
    sound: bool = False
    sync: bool = False
    sync_photos: bool = False
    gps: bool = True
    simple: bool = False
    photo_capture: bool = False
    motion_effects: bool = True
    glass_effects: bool = True
    outdoor_mode: bool = False
    ambient_mode: bool = True


DEFAULT_SETTINGS = Settings()


class DeviceIdentity(RaceModel):
    device_id: str = Field(..., min_length=1)
    device_name: str = Field(..., max_length=MAX_DEVICE_NAME_LENGTH)
