"""Local blob cache for entry photos, keyed by entry id."""

from __future__ import annotations

from typing import Protocol


class PhotoCache(Protocol):
    """Structural interface for the photo blob store.

    Entries only ever carry :data:`racesync._constants.PHOTO_MARKER`; the
    image data itself lives here.
    """

    async def save_photo(self, entry_id: str, data: str) -> None:
        ...

    async def get_photo(self, entry_id: str) -> str | None:
        ...

    async def has_photo(self, entry_id: str) -> bool:
        ...

    async def delete_photo(self, entry_id: str) -> None:
        ...


class MemoryPhotoCache:
    """Dict-backed :class:`PhotoCache`."""

    def __init__(self) -> None:
        self._photos: dict[str, str] = {}

    async def save_photo(self, entry_id: str, data: str) -> None:
        self._photos[entry_id] = data

    async def get_photo(self, entry_id: str) -> str | None:
        return self._photos.get(entry_id)

    async def has_photo(self, entry_id: str) -> bool:
        return entry_id in self._photos

    async def delete_photo(self, entry_id: str) -> None:
        self._photos.pop(entry_id, None)

    def __len__(self) -> int:
        return len(self._photos)
