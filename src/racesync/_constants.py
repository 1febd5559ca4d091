"""Internal constants shared across the library."""

BASE_URL = "http://localhost:3000"
USER_AGENT = "racesync/1"

SYNC_PATH = "/api/v1/sync"
FAULTS_PATH = "/api/v1/faults"

#: Placeholder stored in ``Entry.photo`` when the image bytes live in the photo cache.
PHOTO_MARKER = "blobcache"

#: Anything shorter than this cannot be real base64 image data.
MIN_PHOTO_DATA_LENGTH = 20

MAX_BIB_LENGTH = 10
MAX_DEVICE_NAME_LENGTH = 100
MAX_RACE_ID_LENGTH = 50

MAX_UNDO_STACK = 50

#: Connected devices not seen for this long are pruned from presence.
DEVICE_STALE_SECONDS = 120.0

SCHEMA_VERSION = 2


def is_photo_marker(photo: str | None) -> bool:
    """Return ``True`` when *photo* is the photo-cache placeholder."""
    return photo == PHOTO_MARKER


def has_full_photo_data(photo: str | None) -> bool:
    """Return ``True`` when *photo* carries inline image data (not a marker)."""
    return photo is not None and photo != PHOTO_MARKER and len(photo) > MIN_PHOTO_DATA_LENGTH
