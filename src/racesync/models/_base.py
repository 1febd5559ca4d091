"""Base model for race sync records.

Every wire record inherits from :class:`RaceModel` which provides:

* ``alias_generator=to_camel`` so camelCase wire keys map to
  snake_case fields, and :meth:`RaceModel.to_wire` dumps them back.
* Frozen instances: slices replace records, they never mutate them.
* ``extra="ignore"`` so newer remote fields do not break older clients.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def parse_iso_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive timestamps are assumed to be UTC. Raises :class:`ValueError`
    for unparseable input.
    """
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def utc_now_iso() -> str:
    """Current time as an ISO-8601 string with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _check_iso_timestamp(value: str) -> str:
    parse_iso_timestamp(value)
    return value


IsoTimestamp = Annotated[str, AfterValidator(_check_iso_timestamp)]
"""An ISO-8601 string that must parse; kept as text so it round-trips verbatim."""


class RaceModel(BaseModel):
    """Base for every record exchanged with storage, peers, or the service."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump as a JSON-ready camelCase dict, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
