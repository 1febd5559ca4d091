"""Entry sync endpoint: poll, send, delete, and race existence check."""

from __future__ import annotations

from typing import Any

from racesync._api._common import identity_params, parse_response
from racesync._transport import Transport
from racesync.config import RaceSyncConfig
from racesync.models.sync import PollResponse, RaceDeletedNotice, RaceExistsResponse, SendResponse


async def fetch_entries(
    transport: Transport,
    config: RaceSyncConfig,
    *,
    race_id: str,
    device_id: str,
    device_name: str,
    since: float | None = None,
) -> PollResponse | RaceDeletedNotice:
    """Poll for entries.

    Parameters
    ----------
    since : float, optional
        Last confirmed sync timestamp (epoch ms). When given, only newer
        entries are requested; omit it for a full sync.

    Returns
    -------
    PollResponse | RaceDeletedNotice
        The notice is returned instead of entries when an admin deleted the race.
    """
    params = identity_params(race_id, device_id, device_name)
    if since:
        params["since"] = str(int(since))
    body = await transport.request("GET", config.sync_path, params=params)
    if body.get("deleted") is True:
        return parse_response(RaceDeletedNotice, body, endpoint=config.sync_path)
    return parse_response(PollResponse, body, endpoint=config.sync_path)


async def send_entry(
    transport: Transport,
    config: RaceSyncConfig,
    *,
    race_id: str,
    entry: dict[str, Any],
    device_id: str,
    device_name: str,
) -> SendResponse:
    body = await transport.request(
        "POST",
        config.sync_path,
        params={"raceId": race_id},
        json_body={"entry": entry, "deviceId": device_id, "deviceName": device_name},
    )
    return parse_response(SendResponse, body, endpoint=config.sync_path)


async def delete_entry(
    transport: Transport,
    config: RaceSyncConfig,
    *,
    race_id: str,
    entry_id: str,
    device_id: str,
    device_name: str,
) -> None:
    await transport.request(
        "DELETE",
        config.sync_path,
        params={"raceId": race_id},
        json_body={"entryId": entry_id, "deviceId": device_id, "deviceName": device_name},
    )


async def check_race_exists(transport: Transport, config: RaceSyncConfig, race_id: str) -> RaceExistsResponse:
    body = await transport.request("GET", config.sync_path, params={"raceId": race_id, "checkOnly": "true"})
    return parse_response(RaceExistsResponse, body, endpoint=config.sync_path)
