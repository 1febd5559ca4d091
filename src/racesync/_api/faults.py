"""Fault sync endpoint."""

from __future__ import annotations

from typing import Any

from racesync._api._common import identity_params, parse_response
from racesync._transport import Transport
from racesync.config import RaceSyncConfig
from racesync.models.sync import FaultPollResponse


async def fetch_faults(
    transport: Transport,
    config: RaceSyncConfig,
    *,
    race_id: str,
    device_id: str,
    device_name: str,
    gate_range: tuple[int, int] | None = None,
    is_ready: bool | None = None,
) -> FaultPollResponse:
    params = identity_params(race_id, device_id, device_name)
    if gate_range is not None:
        params["gateStart"] = str(gate_range[0])
        params["gateEnd"] = str(gate_range[1])
        if is_ready is not None:
            params["isReady"] = "true" if is_ready else "false"
    body = await transport.request("GET", config.faults_path, params=params)
    return parse_response(FaultPollResponse, body, endpoint=config.faults_path)


async def send_fault(
    transport: Transport,
    config: RaceSyncConfig,
    *,
    race_id: str,
    fault: dict[str, Any],
    device_id: str,
    device_name: str,
    gate_range: tuple[int, int] | None = None,
) -> None:
    payload: dict[str, Any] = {"fault": fault, "deviceId": device_id, "deviceName": device_name}
    if gate_range is not None:
        payload["gateRange"] = list(gate_range)
    await transport.request("POST", config.faults_path, params={"raceId": race_id}, json_body=payload)


async def delete_fault(
    transport: Transport,
    config: RaceSyncConfig,
    *,
    race_id: str,
    fault_id: str,
    device_id: str,
    device_name: str,
    approved_by: str,
) -> None:
    await transport.request(
        "DELETE",
        config.faults_path,
        params={"raceId": race_id},
        json_body={
            "faultId": fault_id,
            "deviceId": device_id,
            "deviceName": device_name,
            "approvedBy": approved_by,
        },
    )
