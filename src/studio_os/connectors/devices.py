# src/studio_os/connectors/devices.py
"""Read-only device connectors for studio hardware.

Both connectors read `/devices` from their transport and normalize each row
into a DeviceState. Rows that are not mappings normalize to placeholders
rather than failing the read; a `devices` value that is present but not a
list is a BAD_RESPONSE.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from studio_os.contracts.connectors import ConnectorContext, ConnectorResult, DeviceState
from studio_os.contracts.enums import ConnectorErrorCode, Target
from studio_os.contracts.errors import ConnectorError
from studio_os.core.canonical import stable_hash
from studio_os.core.clock import epoch_ms
from studio_os.connectors.base import Connector

DEFAULT_ROBOROCK_STALE_AFTER_MS = 30 * 60 * 1000


def _device_rows(payload: Any, vendor: str) -> list[Any]:
    root = payload if isinstance(payload, Mapping) else {}
    devices = root.get("devices")
    if devices is None:
        return []
    if not isinstance(devices, list):
        raise ConnectorError(
            ConnectorErrorCode.BAD_RESPONSE,
            f"Malformed {vendor} payload: devices must be an array.",
            False,
        )
    return devices


def _battery_pct(value: Any) -> int | None:
    # bool is an int subclass; a True battery reading is not a percentage
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return max(0, min(100, round(value)))


def _read_result(ctx: ConnectorContext, request: Mapping[str, Any], rows: list[Any], devices: list[DeviceState]) -> ConnectorResult:
    device_dicts = [device.to_dict() for device in devices]
    return ConnectorResult(
        request_id=ctx.request_id,
        input_hash=stable_hash(request),
        output_hash=stable_hash(device_dicts),
        payload={"devices": device_dicts},
        devices=tuple(devices),
        raw_count=len(rows),
    )


def _text(value: Any, *, fallback: Any, default: str) -> str:
    if isinstance(value, str):
        return value
    return str(fallback) if fallback is not None else default


def normalize_hubitat_device(raw: Any) -> DeviceState:
    row = dict(raw) if isinstance(raw, Mapping) else {}
    device_id = _text(row.get("id"), fallback=row.get("deviceId"), default="unknown-device")
    label = _text(row.get("label"), fallback=row.get("name"), default=device_id)
    switch = row["switch"].lower() if isinstance(row.get("switch"), str) else ""
    online = switch == "on" or row.get("online") is True or row.get("presence") == "present"
    return DeviceState(
        id=device_id,
        label=label,
        online=online,
        battery_pct=_battery_pct(row.get("battery")),
        attributes=row,
    )


class HubitatConnector(Connector):
    """Hubitat hub: switches, presence sensors and battery devices in the studio."""

    id = "hubitat"
    target = Target.LOCAL
    version = "0.1.0"
    read_only = True

    def read_status(self, ctx: ConnectorContext, input: Mapping[str, Any]) -> ConnectorResult:
        request = {**input, "request_id": ctx.request_id}

        def parse(payload: Any) -> ConnectorResult:
            rows = _device_rows(payload, "Hubitat")
            return _read_result(ctx, request, rows, [normalize_hubitat_device(row) for row in rows])

        return self._guarded_call(ctx, "/devices", request, parse)


class RoborockConnector(Connector):
    """Roborock vacuums. A device whose lastSeenAt is too old reports offline."""

    id = "roborock"
    target = Target.LOCAL
    version = "0.1.0"
    read_only = True

    def __init__(self, *args: Any, stale_after_ms: int = DEFAULT_ROBOROCK_STALE_AFTER_MS, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._stale_after_ms = stale_after_ms

    def _is_stale(self, last_seen_at: Any, now_ms: int) -> bool:
        if not isinstance(last_seen_at, str):
            return False
        try:
            seen = datetime.fromisoformat(last_seen_at.replace("Z", "+00:00"))
        except ValueError:
            return False
        if seen.tzinfo is None:
            seen = seen.replace(tzinfo=UTC)
        return now_ms - epoch_ms(seen) > self._stale_after_ms

    def _normalize(self, index: int, raw: Any, now_ms: int) -> DeviceState:
        item = dict(raw) if isinstance(raw, Mapping) else {}
        stale = self._is_stale(item.get("lastSeenAt"), now_ms)
        return DeviceState(
            id=item["id"] if isinstance(item.get("id"), str) else f"roborock-{index + 1}",
            label=item["name"] if isinstance(item.get("name"), str) else f"Roborock {index + 1}",
            online=item.get("online") is True and not stale,
            battery_pct=_battery_pct(item.get("battery")),
            attributes={**item, "stale": stale},
        )

    def read_status(self, ctx: ConnectorContext, input: Mapping[str, Any]) -> ConnectorResult:
        request = {**input, "request_id": ctx.request_id}
        now_ms = epoch_ms(self._clock.now())

        def parse(payload: Any) -> ConnectorResult:
            rows = _device_rows(payload, "Roborock")
            return _read_result(ctx, request, rows, [self._normalize(i, row, now_ms) for i, row in enumerate(rows)])

        return self._guarded_call(ctx, "/devices", request, parse)
