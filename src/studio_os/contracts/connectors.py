"""Connector descriptors, call contexts and results."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from studio_os.contracts.enums import Availability, ConnectorIntent, Target

DEFAULT_CONNECTOR_TIMEOUT_MS = 10_000

# (path, input, timeout_ms) -> payload. Concrete transports (HTTP, local
# process) live outside the engine.
Transport = Callable[[str, Mapping[str, Any], int], Any]


@dataclass(frozen=True)
class ConnectorDescriptor:
    """Stateless identity of a connector."""

    id: str
    target: Target
    version: str
    read_only: bool


@dataclass(frozen=True)
class ConnectorContext:
    request_id: str
    timeout_ms: int = DEFAULT_CONNECTOR_TIMEOUT_MS

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")


@dataclass(frozen=True)
class ConnectorRequest:
    """A call routed through Connector.execute()."""

    intent: ConnectorIntent
    action: str
    input: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.intent, ConnectorIntent):
            raise TypeError(f"intent must be ConnectorIntent, got {self.intent!r}")


@dataclass(frozen=True)
class ConnectorHealth:
    connector_id: str
    ok: bool
    latency_ms: int
    availability: Availability
    input_hash: str
    output_hash: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "connector_id": self.connector_id,
            "ok": self.ok,
            "latency_ms": self.latency_ms,
            "availability": self.availability.value,
            "input_hash": self.input_hash,
            "output_hash": self.output_hash,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class DeviceState:
    """Normalized view of one device reported by a device connector."""

    id: str
    label: str
    online: bool
    battery_pct: int | None
    attributes: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "online": self.online,
            "battery_pct": self.battery_pct,
            "attributes": self.attributes,
        }


@dataclass(frozen=True)
class ConnectorResult:
    """Result of read_status() or execute()."""

    request_id: str
    input_hash: str
    output_hash: str
    payload: dict[str, Any]
    devices: tuple[DeviceState, ...] = ()
    raw_count: int = 0
