"""Connector framework: typed adapters to external systems.

Every connector call is gated by a per-connector circuit breaker and
failures are classified into the ConnectorErrorCode taxonomy.
"""

from studio_os.connectors.base import Connector, classify_connector_error
from studio_os.connectors.circuit_breaker import ConnectorCircuitBreaker
from studio_os.connectors.devices import HubitatConnector, RoborockConnector, normalize_hubitat_device
from studio_os.connectors.ops_notes import (
    OPS_NOTE_APPEND,
    OPS_NOTE_ROLLBACK,
    OpsNoteConnector,
    OpsNotePlan,
    action_doc_id,
    build_ops_note_plan,
)
from studio_os.connectors.registry import ConnectorRegistry
from studio_os.connectors.retry import MaxRetriesExceeded, RetryConfig, call_with_retry

__all__ = [
    "OPS_NOTE_APPEND",
    "OPS_NOTE_ROLLBACK",
    "Connector",
    "ConnectorCircuitBreaker",
    "ConnectorRegistry",
    "HubitatConnector",
    "MaxRetriesExceeded",
    "OpsNoteConnector",
    "OpsNotePlan",
    "RetryConfig",
    "RoborockConnector",
    "action_doc_id",
    "build_ops_note_plan",
    "call_with_retry",
    "classify_connector_error",
    "normalize_hubitat_device",
]
