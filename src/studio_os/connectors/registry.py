"""Registry of connector instances, keyed by connector id."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import structlog

from studio_os.contracts.connectors import ConnectorContext, ConnectorHealth
from studio_os.contracts.enums import Availability
from studio_os.core.canonical import stable_hash
from studio_os.connectors.base import Connector, classify_connector_error

logger = structlog.get_logger(__name__)


class ConnectorRegistry:
    def __init__(self, connectors: list[Connector] | None = None) -> None:
        self._connectors: dict[str, Connector] = {}
        for connector in connectors or []:
            self.register(connector)

    def register(self, connector: Connector) -> None:
        if connector.id in self._connectors:
            raise ValueError(f"Connector {connector.id!r} is already registered")
        self._connectors[connector.id] = connector

    def get(self, connector_id: str) -> Connector:
        """Look up a connector.

        Raises:
            KeyError: If no connector is registered under connector_id
        """
        if connector_id not in self._connectors:
            raise KeyError(f"Unknown connector: {connector_id}")
        return self._connectors[connector_id]

    def ids(self) -> list[str]:
        return sorted(self._connectors)

    def _health_one(self, connector: Connector, ctx: ConnectorContext) -> ConnectorHealth:
        try:
            health = connector.health(ctx)
        except Exception as exc:
            error = classify_connector_error(exc)
            logger.warning(
                "connector_health_failed",
                connector_id=connector.id,
                code=error.code.value,
                error=error.message,
            )
            return ConnectorHealth(
                connector_id=connector.id,
                ok=False,
                latency_ms=0,
                availability=Availability.DOWN,
                input_hash=stable_hash({"path": "/health", "request_id": ctx.request_id}),
                error_code=error.code.value,
                error_message=error.message,
            )
        logger.info(
            "connector_health_checked",
            connector_id=connector.id,
            ok=health.ok,
            availability=health.availability.value,
            latency_ms=health.latency_ms,
        )
        return health

    def health_all(self, ctx: ConnectorContext) -> list[ConnectorHealth]:
        """Check every connector concurrently, in registration order.

        A connector that raises is reported as ok=False/DOWN; it never
        aborts the sweep for the others.
        """
        connectors = list(self._connectors.values())
        if not connectors:
            return []
        with ThreadPoolExecutor(max_workers=len(connectors), thread_name_prefix="connector-health") as pool:
            return list(pool.map(lambda connector: self._health_one(connector, ctx), connectors))
