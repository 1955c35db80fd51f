# src/studio_os/core/config.py
"""Configuration schema and loading for Studio OS.

Settings are frozen Pydantic models. load_settings() layers:
1. Environment variables (STUDIO_OS_*, nested via __) - highest priority
2. Config file (YAML)
3. Defaults from the Pydantic schema - lowest priority

String values may reference the environment with ${VAR} or ${VAR:-default}.
"""

from __future__ import annotations

import copy
import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from studio_os.contracts.connectors import DEFAULT_CONNECTOR_TIMEOUT_MS
from studio_os.core.security import SecretFingerprintError, get_fingerprint_key, parse_trust_anchors, secret_fingerprint


class LedgerSettings(BaseModel):
    """Audit ledger database."""

    model_config = {"frozen": True}

    # str, not Path: Path mangles postgresql:// DSNs
    url: str = Field(
        default="sqlite:///./state/studio_os.db",
        description="Full SQLAlchemy database URL",
    )


class SourceSettings(BaseModel):
    """One authoritative source read by the StateComputer."""

    model_config = {"frozen": True}

    name: str = Field(description="Source name used in sourceHashes and warnings")
    path: str = Field(description="Path to a JSON export of the source model")


class StateSettings(BaseModel):
    """State computation."""

    model_config = {"frozen": True}

    source_identity: str = Field(default="studio", description="Identity of the authoritative source set")
    scan_limit: int = Field(default=2000, ge=50, le=20000, description="Maximum documents scanned per source")
    sources: list[SourceSettings] = Field(default_factory=list, description="Sources read by the StateComputer")

    @field_validator("sources")
    @classmethod
    def validate_unique_source_names(cls, v: list[SourceSettings]) -> list[SourceSettings]:
        names = [source.name for source in v]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate source names: {duplicates}")
        return v


class DriftSettings(BaseModel):
    """Drift thresholds. A metric must exceed BOTH to be flagged."""

    model_config = {"frozen": True}

    absolute_threshold: float = Field(default=25, ge=0, description="Minimum |observed - expected|")
    ratio_threshold: float = Field(default=0.5, ge=0, description="Minimum |delta| / max(|expected|, 1)")
    max_warning_rows: int = Field(default=10, gt=0, description="Drift rows folded into snapshot warnings")


class DetectorSettings(BaseModel):
    """Detector dedupe windows and pass fan-out."""

    model_config = {"frozen": True}

    ops_cooldown_minutes: int = Field(default=120, ge=1)
    finance_cooldown_minutes: int = Field(default=360, ge=1)
    marketing_cooldown_minutes: int = Field(default=360, ge=1)
    recent_events_limit: int = Field(default=250, gt=0, description="Ledger records scanned for dedupe")
    max_workers: int = Field(default=3, gt=0, description="Detectors run concurrently within a pass")


class CircuitBreakerSettings(BaseModel):
    """Connector circuit breaker.

    Backoff after the Nth consecutive open is
    min(base_backoff_ms * 2 ** (N - 1), max_backoff_ms).
    """

    model_config = {"frozen": True}

    failure_threshold: int = Field(default=3, gt=0, description="Consecutive failures before opening")
    base_backoff_ms: int = Field(default=30_000, gt=0)
    max_backoff_ms: int = Field(default=600_000, gt=0)

    @model_validator(mode="after")
    def validate_backoff_order(self) -> CircuitBreakerSettings:
        if self.max_backoff_ms < self.base_backoff_ms:
            raise ValueError("max_backoff_ms must be >= base_backoff_ms")
        return self


class ConnectorSettings(BaseModel):
    """Connector calls."""

    model_config = {"frozen": True}

    timeout_ms: int = Field(default=DEFAULT_CONNECTOR_TIMEOUT_MS, gt=0)
    retry_max_attempts: int = Field(default=3, ge=1, description="Total tries for retryable read calls")
    retry_initial_delay_seconds: float = Field(default=0.5, gt=0)
    retry_max_delay_seconds: float = Field(default=5.0, gt=0)
    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)


class ProposalSettings(BaseModel):
    """Proposal lifecycle guards."""

    model_config = {"frozen": True}

    rollback_reason_min_length: int = Field(default=10, ge=1)
    idempotency_key_min_length: int = Field(default=8, ge=1)
    kill_switch: bool = Field(default=False, description="Disable approve/execute/rollback")


class TrustSettings(BaseModel):
    """Manifest trust anchors and audit export signing."""

    model_config = {"frozen": True}

    trust_anchors: dict[str, str] = Field(default_factory=dict, description="Trust anchor id -> HMAC key")
    export_signing_key: str | None = Field(default=None, description="HMAC key for signed audit exports")

    @field_validator("trust_anchors", mode="before")
    @classmethod
    def parse_anchor_string(cls, v: Any) -> Any:
        """Accept the env-var form: a JSON object or id=key,id=key."""
        if isinstance(v, str):
            return parse_trust_anchors(v)
        return v


class SchedulerSettings(BaseModel):
    """Scheduled studio-state pass."""

    model_config = {"frozen": True}

    interval_minutes: int = Field(default=15, ge=1)
    run_on_start: bool = Field(default=True)
    jitter_seconds: float = Field(default=0.0, ge=0, description="Random delay added to each interval")


class StudioOsSettings(BaseModel):
    """Top-level Studio OS configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    state: StateSettings = Field(default_factory=StateSettings)
    drift: DriftSettings = Field(default_factory=DriftSettings)
    detectors: DetectorSettings = Field(default_factory=DetectorSettings)
    connectors: ConnectorSettings = Field(default_factory=ConnectorSettings)
    proposals: ProposalSettings = Field(default_factory=ProposalSettings)
    trust: TrustSettings = Field(default_factory=TrustSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)


# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values."""

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            default = match.group(2)
            if default is not None:
                return default
            # Unresolved - left as-is so validation reports it
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        if isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        if isinstance(value, list):
            return [_expand_value(v) for v in value]
        return value

    return {k: _expand_value(v) for k, v in config.items()}


# Keys below these are data (anchor ids), not setting names
_CASE_PRESERVING_KEYS = frozenset({"trust_anchors"})


def _lowercase_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            str(k).lower(): (v if str(k).lower() in _CASE_PRESERVING_KEYS else _lowercase_keys(v)) for k, v in value.items()
        }
    if isinstance(value, list):
        return [_lowercase_keys(v) for v in value]
    return value


def load_settings(config_path: Path | None = None) -> StudioOsSettings:
    """Load settings from a YAML file with environment variable overrides.

    Environment variable format: STUDIO_OS_DRIFT__ABSOLUTE_THRESHOLD for
    nested keys.

    Args:
        config_path: YAML file, or None for environment + defaults only

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config_path is given but doesn't exist
    """
    from dynaconf import Dynaconf

    settings_files: list[str] = []
    if config_path is not None:
        # Dynaconf silently accepts missing files
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        settings_files.append(str(config_path))

    dynaconf_settings = Dynaconf(
        envvar_prefix="STUDIO_OS",
        settings_files=settings_files,
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES", "FINGERPRINT_KEY"}
    raw_config = {k.lower(): _lowercase_keys(v) for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _expand_env_vars(raw_config)
    return StudioOsSettings(**raw_config)


REDACTED = "[REDACTED]"


def resolve_config(settings: StudioOsSettings, *, redact_if_no_key: bool = False) -> dict[str, Any]:
    """Convert validated settings to a dict safe for audit storage.

    Trust anchor keys and the export signing key are replaced with HMAC
    fingerprints. The returned dict must not be used at runtime.

    Args:
        settings: Validated settings
        redact_if_no_key: When no fingerprint key is configured, redact
            secrets instead of raising

    Raises:
        SecretFingerprintError: If secrets are present, no fingerprint key is
            configured, and redact_if_no_key is False
    """
    config_dict = copy.deepcopy(settings.model_dump(mode="json"))
    trust = config_dict["trust"]
    has_secrets = bool(trust["trust_anchors"]) or trust["export_signing_key"] is not None
    if not has_secrets:
        return config_dict

    try:
        key: bytes | None = get_fingerprint_key()
    except SecretFingerprintError:
        if not redact_if_no_key:
            raise
        key = None

    def _protect(secret: str) -> str:
        if key is None:
            return REDACTED
        return f"hmac:{secret_fingerprint(secret, key=key)}"

    trust["trust_anchors"] = {key_id: _protect(secret) for key_id, secret in trust["trust_anchors"].items()}
    if trust["export_signing_key"] is not None:
        trust["export_signing_key"] = _protect(trust["export_signing_key"])
    return config_dict
