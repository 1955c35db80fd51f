"""Core infrastructure: canonical hashing, config, logging, clock, security."""

from studio_os.core.canonical import CANONICAL_VERSION, canonical_json, stable_hash
from studio_os.core.clock import DEFAULT_CLOCK, Clock, MockClock, SystemClock
from studio_os.core.config import StudioOsSettings, load_settings, resolve_config
from studio_os.core.logging import configure_logging, get_logger

__all__ = [
    "CANONICAL_VERSION",
    "DEFAULT_CLOCK",
    "Clock",
    "MockClock",
    "StudioOsSettings",
    "SystemClock",
    "canonical_json",
    "configure_logging",
    "get_logger",
    "load_settings",
    "resolve_config",
    "stable_hash",
]
