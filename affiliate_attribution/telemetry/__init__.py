"""
Telemetry Module
================

Observability for the attribution engine.

Components:
- logging.py: Package logger configuration (verbose switch)
- sentry.py: Error tracking for recovered failures

Usage:
    from affiliate_attribution.telemetry import configure_logging, init_sentry

    configure_logging(verbose=True)
    init_sentry(dsn, environment="production")
"""

from affiliate_attribution.telemetry.logging import configure_logging
from affiliate_attribution.telemetry.sentry import (
    init_sentry,
    is_enabled as sentry_enabled,
    capture_exception,
    capture_message,
)

__all__ = [
    "configure_logging",
    "init_sentry",
    "sentry_enabled",
    "capture_exception",
    "capture_message",
]
