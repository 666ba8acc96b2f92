"""
Sentry Error Tracking
=====================

Optional error tracking for the attribution engine using Sentry.

Related files:
- affiliate_attribution/services/resolution_engine.py: Initializes Sentry when a DSN is configured
- affiliate_attribution/services/link_resolver.py: Captures parse failures
- affiliate_attribution/services/device_identity.py: Captures storage failures

Environment Variables:
- INSERT_AFFILIATE_SENTRY_DSN: Sentry project DSN (Sentry stays off without it)
- INSERT_AFFILIATE_ENVIRONMENT: Environment name (production, staging, development)
"""

from __future__ import annotations

import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

_initialized = False


def init_sentry(dsn: Optional[str], environment: str = "development") -> bool:
    """
    Initialize the Sentry SDK.

    Returns:
        True if Sentry was initialized, False if no DSN was given or init failed.

    Side effects:
        - Configures the global Sentry SDK
        - Records outgoing httpx requests as breadcrumbs
    """
    global _initialized

    if not dsn:
        return False

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                HttpxIntegration(),
                LoggingIntegration(
                    level=logging.INFO,        # Capture INFO+ as breadcrumbs
                    event_level=logging.ERROR,  # Send ERROR+ as events
                ),
            ],
            traces_sample_rate=0.0,
            send_default_pii=False,
        )
    except Exception as e:
        logger.error(f"[SENTRY] Failed to initialize: {e}")
        return False

    _initialized = True
    logger.debug(f"[SENTRY] Initialized for {environment} environment")
    return True


def is_enabled() -> bool:
    return _initialized


def capture_exception(exception: Exception, extra: Optional[dict] = None) -> None:
    """
    Capture a handled exception.

    Use this for failures that the engine recovers from (parse errors,
    storage errors) but that should still show up in monitoring.

    Args:
        exception: The exception to capture
        extra: Additional context to attach to the event
    """
    if not _initialized:
        return

    try:
        with sentry_sdk.new_scope() as scope:
            if extra:
                for key, value in extra.items():
                    scope.set_extra(key, value)
            sentry_sdk.capture_exception(exception)
    except Exception as e:
        logger.error(f"[SENTRY] Failed to capture exception: {e}")


def capture_message(message: str, level: str = "info", extra: Optional[dict] = None) -> None:
    """
    Capture a message to Sentry.

    Args:
        message: The message to capture
        level: Severity level (debug, info, warning, error, fatal)
        extra: Additional context to attach
    """
    if not _initialized:
        return

    try:
        with sentry_sdk.new_scope() as scope:
            if extra:
                for key, value in extra.items():
                    scope.set_extra(key, value)
            sentry_sdk.capture_message(message, level=level)
    except Exception as e:
        logger.error(f"[SENTRY] Failed to capture message: {e}")
