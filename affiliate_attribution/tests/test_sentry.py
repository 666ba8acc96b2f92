"""Unit tests for the Sentry wrapper.

WHAT: No-op until initialized; scoped capture with extras once it is
WHY: Recovered failures are reported only when a DSN is configured, and
     reporting itself must never raise into the engine
"""

from unittest.mock import MagicMock

import pytest

from affiliate_attribution.telemetry import sentry


@pytest.fixture
def fake_sdk(monkeypatch):
    sdk = MagicMock()
    monkeypatch.setattr(sentry, "sentry_sdk", sdk)
    monkeypatch.setattr(sentry, "_initialized", False)
    return sdk


def test_without_dsn_nothing_is_initialized(fake_sdk):
    assert sentry.init_sentry(None) is False
    assert sentry.is_enabled() is False

    sentry.capture_exception(ValueError("ignored"))
    sentry.capture_message("ignored")

    fake_sdk.init.assert_not_called()
    fake_sdk.capture_exception.assert_not_called()
    fake_sdk.capture_message.assert_not_called()


def test_capture_after_init_attaches_extras(fake_sdk):
    scope = fake_sdk.new_scope.return_value.__enter__.return_value

    assert sentry.init_sentry("https://key@sentry.test/1", environment="staging") is True
    assert sentry.is_enabled() is True
    assert fake_sdk.init.call_args.kwargs["environment"] == "staging"

    error = ValueError("bad body")
    sentry.capture_exception(error, extra={"body": "<html>"})
    sentry.capture_message("lookup failed", level="warning")

    scope.set_extra.assert_called_once_with("body", "<html>")
    fake_sdk.capture_exception.assert_called_once_with(error)
    fake_sdk.capture_message.assert_called_once_with("lookup failed", level="warning")


def test_failed_init_stays_disabled(fake_sdk, caplog):
    fake_sdk.init.side_effect = Exception("bad dsn")

    assert sentry.init_sentry("not-a-dsn") is False
    assert sentry.is_enabled() is False
    assert "Failed to initialize" in caplog.text


def test_capture_failure_is_swallowed(fake_sdk, caplog):
    sentry.init_sentry("https://key@sentry.test/1")
    fake_sdk.capture_exception.side_effect = RuntimeError("transport down")

    sentry.capture_exception(ValueError("x"))

    assert "Failed to capture exception" in caplog.text
