"""Tests for faultpost.notification."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

from faultpost.configuration import Configuration
from faultpost.metadata import MetaData
from faultpost.notification import (
    NOTIFIER_INFO,
    ExceptionRecord,
    Notification,
    resolve_exception,
    resolve_severity,
)


class FaultpostTestException(Exception):
    pass


class TestResolveException:
    def test_exception_is_used_as_is(self) -> None:
        exc = ValueError("x")
        assert resolve_exception(exc) is exc

    def test_to_exception_is_called(self) -> None:
        exc = FaultpostTestException("message")
        assert resolve_exception(SimpleNamespace(to_exception=lambda: exc)) is exc

    def test_non_exception_becomes_runtime_error(self) -> None:
        exc = resolve_exception("test message")
        assert type(exc) is RuntimeError
        assert str(exc) == "test message"

    def test_to_exception_returning_junk(self) -> None:
        value = SimpleNamespace(to_exception=lambda: "nope")
        assert type(resolve_exception(value)) is RuntimeError


class TestResolveSeverity:
    def test_accepts_known_values(self) -> None:
        for severity in ("error", "warning", "info"):
            assert resolve_severity(severity) == severity

    def test_unknown_defaults_to_error(self) -> None:
        assert resolve_severity("infffo") == "error"
        assert resolve_severity(None) == "error"
        assert resolve_severity(3) == "error"

    def test_forced_severity_bypasses_allow_list(self) -> None:
        assert resolve_severity("info", forced="fatal") == "fatal"


class TestExceptionRecord:
    def test_from_raised_exception(self) -> None:
        try:
            raise FaultpostTestException("It crashed")
        except FaultpostTestException as exc:
            record = ExceptionRecord.from_exception(exc, None)
        data = record.as_dict()
        assert data["errorClass"] == "FaultpostTestException"
        assert data["message"] == "It crashed"
        assert len(data["stacktrace"]) > 0

    def test_empty_message(self) -> None:
        assert ExceptionRecord.from_exception(RuntimeError(), None).message == ""


class TestNotification:
    def test_payload_shape(self, config: Configuration) -> None:
        payload = Notification(FaultpostTestException("It crashed"), config).payload()
        assert payload["apiKey"] == config.api_key
        assert payload["notifier"] == NOTIFIER_INFO
        assert len(payload["events"]) == 1
        event = payload["events"][0]
        assert set(event) == {"exceptions", "severity", "user", "app", "metaData"}
        assert event["severity"] == "error"
        assert event["app"] == {"releaseStage": "production"}

    def test_context_and_user(self, config: Configuration) -> None:
        event = Notification(
            RuntimeError("x"),
            config,
            {"severity": "info", "context": "checkout", "user_id": "u1"},
        ).to_event()
        assert event["severity"] == "info"
        assert event["context"] == "checkout"
        assert event["user"] == {"id": "u1"}
        assert event["metaData"] == {}

    def test_app_version(self, config: Configuration) -> None:
        config.app_version = "1.1.1"
        event = Notification(RuntimeError("x"), config).to_event()
        assert event["app"]["version"] == "1.1.1"

    def test_app_block_omits_unset_values(self, config: Configuration) -> None:
        config.release_stage = None
        event = Notification(RuntimeError("x"), config).to_event()
        assert event["app"] == {}

    def test_exception_severity_is_validated(self, config: Configuration) -> None:
        class Tagged(MetaData, Exception):
            pass

        exc = Tagged("x")
        exc.faultpost_severity = "catastrophic"
        assert Notification(exc, config).severity == "error"

    def test_api_key_override(self, config: Configuration) -> None:
        notification = Notification(RuntimeError("x"), config, {"api_key": "other"})
        assert notification.payload()["apiKey"] == "other"

    def test_metadata_is_filtered(self, config: Configuration) -> None:
        event = Notification(
            RuntimeError("x"),
            config,
            {"request": {"params": {"password": "1234", "other_data": "123456"}}},
        ).to_event()
        assert event["metaData"]["request"]["params"] == {
            "password": "[FILTERED]",
            "other_data": "123456",
        }

    def test_caller_overrides_are_not_mutated(self, config: Configuration) -> None:
        overrides = {"request": {"params": {"password": "1234"}}}
        Notification(RuntimeError("x"), config, overrides).to_event()
        assert overrides["request"]["params"]["password"] == "1234"

    def test_url(self, config: Configuration) -> None:
        assert Notification(RuntimeError("x"), config).url == "http://notify.bugsnag.com"
        config.use_ssl = True
        assert Notification(RuntimeError("x"), config).url.startswith("https://")

    def test_deliver_uses_configured_deliverer(self, config: Configuration, deliverer) -> None:  # type: ignore[no-untyped-def]
        notification = Notification(RuntimeError("x"), config)
        assert notification.deliver() is True
        assert notification.delivered is True
        assert deliverer.calls[0][0] == "http://notify.bugsnag.com"

    def test_deliver_swallows_deliverer_errors(self, config: Configuration) -> None:
        broken = MagicMock()
        broken.deliver.side_effect = OSError("network down")
        config.deliverer = broken
        notification = Notification(RuntimeError("x"), config)
        assert notification.deliver() is False
        config.logger.warning.assert_called_once()

    def test_default_deliverer_is_http(self) -> None:
        config = Configuration(api_key="k", timeout=10, proxy_host="host_name", proxy_port=1234)
        deliverer = Notification(RuntimeError("x"), config).deliverer()
        assert deliverer.client_options() == {"timeout": 10, "proxy": "http://host_name:1234"}  # type: ignore[attr-defined]
