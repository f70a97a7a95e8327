"""Build a single error event and deliver it.

A :class:`Notification` is created per notify call.  It resolves the
reported value into an exception, unwinds its cause chain, normalizes the
backtraces, merges metadata, and finally hands an encoded payload to the
configured deliverer.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from faultpost.chain import unwrap_exceptions
from faultpost.configuration import Configuration
from faultpost.delivery import Deliverer, HttpDeliverer
from faultpost.ignore import suppression_reason
from faultpost.metadata import ParamsFilter, fit_payload, resolve_meta_data
from faultpost.stacktrace import StackFrame, backtrace_for, parse_backtrace
from faultpost.version import __version__

NOTIFIER_INFO: dict[str, str] = {
    "name": "faultpost",
    "version": __version__,
    "url": "https://pypi.org/project/faultpost/",
}

SEVERITIES: frozenset[str] = frozenset({"error", "warning", "info"})
DEFAULT_SEVERITY = "error"


@runtime_checkable
class ConvertibleToException(Protocol):
    def to_exception(self) -> BaseException: ...


def resolve_exception(value: Any) -> BaseException:
    """Turn whatever was passed to notify into an exception instance."""
    if isinstance(value, BaseException):
        return value
    if isinstance(value, ConvertibleToException):
        converted = value.to_exception()
        if isinstance(converted, BaseException):
            return converted
    return RuntimeError(str(value))


def resolve_severity(requested: Any, forced: str | None = None) -> str:
    """Pick the event severity.

    *forced* comes from the notifier itself (``auto_notify`` uses
    ``"fatal"``) and is not checked against :data:`SEVERITIES`.
    """
    if forced:
        return forced
    if requested in SEVERITIES:
        return str(requested)
    return DEFAULT_SEVERITY


@dataclass
class ExceptionRecord:
    error_class: str
    message: str
    stacktrace: list[StackFrame] = field(default_factory=list)

    @classmethod
    def from_exception(cls, exception: BaseException, project_root: str | None) -> ExceptionRecord:
        return cls(
            error_class=type(exception).__name__,
            message=str(exception),
            stacktrace=parse_backtrace(backtrace_for(exception), project_root),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "errorClass": self.error_class,
            "message": self.message,
            "stacktrace": [frame.as_dict() for frame in self.stacktrace],
        }


class Notification:
    """One reportable error event and its delivery.

    Parameters
    ----------
    exception:
        The reported value; non-exceptions are converted.
    configuration:
        Settings for this notification.
    overrides:
        Caller-supplied event fields and metadata tabs.
    request_data:
        Per-request data captured by an integration.
    severity:
        Severity set by the notifier itself, bypassing validation.
    """

    def __init__(
        self,
        exception: Any,
        configuration: Configuration,
        overrides: Any = None,
        request_data: Mapping[str, Any] | None = None,
        *,
        severity: str | None = None,
    ) -> None:
        self.configuration = configuration
        self.request_data = dict(request_data or {})
        self.exception = resolve_exception(exception)
        self.exceptions = unwrap_exceptions(self.exception)

        resolved = resolve_meta_data(self.exception, overrides, self.request_data)
        self.meta_data = resolved.meta_data
        self.context = resolved.context
        self.user_id = resolved.user_id
        self.severity = resolve_severity(resolved.severity, severity)
        self.api_key = resolved.api_key or configuration.api_key
        self.delivered = False

    @property
    def url(self) -> str:
        return self.configuration.notify_url

    def exception_records(self) -> list[ExceptionRecord]:
        root = self.configuration.project_root
        return [ExceptionRecord.from_exception(exc, root) for exc in self.exceptions]

    def to_event(self) -> dict[str, Any]:
        config = self.configuration
        app: dict[str, Any] = {}
        if config.release_stage:
            app["releaseStage"] = config.release_stage
        if config.app_version:
            app["version"] = config.app_version

        user: dict[str, Any] = {}
        if self.user_id is not None:
            user["id"] = self.user_id

        event: dict[str, Any] = {
            "exceptions": [record.as_dict() for record in self.exception_records()],
            "severity": self.severity,
            "user": user,
            "app": app,
            "metaData": ParamsFilter(config.params_filters)(self.meta_data),
        }
        if self.context is not None:
            event["context"] = self.context
        return event

    def payload(self) -> dict[str, Any]:
        return {
            "apiKey": self.api_key,
            "notifier": dict(NOTIFIER_INFO),
            "events": [self.to_event()],
        }

    def suppression_reason(self) -> str | None:
        return suppression_reason(
            self.exception,
            self.configuration,
            self.request_data,
            api_key=self.api_key,
        )

    def ignore(self) -> bool:
        return self.suppression_reason() is not None

    def deliverer(self) -> Deliverer:
        config = self.configuration
        if config.deliverer is not None:
            return config.deliverer  # type: ignore[no-any-return]
        return HttpDeliverer(
            timeout=config.timeout,
            proxy=config.proxy_url(),
            logger=config.logger,
        )

    def deliver(self) -> bool:
        """Encode and send the payload; never raises."""
        try:
            body = fit_payload(self.payload())
            self.delivered = bool(self.deliverer().deliver(self.url, body))
        except Exception as exc:
            self.configuration.logger.warning(
                "Notification delivery failed",
                endpoint=self.url,
                error=repr(exc),
            )
            self.delivered = False
        return self.delivered
