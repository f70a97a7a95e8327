"""Process-wide notifier entry points.

The module keeps one :class:`~faultpost.configuration.Configuration` for
the process.  :class:`Notifier` runs the notify pipeline against a
configuration: build the notification, run the before-notify callbacks,
apply the ignore rules, deliver, then run the after-notify callbacks.

Nothing in this pipeline raises into the caller.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from faultpost.configuration import Callback, Configuration
from faultpost.notification import Notification
from faultpost.version import __version__

_configuration = Configuration()
_logged_ready = False


class Notifier:
    """Run notifications against *configuration*."""

    def __init__(self, configuration: Configuration) -> None:
        self.configuration = configuration

    def notify(
        self,
        exception: Any,
        overrides: Any = None,
        request_data: Mapping[str, Any] | None = None,
        *,
        severity: str | None = None,
    ) -> Notification | None:
        """Report *exception*.

        Returns the delivered :class:`Notification`, or ``None`` when the
        notification was suppressed or could not be built.
        """
        config = self.configuration
        log = config.logger
        if request_data is None:
            request_data = config.request_data

        try:
            notification = Notification(
                exception,
                config,
                overrides,
                request_data,
                severity=severity,
            )
        except Exception as exc:
            log.warning("Failed to build notification", error=repr(exc))
            return None

        if not self._run_callbacks(config.before_notify_callbacks, notification):
            log.info("Notification cancelled by callback")
            return None

        try:
            reason = notification.suppression_reason()
        except Exception as exc:
            log.warning("Failed to apply ignore rules", error=repr(exc))
            return None
        if reason is not None:
            log.info(
                "Notification suppressed",
                reason=reason,
                error_class=type(notification.exception).__name__,
            )
            return None

        notification.deliver()
        self._run_callbacks(config.after_notify_callbacks, notification)
        return notification

    def auto_notify(
        self,
        exception: Any,
        overrides: Any = None,
        request_data: Mapping[str, Any] | None = None,
    ) -> Notification | None:
        """Report an unhandled exception caught by an integration.

        The event is marked ``fatal``.  Does nothing when the configuration
        has ``auto_notify`` disabled.
        """
        if not self.configuration.auto_notify:
            return None
        return self.notify(exception, overrides, request_data, severity="fatal")

    def _run_callbacks(self, callbacks: tuple[Callback, ...], notification: Notification) -> bool:
        """Call each callback in order; ``False`` from one stops the chain."""
        for callback in callbacks:
            try:
                if callback(notification) is False:
                    return False
            except Exception as exc:
                self.configuration.logger.warning(
                    "Notify callback failed",
                    callback=repr(callback),
                    error=repr(exc),
                )
        return True


def get_configuration() -> Configuration:
    """Return the process-wide configuration."""
    return _configuration


def configure(**options: Any) -> Configuration:
    """Update the process-wide configuration.

    Unknown option names raise :class:`TypeError`.
    """
    global _logged_ready

    config = _configuration.update(**options)
    if config.api_key and not _logged_ready:
        config.logger.info("faultpost ready", version=__version__, endpoint=config.notify_url)
        _logged_ready = True
    return config


def default_notifier() -> Notifier:
    return Notifier(_configuration)


def notify(
    exception: Any,
    overrides: Any = None,
    request_data: Mapping[str, Any] | None = None,
) -> Notification | None:
    """Report *exception* using the process-wide configuration."""
    return default_notifier().notify(exception, overrides, request_data)


def auto_notify(
    exception: Any,
    overrides: Any = None,
    request_data: Mapping[str, Any] | None = None,
) -> Notification | None:
    """Report an unhandled *exception* as ``fatal``."""
    return default_notifier().auto_notify(exception, overrides, request_data)


def set_request_data(key: str, value: Any) -> None:
    _configuration.set_request_data(key, value)


def clear_request_data() -> None:
    """Forget per-request data; call when a request or task finishes."""
    _configuration.clear_request_data()


def add_before_notify(callback: Callback) -> Callback:
    return _configuration.add_before_notify(callback)


def add_after_notify(callback: Callback) -> Callback:
    return _configuration.add_after_notify(callback)
