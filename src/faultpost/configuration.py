"""Notifier configuration.

A :class:`Configuration` holds everything the notification pipeline reads
while building and delivering an event: credentials, collector endpoint,
transport options, filtering and ignore rules, and the ordered lists of
before/after notify callbacks.

Defaults for the api key and release stage are read from the environment
(``FAULTPOST_API_KEY``, ``FAULTPOST_RELEASE_STAGE``) so that a bare
``Configuration()`` is usable in a deployed process.
"""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, fields
from typing import Any, TypeAlias
from urllib.parse import quote

import structlog

from faultpost.ignore import as_rule

DEFAULT_ENDPOINT = "notify.bugsnag.com"
DEFAULT_TIMEOUT = 5.0

DEFAULT_PARAMS_FILTERS: tuple[str, ...] = ("password", "secret", "authorization", "cookie")
DEFAULT_IGNORE_CLASSES: tuple[str, ...] = ("KeyboardInterrupt", "SystemExit")

Callback: TypeAlias = Callable[[Any], Any]

_request_data: ContextVar[dict[str, Any] | None] = ContextVar(
    "faultpost_request_data",
    default=None,
)


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _check_ignore_rules(ignore_classes: Any, ignore_user_agents: Any) -> None:
    """Raise for ignore entries that could never be evaluated."""
    for entry in ignore_classes:
        as_rule(entry)
    for pattern in ignore_user_agents:
        if not isinstance(pattern, (str, re.Pattern)):
            msg = f"Unsupported user agent pattern: {pattern!r}"
            raise TypeError(msg)
        re.compile(pattern)


@dataclass
class Configuration:
    """Settings read by every notify call.

    The notification pipeline treats a configuration as read-only; it is
    mutated only through :func:`faultpost.configure`, attribute assignment
    by the application, or the explicit callback and request-data APIs.
    """

    api_key: str | None = field(default_factory=lambda: os.environ.get("FAULTPOST_API_KEY"))
    endpoint: str = DEFAULT_ENDPOINT
    use_ssl: bool = False
    timeout: float = DEFAULT_TIMEOUT

    proxy_host: str | None = None
    proxy_port: int | None = None
    proxy_user: str | None = None
    proxy_password: str | None = None

    release_stage: str | None = field(
        default_factory=lambda: os.environ.get("FAULTPOST_RELEASE_STAGE", "production"),
    )
    notify_release_stages: list[str] = field(default_factory=list)
    app_version: str | None = None
    project_root: str = field(default_factory=os.getcwd)

    params_filters: list[str] = field(default_factory=lambda: list(DEFAULT_PARAMS_FILTERS))
    ignore_classes: list[Any] = field(default_factory=lambda: list(DEFAULT_IGNORE_CLASSES))
    ignore_user_agents: list[Any] = field(default_factory=list)

    auto_notify: bool = True
    logger: Any = field(default_factory=lambda: structlog.get_logger("faultpost"))
    deliverer: Any = None

    _before_callbacks: list[Callback] = field(default_factory=list, repr=False)
    _after_callbacks: list[Callback] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        _check_ignore_rules(self.ignore_classes, self.ignore_user_agents)

    @classmethod
    def from_env(cls, **overrides: Any) -> Configuration:
        """Build a configuration from ``FAULTPOST_*`` environment variables.

        Keyword arguments take precedence over the environment.
        """
        options: dict[str, Any] = {
            "use_ssl": _env_flag("FAULTPOST_USE_SSL"),
        }
        if "FAULTPOST_ENDPOINT" in os.environ:
            options["endpoint"] = os.environ["FAULTPOST_ENDPOINT"]
        if "FAULTPOST_TIMEOUT" in os.environ:
            options["timeout"] = float(os.environ["FAULTPOST_TIMEOUT"])
        if "FAULTPOST_APP_VERSION" in os.environ:
            options["app_version"] = os.environ["FAULTPOST_APP_VERSION"]
        options.update(overrides)
        return cls(**options)

    @classmethod
    def option_names(cls) -> frozenset[str]:
        """Names accepted by :meth:`update`."""
        return frozenset(f.name for f in fields(cls) if not f.name.startswith("_"))

    def update(self, **options: Any) -> Configuration:
        """Set several options at once, rejecting unknown names and bad ignore rules."""
        unknown = set(options) - self.option_names()
        if unknown:
            msg = f"Unknown configuration option(s): {', '.join(sorted(unknown))}"
            raise TypeError(msg)
        _check_ignore_rules(
            options.get("ignore_classes", self.ignore_classes),
            options.get("ignore_user_agents", self.ignore_user_agents),
        )
        for name, value in options.items():
            setattr(self, name, value)
        return self

    # -- derived values -----------------------------------------------------

    @property
    def notify_url(self) -> str:
        scheme = "https" if self.use_ssl else "http"
        return f"{scheme}://{self.endpoint}"

    def proxy_url(self) -> str | None:
        """Return the proxy URL, or ``None`` when no proxy host is set."""
        if not self.proxy_host:
            return None
        userinfo = ""
        if self.proxy_user:
            userinfo = quote(self.proxy_user, safe="")
            if self.proxy_password:
                userinfo += ":" + quote(self.proxy_password, safe="")
            userinfo += "@"
        port = f":{self.proxy_port}" if self.proxy_port else ""
        return f"http://{userinfo}{self.proxy_host}{port}"

    @contextmanager
    def with_api_key(self, api_key: str) -> Iterator[Configuration]:
        """Use *api_key* for the duration of a ``with`` block."""
        previous = self.api_key
        self.api_key = api_key
        try:
            yield self
        finally:
            self.api_key = previous

    # -- callbacks ----------------------------------------------------------

    def add_before_notify(self, callback: Callback) -> Callback:
        """Register *callback* to run before delivery.

        Callbacks receive the :class:`~faultpost.notification.Notification`
        and run in registration order.  Returning ``False`` cancels
        delivery.  Usable as a decorator.
        """
        self._before_callbacks.append(callback)
        return callback

    def add_after_notify(self, callback: Callback) -> Callback:
        """Register *callback* to run after each delivery attempt."""
        self._after_callbacks.append(callback)
        return callback

    @property
    def before_notify_callbacks(self) -> tuple[Callback, ...]:
        return tuple(self._before_callbacks)

    @property
    def after_notify_callbacks(self) -> tuple[Callback, ...]:
        return tuple(self._after_callbacks)

    # -- per-request data ---------------------------------------------------

    @property
    def request_data(self) -> dict[str, Any]:
        """Data captured for the current request or task (context-local)."""
        return dict(_request_data.get() or {})

    def set_request_data(self, key: str, value: Any) -> None:
        data = dict(_request_data.get() or {})
        data[key] = value
        _request_data.set(data)

    def clear_request_data(self) -> None:
        _request_data.set(None)
