"""Flask integration for faultpost.

Captures request data in ``before_request``, reports unhandled exceptions
through Flask's ``got_request_exception`` signal, and clears the
per-request data on teardown.

Usage::

    from faultpost.integrations.flask import setup_flask_notifier

    app = Flask(__name__)
    setup_flask_notifier(app)
"""

from __future__ import annotations

from typing import Any

from faultpost.notifier import Notifier, default_notifier


def request_data_from_flask(request: Any) -> dict[str, Any]:
    """Build per-request data from a :class:`flask.Request`."""
    headers = {name.lower(): value for name, value in request.headers.items()}
    data: dict[str, Any] = {
        "meta_data": {
            "request": {
                "url": request.url,
                "method": request.method,
                "path": request.path,
                "clientIp": request.remote_addr or "",
                "params": dict(request.args),
                "headers": headers,
            },
        },
    }
    agent = headers.get("user-agent")
    if agent:
        data["user_agent"] = agent
    return data


def setup_flask_notifier(app: Any, *, notifier: Notifier | None = None) -> None:
    """Register Flask hooks that report unhandled exceptions.

    Parameters
    ----------
    app:
        A :class:`flask.Flask` application.
    notifier:
        Notifier to report through.  Defaults to the process-wide one.
    """
    from flask import got_request_exception

    def _notifier() -> Notifier:
        return notifier or default_notifier()

    @app.before_request  # type: ignore[untyped-decorator]
    def _capture_request() -> None:
        from flask import request

        config = _notifier().configuration
        config.clear_request_data()
        for key, value in request_data_from_flask(request).items():
            config.set_request_data(key, value)

    def _report_exception(_sender: Any, exception: BaseException, **_kw: Any) -> None:
        n = _notifier()
        n.auto_notify(exception, request_data=n.configuration.request_data)

    got_request_exception.connect(_report_exception, app, weak=False)

    @app.teardown_request  # type: ignore[untyped-decorator]
    def _clear_request(exc: BaseException | None = None) -> None:
        _notifier().configuration.clear_request_data()
