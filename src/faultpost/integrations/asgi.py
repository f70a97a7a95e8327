"""ASGI middleware that reports unhandled exceptions.

Works with any ASGI framework (FastAPI, Starlette, Litestar, etc.).
For every HTTP/WebSocket request the middleware captures a ``request``
metadata tab and the User-Agent as per-request data, and reports any
exception escaping the application as a ``fatal`` event before
re-raising it.

Usage::

    from faultpost.integrations.asgi import FaultpostMiddleware

    app = FaultpostMiddleware(app)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeAlias

from faultpost.notifier import Notifier, default_notifier

Scope: TypeAlias = dict[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[dict[str, Any]]]
Send: TypeAlias = Callable[[dict[str, Any]], Awaitable[None]]
ASGIApp: TypeAlias = Callable[[Scope, Receive, Send], Awaitable[None]]


def _decode(raw: bytes) -> str:
    return raw.decode("latin-1")


def request_data_from_scope(scope: Scope) -> dict[str, Any]:
    """Build per-request data (``meta_data`` tab and ``user_agent``)."""
    headers = {_decode(k): _decode(v) for k, v in scope.get("headers", [])}
    client = scope.get("client")
    query = scope.get("query_string", b"")

    request: dict[str, Any] = {
        "method": scope.get("method", "WS"),
        "path": scope.get("path", ""),
        "clientIp": client[0] if client else "",
        "headers": headers,
    }
    if query:
        request["queryString"] = _decode(query)

    data: dict[str, Any] = {"meta_data": {"request": request}}
    if "user-agent" in headers:
        data["user_agent"] = headers["user-agent"]
    return data


class FaultpostMiddleware:
    """Report exceptions raised by the wrapped ASGI application.

    Parameters
    ----------
    app:
        The ASGI application to wrap.
    notifier:
        Notifier to report through.  Defaults to the process-wide one.
    """

    def __init__(self, app: ASGIApp, *, notifier: Notifier | None = None) -> None:
        self.app = app
        self.notifier = notifier

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        notifier = self.notifier or default_notifier()
        config = notifier.configuration
        request_data = request_data_from_scope(scope)

        config.clear_request_data()
        for key, value in request_data.items():
            config.set_request_data(key, value)

        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            notifier.auto_notify(exc, request_data=config.request_data)
            raise
        finally:
            config.clear_request_data()
