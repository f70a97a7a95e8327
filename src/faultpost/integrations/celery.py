"""Celery integration for faultpost.

Two independent pieces:

* :func:`setup_celery_notifier` reports task failures as ``fatal`` events
  with a ``task`` metadata tab.
* :class:`CeleryDeliverer` hands delivery to a Celery worker instead of
  posting from the calling thread.

Usage::

    from faultpost import configure
    from faultpost.integrations.celery import CeleryDeliverer, setup_celery_notifier

    setup_celery_notifier()
    configure(deliverer=CeleryDeliverer(celery_app))
"""

from __future__ import annotations

from typing import Any

import structlog

from faultpost.configuration import Configuration
from faultpost.delivery import HttpDeliverer
from faultpost.notifier import Notifier, default_notifier

DELIVER_TASK_NAME = "faultpost.deliver"


def setup_celery_notifier(*, notifier: Notifier | None = None) -> None:
    """Connect Celery signals that report failing tasks.

    Parameters
    ----------
    notifier:
        Notifier to report through.  Defaults to the process-wide one.
    """
    from celery.signals import task_failure, task_postrun

    @task_failure.connect(weak=False)  # type: ignore[untyped-decorator]
    def _report_failure(
        sender: Any = None,
        task_id: str | None = None,
        exception: BaseException | None = None,
        args: Any = None,
        kwargs: Any = None,
        **_kw: Any,
    ) -> None:
        if exception is None:
            return
        task_tab: dict[str, Any] = {"id": task_id, "args": args, "kwargs": kwargs}
        if sender is not None:
            task_tab["name"] = getattr(sender, "name", repr(sender))
        n = notifier or default_notifier()
        n.auto_notify(exception, {"task": task_tab}, request_data=n.configuration.request_data)

    @task_postrun.connect(weak=False)  # type: ignore[untyped-decorator]
    def _clear_request(**_kw: Any) -> None:
        (notifier or default_notifier()).configuration.clear_request_data()


class CeleryDeliverer:
    """Deliver payloads from a Celery worker.

    Registers a task named *task_name* on *app* that performs the HTTP
    POST with :class:`~faultpost.delivery.HttpDeliverer`.

    Parameters
    ----------
    app:
        The :class:`celery.Celery` application.
    timeout:
        HTTP timeout used by the worker.
    proxy:
        Proxy URL used by the worker.
    logger:
        structlog-style logger for enqueue failures.
    task_name:
        Name of the registered delivery task.
    """

    def __init__(
        self,
        app: Any,
        *,
        timeout: float = 5.0,
        proxy: str | None = None,
        logger: Any = None,
        task_name: str = DELIVER_TASK_NAME,
    ) -> None:
        self._log = logger if logger is not None else structlog.get_logger("faultpost")
        http = HttpDeliverer(timeout=timeout, proxy=proxy, logger=self._log)

        @app.task(name=task_name, ignore_result=True)  # type: ignore[untyped-decorator]
        def _deliver(url: str, body: str) -> bool:
            return http.deliver(url, body.encode())

        self.task = _deliver

    @classmethod
    def from_configuration(cls, app: Any, configuration: Configuration, **kwargs: Any) -> CeleryDeliverer:
        return cls(
            app,
            timeout=configuration.timeout,
            proxy=configuration.proxy_url(),
            logger=configuration.logger,
            **kwargs,
        )

    def deliver(self, url: str, body: bytes) -> bool:
        try:
            self.task.delay(url, body.decode())
        except Exception as exc:
            self._log.warning("Failed to enqueue notification", endpoint=url, error=repr(exc))
            return False
        return True
