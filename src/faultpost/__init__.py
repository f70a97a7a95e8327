"""faultpost — report application errors to a Bugsnag-compatible collector."""

from faultpost.chain import unwrap_exceptions
from faultpost.configuration import Configuration
from faultpost.delivery import Deliverer, HttpDeliverer
from faultpost.ignore import ByClassName, ByMessagePattern, ByPredicate
from faultpost.log import configure_logging
from faultpost.metadata import MetaData
from faultpost.notification import Notification
from faultpost.notifier import (
    Notifier,
    add_after_notify,
    add_before_notify,
    auto_notify,
    clear_request_data,
    configure,
    get_configuration,
    notify,
    set_request_data,
)
from faultpost.stacktrace import StackFrame, parse_backtrace
from faultpost.version import __version__

__all__ = [
    "ByClassName",
    "ByMessagePattern",
    "ByPredicate",
    "Configuration",
    "Deliverer",
    "HttpDeliverer",
    "MetaData",
    "Notification",
    "Notifier",
    "StackFrame",
    "__version__",
    "add_after_notify",
    "add_before_notify",
    "auto_notify",
    "clear_request_data",
    "configure",
    "configure_logging",
    "get_configuration",
    "notify",
    "parse_backtrace",
    "set_request_data",
    "unwrap_exceptions",
]
