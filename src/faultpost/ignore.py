"""Decide whether a notification should be suppressed.

``ignore_classes`` accepts three kinds of entries, normalized into tagged
rules by :func:`as_rule`:

* a class name (``"KeyboardInterrupt"`` or ``"myapp.errors.NotFound"``),
* a compiled regex, searched in the exception message,
* a predicate called with the exception.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from faultpost.configuration import Configuration


@dataclass(frozen=True)
class ByClassName:
    name: str


@dataclass(frozen=True)
class ByMessagePattern:
    pattern: re.Pattern[str]


@dataclass(frozen=True)
class ByPredicate:
    predicate: Callable[[BaseException], Any]


IgnoreRule: TypeAlias = "ByClassName | ByMessagePattern | ByPredicate"


def as_rule(value: Any) -> IgnoreRule:
    """Normalize a configured ``ignore_classes`` entry."""
    if isinstance(value, (ByClassName, ByMessagePattern, ByPredicate)):
        return value
    if isinstance(value, str):
        return ByClassName(value)
    if isinstance(value, re.Pattern):
        return ByMessagePattern(value)
    if isinstance(value, type) and issubclass(value, BaseException):
        return ByClassName(value.__name__)
    if callable(value):
        return ByPredicate(value)
    msg = f"Unsupported ignore rule: {value!r}"
    raise TypeError(msg)


def class_names(exception: BaseException) -> frozenset[str]:
    cls = type(exception)
    return frozenset({cls.__name__, f"{cls.__module__}.{cls.__qualname__}"})


def matches(rule: IgnoreRule, exception: BaseException, logger: Any = None) -> bool:
    """Evaluate one rule against *exception*.

    A predicate that raises is logged and treated as no match.
    """
    if isinstance(rule, ByClassName):
        return rule.name in class_names(exception)
    if isinstance(rule, ByMessagePattern):
        return rule.pattern.search(str(exception)) is not None
    try:
        return bool(rule.predicate(exception))
    except Exception as exc:
        if logger is not None:
            logger.warning("Ignore predicate failed", predicate=repr(rule.predicate), error=repr(exc))
        return False


def user_agent_from(request_data: Mapping[str, Any] | None) -> str | None:
    """Find the captured User-Agent in per-request data.

    Looks at an explicit ``user_agent`` entry, then a WSGI ``environ``,
    then ASGI ``headers``.
    """
    if not request_data:
        return None
    agent = request_data.get("user_agent")
    if agent:
        return str(agent)

    environ = request_data.get("environ")
    if isinstance(environ, Mapping) and environ.get("HTTP_USER_AGENT"):
        return str(environ["HTTP_USER_AGENT"])

    headers = request_data.get("headers") or ()
    if isinstance(headers, Mapping):
        headers = headers.items()
    for name, value in headers:
        if isinstance(name, bytes):
            name = name.decode("latin-1")
        if name.lower() == "user-agent":
            return value.decode("latin-1") if isinstance(value, bytes) else str(value)
    return None


def suppression_reason(
    exception: BaseException,
    configuration: Configuration,
    request_data: Mapping[str, Any] | None = None,
    *,
    api_key: str | None = None,
) -> str | None:
    """Return why the notification must not be sent, or ``None`` to send it."""
    if not (api_key or configuration.api_key):
        return "missing api_key"

    stage = configuration.release_stage
    stages = configuration.notify_release_stages
    if stage and stages and stage not in stages:
        return "release_stage"

    for entry in configuration.ignore_classes:
        if matches(as_rule(entry), exception, configuration.logger):
            return "ignore_classes"

    agent = user_agent_from(request_data)
    if agent:
        for pattern in configuration.ignore_user_agents:
            if re.search(pattern, agent):
                return "ignore_user_agents"
    return None
