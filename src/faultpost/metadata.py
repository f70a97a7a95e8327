"""Event metadata: merging, filtering and truncation.

Metadata is a tree of *tabs*: ``{tab: {field: value}}`` where values may
be nested mappings.  Several sources contribute to one event and are
deep-merged in increasing priority:

1. ``meta_data`` captured in the per-request data (integrations),
2. metadata attached to the exception (:class:`MetaData` mixin),
3. the legacy ``meta_data`` key of the overrides,
4. the overrides themselves, read as tabs.

Before delivery every key containing one of the configured filter
substrings has its value replaced, and oversized payloads have their
longest strings cut.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from faultpost.delivery import encode_payload

FILTERED = "[FILTERED]"
TRUNCATED = "[TRUNCATED]"
RECURSIVE = "[RECURSIVE]"

MAX_PAYLOAD_BYTES = 128_000
MAX_STRING_LENGTH = 4096
MIN_STRING_LENGTH = 64

CUSTOM_TAB = "custom"
SPECIAL_KEYS: frozenset[str] = frozenset({"severity", "context", "user_id", "api_key", "meta_data"})


class MetaData:
    """Mixin for exceptions that carry their own reporting data.

    Example::

        class PaymentDeclined(MetaData, Exception):
            pass

        exc = PaymentDeclined("card declined")
        exc.faultpost_meta_data = {"payment": {"gateway": "acme"}}
        exc.faultpost_user_id = "user-17"
    """

    faultpost_meta_data: dict[str, Any] | None = None
    faultpost_user_id: str | None = None
    faultpost_context: str | None = None
    faultpost_severity: str | None = None


@runtime_checkable
class HasMetaData(Protocol):
    faultpost_meta_data: dict[str, Any] | None
    faultpost_user_id: str | None
    faultpost_context: str | None


@dataclass
class ResolvedMetaData:
    """Top-level event fields and the merged metadata tree."""

    meta_data: dict[str, Any] = field(default_factory=dict)
    severity: str | None = None
    context: str | None = None
    user_id: str | None = None
    api_key: str | None = None


def _copy_tree(value: Any, path: frozenset[int] = frozenset()) -> Any:
    """Copy nested mappings and lists so caller-owned data is never mutated.

    A container that refers back to one of its ancestors is replaced by
    ``RECURSIVE`` in the copy, so the result is acyclic and serializable.
    """
    if isinstance(value, (Mapping, list, tuple)):
        if id(value) in path:
            return RECURSIVE
        inner = path | {id(value)}
        if isinstance(value, Mapping):
            return {k: _copy_tree(v, inner) for k, v in value.items()}
        return [_copy_tree(v, inner) for v in value]
    return value


def deep_merge(target: dict[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    """Merge *source* into *target* in place; *source* wins per field."""
    for key, value in source.items():
        existing = target.get(key)
        if isinstance(value, Mapping) and isinstance(existing, dict):
            deep_merge(existing, value)
        else:
            target[key] = _copy_tree(value)
    return target


def overrides_as_tabs(overrides: Any) -> dict[str, Any]:
    """Interpret caller overrides as tabs.

    Mapping values become tabs of their own; any other value is collected
    into the ``custom`` tab.  Special keys are skipped.
    """
    if overrides is None:
        return {}
    if not isinstance(overrides, Mapping):
        return {CUSTOM_TAB: {"value": overrides}}

    tabs: dict[str, Any] = {}
    custom: dict[str, Any] = {}
    for key, value in overrides.items():
        if key in SPECIAL_KEYS:
            continue
        if isinstance(value, Mapping):
            tabs[key] = value
        else:
            custom[key] = value
    if custom:
        tabs[CUSTOM_TAB] = {**tabs.get(CUSTOM_TAB, {}), **custom}
    return tabs


def resolve_meta_data(
    exception: Any,
    overrides: Any = None,
    request_data: Mapping[str, Any] | None = None,
) -> ResolvedMetaData:
    """Combine every metadata source for one event."""
    resolved = ResolvedMetaData()
    special: Mapping[str, Any] = overrides if isinstance(overrides, Mapping) else {}

    if request_data and isinstance(request_data.get("meta_data"), Mapping):
        deep_merge(resolved.meta_data, request_data["meta_data"])

    if isinstance(exception, HasMetaData):
        if isinstance(exception.faultpost_meta_data, Mapping):
            deep_merge(resolved.meta_data, exception.faultpost_meta_data)
        resolved.user_id = exception.faultpost_user_id
        resolved.context = exception.faultpost_context
        resolved.severity = getattr(exception, "faultpost_severity", None)

    if isinstance(special.get("meta_data"), Mapping):
        deep_merge(resolved.meta_data, special["meta_data"])
    deep_merge(resolved.meta_data, overrides_as_tabs(overrides))

    for name in ("severity", "context", "user_id", "api_key"):
        if special.get(name) is not None:
            setattr(resolved, name, special[name])
    return resolved


class ParamsFilter:
    """Replace values whose key contains a filtered substring.

    Matching is case-sensitive substring containment.  ``None`` values are
    left untouched so that the key still shows up in the report.

    Parameters
    ----------
    filters:
        Substrings to look for in keys.
    replacement:
        Value substituted for filtered values.
    """

    def __init__(self, filters: list[str] | tuple[str, ...], *, replacement: str = FILTERED) -> None:
        self._filters = tuple(f for f in filters if f)
        self._replacement = replacement

    def __call__(self, tree: dict[str, Any]) -> dict[str, Any]:
        if self._filters:
            self._filter_dict(tree, set())
        return tree

    def is_filtered(self, key: Any) -> bool:
        return isinstance(key, str) and any(f in key for f in self._filters)

    def _filter_dict(self, d: dict[str, Any], seen: set[int]) -> None:
        obj_id = id(d)
        if obj_id in seen:
            return
        seen.add(obj_id)
        for key in list(d):
            if self.is_filtered(key):
                if d[key] is not None:
                    d[key] = self._replacement
            else:
                d[key] = self._filter_value(d[key], seen)

    def _filter_value(self, value: Any, seen: set[int]) -> Any:
        if isinstance(value, dict):
            self._filter_dict(value, seen)
            return value
        if isinstance(value, list):
            obj_id = id(value)
            if obj_id in seen:
                return value
            seen.add(obj_id)
            return [self._filter_value(item, seen) for item in value]
        return value


def truncate_strings(value: Any, limit: int) -> Any:
    """Return a copy of *value* with every string cut to *limit* characters."""
    if isinstance(value, str):
        if len(value) > limit:
            return value[:limit] + TRUNCATED
        return value
    if isinstance(value, dict):
        return {k: truncate_strings(v, limit) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [truncate_strings(v, limit) for v in value]
    return value


def fit_payload(payload: dict[str, Any], max_bytes: int = MAX_PAYLOAD_BYTES) -> bytes:
    """Encode *payload*, shrinking event metadata until it fits *max_bytes*.

    Strings longer than the current limit are cut first; the limit halves
    on each pass down to ``MIN_STRING_LENGTH``.  The result may still
    exceed *max_bytes* when the overflow is not in metadata.
    """
    body = encode_payload(payload)
    limit = MAX_STRING_LENGTH
    while len(body) > max_bytes and limit >= MIN_STRING_LENGTH:
        events = [
            {**event, "metaData": truncate_strings(event.get("metaData", {}), limit)}
            for event in payload.get("events", [])
        ]
        payload = {**payload, "events": events}
        body = encode_payload(payload)
        limit //= 2
    return body
