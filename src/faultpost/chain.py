"""Exception chain unwrapping.

Follows the "caused-by" links of an exception and returns the chain root
first, oldest cause last.
"""

from __future__ import annotations

from typing import Any

MAX_EXCEPTION_CHAIN = 5


def caused_by(exception: Any) -> Any | None:
    """Return the exception that caused *exception*, if any.

    An explicit ``original_exception`` attribute (set by wrappers that
    re-raise) wins over Python's own ``__cause__`` / ``__context__``.
    Implicit context is skipped after ``raise ... from None``.
    """
    original = getattr(exception, "original_exception", None)
    if original is not None:
        return original

    cause = getattr(exception, "__cause__", None)
    if cause is None and not getattr(exception, "__suppress_context__", False):
        cause = getattr(exception, "__context__", None)
    return cause


def unwrap_exceptions(exception: Any, max_depth: int = MAX_EXCEPTION_CHAIN) -> list[Any]:
    """Collect *exception* and its causes, at most *max_depth* of them.

    Traversal stops at the first cause that is already in the chain, so a
    self-referential or cyclic chain never repeats an object.
    """
    chain = [exception]
    current = exception
    while len(chain) < max_depth:
        current = caused_by(current)
        if current is None or any(current is seen for seen in chain):
            break
        chain.append(current)
    return chain
