"""Backtrace normalization.

Backtraces travel as lists of frame strings::

    /srv/app/views.py:42:in `checkout'
    C:/projects/app/tasks.py:7

:func:`backtrace_for` produces such lines from a Python exception and
:func:`parse_backtrace` turns them into :class:`StackFrame` records for
the wire payload.
"""

from __future__ import annotations

import os
import re
import traceback
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

_FRAME_RE = re.compile(
    r"^(?P<file>(?:[A-Za-z]:[\\/]|/)[^:]*)"
    r":(?P<line>\d+)"
    r"(?::in `(?P<method>[^']*)')?$"
)

NON_PROJECT_MARKERS: tuple[str, ...] = ("site-packages", "dist-packages", "/vendor/")

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


@runtime_checkable
class HasBacktrace(Protocol):
    """An exception carrying its own pre-formatted backtrace lines."""

    backtrace: Sequence[str]


@dataclass(frozen=True)
class StackFrame:
    file: str
    line_number: int
    method: str | None = None
    in_project: bool = False

    def as_dict(self) -> dict[str, Any]:
        frame: dict[str, Any] = {"file": self.file, "lineNumber": self.line_number}
        if self.method is not None:
            frame["method"] = self.method
        if self.in_project:
            frame["inProject"] = True
        return frame


def format_frame(filename: str, lineno: int | None, name: str | None) -> str:
    line = f"{filename}:{lineno or 0}"
    if name:
        line += f":in `{name}'"
    return line


def _is_internal(filename: str) -> bool:
    return os.path.abspath(filename).startswith(_PACKAGE_DIR + os.sep)


def backtrace_for(exception: Any) -> list[str]:
    """Return frame lines for *exception*, innermost call first.

    An exception that was never raised has no traceback; the current call
    stack (without this package's frames) is used instead.
    """
    if isinstance(exception, HasBacktrace) and not isinstance(exception.backtrace, str):
        return [str(line) for line in exception.backtrace]

    tb = getattr(exception, "__traceback__", None)
    if tb is not None:
        summary: Iterable[traceback.FrameSummary] = traceback.extract_tb(tb)
    else:
        summary = [fs for fs in traceback.extract_stack() if not _is_internal(fs.filename)]
    return [format_frame(fs.filename, fs.lineno, fs.name) for fs in reversed(list(summary))]


def _in_project(file: str, project_root: str | None) -> bool:
    if not project_root:
        return False
    root = os.path.join(os.path.abspath(project_root), "")
    if not file.startswith(root):
        return False
    return not any(marker in file for marker in NON_PROJECT_MARKERS)


def parse_frame(line: str) -> StackFrame | None:
    """Parse a single frame line, or return ``None`` if it is malformed."""
    match = _FRAME_RE.match(line.strip())
    if match is None:
        return None
    return StackFrame(
        file=match.group("file"),
        line_number=int(match.group("line")),
        method=match.group("method"),
    )


def parse_backtrace(lines: Iterable[str], project_root: str | None = None) -> list[StackFrame]:
    """Parse *lines* into frames, preserving order.

    Malformed lines are dropped.  Only the first frame may be flagged as
    in-project.
    """
    frames: list[StackFrame] = []
    for line in lines:
        frame = parse_frame(line)
        if frame is None:
            continue
        if not frames and _in_project(frame.file, project_root):
            frame = StackFrame(frame.file, frame.line_number, frame.method, in_project=True)
        frames.append(frame)
    return frames
