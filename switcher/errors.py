"""
Error types raised by the switcher core.

Every synchronous mixer operation either succeeds or raises exactly one of the
exceptions below.  The asynchronous attach path never raises; it only logs.
"""

from __future__ import annotations


class SwitcherError(RuntimeError):
    """Base class for switcher related errors."""


class GraphError(SwitcherError):
    """Raised when GStreamer rejects an element, property, state or link operation."""


class NotFound(SwitcherError):
    """Raised when an operation references an unknown input, output or mixer."""


class AlreadyExists(SwitcherError):
    """Raised when adding an input, output or mixer whose name is already taken."""


class SystemFailure(SwitcherError):
    """Raised on host failures: missing GStreamer runtime, clock or filesystem errors."""
