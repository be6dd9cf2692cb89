"""Debug mode switch for solver invariant checking.

When debug mode is on, the driver re-verifies the iteration-boundary
invariants (feasible iterate, admissible memory, finite f and g) after every
outer iteration. The checks cost O(n·m) per iteration, so the flag defaults
to off and is read once from ``LBFGSB_DEBUG`` at import.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator

_DEBUG_ENV_VAR = "LBFGSB_DEBUG"
_TRUTHY = frozenset({"1", "true", "yes", "on"})

_debug_enabled: bool = os.getenv(_DEBUG_ENV_VAR, "0").strip().lower() in _TRUTHY


def is_debug_enabled() -> bool:
    """Return True when solver invariant checks are active."""
    return _debug_enabled


def set_debug_enabled(enabled: bool) -> None:
    """
    Globally switch invariant checking on or off.

    Parameters
    ----------
    enabled:
        New value of the flag.
    """
    global _debug_enabled
    _debug_enabled = bool(enabled)


@contextmanager
def debug_context(enabled: bool = True) -> Iterator[None]:
    """
    Temporarily set the debug flag, restoring the previous value on exit.

    Example
    -------
    >>> from lbfgsb import Lbfgsb
    >>> from lbfgsb.functions import sphere
    >>> with debug_context():
    ...     minimum, status = Lbfgsb().minimize(sphere, [1.0, 2.0])
    """
    global _debug_enabled
    previous = _debug_enabled
    _debug_enabled = bool(enabled)
    try:
        yield
    finally:
        _debug_enabled = previous


__all__ = ["debug_context", "is_debug_enabled", "set_debug_enabled"]
