"""Diagnostics and debugging utilities for lbfgsb."""

from .core import assert_admissible, assert_feasible, assert_finite
from .debug_mode import debug_context, is_debug_enabled, set_debug_enabled

__all__ = [
    "assert_admissible",
    "assert_feasible",
    "assert_finite",
    "debug_context",
    "is_debug_enabled",
    "set_debug_enabled",
]
