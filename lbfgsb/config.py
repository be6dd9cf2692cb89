"""Solver configuration."""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, fields, replace
from typing import Any, Optional

from .bounds import Bounds
from .core import MAX_MEMORY_DEPTH, InvalidInputError, Printing

DEFAULT_MEMORY_DEPTH = 5
DEFAULT_F_TOLERANCE = 1e7
DEFAULT_G_TOLERANCE = 1e-5
DEFAULT_MAX_ITERATIONS = 100
DEFAULT_MAX_EVALUATIONS = 1000


@dataclass(frozen=True)
class SolverConfig:
    """
    Options for :class:`lbfgsb.Lbfgsb`.

    Args:
        memory_depth: Number of correction pairs retained, in [1, 17].
        f_tolerance: Multiplier on machine epsilon for the relative
            objective-change test. 1e12 is loose, 1e7 moderate, 10 tight;
            0 disables the test.
        g_tolerance: Tolerance on the infinity norm of the projected
            gradient.
        max_iterations: Cap on outer iterations.
        max_evaluations: Cap on objective callback invocations.
        bounds: Box constraints, or None for an unconstrained problem.
        printing: Log verbosity.
        c1: Sufficient-decrease constant of the line search.
        c2: Curvature constant of the line search.
        xtol: Relative width below which a line-search interval is
            considered too small to refine.
        max_linesearch_evaluations: Per-search evaluation cap.
        keep_history: Record an :class:`~lbfgsb.core.IterationInfo` per
            iteration in ``Lbfgsb.history``.
    """

    memory_depth: int = DEFAULT_MEMORY_DEPTH
    f_tolerance: float = DEFAULT_F_TOLERANCE
    g_tolerance: float = DEFAULT_G_TOLERANCE
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    max_evaluations: int = DEFAULT_MAX_EVALUATIONS
    bounds: Optional[Bounds] = None
    printing: Printing = Printing.SILENT
    c1: float = 1e-4
    c2: float = 0.9
    xtol: float = 0.1
    max_linesearch_evaluations: int = 20
    keep_history: bool = False

    def __post_init__(self) -> None:
        """Validate option ranges."""
        if isinstance(self.memory_depth, bool) or not isinstance(
            self.memory_depth, numbers.Integral
        ):
            raise InvalidInputError(
                f"memory_depth must be an integer, got {self.memory_depth!r}."
            )
        if not 1 <= self.memory_depth <= MAX_MEMORY_DEPTH:
            raise InvalidInputError(
                f"memory_depth must be in [1, {MAX_MEMORY_DEPTH}], got {self.memory_depth}."
            )
        for name in ("f_tolerance", "g_tolerance"):
            value = getattr(self, name)
            if math.isnan(value) or value < 0:
                raise InvalidInputError(f"{name} must be non-negative, got {value}.")
        if self.max_iterations < 0:
            raise InvalidInputError(
                f"max_iterations must be >= 0, got {self.max_iterations}."
            )
        if self.max_evaluations < 1:
            raise InvalidInputError(
                f"max_evaluations must be >= 1, got {self.max_evaluations}."
            )
        if not (0.0 < self.c1 < self.c2 < 1.0):
            raise InvalidInputError(
                f"Require 0 < c1 < c2 < 1, got c1={self.c1}, c2={self.c2}."
            )
        if not 0.0 <= self.xtol < 1.0:
            raise InvalidInputError(f"xtol must be in [0, 1), got {self.xtol}.")
        if self.max_linesearch_evaluations < 1:
            raise InvalidInputError(
                "max_linesearch_evaluations must be >= 1, got "
                f"{self.max_linesearch_evaluations}."
            )
        if self.bounds is not None and not isinstance(self.bounds, Bounds):
            raise InvalidInputError(
                f"bounds must be a Bounds instance, got {type(self.bounds).__name__}."
            )
        object.__setattr__(self, "printing", Printing.coerce(self.printing))

    def with_options(self, **options: Any) -> "SolverConfig":
        """Return a copy with the given fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise InvalidInputError(f"Unknown solver option(s): {', '.join(unknown)}.")
        return replace(self, **options)


__all__ = [
    "DEFAULT_F_TOLERANCE",
    "DEFAULT_G_TOLERANCE",
    "DEFAULT_MAX_EVALUATIONS",
    "DEFAULT_MAX_ITERATIONS",
    "DEFAULT_MEMORY_DEPTH",
    "SolverConfig",
]
