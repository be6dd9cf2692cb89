"""Core types shared across the L-BFGS-B solver components.

The solver reports its outcome as a :class:`PointValueGradient` paired with an
:class:`ExitStatus`. Exit codes carry the stable, hyphenated names used in
log lines and messages (``"converged-gradient"``, ``"iteration-limit"``...).

References:
    - Byrd, Lu, Nocedal & Zhu, *A Limited Memory Algorithm for Bound
      Constrained Optimization*, SIAM J. Sci. Comput. 16(5), 1995.
    - Zhu, Byrd, Lu & Nocedal, *Algorithm 778: L-BFGS-B*, ACM TOMS 23(4), 1997.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional

import numpy as np

Array = np.ndarray

EPSMCH = float(np.finfo(float).eps)
"""Machine epsilon for float64 (2.22e-16)."""

MAX_MEMORY_DEPTH = 17
"""Largest number of correction pairs a solver may retain."""

BIG_STEP = 1e10
"""Step cap used by the line search when no bound limits the direction."""


class LbfgsbError(Exception):
    """Base class for all errors raised by lbfgsb."""


class InvalidInputError(LbfgsbError, ValueError):
    """Raised for malformed problems or options, before any evaluation."""


class ObjectiveError(LbfgsbError):
    """Raised by objective callbacks to abort the current solve."""


class NumericalBreakdown(LbfgsbError, ArithmeticError):
    """The limited-memory model lost positive curvature or became singular."""


class ReentrancyError(LbfgsbError, RuntimeError):
    """A solver instance was entered while a solve was already in progress."""


class ExitCode(Enum):
    """Terminal status of a call to ``Lbfgsb.minimize``."""

    CONVERGED_GRADIENT = "converged-gradient"
    CONVERGED_OBJECTIVE = "converged-objective"
    APPROXIMATE = "approximate"
    ITERATION_LIMIT = "iteration-limit"
    EVALUATION_LIMIT = "evaluation-limit"
    LINESEARCH_FAILED = "linesearch-failed"
    OBJECTIVE_FAILED = "objective-failed"
    INVALID_INPUT = "invalid-input"


_CONVERGED = frozenset({ExitCode.CONVERGED_GRADIENT, ExitCode.CONVERGED_OBJECTIVE})


@dataclass(frozen=True)
class ExitStatus:
    """
    Outcome of a solve.

    Attributes:
        code: Machine-readable exit code.
        message: Human-readable explanation.
        iterations: Outer iterations completed.
        evaluations: Objective callback invocations.
    """

    code: ExitCode
    message: str
    iterations: int = 0
    evaluations: int = 0

    @property
    def converged(self) -> bool:
        return self.code in _CONVERGED

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class Printing(IntEnum):
    """Solver log verbosity, from quiet to chatty."""

    SILENT = 0
    SUMMARY = 1
    ITERATIONS = 2
    VERBOSE = 3

    @classmethod
    def coerce(cls, level: "Printing | str | int") -> "Printing":
        """Accept an enum member, its name (any case) or its integer value."""
        if isinstance(level, cls):
            return level
        if isinstance(level, str):
            try:
                return cls[level.strip().upper()]
            except KeyError:
                raise InvalidInputError(f"Unknown printing level {level!r}.") from None
        try:
            return cls(int(level))
        except ValueError:
            raise InvalidInputError(f"Unknown printing level {level!r}.") from None


@dataclass(frozen=True)
class PointValueGradient:
    """A point ``x`` together with the objective value and gradient there."""

    x: Array
    f: float
    g: Array

    def __repr__(self) -> str:
        return (
            f"PointValueGradient(x={np.array2string(self.x)}, f={self.f!r}, "
            f"g={np.array2string(self.g)})"
        )


@dataclass(frozen=True)
class IterationInfo:
    """Per-iteration report passed to iteration callbacks and kept in history."""

    iteration: int
    evaluations: int
    x: Array
    f: float
    g: Array
    f_delta: float
    projected_gradient_norm: float
    step: float
    memory_size: int
    linesearch_outcome: Optional[str] = None
    notes: tuple[str, ...] = field(default_factory=tuple)


__all__ = [
    "Array",
    "BIG_STEP",
    "EPSMCH",
    "ExitCode",
    "ExitStatus",
    "InvalidInputError",
    "IterationInfo",
    "LbfgsbError",
    "MAX_MEMORY_DEPTH",
    "NumericalBreakdown",
    "ObjectiveError",
    "PointValueGradient",
    "Printing",
    "ReentrancyError",
]
