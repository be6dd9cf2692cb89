"""
Objective-function protocol.

The solver only needs one capability: given ``x`` return the value and the
gradient there. :class:`Objective` is that capability; two adapters cover
the common shapes of client code:

* :class:`CombinedObjective` wraps ``fun(x) -> (f, g)``;
* :class:`SplitObjective` wraps ``function(x) -> f`` and
  ``gradient(x) -> g``, called in that order.

Callbacks receive a read-only view of the solver's iterate and must not keep
it. The returned gradient is copied. A callback aborts the solve by raising
:class:`~lbfgsb.core.ObjectiveError` or by returning non-finite values.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Tuple, Union

import numpy as np

from .core import InvalidInputError, ObjectiveError, PointValueGradient
from .line_search import EvaluationLimitReached

Array = np.ndarray
ValueAndGradient = Tuple[float, Union[Sequence[float], Array]]

# Raised inside callbacks and treated as objective failure.
_FAILURE_EXCEPTIONS = (ObjectiveError, FloatingPointError, ZeroDivisionError, OverflowError)


class Objective(ABC):
    """A function that evaluates its value and gradient together."""

    @abstractmethod
    def evaluate(self, x: Array) -> ValueAndGradient:
        """Return ``(f(x), ∇f(x))``."""

    def __call__(self, x: Array) -> ValueAndGradient:
        return self.evaluate(x)


@dataclass(frozen=True)
class CombinedObjective(Objective):
    """Adapter for a single callable returning ``(f, g)``."""

    fun: Callable[[Array], ValueAndGradient]

    def evaluate(self, x: Array) -> ValueAndGradient:
        return self.fun(x)


@dataclass(frozen=True)
class SplitObjective(Objective):
    """Adapter for separate value and gradient callables."""

    function: Callable[[Array], float]
    gradient: Callable[[Array], Union[Sequence[float], Array]]

    def evaluate(self, x: Array) -> ValueAndGradient:
        value = self.function(x)
        return value, self.gradient(x)


def as_objective(obj: Any) -> Objective:
    """
    Coerce client code into an :class:`Objective`.

    Accepted shapes, in order: an ``Objective``; an object with
    ``evaluate(x) -> f`` and ``evaluate_gradient(x) -> g`` methods; a pair
    ``(function, gradient)``; a callable returning ``(f, g)``.
    """
    if isinstance(obj, Objective):
        return obj
    if callable(getattr(obj, "evaluate", None)) and callable(
        getattr(obj, "evaluate_gradient", None)
    ):
        return SplitObjective(obj.evaluate, obj.evaluate_gradient)
    if isinstance(obj, tuple) and len(obj) == 2 and all(callable(f) for f in obj):
        return SplitObjective(obj[0], obj[1])
    if callable(obj):
        return CombinedObjective(obj)
    raise InvalidInputError(
        f"Cannot use {type(obj).__name__!s} as an objective; expected a callable "
        "returning (f, g), a (function, gradient) pair or an Objective."
    )


class Evaluator:
    """
    Counts and validates objective evaluations for one solve.

    The evaluator enforces the global evaluation budget, hands the callback a
    read-only view of ``x``, copies and checks the returned gradient and
    remembers the best point seen.
    """

    def __init__(self, objective: Objective, n: int, max_evaluations: int):
        self.objective = objective
        self.n = n
        self.max_evaluations = max_evaluations
        self.count = 0
        self.best: Optional[PointValueGradient] = None

    @property
    def exhausted(self) -> bool:
        return self.count >= self.max_evaluations

    def __call__(self, x: Array) -> PointValueGradient:
        if self.exhausted:
            raise EvaluationLimitReached(
                f"Evaluation budget of {self.max_evaluations} exhausted."
            )
        self.count += 1
        view = x.view()
        view.flags.writeable = False
        try:
            value, grad = self.objective.evaluate(view)
        except _FAILURE_EXCEPTIONS as exc:
            raise ObjectiveError(
                f"Objective failed at evaluation {self.count}: {exc}"
            ) from exc

        f = float(value)
        g = np.array(grad, dtype=float).reshape(-1)
        if g.size != self.n:
            raise ObjectiveError(
                f"Gradient has length {g.size}, expected {self.n} "
                f"(evaluation {self.count})."
            )
        if not np.isfinite(f) or not np.all(np.isfinite(g)):
            raise ObjectiveError(
                f"Objective returned non-finite values at evaluation {self.count}."
            )
        point = PointValueGradient(np.array(x, dtype=float, copy=True), f, g)
        if self.best is None or f < self.best.f:
            self.best = point
        return point


__all__ = [
    "CombinedObjective",
    "Evaluator",
    "Objective",
    "SplitObjective",
    "ValueAndGradient",
    "as_objective",
]
