"""
Moré-Thuente line search enforcing the strong Wolfe conditions.

Given ``phi(alpha) = f(x + alpha d)`` with ``phi'(0) < 0`` the search finds a
step satisfying

    phi(alpha) <= phi(0) + c1 * alpha * phi'(0)
    |phi'(alpha)| <= c2 * |phi'(0)|

The search starts in the *bracketing* state, extrapolating the trial step
(by at least a factor 2.1 from the origin) until an interval known to
contain an acceptable step is found, then switches to *zooming*, where
safeguarded cubic, quadratic and secant steps shrink the interval, falling
back to bisection whenever the interval does not shrink by a third.

References:
    - Moré & Thuente, *Line search algorithms with guaranteed sufficient
      decrease*, ACM TOMS 20(3), 1994 (MINPACK-2 ``dcsrch``/``dcstep``).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from .core import LbfgsbError, ObjectiveError, PointValueGradient

Array = np.ndarray

# Extrapolation bounds used while no bracket is known.
XTRAPL = 1.1
XTRAPU = 4.0


class SearchState(Enum):
    BRACKETING = "bracketing"
    ZOOMING = "zooming"


class LineSearchOutcome(Enum):
    """How a line search ended."""

    CONVERGED = "converged"
    INSUFFICIENT_DECREASE = "insufficient-decrease"
    STEP_AT_BOUND = "step-at-bound"
    BAD_INTERVAL = "bad-interval"
    ROUNDING = "rounding-errors"
    TOO_MANY_EVALUATIONS = "too-many-evaluations"
    OBJECTIVE_FAILED = "objective-failed"
    BUDGET_EXHAUSTED = "budget-exhausted"


@dataclass(frozen=True)
class LineSearchResult:
    """
    Result of a line search.

    ``point`` is the accepted trial (None when no trial improved on the
    starting point) and ``step`` the corresponding step length.
    """

    step: float
    point: Optional[PointValueGradient]
    evaluations: int
    outcome: LineSearchOutcome
    error: Optional[BaseException] = None

    @property
    def accepted(self) -> bool:
        return self.point is not None

    @property
    def is_warning(self) -> bool:
        return self.accepted and self.outcome is not LineSearchOutcome.CONVERGED


class EvaluationLimitReached(LbfgsbError):
    """The global objective-evaluation budget has been used up."""


def _cubic_minimizer_gamma(theta: float, da: float, db: float) -> float:
    s = max(abs(theta), abs(da), abs(db))
    if s == 0.0:
        return 0.0
    return s * math.sqrt(max(0.0, (theta / s) ** 2 - (da / s) * (db / s)))


def safeguarded_step(
    stx: float,
    fx: float,
    dx: float,
    sty: float,
    fy: float,
    dy: float,
    stp: float,
    fp: float,
    dp: float,
    bracketed: bool,
    stpmin: float,
    stpmax: float,
) -> tuple[float, float, float, float, float, float, float, bool]:
    """
    One Moré-Thuente interval update.

    ``(stx, fx, dx)`` is the best step so far, ``(sty, fy, dy)`` the other
    end of the interval and ``(stp, fp, dp)`` the latest trial. Returns the
    updated ``(stx, fx, dx, sty, fy, dy, new_stp, bracketed)``.
    """
    sgnd = dp * math.copysign(1.0, dx) if dx != 0.0 else 0.0

    if fp > fx:
        # Higher function value: the minimum is bracketed. Take the cubic
        # step if it is closer to stx than the quadratic one.
        theta = 3.0 * (fx - fp) / (stp - stx) + dx + dp
        gamma = _cubic_minimizer_gamma(theta, dx, dp)
        if stp < stx:
            gamma = -gamma
        p = (gamma - dx) + theta
        q = ((gamma - dx) + gamma) + dp
        stpc = stx + (p / q) * (stp - stx) if q != 0.0 else stx
        stpq = stx + ((dx / ((fx - fp) / (stp - stx) + dx)) / 2.0) * (stp - stx)
        if abs(stpc - stx) < abs(stpq - stx):
            stpf = stpc
        else:
            stpf = stpc + (stpq - stpc) / 2.0
        bracketed = True
    elif sgnd < 0.0:
        # Derivatives of opposite sign: bracketed, prefer the larger of the
        # cubic and secant steps.
        theta = 3.0 * (fx - fp) / (stp - stx) + dx + dp
        gamma = _cubic_minimizer_gamma(theta, dx, dp)
        if stp > stx:
            gamma = -gamma
        p = (gamma - dp) + theta
        q = ((gamma - dp) + gamma) + dx
        stpc = stp + (p / q) * (stx - stp) if q != 0.0 else stp
        stpq = stp + (dp / (dp - dx)) * (stx - stp)
        stpf = stpc if abs(stpc - stp) > abs(stpq - stp) else stpq
        bracketed = True
    elif abs(dp) < abs(dx):
        # Same sign, derivative magnitude decreasing.
        theta = 3.0 * (fx - fp) / (stp - stx) + dx + dp
        gamma = _cubic_minimizer_gamma(theta, dx, dp)
        if stp > stx:
            gamma = -gamma
        p = (gamma - dp) + theta
        q = (gamma + (dx - dp)) + gamma
        r = p / q if q != 0.0 else 0.0
        if r < 0.0 and gamma != 0.0:
            stpc = stp + r * (stx - stp)
        elif stp > stx:
            stpc = stpmax
        else:
            stpc = stpmin
        stpq = stp + (dp / (dp - dx)) * (stx - stp)
        if bracketed:
            stpf = stpc if abs(stpc - stp) < abs(stpq - stp) else stpq
            if stp > stx:
                stpf = min(stp + 0.66 * (sty - stp), stpf)
            else:
                stpf = max(stp + 0.66 * (sty - stp), stpf)
        else:
            stpf = stpc if abs(stpc - stp) > abs(stpq - stp) else stpq
            stpf = max(stpmin, min(stpmax, stpf))
    else:
        # Same sign, derivative magnitude not decreasing.
        if bracketed:
            theta = 3.0 * (fp - fy) / (sty - stp) + dy + dp
            gamma = _cubic_minimizer_gamma(theta, dy, dp)
            if stp > sty:
                gamma = -gamma
            p = (gamma - dp) + theta
            q = ((gamma - dp) + gamma) + dy
            stpf = stp + (p / q) * (sty - stp) if q != 0.0 else stp
        elif stp > stx:
            stpf = stpmax
        else:
            stpf = stpmin

    if fp > fx:
        sty, fy, dy = stp, fp, dp
    else:
        if sgnd < 0.0:
            sty, fy, dy = stx, fx, dx
        stx, fx, dx = stp, fp, dp
    return stx, fx, dx, sty, fy, dy, stpf, bracketed


class MoreThuente:
    """
    Stateful Moré-Thuente search along one direction.

    The caller evaluates ``phi`` at :attr:`step`, then calls :meth:`update`
    with the value and derivative; ``update`` returns an outcome once the
    search has terminated and None while more evaluations are needed.
    """

    def __init__(
        self,
        f0: float,
        dphi0: float,
        step: float,
        stpmax: float,
        c1: float = 1e-4,
        c2: float = 0.9,
        xtol: float = 0.1,
        stpmin: float = 0.0,
    ):
        if not (0.0 < c1 < c2 < 1.0):
            raise ValueError("Require 0 < c1 < c2 < 1 for Wolfe conditions.")
        if dphi0 >= 0.0:
            raise ValueError("Search direction must be a descent direction.")
        if not (stpmin <= step <= stpmax):
            raise ValueError(
                f"Initial step {step} must lie in [{stpmin}, {stpmax}]."
            )
        self.c1 = c1
        self.c2 = c2
        self.xtol = xtol
        self.stpmin = stpmin
        self.stpmax = stpmax
        self.finit = f0
        self.ginit = dphi0
        self.gtest = c1 * dphi0
        self.step = step
        self.state = SearchState.BRACKETING
        self._stage = 1
        self._width = stpmax - stpmin
        self._width1 = self._width / 0.5
        self._stx, self._fx, self._gx = 0.0, f0, dphi0
        self._sty, self._fy, self._gy = 0.0, f0, dphi0
        self._stmin = 0.0
        self._stmax = step + XTRAPU * step

    @property
    def bracket(self) -> tuple[float, float]:
        """Current interval of uncertainty (meaningful once zooming)."""
        return min(self._stx, self._sty), max(self._stx, self._sty)

    def sufficient_decrease(self, step: float, f: float) -> bool:
        return f <= self.finit + step * self.gtest

    def update(self, f: float, dphi: float) -> Optional[LineSearchOutcome]:
        stp = self.step
        ftest = self.finit + stp * self.gtest
        bracketed = self.state is SearchState.ZOOMING

        if self._stage == 1 and f <= ftest and dphi >= 0.0:
            self._stage = 2

        outcome: Optional[LineSearchOutcome] = None
        if bracketed and (stp <= self._stmin or stp >= self._stmax):
            outcome = LineSearchOutcome.ROUNDING
        if bracketed and self._stmax - self._stmin <= self.xtol * self._stmax:
            outcome = LineSearchOutcome.BAD_INTERVAL
        if stp == self.stpmax and f <= ftest and dphi <= self.gtest:
            outcome = LineSearchOutcome.STEP_AT_BOUND
        if stp == self.stpmin and (f > ftest or dphi >= self.gtest):
            outcome = LineSearchOutcome.INSUFFICIENT_DECREASE
        if f <= ftest and abs(dphi) <= self.c2 * (-self.ginit):
            outcome = LineSearchOutcome.CONVERGED
        if outcome is not None:
            return outcome

        stx, fx, gx = self._stx, self._fx, self._gx
        sty, fy, gy = self._sty, self._fy, self._gy
        if self._stage == 1 and fx >= f > ftest:
            # Use the modified function psi(a) = phi(a) - phi(0) - a*gtest
            # until a step with nonnegative derivative and sufficient
            # decrease has been seen.
            gtest = self.gtest
            stx, fxm, gxm, sty, fym, gym, stp, bracketed = safeguarded_step(
                stx, fx - stx * gtest, gx - gtest,
                sty, fy - sty * gtest, gy - gtest,
                stp, f - stp * gtest, dphi - gtest,
                bracketed, self._stmin, self._stmax,
            )
            fx, gx = fxm + stx * gtest, gxm + gtest
            fy, gy = fym + sty * gtest, gym + gtest
        else:
            stx, fx, gx, sty, fy, gy, stp, bracketed = safeguarded_step(
                stx, fx, gx, sty, fy, gy, stp, f, dphi,
                bracketed, self._stmin, self._stmax,
            )

        if bracketed:
            if abs(sty - stx) >= 0.66 * self._width1:
                stp = stx + 0.5 * (sty - stx)
            self._width1 = self._width
            self._width = abs(sty - stx)
            self._stmin, self._stmax = min(stx, sty), max(stx, sty)
            self.state = SearchState.ZOOMING
        else:
            self._stmin = stp + XTRAPL * (stp - stx)
            self._stmax = stp + XTRAPU * (stp - stx)

        stp = min(max(stp, self.stpmin), self.stpmax)
        if bracketed and (
            stp <= self._stmin
            or stp >= self._stmax
            or self._stmax - self._stmin <= self.xtol * self._stmax
        ):
            stp = stx

        self._stx, self._fx, self._gx = stx, fx, gx
        self._sty, self._fy, self._gy = sty, fy, gy
        self.step = stp
        return None


def line_search(
    evaluate: Callable[[float], PointValueGradient],
    start: PointValueGradient,
    direction: Array,
    step: float,
    max_step: float,
    c1: float = 1e-4,
    c2: float = 0.9,
    xtol: float = 0.1,
    max_evaluations: int = 20,
) -> LineSearchResult:
    """
    Search along ``direction`` from ``start`` for a strong Wolfe step.

    ``evaluate(alpha)`` must return the point, value and gradient at
    ``start.x + alpha * direction``; it may raise :class:`ObjectiveError` or
    :class:`EvaluationLimitReached`, which end the search.

    Warnings (step at bound, bad interval, rounding, too many evaluations)
    return the best trial satisfying sufficient decrease with a strict
    decrease of ``f``; when no trial does, ``point`` is None.
    """
    dphi0 = float(np.dot(start.g, direction))
    search = MoreThuente(
        start.f, dphi0, min(step, max_step), max_step, c1=c1, c2=c2, xtol=xtol
    )
    best: Optional[PointValueGradient] = None
    best_step = 0.0
    evaluations = 0

    def finish(outcome: LineSearchOutcome, error: Optional[BaseException] = None):
        return LineSearchResult(best_step, best, evaluations, outcome, error)

    while True:
        alpha = search.step
        try:
            trial = evaluate(alpha)
        except ObjectiveError as exc:
            return LineSearchResult(
                best_step, None, evaluations + 1, LineSearchOutcome.OBJECTIVE_FAILED, exc
            )
        except EvaluationLimitReached as exc:
            return finish(LineSearchOutcome.BUDGET_EXHAUSTED, exc)
        evaluations += 1
        dphi = float(np.dot(trial.g, direction))
        if (
            trial.f < start.f
            and search.sufficient_decrease(alpha, trial.f)
            and (best is None or trial.f <= best.f)
        ):
            best, best_step = trial, alpha

        outcome = search.update(trial.f, dphi)
        if outcome is LineSearchOutcome.CONVERGED:
            return LineSearchResult(alpha, trial, evaluations, outcome)
        if outcome is not None:
            return finish(outcome)
        if evaluations >= max_evaluations:
            return finish(LineSearchOutcome.TOO_MANY_EVALUATIONS)


__all__ = [
    "EvaluationLimitReached",
    "LineSearchOutcome",
    "LineSearchResult",
    "MoreThuente",
    "SearchState",
    "line_search",
    "safeguarded_step",
]
