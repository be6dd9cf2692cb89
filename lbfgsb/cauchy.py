"""
Generalized Cauchy point along the projected steepest-descent path.

Starting from ``x`` the path ``x(t) = P(x - t g)`` is piecewise linear, with a
kink each time a coordinate reaches one of its bounds. Along it the
quadratic model ``m(x) = f + gᵀ(x - x_k) + ½ (x - x_k)ᵀ B (x - x_k)`` is
piecewise quadratic. The Cauchy point is the first local minimizer of the
model along the path; it is found by visiting the breakpoints in increasing
order and updating the first and second derivatives of the model on each
segment in O(k) using the compact representation of ``B``.

References:
    - Byrd, Lu, Nocedal & Zhu (1995), Section 4, Algorithm CP.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass

import numpy as np

from .bounds import Bounds
from .core import EPSMCH
from .memory import LimitedMemory

Array = np.ndarray


@dataclass(frozen=True)
class CauchyPoint:
    """
    Result of the Cauchy search.

    Attributes:
        x: The generalized Cauchy point ``x^c``.
        c: ``Wᵀ(x^c - x)``, reused by the subspace minimization.
        free: Boolean mask of coordinates not fixed at a bound at ``x^c``.
        t: Path parameter of ``x^c``.
        breakpoints_passed: Number of breakpoints crossed before the minimum.
    """

    x: Array
    c: Array
    free: Array
    t: float
    breakpoints_passed: int

    @property
    def active(self) -> Array:
        return ~self.free


def breakpoints(x: Array, g: Array, lower: Array, upper: Array) -> tuple[Array, Array]:
    """
    Per-coordinate breakpoints of the projected steepest-descent path.

    Returns ``(t, d)`` where ``t_i`` is the path parameter at which ``x_i``
    reaches its bound moving along ``-g`` (``inf`` if it never does, 0 if it
    is already at the bound it is pushed against) and ``d`` is ``-g`` with
    those already-blocked coordinates zeroed.
    """
    d = -np.asarray(g, dtype=float)
    t = np.full(x.shape, np.inf)
    blocked = ((x <= lower) & (d <= 0.0)) | ((x >= upper) & (d >= 0.0))
    towards_upper = ~blocked & (d > 0.0) & np.isfinite(upper)
    towards_lower = ~blocked & (d < 0.0) & np.isfinite(lower)
    t[towards_upper] = (x[towards_upper] - upper[towards_upper]) / g[towards_upper]
    t[towards_lower] = (x[towards_lower] - lower[towards_lower]) / g[towards_lower]
    t[blocked] = 0.0
    d[blocked] = 0.0
    return t, d


def generalized_cauchy_point(
    x: Array, g: Array, bounds: Bounds, memory: LimitedMemory
) -> CauchyPoint:
    """Compute the generalized Cauchy point of the current quadratic model."""
    lower, upper = bounds.lower, bounds.upper
    theta = memory.theta
    t, d = breakpoints(x, g, lower, upper)
    free = t > 0.0
    xc = np.array(x, dtype=float, copy=True)
    two_k = 2 * len(memory)
    c = np.zeros(two_k)

    if not np.any(d):
        return CauchyPoint(xc, c, free, 0.0, 0)

    # Breakpoints strictly inside the path, smallest first; ties resolve to
    # the smaller coordinate index through the tuple ordering.
    heap = [(float(t[i]), int(i)) for i in np.flatnonzero(free & np.isfinite(t))]
    heapq.heapify(heap)

    p = memory.apply_w(d)
    f1 = -float(np.dot(d, d))
    f2 = -theta * f1 - float(np.dot(p, memory.solve_m(p)))
    f2_floor = EPSMCH * f2 if f2 > 0.0 else EPSMCH
    dt_min = -f1 / f2 if f2 > 0.0 else np.inf
    t_old = 0.0
    passed = 0

    while heap:
        t_b, b = heap[0]
        dt = t_b - t_old
        if dt_min < dt:
            break
        heapq.heappop(heap)

        # Fix coordinate b at the bound it runs into.
        bound = upper[b] if d[b] > 0.0 else lower[b]
        z_b = bound - x[b]
        xc[b] = bound
        g_b = float(g[b])
        c += dt * p
        if two_k:
            w_b = memory.w_rows(b)
            mw_b = memory.solve_m(w_b)
            wmc = float(np.dot(mw_b, c))
            wmp = float(np.dot(mw_b, p))
            wmw = float(np.dot(mw_b, w_b))
        else:
            w_b = np.zeros(0)
            wmc = wmp = wmw = 0.0

        f1 += dt * f2 + g_b * g_b + theta * g_b * z_b - g_b * wmc
        f2 -= theta * g_b * g_b + 2.0 * g_b * wmp + g_b * g_b * wmw
        p += g_b * w_b
        d[b] = 0.0
        free[b] = False
        t_old = t_b
        passed += 1

        # Non-positive curvature on a segment: a tiny positive f2 carries a
        # descending path on to the next breakpoint and stops an ascending one.
        f2 = max(f2_floor, f2)
        dt_min = -f1 / f2

    if not np.isfinite(dt_min):
        # Every moving coordinate is unbounded and the curvature vanished.
        dt_min = -f1 / f2_floor
    dt_min = max(dt_min, 0.0)
    t_old += dt_min

    moving = d != 0.0
    xc[moving] = x[moving] + t_old * d[moving]
    np.clip(xc, lower, upper, out=xc)
    c += dt_min * p
    return CauchyPoint(xc, c, free, t_old, passed)


__all__ = ["CauchyPoint", "breakpoints", "generalized_cauchy_point"]
