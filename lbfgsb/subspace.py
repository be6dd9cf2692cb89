"""
Subspace minimization over the variables left free at the Cauchy point.

With the active coordinates held at their bounds, the quadratic model
restricted to the free set ``F`` is minimized without regard to the bounds
(direct primal method), then the step is scaled back so the result stays in
the box. With ``Z`` the selector of free coordinates and ``V = ZᵀW``, the
reduced Hessian is ``θI - V K⁻¹ Vᵀ`` and its inverse follows from the
Sherman-Morrison-Woodbury identity

    (θI - V K⁻¹ Vᵀ)⁻¹ = I/θ + V (K - VᵀV/θ)⁻¹ Vᵀ / θ²,

so only a 2k×2k symmetric indefinite system has to be solved. That system
depends on the free set, which changes with every Cauchy point, so it is
factored afresh on each call instead of reusing the cached factor of ``K``
held by :class:`~lbfgsb.memory.LimitedMemory`.

References:
    - Byrd, Lu, Nocedal & Zhu (1995), Section 5.1.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .bounds import Bounds
from .cauchy import CauchyPoint
from .linalg import SymmetricIndefiniteFactor, max_feasible_step, symmetrize
from .memory import LimitedMemory

Array = np.ndarray


@dataclass(frozen=True)
class SubspaceStep:
    """Candidate point ``x_hat`` and search direction ``x_hat - x``."""

    x: Array
    direction: Array
    alpha: float
    free: Array

    @property
    def truncated(self) -> bool:
        """True when the unconstrained subspace step had to be shortened."""
        return self.alpha < 1.0


def reduced_gradient(
    x: Array, g: Array, cauchy: CauchyPoint, memory: LimitedMemory
) -> Array:
    """Full-length model gradient ``g + B(x^c - x)`` at the Cauchy point."""
    r = g + memory.theta * (cauchy.x - x)
    if len(memory):
        r -= memory.w_times(memory.solve_m(cauchy.c))
    return r


def subspace_newton_step(r: Array, free_index: Array, memory: LimitedMemory) -> Array:
    """Solve ``(θI - V K⁻¹ Vᵀ) Δ = -r`` on the free coordinates."""
    theta = memory.theta
    delta = -r / theta
    if len(memory) == 0:
        return delta
    v = memory.w_rows(free_index)
    system = memory.middle_matrix() - (v.T @ v) / theta
    correction = SymmetricIndefiniteFactor(symmetrize(system)).solve(v.T @ r)
    delta -= (v @ correction) / (theta * theta)
    return delta


def subspace_minimize(
    x: Array,
    g: Array,
    cauchy: CauchyPoint,
    bounds: Bounds,
    memory: LimitedMemory,
) -> SubspaceStep:
    """
    Minimize the model over the free variables starting from ``x^c``.

    Raises :class:`~lbfgsb.core.NumericalBreakdown` when the reduced
    system is singular.
    """
    free_index = np.flatnonzero(cauchy.free)
    x_hat = np.array(cauchy.x, dtype=float, copy=True)
    if free_index.size == 0:
        return SubspaceStep(x_hat, x_hat - x, 1.0, cauchy.free)

    r = reduced_gradient(x, g, cauchy, memory)[free_index]
    delta = subspace_newton_step(r, free_index, memory)

    x_free = x_hat[free_index]
    lower = bounds.lower[free_index]
    upper = bounds.upper[free_index]
    alpha = min(1.0, max_feasible_step(x_free, delta, lower, upper, cap=1.0))
    x_hat[free_index] = np.clip(x_free + alpha * delta, lower, upper)
    return SubspaceStep(x_hat, x_hat - x, alpha, cauchy.free)


__all__ = [
    "SubspaceStep",
    "reduced_gradient",
    "subspace_minimize",
    "subspace_newton_step",
]
