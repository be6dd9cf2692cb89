"""
Vector kernels and small dense factorizations used by the solver.

The vector helpers are thin NumPy wrappers that fix the conventions used
throughout the package: bounds are full-length float arrays with ``-inf`` or
``+inf`` for inactive sides, and norms are infinity norms unless stated
otherwise.

The 2k×2k systems that appear in the compact limited-memory representation
are symmetric but indefinite, so they are factored with the Bunch-Kaufman
pivoted LDLᵀ decomposition from :func:`scipy.linalg.ldl` rather than with a
Cholesky factorization.
"""

from __future__ import annotations

import numpy as np
from scipy.linalg import ldl, solve_triangular

from .core import BIG_STEP, EPSMCH, NumericalBreakdown

Array = np.ndarray


def inf_norm(v: Array) -> float:
    """Infinity norm; zero for empty vectors."""
    if v.size == 0:
        return 0.0
    return float(np.max(np.abs(v)))


def project_box(x: Array, lower: Array, upper: Array) -> Array:
    """Return the componentwise projection of ``x`` onto ``[lower, upper]``."""
    return np.minimum(np.maximum(x, lower), upper)


def projected_gradient(x: Array, g: Array, lower: Array, upper: Array) -> Array:
    """First-order optimality residual ``P(x - g) - x`` for the box."""
    return project_box(x - g, lower, upper) - x


def projected_gradient_norm(x: Array, g: Array, lower: Array, upper: Array) -> float:
    """Infinity norm of :func:`projected_gradient`."""
    return inf_norm(projected_gradient(x, g, lower, upper))


def max_feasible_step(
    x: Array, d: Array, lower: Array, upper: Array, cap: float = BIG_STEP
) -> float:
    """
    Largest ``alpha`` in ``[0, cap]`` such that ``x + alpha * d`` stays in the box.

    Coordinates with ``d_i == 0`` or an unbounded side in the direction of
    travel do not constrain the step.
    """
    step = float(cap)
    up = (d > 0.0) & np.isfinite(upper)
    if np.any(up):
        step = min(step, float(np.min((upper[up] - x[up]) / d[up])))
    down = (d < 0.0) & np.isfinite(lower)
    if np.any(down):
        step = min(step, float(np.min((lower[down] - x[down]) / d[down])))
    return max(step, 0.0)


class SymmetricIndefiniteFactor:
    """
    Bunch-Kaufman factorization ``A = L D Lᵀ`` of a small symmetric matrix.

    ``D`` is block diagonal with 1×1 and 2×2 blocks. The factorization is
    computed once and reused for any number of right-hand sides. A block
    that is singular relative to ``EPSMCH * ||A||`` raises
    :class:`NumericalBreakdown` at construction.
    """

    def __init__(self, matrix: Array):
        matrix = np.asarray(matrix, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ValueError("SymmetricIndefiniteFactor expects a square matrix.")
        self.size = matrix.shape[0]
        if self.size == 0:
            self._tri = self._block = self._perm = None
            return
        if not np.all(np.isfinite(matrix)):
            raise NumericalBreakdown("Matrix to factor contains non-finite entries.")
        lu, block, perm = ldl(matrix, lower=True, hermitian=True)
        self._tri = lu[perm]
        self._block = block
        self._perm = perm
        self._check_blocks(scale=float(np.max(np.abs(matrix))))

    def _check_blocks(self, scale: float) -> None:
        tol = EPSMCH * max(scale, 1.0) * self.size
        block = self._block
        i = 0
        while i < self.size:
            if i + 1 < self.size and block[i + 1, i] != 0.0:
                det = block[i, i] * block[i + 1, i + 1] - block[i + 1, i] ** 2
                if abs(det) <= tol * tol:
                    raise NumericalBreakdown("Singular 2x2 pivot in LDL^T factor.")
                i += 2
            else:
                if abs(block[i, i]) <= tol:
                    raise NumericalBreakdown("Singular 1x1 pivot in LDL^T factor.")
                i += 1

    def solve(self, rhs: Array) -> Array:
        """Solve ``A x = rhs`` for a vector or a matrix of right-hand sides."""
        rhs = np.asarray(rhs, dtype=float)
        if self.size == 0:
            return np.zeros_like(rhs)
        perm = self._perm
        z = solve_triangular(self._tri, rhs[perm], lower=True)
        w = np.linalg.solve(self._block, z)
        u = solve_triangular(self._tri, w, lower=True, trans="T")
        out = np.empty_like(u)
        out[perm] = u
        return out


def symmetrize(matrix: Array) -> Array:
    """Return ``0.5 * (A + Aᵀ)`` to remove rounding asymmetry."""
    return 0.5 * (matrix + matrix.T)


__all__ = [
    "SymmetricIndefiniteFactor",
    "inf_norm",
    "max_feasible_step",
    "project_box",
    "projected_gradient",
    "projected_gradient_norm",
    "symmetrize",
]
