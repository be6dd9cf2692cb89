"""
Limited-memory BFGS correction history and its compact representation.

The history keeps the last ``depth`` admissible correction pairs
``s_i = x_{i+1} - x_i`` and ``y_i = g_{i+1} - g_i``. From them the compact
form of the BFGS matrix is

    B = θ I - W K⁻¹ Wᵀ,    W = [Y  θS],    K = [[-D, Lᵀ], [L, θ SᵀS]],

where ``D = diag(SᵀY)`` and ``L`` is the strictly lower triangle of ``SᵀY``.
``SᵀY`` and ``SᵀS`` are maintained incrementally (one new row and column
per push) and ``K`` is factored lazily, only when a product with its inverse
is first requested after a change.

References:
    - Byrd, Nocedal & Schnabel, *Representations of quasi-Newton matrices and
      their use in limited memory methods*, Math. Prog. 63, 1994.
    - Nocedal & Wright, *Numerical Optimization*, 2nd ed., Algorithm 7.4.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .core import EPSMCH, MAX_MEMORY_DEPTH, InvalidInputError, NumericalBreakdown
from .linalg import SymmetricIndefiniteFactor

Array = np.ndarray


class LimitedMemory:
    """
    Ring of the most recent correction pairs with compact-form products.

    Parameters
    ----------
    n:
        Problem dimension.
    depth:
        Maximum number of retained pairs, ``1 <= depth <= 17``.
    """

    def __init__(self, n: int, depth: int = 5):
        self.n = 0
        self.depth = 0
        self.resize(n, depth)

    # ------------------------------------------------------------------
    # buffer management
    # ------------------------------------------------------------------
    def resize(self, n: int, depth: int) -> None:
        """Reallocate buffers when the dimension or depth changes; always clears."""
        if not 1 <= depth <= MAX_MEMORY_DEPTH:
            raise InvalidInputError(
                f"Memory depth must lie in [1, {MAX_MEMORY_DEPTH}], got {depth}."
            )
        if n < 0:
            raise InvalidInputError(f"Dimension must be non-negative, got {n}.")
        if n != self.n or depth != self.depth:
            self.n = int(n)
            self.depth = int(depth)
            self._s = np.zeros((self.depth, self.n))
            self._y = np.zeros((self.depth, self.n))
            self._sty = np.zeros((self.depth, self.depth))
            self._sts = np.zeros((self.depth, self.depth))
        self.clear()

    def clear(self) -> None:
        """Forget every stored pair and reset the scaling to 1."""
        self._k = 0
        self.theta = 1.0
        self._factor: Optional[SymmetricIndefiniteFactor] = None
        self._stale = False

    def __len__(self) -> int:
        return self._k

    @property
    def is_empty(self) -> bool:
        return self._k == 0

    # ------------------------------------------------------------------
    # updates
    # ------------------------------------------------------------------
    @staticmethod
    def is_admissible(s: Array, y: Array) -> bool:
        """Curvature condition ``sᵀy > ε yᵀy`` with ``ε`` machine epsilon."""
        sy = float(np.dot(s, y))
        yy = float(np.dot(y, y))
        return np.isfinite(sy) and np.isfinite(yy) and sy > EPSMCH * yy

    def push(self, s: Array, y: Array) -> bool:
        """
        Append the pair ``(s, y)``, evicting the oldest when full.

        Returns False, leaving the history untouched, when the pair fails the
        curvature condition.
        """
        if not self.is_admissible(s, y):
            return False
        k = self._k
        if k == self.depth:
            self._s[:-1] = self._s[1:]
            self._y[:-1] = self._y[1:]
            self._sty[:-1, :-1] = self._sty[1:, 1:]
            self._sts[:-1, :-1] = self._sts[1:, 1:]
            k -= 1
        self._s[k] = s
        self._y[k] = y
        # New row and column of SᵀY and SᵀS.
        self._sty[k, : k + 1] = self._y[: k + 1] @ s
        self._sty[:k, k] = self._s[:k] @ y
        sts_col = self._s[: k + 1] @ s
        self._sts[k, : k + 1] = sts_col
        self._sts[: k + 1, k] = sts_col
        self._k = k + 1
        sy = self._sty[k, k]
        self.theta = float(np.dot(y, y)) / sy
        self._stale = True
        return True

    # ------------------------------------------------------------------
    # views of the compact form
    # ------------------------------------------------------------------
    @property
    def s_matrix(self) -> Array:
        """``S`` as an n×k array (oldest column first)."""
        return self._s[: self._k].T

    @property
    def y_matrix(self) -> Array:
        """``Y`` as an n×k array (oldest column first)."""
        return self._y[: self._k].T

    def sty(self) -> Array:
        return self._sty[: self._k, : self._k].copy()

    def sts(self) -> Array:
        return self._sts[: self._k, : self._k].copy()

    def pairs(self) -> list[tuple[Array, Array]]:
        """Stored pairs, oldest first, as copies."""
        return [(self._s[i].copy(), self._y[i].copy()) for i in range(self._k)]

    def w_matrix(self) -> Array:
        """``W = [Y θS]`` as an n×2k array."""
        return np.hstack([self.y_matrix, self.theta * self.s_matrix])

    def w_rows(self, index) -> Array:
        """Rows of ``W`` for the given coordinate index or index array."""
        k = self._k
        return np.concatenate(
            [self._y[:k, index].T, self.theta * self._s[:k, index].T], axis=-1
        )

    def apply_w(self, v: Array) -> Array:
        """``Wᵀ v`` as a vector of length 2k."""
        k = self._k
        return np.concatenate([self._y[:k] @ v, self.theta * (self._s[:k] @ v)])

    def w_times(self, v: Array) -> Array:
        """``W v`` for a vector ``v`` of length 2k."""
        k = self._k
        if k == 0:
            return np.zeros(self.n)
        return self._y[:k].T @ v[:k] + self.theta * (self._s[:k].T @ v[k:])

    def middle_matrix(self) -> Array:
        """The 2k×2k matrix ``K = [[-D, Lᵀ], [L, θSᵀS]]``."""
        k = self._k
        sty = self._sty[:k, :k]
        lower = np.tril(sty, -1)
        middle = np.empty((2 * k, 2 * k))
        middle[:k, :k] = -np.diag(np.diag(sty))
        middle[:k, k:] = lower.T
        middle[k:, :k] = lower
        middle[k:, k:] = self.theta * self._sts[:k, :k]
        return middle

    # ------------------------------------------------------------------
    # products
    # ------------------------------------------------------------------
    def factor(self) -> SymmetricIndefiniteFactor:
        """Bunch-Kaufman factor of ``K``, refreshed only after a change."""
        if self._factor is None or self._stale:
            if not (self.theta > 0.0 and np.isfinite(self.theta)):
                raise NumericalBreakdown(f"Non-positive scaling theta={self.theta}.")
            self._factor = SymmetricIndefiniteFactor(self.middle_matrix())
            self._stale = False
        return self._factor

    def solve_m(self, u: Array) -> Array:
        """``K⁻¹ u``: the product with ``M`` in ``B = θI - W M Wᵀ``."""
        if self._k == 0:
            return np.zeros_like(u, dtype=float)
        return self.factor().solve(u)

    def hessian_product(self, v: Array) -> Array:
        """``B v`` in O(n·k)."""
        bv = self.theta * np.asarray(v, dtype=float)
        if self._k:
            bv -= self.w_times(self.solve_m(self.apply_w(v)))
        return bv

    def inverse_hessian_product(self, v: Array) -> Array:
        """``H v`` with ``H = B⁻¹`` through the two-loop recursion."""
        q = np.array(v, dtype=float, copy=True)
        k = self._k
        rho = 1.0 / np.diag(self._sty[:k, :k])
        alpha = np.empty(k)
        for i in range(k - 1, -1, -1):
            alpha[i] = rho[i] * float(np.dot(self._s[i], q))
            q -= alpha[i] * self._y[i]
        r = q / self.theta
        for i in range(k):
            beta = rho[i] * float(np.dot(self._y[i], r))
            r += (alpha[i] - beta) * self._s[i]
        return r


__all__ = ["LimitedMemory"]
