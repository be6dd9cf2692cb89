"""
Standard smooth test problems.

Each ``name(x)`` returns ``(f, g)`` and can be passed straight to
:meth:`lbfgsb.Lbfgsb.minimize`; the Rosenbrock value and gradient are also
available separately for the split objective shape.
"""

from __future__ import annotations

from typing import Callable

import numpy as np

Array = np.ndarray


def sphere(x: Array) -> tuple[float, Array]:
    """``f(x) = Σ x_i²``, minimized at the origin."""
    x = np.asarray(x, dtype=float)
    return float(x @ x), 2.0 * x


def rosenbrock_value(x: Array) -> float:
    """Chained Rosenbrock ``Σ 100 (x_{i+1} - x_i²)² + (1 - x_i)²``."""
    x = np.asarray(x, dtype=float)
    head, tail = x[:-1], x[1:]
    return float(np.sum(100.0 * (tail - head**2) ** 2 + (1.0 - head) ** 2))


def rosenbrock_gradient(x: Array) -> Array:
    x = np.asarray(x, dtype=float)
    head, tail = x[:-1], x[1:]
    t = tail - head**2
    g = np.zeros_like(x)
    g[:-1] = -400.0 * head * t - 2.0 * (1.0 - head)
    g[1:] += 200.0 * t
    return g


def rosenbrock(x: Array) -> tuple[float, Array]:
    return rosenbrock_value(x), rosenbrock_gradient(x)


def quadratic(q: Array, b: Array) -> Callable[[Array], tuple[float, Array]]:
    """
    Return the objective ``½ xᵀQx - bᵀx`` for a symmetric ``Q``.

    Its minimizer is ``Q⁻¹b`` when ``Q`` is positive definite.
    """
    q = np.asarray(q, dtype=float)
    b = np.asarray(b, dtype=float)
    if q.ndim != 2 or q.shape[0] != q.shape[1] or b.shape != (q.shape[0],):
        raise ValueError(f"Incompatible shapes Q={q.shape}, b={b.shape}.")

    def fun(x: Array) -> tuple[float, Array]:
        qx = q @ x
        return float(0.5 * x @ qx - b @ x), qx - b

    return fun


__all__ = [
    "quadratic",
    "rosenbrock",
    "rosenbrock_gradient",
    "rosenbrock_value",
    "sphere",
]
