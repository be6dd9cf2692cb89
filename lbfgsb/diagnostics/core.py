"""Invariant assertions for solver state."""

from __future__ import annotations

import numpy as np

from ..bounds import Bounds
from ..memory import LimitedMemory


def assert_finite(name: str, value) -> None:
    """
    Assert that a scalar or array contains only finite numbers.

    Raises
    ------
    ValueError
        If any entry is NaN or infinite.
    """
    arr = np.asarray(value, dtype=float)
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} contains non-finite entries.")


def assert_feasible(x: np.ndarray, bounds: Bounds, atol: float = 0.0) -> None:
    """
    Assert that ``x`` lies inside the box, up to ``atol``.

    Raises
    ------
    ValueError
        If some coordinate leaves the box; the message names the first one.
    """
    below = np.flatnonzero(x < bounds.lower - atol)
    above = np.flatnonzero(x > bounds.upper + atol)
    if below.size or above.size:
        i = int(below[0]) if below.size else int(above[0])
        raise ValueError(
            f"Iterate leaves the box at index {i}: x={x[i]!r}, "
            f"bounds=[{bounds.lower[i]!r}, {bounds.upper[i]!r}]."
        )


def assert_admissible(memory: LimitedMemory) -> None:
    """
    Assert the limited-memory invariants: positive curvature of every
    stored pair, ``θ > 0`` and at most ``depth`` pairs.

    Raises
    ------
    ValueError
        If an invariant does not hold.
    """
    if len(memory) > memory.depth:
        raise ValueError(f"Memory holds {len(memory)} pairs, depth is {memory.depth}.")
    if not memory.theta > 0.0:
        raise ValueError(f"Memory scaling theta={memory.theta} is not positive.")
    for i, (s, y) in enumerate(memory.pairs()):
        if not float(np.dot(s, y)) > 0.0:
            raise ValueError(f"Correction pair {i} has non-positive curvature.")


__all__ = ["assert_admissible", "assert_feasible", "assert_finite"]
