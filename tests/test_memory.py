"""Tests for the limited-memory history and its compact representation."""

import numpy as np
import pytest

from lbfgsb import InvalidInputError, MAX_MEMORY_DEPTH
from lbfgsb.memory import LimitedMemory


def _fill(memory: LimitedMemory, rng: np.random.Generator, count: int, n: int):
    """Push pairs from a random SPD quadratic so curvature is positive."""
    a = rng.normal(size=(n, n))
    hessian = a @ a.T + n * np.eye(n)
    for _ in range(count):
        s = rng.normal(size=n)
        assert memory.push(s, hessian @ s)
    return hessian


def _dense_bfgs(pairs, theta, n):
    """Reference dense BFGS matrix built from B0 = theta I."""
    b = theta * np.eye(n)
    for s, y in pairs:
        bs = b @ s
        b = b - np.outer(bs, bs) / (s @ bs) + np.outer(y, y) / (y @ s)
    return b


def test_depth_validation():
    with pytest.raises(InvalidInputError):
        LimitedMemory(3, depth=0)
    with pytest.raises(InvalidInputError):
        LimitedMemory(3, depth=MAX_MEMORY_DEPTH + 1)


def test_push_rejects_non_positive_curvature():
    memory = LimitedMemory(2, depth=3)
    assert not memory.push(np.array([1.0, 0.0]), np.array([-1.0, 0.0]))
    assert not memory.push(np.array([1.0, 0.0]), np.array([0.0, 1.0]))
    assert memory.is_empty
    assert memory.theta == 1.0


def test_push_updates_theta():
    memory = LimitedMemory(2, depth=3)
    s = np.array([1.0, 0.0])
    y = np.array([2.0, 1.0])
    assert memory.push(s, y)
    assert len(memory) == 1
    assert memory.theta == pytest.approx(5.0 / 2.0)


def test_oldest_pair_evicted_when_full(rng):
    memory = LimitedMemory(4, depth=2)
    _fill(memory, rng, 3, 4)
    assert len(memory) == 2
    stored = memory.pairs()
    # Incrementally maintained products agree with recomputation.
    s = np.array([p[0] for p in stored]).T
    y = np.array([p[1] for p in stored]).T
    assert np.allclose(memory.sty(), s.T @ y)
    assert np.allclose(memory.sts(), s.T @ s)


def test_compact_form_matches_dense_bfgs(rng):
    n = 6
    memory = LimitedMemory(n, depth=4)
    _fill(memory, rng, 4, n)
    dense = _dense_bfgs(memory.pairs(), memory.theta, n)
    v = rng.normal(size=n)
    assert np.allclose(memory.hessian_product(v), dense @ v)


def test_compact_form_matches_dense_after_eviction(rng):
    n = 5
    memory = LimitedMemory(n, depth=3)
    _fill(memory, rng, 7, n)
    dense = _dense_bfgs(memory.pairs(), memory.theta, n)
    v = rng.normal(size=n)
    assert np.allclose(memory.hessian_product(v), dense @ v)


def test_two_loop_inverts_compact_form(rng):
    n = 8
    memory = LimitedMemory(n, depth=5)
    _fill(memory, rng, 5, n)
    v = rng.normal(size=n)
    hv = memory.inverse_hessian_product(v)
    assert np.allclose(memory.hessian_product(hv), v)


def test_w_products_agree_with_explicit_matrix(rng):
    n = 5
    memory = LimitedMemory(n, depth=3)
    _fill(memory, rng, 3, n)
    w = memory.w_matrix()
    assert w.shape == (n, 6)
    v = rng.normal(size=n)
    u = rng.normal(size=6)
    assert np.allclose(memory.apply_w(v), w.T @ v)
    assert np.allclose(memory.w_times(u), w @ u)
    assert np.allclose(memory.w_rows(np.array([1, 3])), w[[1, 3]])


def test_empty_memory_is_scaled_identity():
    memory = LimitedMemory(3)
    v = np.array([1.0, -2.0, 3.0])
    assert np.array_equal(memory.hessian_product(v), v)
    assert np.array_equal(memory.inverse_hessian_product(v), v)
    assert memory.solve_m(np.zeros(0)).shape == (0,)


def test_clear_and_resize(rng):
    memory = LimitedMemory(3, depth=2)
    _fill(memory, rng, 2, 3)
    memory.clear()
    assert memory.is_empty
    assert memory.theta == 1.0
    memory.resize(5, 4)
    assert memory.n == 5
    assert memory.depth == 4
    assert memory.s_matrix.shape == (5, 0)
