"""Tests for debug mode and invariant assertions."""

import numpy as np
import pytest

from lbfgsb import Bounds
from lbfgsb.diagnostics import (
    assert_admissible,
    assert_feasible,
    assert_finite,
    debug_context,
    is_debug_enabled,
    set_debug_enabled,
)
from lbfgsb.memory import LimitedMemory


def test_debug_mode_toggle_and_context() -> None:
    """Test debug mode toggling and context manager."""
    set_debug_enabled(False)
    assert not is_debug_enabled()

    with debug_context(True):
        assert is_debug_enabled()
    assert not is_debug_enabled()

    set_debug_enabled(True)
    with debug_context(False):
        assert not is_debug_enabled()
    assert is_debug_enabled()


def test_debug_context_nested() -> None:
    """Test nested debug contexts."""
    set_debug_enabled(False)

    with debug_context(True):
        assert is_debug_enabled()
        with debug_context(False):
            assert not is_debug_enabled()
        assert is_debug_enabled()

    assert not is_debug_enabled()


def test_debug_context_restores_after_error() -> None:
    set_debug_enabled(False)
    with pytest.raises(RuntimeError):
        with debug_context(True):
            raise RuntimeError("boom")
    assert not is_debug_enabled()


def test_assert_finite() -> None:
    assert_finite("f", 1.0)
    assert_finite("g", np.array([1.0, -2.0]))
    with pytest.raises(ValueError, match="g contains"):
        assert_finite("g", np.array([1.0, np.inf]))


def test_assert_feasible_names_offending_index() -> None:
    bounds = Bounds.from_arrays(lower=[0.0, 0.0], upper=[1.0, 1.0])
    assert_feasible(np.array([0.0, 1.0]), bounds)
    with pytest.raises(ValueError, match="index 1"):
        assert_feasible(np.array([0.5, 1.5]), bounds)
    assert_feasible(np.array([0.5, 1.0 + 1e-12]), bounds, atol=1e-9)


def test_assert_admissible() -> None:
    memory = LimitedMemory(2, depth=2)
    memory.push(np.array([1.0, 0.0]), np.array([2.0, 0.0]))
    assert_admissible(memory)
    memory.theta = -1.0
    with pytest.raises(ValueError, match="theta"):
        assert_admissible(memory)
