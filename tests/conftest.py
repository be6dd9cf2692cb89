"""Pytest configuration and shared fixtures for lbfgsb tests.

This module provides:
- A deterministic numpy RNG fixture
- Logging and debug-mode resets so tests do not leak global state
"""

import logging
import os

import numpy as np
import pytest

from lbfgsb.diagnostics import set_debug_enabled
from lbfgsb.logging import configure_logging


@pytest.fixture(scope="function")
def rng() -> np.random.Generator:
    """Provide a deterministic numpy RNG for tests.

    Uses seed from TEST_RNG_SEED environment variable (default: 0).
    This ensures tests are reproducible while allowing override for debugging.

    Returns:
        A seeded numpy.random.Generator instance.
    """
    seed = int(os.environ.get("TEST_RNG_SEED", "0"))
    return np.random.default_rng(seed)


@pytest.fixture(scope="function", autouse=True)
def reset_global_state():
    """Run every test with default logging and debug mode off."""
    set_debug_enabled(False)
    yield
    set_debug_enabled(False)
    configure_logging(level=logging.WARNING)
