"""lbfgsb - limited-memory BFGS minimization with box constraints.

Example
-------
>>> import numpy as np
>>> from lbfgsb import Lbfgsb
>>> from lbfgsb.functions import sphere
>>> solver = Lbfgsb().set_bounds(lower=[1.0, 1.0, 1.0])
>>> minimum, status = solver.minimize(sphere, np.array([5.0, 5.0, 5.0]))
>>> minimum.x
array([1., 1., 1.])
"""

__version__ = "0.1.0"

# Problem description
from .bounds import Bounds, BoundType
from .config import SolverConfig

# Results and errors
from .core import (
    EPSMCH,
    MAX_MEMORY_DEPTH,
    ExitCode,
    ExitStatus,
    InvalidInputError,
    IterationInfo,
    LbfgsbError,
    NumericalBreakdown,
    ObjectiveError,
    PointValueGradient,
    Printing,
    ReentrancyError,
)

# Diagnostics
from .diagnostics import debug_context, is_debug_enabled, set_debug_enabled

# Logging
from .logging import configure_logging, get_logger, set_log_level

# Objective adapters
from .objective import CombinedObjective, Objective, SplitObjective, as_objective

# Solver
from .solver import Lbfgsb, SolverState

__all__ = [
    "BoundType",
    "Bounds",
    "CombinedObjective",
    "EPSMCH",
    "ExitCode",
    "ExitStatus",
    "InvalidInputError",
    "IterationInfo",
    "Lbfgsb",
    "LbfgsbError",
    "MAX_MEMORY_DEPTH",
    "NumericalBreakdown",
    "Objective",
    "ObjectiveError",
    "PointValueGradient",
    "Printing",
    "ReentrancyError",
    "SolverConfig",
    "SolverState",
    "SplitObjective",
    "__version__",
    "as_objective",
    "configure_logging",
    "debug_context",
    "get_logger",
    "is_debug_enabled",
    "set_debug_enabled",
    "set_log_level",
]
