"""
L-BFGS-B driver.

:class:`Lbfgsb` owns the configuration and the limited-memory buffers and
runs the outer iteration as an explicit state machine::

    START -> EVALUATING -> CONVERGE_CHECK -> CAUCHY -> SUBSPACE -> LINESEARCH
                                 ^                                    |
                                 +------------------------------------+

EVALUATING runs once, for the starting point. Later evaluations happen
inside LINESEARCH, which hands the accepted point straight to
CONVERGE_CHECK. A numerical breakdown or a failed line search flushes the
memory and re-enters CAUCHY. Each state handler returns the next state; any
handler may move to TERMINATED after recording an exit code.

Example
-------
>>> import numpy as np
>>> from lbfgsb import Lbfgsb
>>> from lbfgsb.functions import rosenbrock
>>> solver = Lbfgsb().set_g_tolerance(1e-8)
>>> minimum, status = solver.minimize(rosenbrock, np.array([-1.2, 1.0]))
>>> status.code.value
'converged-gradient'
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from contextlib import nullcontext
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ContextManager, Optional, Sequence, Union

import numpy as np

from .bounds import Bounds, BoundType
from .cauchy import CauchyPoint, generalized_cauchy_point
from .config import SolverConfig
from .core import (
    BIG_STEP,
    EPSMCH,
    ExitCode,
    ExitStatus,
    InvalidInputError,
    IterationInfo,
    NumericalBreakdown,
    ObjectiveError,
    PointValueGradient,
    Printing,
    ReentrancyError,
)
from .diagnostics import (
    assert_admissible,
    assert_feasible,
    assert_finite,
    is_debug_enabled,
)
from .line_search import LineSearchOutcome, LineSearchResult, line_search
from .linalg import inf_norm, max_feasible_step, projected_gradient_norm
from .logging import get_logger, log_level_at_most
from .memory import LimitedMemory
from .objective import Evaluator, Objective, as_objective
from .subspace import subspace_minimize

logger = get_logger(__name__)

Array = np.ndarray
IterationCallback = Callable[[IterationInfo], None]

_CONSECUTIVE_LINESEARCH_FAILURES = 2


class SolverState(Enum):
    START = "start"
    EVALUATING = "evaluating"
    CAUCHY = "cauchy"
    SUBSPACE = "subspace"
    LINESEARCH = "linesearch"
    CONVERGE_CHECK = "converge-check"
    TERMINATED = "terminated"


@dataclass
class _Run:
    """Mutable state of one ``minimize`` call."""

    evaluator: Evaluator
    bounds: Bounds
    config: SolverConfig
    memory: LimitedMemory
    x0: Array
    current: Optional[PointValueGradient] = None
    f_prev: Optional[float] = None
    cauchy: Optional[CauchyPoint] = None
    direction: Optional[Array] = None
    search: Optional[LineSearchResult] = None
    iterations: int = 0
    failures: int = 0
    resets: int = 0
    step: float = 0.0
    notes: list[str] = field(default_factory=list)
    exit_code: Optional[ExitCode] = None
    exit_message: str = ""


class Lbfgsb:
    """
    Bound-constrained limited-memory BFGS solver.

    A solver can be reused for any number of problems; every call to
    :meth:`minimize` starts from an empty memory. Setters return the solver
    so they can be chained::

        solver = Lbfgsb.with_memory(7).set_g_tolerance(1e-8).set_bounds(lo, hi)

    The solver is not reentrant: calling :meth:`minimize` from inside an
    objective or iteration callback of the same instance raises
    :class:`~lbfgsb.core.ReentrancyError`.
    """

    def __init__(self, config: Optional[SolverConfig] = None, **options: Any):
        base = config if config is not None else SolverConfig()
        self.config = base.with_options(**options) if options else base
        self.iterations = 0
        self.evaluations = 0
        self.history: list[IterationInfo] = []
        self._memory: Optional[LimitedMemory] = None
        self._callback: Optional[IterationCallback] = None
        self._running = False
        self._printing = Printing.SILENT

    @classmethod
    def with_memory(cls, depth: int) -> "Lbfgsb":
        """Create a solver retaining ``depth`` correction pairs (1..17)."""
        return cls(SolverConfig(memory_depth=depth))

    def __repr__(self) -> str:
        cfg = self.config
        return (
            f"Lbfgsb(memory_depth={cfg.memory_depth}, f_tolerance={cfg.f_tolerance:g}, "
            f"g_tolerance={cfg.g_tolerance:g}, max_iterations={cfg.max_iterations})"
        )

    # ------------------------------------------------------------------
    # configuration
    # ------------------------------------------------------------------
    def _set(self, **options: Any) -> "Lbfgsb":
        self.config = self.config.with_options(**options)
        return self

    def set_f_tolerance(self, value: float) -> "Lbfgsb":
        return self._set(f_tolerance=float(value))

    def set_g_tolerance(self, value: float) -> "Lbfgsb":
        return self._set(g_tolerance=float(value))

    def set_max_iterations(self, value: int) -> "Lbfgsb":
        return self._set(max_iterations=int(value))

    def set_max_evaluations(self, value: int) -> "Lbfgsb":
        return self._set(max_evaluations=int(value))

    def set_memory_depth(self, value: int) -> "Lbfgsb":
        return self._set(memory_depth=value)

    def set_bounds(
        self,
        lower: Union[Bounds, float, Sequence[float], Array, None] = None,
        upper: Union[float, Sequence[float], Array, None] = None,
        tags: Optional[Sequence[Union[BoundType, int, str]]] = None,
    ) -> "Lbfgsb":
        """
        Set the box. ``lower`` may also be a ready :class:`Bounds`; passing
        nothing removes all bounds.
        """
        if isinstance(lower, Bounds):
            bounds: Optional[Bounds] = lower
        elif lower is None and upper is None and tags is None:
            bounds = None
        else:
            bounds = Bounds.from_arrays(lower, upper, tags)
        return self._set(bounds=bounds)

    def set_printing(self, level: Union[Printing, str, int]) -> "Lbfgsb":
        return self._set(printing=Printing.coerce(level))

    def set_iteration_callback(self, callback: Optional[IterationCallback]) -> "Lbfgsb":
        """Call ``callback(info)`` after every completed iteration."""
        self._callback = callback
        return self

    # ------------------------------------------------------------------
    # public entry point
    # ------------------------------------------------------------------
    def minimize(
        self,
        objective: Any,
        x0: Union[Sequence[float], Array],
        config: Union[SolverConfig, Mapping, None] = None,
    ) -> tuple[PointValueGradient, ExitStatus]:
        """
        Minimize ``objective`` starting from ``x0``.

        Args:
            objective: An :class:`~lbfgsb.objective.Objective` or anything
                :func:`~lbfgsb.objective.as_objective` accepts.
            x0: Starting point; projected onto the bounds before use.
            config: Options for this call only, as a full
                :class:`SolverConfig` or a mapping of fields overriding the
                solver's configuration.

        Returns:
            ``(minimum, status)``. On convergence ``minimum`` is the final
            iterate; on any other exit it is the best point evaluated.
        """
        if self._running:
            raise ReentrancyError("Lbfgsb.minimize is not reentrant.")
        try:
            cfg = self._resolve_config(config)
            obj = as_objective(objective)
            x, bounds = self._prepare(x0, cfg)
        except InvalidInputError as exc:
            return self._reject(x0, exc)

        self._running = True
        try:
            with self._verbosity(cfg.printing):
                return self._solve(obj, x, bounds, cfg)
        finally:
            self._running = False
            self._printing = Printing.SILENT

    # ------------------------------------------------------------------
    # input handling
    # ------------------------------------------------------------------
    def _resolve_config(self, config: Union[SolverConfig, Mapping, None]) -> SolverConfig:
        if config is None:
            return self.config
        if isinstance(config, SolverConfig):
            return config
        if isinstance(config, Mapping):
            return self.config.with_options(**config)
        raise InvalidInputError(
            f"config must be a SolverConfig or a mapping, got {type(config).__name__}."
        )

    @staticmethod
    def _prepare(x0: Any, cfg: SolverConfig) -> tuple[Array, Bounds]:
        try:
            x = np.array(x0, dtype=float)
        except (TypeError, ValueError) as exc:
            raise InvalidInputError(f"x0 is not a numeric vector: {exc}") from exc
        if x.ndim != 1 or x.size == 0:
            raise InvalidInputError(
                f"x0 must be a non-empty 1-D vector, got shape {x.shape}."
            )
        if not np.all(np.isfinite(x)):
            raise InvalidInputError("x0 contains NaN or infinite entries.")
        bounds = cfg.bounds if cfg.bounds is not None else Bounds.free(x.size)
        if bounds.dim != x.size:
            raise InvalidInputError(
                f"Bounds have dimension {bounds.dim}, x0 has dimension {x.size}."
            )
        return bounds.project(x), bounds

    @staticmethod
    def _reject(x0: Any, exc: InvalidInputError) -> tuple[PointValueGradient, ExitStatus]:
        try:
            echo = np.array(x0, dtype=float).reshape(-1)
        except (TypeError, ValueError):
            echo = np.empty(0)
        logger.debug("Rejected problem: %s", exc)
        return (
            PointValueGradient(echo, float("nan"), np.empty(0)),
            ExitStatus(ExitCode.INVALID_INPUT, str(exc)),
        )

    def _acquire_memory(self, n: int, depth: int) -> LimitedMemory:
        if self._memory is None:
            self._memory = LimitedMemory(n, depth)
        else:
            self._memory.resize(n, depth)
        return self._memory

    # ------------------------------------------------------------------
    # logging helpers
    # ------------------------------------------------------------------
    def _verbosity(self, printing: Printing) -> ContextManager:
        self._printing = printing
        if printing is Printing.SILENT:
            return nullcontext()
        level = logging.DEBUG if printing >= Printing.VERBOSE else logging.INFO
        return log_level_at_most(logger, level)

    def _emit(self, needed: Printing, level: int, msg: str, *args: Any) -> None:
        if self._printing >= needed:
            logger.log(level, msg, *args)

    def _note(self, run: _Run, msg: str, *args: Any) -> None:
        """Record a recoverable event on the current iteration and log it."""
        run.notes.append(msg % args if args else msg)
        self._emit(Printing.SUMMARY, logging.WARNING, msg, *args)

    # ------------------------------------------------------------------
    # state machine
    # ------------------------------------------------------------------
    def _solve(
        self, objective: Objective, x: Array, bounds: Bounds, cfg: SolverConfig
    ) -> tuple[PointValueGradient, ExitStatus]:
        memory = self._acquire_memory(x.size, cfg.memory_depth)
        run = _Run(
            evaluator=Evaluator(objective, x.size, cfg.max_evaluations),
            bounds=bounds,
            config=cfg,
            memory=memory,
            x0=x,
        )
        self.iterations = 0
        self.evaluations = 0
        self.history = []

        handlers = {
            SolverState.START: self._start,
            SolverState.EVALUATING: self._evaluate_start,
            SolverState.CONVERGE_CHECK: self._converge_check,
            SolverState.CAUCHY: self._cauchy,
            SolverState.SUBSPACE: self._subspace,
            SolverState.LINESEARCH: self._line_search,
        }
        state = SolverState.START
        while state is not SolverState.TERMINATED:
            state = handlers[state](run)

        self.iterations = run.iterations
        self.evaluations = run.evaluator.count
        return self._report(run)

    def _terminate(self, run: _Run, code: ExitCode, message: str) -> SolverState:
        run.exit_code = code
        run.exit_message = message
        return SolverState.TERMINATED

    def _start(self, run: _Run) -> SolverState:
        run.memory.clear()
        bounds = run.bounds
        self._emit(
            Printing.SUMMARY,
            logging.INFO,
            "L-BFGS-B start: n=%d, m=%d, %d of %d variables bounded",
            bounds.dim,
            run.config.memory_depth,
            int(np.count_nonzero(bounds.kinds)),
            bounds.dim,
        )
        return SolverState.EVALUATING

    def _evaluate_start(self, run: _Run) -> SolverState:
        try:
            run.current = run.evaluator(run.x0)
        except ObjectiveError as exc:
            return self._terminate(run, ExitCode.OBJECTIVE_FAILED, str(exc))
        return SolverState.CONVERGE_CHECK

    def _breakdown(self, run: _Run, reason: str) -> SolverState:
        """Flush the memory and retry, or stop if it is already empty."""
        if run.memory.is_empty:
            return self._terminate(
                run,
                ExitCode.APPROXIMATE,
                f"No further progress possible from steepest descent: {reason}.",
            )
        self._note(run, "Resetting limited memory: %s", reason)
        run.memory.clear()
        run.resets += 1
        return SolverState.CAUCHY

    def _cauchy(self, run: _Run) -> SolverState:
        run.cauchy = None
        if run.bounds.is_unconstrained:
            return SolverState.SUBSPACE
        cur = run.current
        try:
            run.cauchy = generalized_cauchy_point(cur.x, cur.g, run.bounds, run.memory)
        except NumericalBreakdown as exc:
            return self._breakdown(run, str(exc))
        self._emit(
            Printing.VERBOSE,
            logging.DEBUG,
            "Cauchy point: t=%.3e after %d breakpoints, %d free variables",
            run.cauchy.t,
            run.cauchy.breakpoints_passed,
            int(np.count_nonzero(run.cauchy.free)),
        )
        return SolverState.SUBSPACE

    def _subspace(self, run: _Run) -> SolverState:
        cur = run.current
        if run.cauchy is None:
            # No bounds: the model minimizer is -H g from the two-loop recursion.
            run.direction = -run.memory.inverse_hessian_product(cur.g)
            return SolverState.LINESEARCH
        try:
            step = subspace_minimize(cur.x, cur.g, run.cauchy, run.bounds, run.memory)
        except NumericalBreakdown as exc:
            return self._breakdown(run, str(exc))
        if step.truncated:
            self._emit(
                Printing.VERBOSE,
                logging.DEBUG,
                "Subspace step truncated to alpha=%.3e by the bounds",
                step.alpha,
            )
        run.direction = step.direction
        return SolverState.LINESEARCH

    def _initial_step(self, run: _Run, max_step: float) -> float:
        step = 1.0
        if run.iterations == 0 and not run.bounds.is_fully_boxed:
            gnorm = inf_norm(run.current.g)
            if gnorm > 0.0:
                step = min(1.0, 1.0 / gnorm)
        return min(step, max_step)

    def _line_search(self, run: _Run) -> SolverState:
        cur = run.current
        direction = run.direction
        slope = float(np.dot(cur.g, direction))
        if not (slope < 0.0 and np.isfinite(slope)):
            return self._breakdown(
                run, f"search direction is not a descent direction (g'd={slope:.3e})"
            )
        lower, upper = run.bounds.lower, run.bounds.upper
        constrained = not run.bounds.is_unconstrained
        max_step = (
            max_feasible_step(cur.x, direction, lower, upper) if constrained else BIG_STEP
        )
        if max_step <= 0.0:
            return self._breakdown(run, "no feasible step along the search direction")

        def trial(alpha: float) -> PointValueGradient:
            x = cur.x + alpha * direction
            if constrained:
                np.clip(x, lower, upper, out=x)
            return run.evaluator(x)

        cfg = run.config
        result = line_search(
            trial,
            cur,
            direction,
            self._initial_step(run, max_step),
            max_step,
            c1=cfg.c1,
            c2=cfg.c2,
            xtol=cfg.xtol,
            max_evaluations=cfg.max_linesearch_evaluations,
        )
        run.search = result
        self._emit(
            Printing.VERBOSE,
            logging.DEBUG,
            "Line search: %s after %d evaluations, step=%.3e",
            result.outcome.value,
            result.evaluations,
            result.step,
        )

        if result.outcome is LineSearchOutcome.OBJECTIVE_FAILED:
            return self._terminate(run, ExitCode.OBJECTIVE_FAILED, str(result.error))
        if not result.accepted:
            if result.outcome is LineSearchOutcome.BUDGET_EXHAUSTED:
                return self._terminate(
                    run,
                    ExitCode.EVALUATION_LIMIT,
                    f"Evaluation limit {cfg.max_evaluations} reached during line search.",
                )
            run.failures += 1
            if run.failures >= _CONSECUTIVE_LINESEARCH_FAILURES:
                return self._terminate(
                    run,
                    ExitCode.LINESEARCH_FAILED,
                    f"Line search failed {run.failures} times in a row "
                    f"(last: {result.outcome.value}).",
                )
            self._note(
                run,
                "Line search failed (%s); restarting from steepest descent",
                result.outcome.value,
            )
            run.memory.clear()
            run.resets += 1
            return SolverState.CAUCHY

        if result.is_warning:
            self._note(
                run,
                "Line search warning (%s); accepting step %.3e",
                result.outcome.value,
                result.step,
            )
        run.failures = 0
        new = result.point
        if not run.memory.push(new.x - cur.x, new.g - cur.g):
            self._emit(
                Printing.VERBOSE,
                logging.DEBUG,
                "Skipped correction pair failing the curvature condition",
            )
        run.f_prev = cur.f
        run.current = new
        run.step = result.step
        run.iterations += 1
        return SolverState.CONVERGE_CHECK

    def _converge_check(self, run: _Run) -> SolverState:
        cfg = run.config
        cur = run.current
        pg_norm = projected_gradient_norm(cur.x, cur.g, run.bounds.lower, run.bounds.upper)
        if run.f_prev is not None:
            self._record(run, pg_norm)

        if pg_norm <= cfg.g_tolerance:
            return self._terminate(
                run,
                ExitCode.CONVERGED_GRADIENT,
                f"Projected gradient norm {pg_norm:.3e} <= {cfg.g_tolerance:.3e}.",
            )
        if run.f_prev is not None:
            scale = max(abs(run.f_prev), abs(cur.f), 1.0)
            relative = (run.f_prev - cur.f) / scale
            if cfg.f_tolerance > 0.0 and relative <= cfg.f_tolerance * EPSMCH:
                return self._terminate(
                    run,
                    ExitCode.CONVERGED_OBJECTIVE,
                    f"Relative reduction {relative:.3e} <= "
                    f"{cfg.f_tolerance * EPSMCH:.3e}.",
                )
            if relative <= 0.0:
                return self._terminate(
                    run,
                    ExitCode.APPROXIMATE,
                    "No decrease in f: rounding errors prevent further progress.",
                )
        if run.iterations >= cfg.max_iterations:
            return self._terminate(
                run,
                ExitCode.ITERATION_LIMIT,
                f"Iteration limit {cfg.max_iterations} reached.",
            )
        if run.evaluator.exhausted:
            return self._terminate(
                run,
                ExitCode.EVALUATION_LIMIT,
                f"Evaluation limit {cfg.max_evaluations} reached.",
            )
        return SolverState.CAUCHY

    # ------------------------------------------------------------------
    # reporting
    # ------------------------------------------------------------------
    def _record(self, run: _Run, pg_norm: float) -> None:
        cur = run.current
        if is_debug_enabled():
            assert_feasible(cur.x, run.bounds)
            assert_admissible(run.memory)
            assert_finite("f", cur.f)
            assert_finite("g", cur.g)
        info = IterationInfo(
            iteration=run.iterations,
            evaluations=run.evaluator.count,
            x=cur.x.copy(),
            f=cur.f,
            g=cur.g.copy(),
            f_delta=run.f_prev - cur.f,
            projected_gradient_norm=pg_norm,
            step=run.step,
            memory_size=len(run.memory),
            linesearch_outcome=run.search.outcome.value if run.search else None,
            notes=tuple(run.notes),
        )
        run.notes.clear()
        self._emit(
            Printing.ITERATIONS,
            logging.INFO,
            "iter %4d  f=%.8e  |pg|=%.3e  step=%.3e  nfev=%d  m=%d",
            info.iteration,
            info.f,
            info.projected_gradient_norm,
            info.step,
            info.evaluations,
            info.memory_size,
        )
        if run.config.keep_history:
            self.history.append(info)
        if self._callback is not None:
            self._callback(info)

    def _report(self, run: _Run) -> tuple[PointValueGradient, ExitStatus]:
        code = run.exit_code
        evaluator = run.evaluator
        if code in (ExitCode.CONVERGED_GRADIENT, ExitCode.CONVERGED_OBJECTIVE):
            point = run.current
        elif evaluator.best is not None:
            point = evaluator.best
        else:
            n = run.x0.size
            point = PointValueGradient(run.x0.copy(), float("nan"), np.full(n, np.nan))
        status = ExitStatus(code, run.exit_message, run.iterations, evaluator.count)
        self._emit(
            Printing.SUMMARY,
            logging.INFO,
            "L-BFGS-B finished: %s after %d iterations, %d evaluations, f=%.8e",
            status,
            status.iterations,
            status.evaluations,
            point.f,
        )
        return point, status


__all__ = ["IterationCallback", "Lbfgsb", "SolverState"]
