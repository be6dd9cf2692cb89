"""End-to-end tests for the L-BFGS-B driver."""

import logging
from io import StringIO

import numpy as np
import pytest

from lbfgsb import (
    Bounds,
    ExitCode,
    InvalidInputError,
    IterationInfo,
    Lbfgsb,
    NumericalBreakdown,
    Printing,
    ReentrancyError,
    SolverConfig,
    debug_context,
)
from lbfgsb import solver as solver_module
from lbfgsb.functions import rosenbrock, rosenbrock_gradient, rosenbrock_value, sphere
from lbfgsb.line_search import LineSearchOutcome, LineSearchResult
from lbfgsb.linalg import projected_gradient_norm
from lbfgsb.logging import configure_logging


def test_sphere_unbounded():
    solver = Lbfgsb()
    minimum, status = solver.minimize(sphere, np.full(5, 10.0))
    assert status.code is ExitCode.CONVERGED_GRADIENT
    assert np.max(np.abs(minimum.x)) < 1e-5
    assert minimum.f < 1e-10
    assert np.max(np.abs(minimum.g)) < 1e-5
    assert status.iterations <= 10
    assert solver.iterations == status.iterations
    assert solver.evaluations == status.evaluations


def test_rosenbrock_2d_tight_tolerances():
    solver = Lbfgsb().set_f_tolerance(1e-10).set_g_tolerance(1e-10)
    minimum, status = solver.minimize(rosenbrock, np.array([10.0, 10.0]))
    assert status.code is ExitCode.CONVERGED_GRADIENT, str(status)
    assert np.max(np.abs(minimum.x - 1.0)) < 1e-5
    assert minimum.f < 1e-10
    assert status.iterations <= 80


def test_rosenbrock_5d_reaches_global_minimizer():
    x0 = np.array([-1.2, 1.0, -1.2, 1.0, -1.2])
    solver = Lbfgsb().set_f_tolerance(0.0).set_max_iterations(300)
    minimum, status = solver.minimize(rosenbrock, x0)
    assert status.code is ExitCode.CONVERGED_GRADIENT, str(status)
    assert np.max(np.abs(minimum.g)) <= 1e-5
    assert np.max(np.abs(minimum.x - 1.0)) < 1e-5


def test_sphere_with_active_lower_bounds():
    solver = Lbfgsb().set_bounds(lower=[1.0, 1.0, 1.0], upper=[np.inf] * 3)
    minimum, status = solver.minimize(sphere, np.array([5.0, 5.0, 5.0]))
    assert status.code is ExitCode.CONVERGED_GRADIENT
    assert np.allclose(minimum.x, 1.0, rtol=0.0, atol=1e-12)
    assert minimum.f == pytest.approx(3.0)
    bounds = solver.config.bounds
    assert projected_gradient_norm(minimum.x, minimum.g, bounds.lower, bounds.upper) == 0.0


def test_objective_failure_returns_best_prior_point():
    values = []

    def flaky(x):
        f, g = sphere(x)
        values.append((f, x.copy()))
        if len(values) == 3:
            return float("nan"), g
        return f, g

    solver = Lbfgsb()
    minimum, status = solver.minimize(flaky, np.array([3.0, 4.0]))
    assert status.code is ExitCode.OBJECTIVE_FAILED
    assert status.evaluations == 3
    assert solver.evaluations == 3
    best_f, best_x = min(values[:2], key=lambda item: item[0])
    assert minimum.f == best_f
    assert np.array_equal(minimum.x, best_x)


def test_iteration_cap_still_improves():
    x0 = np.array([-1.2, 1.0])
    solver = Lbfgsb().set_max_iterations(1)
    minimum, status = solver.minimize(rosenbrock, x0)
    assert status.code is ExitCode.ITERATION_LIMIT
    assert status.iterations == 1
    assert minimum.f < rosenbrock_value(x0)


def test_zero_iterations_evaluates_start_only():
    solver = Lbfgsb().set_max_iterations(0)
    minimum, status = solver.minimize(rosenbrock, np.array([-1.2, 1.0]))
    assert status.code is ExitCode.ITERATION_LIMIT
    assert status.evaluations == 1
    assert np.array_equal(minimum.x, [-1.2, 1.0])


def test_converged_at_start():
    minimum, status = Lbfgsb().minimize(sphere, np.zeros(3))
    assert status.code is ExitCode.CONVERGED_GRADIENT
    assert status.iterations == 0
    assert status.evaluations == 1


@pytest.mark.parametrize("budget", [1, 5, 15])
def test_evaluation_budget_never_exceeded(budget):
    calls = []

    def counted(x):
        calls.append(1)
        return rosenbrock(x)

    solver = Lbfgsb().set_max_evaluations(budget)
    _, status = solver.minimize(counted, np.array([-1.2, 1.0]))
    assert status.code is ExitCode.EVALUATION_LIMIT
    assert len(calls) == status.evaluations <= budget


def test_inconsistent_gradient_fails_line_search():
    def wrong_sign(x):
        f, g = sphere(x)
        return f, -g

    x0 = np.array([1.0, -2.0])
    solver = Lbfgsb()
    minimum, status = solver.minimize(wrong_sign, x0)
    assert status.code is ExitCode.LINESEARCH_FAILED
    assert status.iterations == 0
    assert np.array_equal(minimum.x, x0)

    # The solver is usable again after a failure.
    _, status = solver.minimize(sphere, x0)
    assert status.code is ExitCode.CONVERGED_GRADIENT


def _boxed_rosenbrock_solver(trace):
    return (
        Lbfgsb()
        .set_bounds(lower=[-5.0, -5.0], upper=[5.0, 5.0])
        .set_iteration_callback(trace.append)
    )


def _recording_subspace(sizes, fail_on=None):
    real = solver_module.subspace_minimize

    def subspace(x, g, cauchy, bounds, memory):
        sizes.append(len(memory))
        if fail_on is not None and len(sizes) in fail_on:
            raise NumericalBreakdown("singular")
        return real(x, g, cauchy, bounds, memory)

    return subspace


def test_breakdown_flushes_memory_and_recovers(monkeypatch):
    sizes = []
    monkeypatch.setattr(
        solver_module, "subspace_minimize", _recording_subspace(sizes, fail_on={4})
    )
    trace: list[IterationInfo] = []
    minimum, status = _boxed_rosenbrock_solver(trace).minimize(
        rosenbrock, np.array([-1.2, 1.0])
    )

    assert status.converged, str(status)
    assert np.allclose(minimum.x, 1.0, atol=1e-3)
    assert sizes[3] > 0
    assert sizes[4] == 0
    notes = [note for info in trace for note in info.notes]
    assert notes.count("Resetting limited memory: singular") == 1


def test_breakdown_with_empty_memory_is_approximate(monkeypatch):
    sizes = []
    monkeypatch.setattr(
        solver_module,
        "subspace_minimize",
        _recording_subspace(sizes, fail_on=set(range(1, 100))),
    )
    x0 = np.array([-1.2, 1.0])
    minimum, status = _boxed_rosenbrock_solver([]).minimize(rosenbrock, x0)

    assert status.code is ExitCode.APPROXIMATE
    assert "singular" in status.message
    assert sizes == [0]
    assert status.iterations == 0
    assert status.evaluations == 1
    assert np.array_equal(minimum.x, x0)


def test_single_line_search_failure_restarts_from_steepest_descent(monkeypatch):
    sizes = []
    searches = []
    real_search = solver_module.line_search

    def search(*args, **kwargs):
        searches.append(1)
        if len(searches) == 4:
            return LineSearchResult(
                step=0.0, point=None, evaluations=0, outcome=LineSearchOutcome.ROUNDING
            )
        return real_search(*args, **kwargs)

    monkeypatch.setattr(solver_module, "subspace_minimize", _recording_subspace(sizes))
    monkeypatch.setattr(solver_module, "line_search", search)
    trace: list[IterationInfo] = []
    minimum, status = _boxed_rosenbrock_solver(trace).minimize(
        rosenbrock, np.array([-1.2, 1.0])
    )

    assert status.converged, str(status)
    assert np.allclose(minimum.x, 1.0, atol=1e-3)
    assert sizes[3] > 0
    assert sizes[4] == 0
    notes = [note for info in trace for note in info.notes]
    assert (
        "Line search failed (rounding-errors); restarting from steepest descent"
        in notes
    )


def test_objective_failure_at_start():
    def broken(x):
        raise ZeroDivisionError("division by zero")

    minimum, status = Lbfgsb().minimize(broken, np.array([1.0, 2.0]))
    assert status.code is ExitCode.OBJECTIVE_FAILED
    assert "division by zero" in status.message
    assert status.evaluations == 1
    assert np.isnan(minimum.f)
    assert np.array_equal(minimum.x, [1.0, 2.0])


def test_split_objective_and_memory_depth():
    solver = Lbfgsb.with_memory(10).set_g_tolerance(1e-8).set_f_tolerance(0.0)
    minimum, status = solver.minimize(
        (rosenbrock_value, rosenbrock_gradient), np.array([-1.2, 1.0])
    )
    assert status.code is ExitCode.CONVERGED_GRADIENT
    assert np.allclose(minimum.x, 1.0, atol=1e-6)


def test_starting_point_projected_onto_box():
    seen = []

    def recording(x):
        seen.append(x.copy())
        return sphere(x)

    solver = Lbfgsb().set_bounds(lower=[0.5, -1.0], upper=[2.0, 1.0])
    minimum, status = solver.minimize(recording, np.array([-3.0, 4.0]))
    assert np.array_equal(seen[0], [0.5, 1.0])
    assert status.code is ExitCode.CONVERGED_GRADIENT
    assert np.allclose(minimum.x, [0.5, 0.0], atol=1e-5)


def test_bound_tags_control_active_sides():
    solver = Lbfgsb().set_bounds(
        lower=[2.0, 2.0], upper=[3.0, 3.0], tags=["lower", "free"]
    )
    minimum, status = solver.minimize(sphere, np.array([5.0, 5.0]))
    assert status.code is ExitCode.CONVERGED_GRADIENT
    assert minimum.x[0] == pytest.approx(2.0, abs=1e-12)
    assert abs(minimum.x[1]) < 1e-5


def test_every_iterate_stays_feasible(rng):
    lower = np.array([-0.5, 0.2, -2.0, 1.5])
    upper = np.array([0.5, 2.0, 0.0, 3.0])
    trace: list[IterationInfo] = []
    solver = (
        Lbfgsb()
        .set_bounds(lower, upper)
        .set_iteration_callback(trace.append)
    )
    x0 = rng.uniform(lower, upper)

    seen = []

    def recording(x):
        seen.append(x.copy())
        return rosenbrock(x)

    with debug_context():
        minimum, status = solver.minimize(recording, x0)
    assert status.code not in (ExitCode.OBJECTIVE_FAILED, ExitCode.INVALID_INPUT)
    for x in seen + [info.x for info in trace] + [minimum.x]:
        assert np.all(x >= lower) and np.all(x <= upper)


def test_iteration_callback_reports_monotone_progress():
    trace: list[IterationInfo] = []
    solver = Lbfgsb().set_iteration_callback(trace.append)
    _, status = solver.minimize(rosenbrock, np.array([-1.2, 1.0]))
    assert [info.iteration for info in trace] == list(range(1, status.iterations + 1))
    values = [info.f for info in trace]
    assert all(b < a for a, b in zip(values, values[1:]))
    assert all(info.f_delta > 0.0 for info in trace)
    assert trace[-1].evaluations <= status.evaluations
    assert max(info.memory_size for info in trace) <= 5


def test_history_kept_on_request():
    solver = Lbfgsb()
    _, status = solver.minimize(rosenbrock, np.array([-1.2, 1.0]), {"keep_history": True})
    assert len(solver.history) == status.iterations
    _, status = solver.minimize(rosenbrock, np.array([-1.2, 1.0]))
    assert solver.history == []


class StopSolve(Exception):
    pass


def test_callback_exceptions_propagate():
    def stop(info):
        raise StopSolve

    solver = Lbfgsb().set_iteration_callback(stop)
    with pytest.raises(StopSolve):
        solver.minimize(sphere, np.array([1.0, 2.0]))
    # Not left in the running state.
    _, status = solver.set_iteration_callback(None).minimize(sphere, np.array([1.0]))
    assert status.converged


def test_reentrant_call_rejected():
    solver = Lbfgsb()

    def nested(x):
        solver.minimize(sphere, x.copy())
        return sphere(x)

    with pytest.raises(ReentrancyError):
        solver.minimize(nested, np.array([1.0, 1.0]))
    _, status = solver.minimize(sphere, np.array([1.0, 1.0]))
    assert status.converged


def test_independent_solvers_may_nest():
    inner = Lbfgsb()

    def nested(x):
        minimum, _ = inner.minimize(sphere, x.copy())
        return sphere(x)

    _, status = Lbfgsb().minimize(nested, np.array([1.0, 1.0]))
    assert status.converged


def test_reuse_with_different_dimensions():
    solver = Lbfgsb()
    _, first = solver.minimize(sphere, np.ones(2))
    _, second = solver.minimize(rosenbrock, np.array([-1.2, 1.0, -1.2]))
    _, third = solver.minimize(sphere, np.ones(7))
    assert first.converged and third.converged
    assert second.code in (ExitCode.CONVERGED_GRADIENT, ExitCode.CONVERGED_OBJECTIVE)


@pytest.mark.parametrize(
    "x0",
    [
        np.array([1.0, np.nan]),
        np.array([np.inf, 1.0]),
        np.zeros(0),
        np.ones((2, 2)),
        "abc",
    ],
)
def test_invalid_start_rejected_without_evaluating(x0):
    calls = []

    def fun(x):
        calls.append(1)
        return sphere(x)

    minimum, status = Lbfgsb().minimize(fun, x0)
    assert status.code is ExitCode.INVALID_INPUT
    assert status.evaluations == 0
    assert calls == []
    assert np.isnan(minimum.f)


def test_invalid_input_leaves_solver_state_untouched():
    solver = Lbfgsb()
    _, status = solver.minimize(sphere, np.full(3, 2.0))
    iterations, evaluations = solver.iterations, solver.evaluations
    solver.set_bounds(lower=[0.0, 0.0])
    _, bad = solver.minimize(sphere, np.full(3, 2.0))
    assert bad.code is ExitCode.INVALID_INPUT
    assert "dimension" in bad.message
    assert (solver.iterations, solver.evaluations) == (iterations, evaluations)


def test_invalid_objective_and_config_rejected():
    _, status = Lbfgsb().minimize(3.0, np.ones(2))
    assert status.code is ExitCode.INVALID_INPUT
    _, status = Lbfgsb().minimize(sphere, np.ones(2), {"memory_depth": 40})
    assert status.code is ExitCode.INVALID_INPUT
    _, status = Lbfgsb().minimize(sphere, np.ones(2), "fast")
    assert status.code is ExitCode.INVALID_INPUT


def test_setters_validate_eagerly():
    with pytest.raises(InvalidInputError):
        Lbfgsb.with_memory(0)
    with pytest.raises(InvalidInputError):
        Lbfgsb().set_bounds(lower=[1.0, 0.0], upper=[0.0, 1.0])
    with pytest.raises(InvalidInputError):
        Lbfgsb().set_printing("noisy")
    with pytest.raises(InvalidInputError):
        Lbfgsb(unknown_option=1)


def test_set_bounds_accepts_bounds_and_clears():
    bounds = Bounds.from_arrays(lower=[0.0])
    solver = Lbfgsb().set_bounds(bounds)
    assert solver.config.bounds is bounds
    assert solver.set_bounds().config.bounds is None


def test_per_call_config_overrides_solver_config():
    solver = Lbfgsb()
    config = SolverConfig(max_iterations=1)
    _, status = solver.minimize(rosenbrock, np.array([-1.2, 1.0]), config)
    assert status.code is ExitCode.ITERATION_LIMIT
    assert solver.config.max_iterations == 100


def _capture(printing):
    stream = StringIO()
    configure_logging(level=logging.WARNING, stream=stream)
    solver = Lbfgsb().set_printing(printing)
    solver.minimize(rosenbrock, np.array([-1.2, 1.0]))
    return stream.getvalue()


def test_silent_printing_emits_nothing():
    assert _capture("silent") == ""


def test_summary_printing():
    output = _capture(Printing.SUMMARY)
    assert "L-BFGS-B start" in output
    assert "L-BFGS-B finished" in output
    assert "iter " not in output


def test_iteration_printing():
    output = _capture("iterations")
    assert "iter    1" in output
    assert "Line search:" not in output


def test_verbose_printing():
    output = _capture(3)
    assert "iter    1" in output
    assert "Line search:" in output


def test_printing_restores_logger_levels():
    from lbfgsb.solver import logger

    configure_logging(level=logging.WARNING)
    Lbfgsb().set_printing("verbose").minimize(sphere, np.ones(2))
    assert logger.level == logging.WARNING
    assert all(handler.level == logging.WARNING for handler in logger.handlers)
