"""
Example: Bound-constrained minimization with lbfgsb

Minimizes a sphere, the chained Rosenbrock function and a box-constrained
least-squares fit, printing the exit status and the final point of each.
"""

import numpy as np

from lbfgsb import ExitCode, IterationInfo, Lbfgsb
from lbfgsb.functions import rosenbrock, rosenbrock_gradient, rosenbrock_value, sphere


def example_sphere():
    """Example: Unconstrained sphere in five dimensions."""
    print("=" * 60)
    print("Example 1: Sphere, unconstrained")
    print("=" * 60)

    solver = Lbfgsb()
    minimum, status = solver.minimize(sphere, np.full(5, 10.0))
    print(f"Status: {status}")
    print(f"Minimizer: x = {minimum.x}")
    print(f"Iterations: {status.iterations}, evaluations: {status.evaluations}")
    print()


def example_rosenbrock():
    """Example: Rosenbrock valley with separate value and gradient."""
    print("=" * 60)
    print("Example 2: Rosenbrock, split objective")
    print("=" * 60)

    trace: list[IterationInfo] = []
    solver = (
        Lbfgsb.with_memory(7)
        .set_f_tolerance(1e-10)
        .set_g_tolerance(1e-10)
        .set_iteration_callback(trace.append)
    )
    minimum, status = solver.minimize(
        (rosenbrock_value, rosenbrock_gradient), np.array([-1.2, 1.0])
    )
    print(f"Status: {status}")
    print(f"Minimizer: x = {minimum.x}")
    print(f"Objective: f = {minimum.f:.3e}")
    for info in trace[:: max(1, len(trace) // 5)]:
        print(f"  iter {info.iteration:3d}  f = {info.f:.6e}")
    print()


def example_bounded_sphere():
    """Example: Sphere with active lower bounds."""
    print("=" * 60)
    print("Example 3: Sphere with lower bounds at 1")
    print("=" * 60)

    solver = Lbfgsb().set_bounds(lower=[1.0, 1.0, 1.0])
    minimum, status = solver.minimize(sphere, np.array([5.0, 5.0, 5.0]))
    print(f"Status: {status}")
    print(f"Minimizer: x = {minimum.x} (f = {minimum.f})")
    print()


def example_nonnegative_least_squares():
    """Example: Nonnegative least squares as a bound-constrained problem."""
    print("=" * 60)
    print("Example 4: Nonnegative least squares")
    print("=" * 60)

    rng = np.random.default_rng(0)
    a = rng.normal(size=(30, 8))
    truth = np.array([0.0, 1.5, 0.0, 2.0, 0.5, 0.0, 3.0, 0.0])
    b = a @ truth + 0.01 * rng.normal(size=30) - 0.5 * a[:, 0]

    def residual(x):
        r = a @ x - b
        return 0.5 * float(r @ r), a.T @ r

    solver = Lbfgsb().set_bounds(lower=np.zeros(8)).set_g_tolerance(1e-8)
    minimum, status = solver.minimize(residual, np.ones(8))
    print(f"Status: {status}")
    if status.code in (ExitCode.CONVERGED_GRADIENT, ExitCode.CONVERGED_OBJECTIVE):
        print(f"Solution: x = {np.round(minimum.x, 3)}")
        print(f"Active bounds: {np.flatnonzero(minimum.x == 0.0)}")
    print()


if __name__ == "__main__":
    print("\n" + "=" * 60)
    print("lbfgsb - Bound-Constrained Minimization Examples")
    print("=" * 60 + "\n")

    example_sphere()
    example_rosenbrock()
    example_bounded_sphere()
    example_nonnegative_least_squares()

    # Keep the combined-callable form visible as well.
    _, final = Lbfgsb().minimize(rosenbrock, np.array([10.0, 10.0]))
    print(f"Rosenbrock from (10, 10): {final}")

    print("=" * 60)
    print("All examples completed successfully!")
    print("=" * 60)
