"""
Pytest configuration for the collint test suite.

Shared DAE fixtures live here. Logging is kept quiet during collection so
integrator build messages do not flood test output.
"""

import os

os.environ.setdefault("COLLINT_LOG_LEVEL", "WARNING")

import casadi as ca  # noqa: E402
import pytest  # noqa: E402


@pytest.fixture
def decay_dae() -> ca.Function:
    """Scalar decay x' = -p*x with the state itself as quadrature."""
    x = ca.MX.sym("x")
    p = ca.MX.sym("p")
    return ca.Function("decay", [x, p], [-p * x, x], ["x", "p"], ["ode", "quad"])


@pytest.fixture
def semi_explicit_dae() -> ca.Function:
    """
    Two states, one algebraic variable, one parameter, one control.

    ode  = [x1' = x2 + u*x1, x2' = -p*x1 - z*x2]
    alg  = z - (1 + x1^2)
    quad = [x1^2 + p*z, u*x2]
    """
    t = ca.MX.sym("t")
    x = ca.MX.sym("x", 2)
    z = ca.MX.sym("z")
    p = ca.MX.sym("p")
    u = ca.MX.sym("u")
    ode = ca.vertcat(x[1] + u * x[0] + 0.1 * ca.sin(t), -p * x[0] - z * x[1])
    alg = z - (1 + x[0] ** 2)
    quad = ca.vertcat(x[0] ** 2 + p * z, u * x[1])
    return ca.Function(
        "semi_explicit",
        [t, x, z, p, u],
        [ode, alg, quad],
        ["t", "x", "z", "p", "u"],
        ["ode", "alg", "quad"],
    )


@pytest.fixture
def semi_explicit_point() -> dict:
    """A consistent evaluation point of ``semi_explicit_dae``."""
    x0 = [0.5, -0.3]
    return {
        "x0": x0,
        "z0": [1.0 + x0[0] ** 2],
        "p": [0.7],
        "u": [0.2],
    }
