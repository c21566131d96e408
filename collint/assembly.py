"""
Discrete-time step functions of the collocation integrator.

The forward step ``F`` and the backward (adjoint) step ``G`` share one
structure: stage unknowns are split into per-stage blocks, the DAE is
evaluated at every collocation point, and each stage contributes one
collocation residual, one algebraic residual, a term of the end value and a
term of every quadrature. They differ only in how the coefficient table is
used, which ``BlockWeights`` captures:

forward
    residual_j = h*ode_j - (C[0,j]*x0 + sum_r C[r,j]*x_r)
    xf = D[0]*x0 + sum_j D[j]*x_j

backward
    residual_j = h*B[j]*rode_j - (-D[j]*rx0 + sum_r B[r]*C[j,r]*rx_r)
    rxf = D[0]*rx0 - sum_j B[j]*C[0,j]*rx_j

The backward weights are the forward ones transposed and scaled by B, so that
``G`` is the exact adjoint of ``F`` whenever the backward DAE is the
reverse-mode derivative of the forward DAE.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

import casadi as ca
import numpy as np

from collint.constants import BSTEP_INPUTS, BSTEP_OUTPUTS, FSTEP_INPUTS, FSTEP_OUTPUTS
from collint.dae import DaeFunction
from collint.logging import get_logger
from collint.numerical.coefficients import CoefficientTable

log = get_logger(__name__)

StageEvaluator = Callable[[int], tuple[ca.MX, ca.MX, Sequence[ca.MX]]]


@dataclass(frozen=True)
class BlockWeights:
    """
    Coefficient usage of one collocation sweep.

    Attributes:
        rate: Scale of ``h * rate_j`` in residual ``j``.
        boundary: Weight of the boundary value in residual ``j``.
        coupling: ``coupling[r, j]`` is the weight of stage ``r`` in residual ``j``.
        end_boundary: Weight of the boundary value in the end value.
        end_stage: Weight of stage ``j`` in the end value.
        quadrature: Scale of ``h * quad_j`` in every quadrature.
    """

    rate: np.ndarray
    boundary: np.ndarray
    coupling: np.ndarray
    end_boundary: float
    end_stage: np.ndarray
    quadrature: np.ndarray

    @property
    def degree(self) -> int:
        return len(self.rate) - 1


def forward_weights(table: CoefficientTable) -> BlockWeights:
    """Weights of the forward step: C, D and B used as derived."""
    C, D, B = table.C, table.D, table.B
    return BlockWeights(
        rate=np.ones(table.degree + 1),
        boundary=C[0, :].copy(),
        coupling=C.copy(),
        end_boundary=float(D[0]),
        end_stage=D.copy(),
        quadrature=B.copy(),
    )


def adjoint_weights(table: CoefficientTable) -> BlockWeights:
    """Weights of the exact-adjoint step: C transposed and scaled by B."""
    C, D, B = table.C, table.D, table.B
    return BlockWeights(
        rate=B.copy(),
        boundary=-D,
        coupling=B[:, None] * C.T,
        end_boundary=float(D[0]),
        end_stage=-B * C[0, :],
        quadrature=B.copy(),
    )


def split_stage_unknowns(
    v: ca.MX,
    degree: int,
    state_shape: tuple[int, int],
    alg_shape: tuple[int, int],
) -> tuple[list[ca.MX | None], list[ca.MX | None]]:
    """
    Split a flat stage-unknown vector into per-stage state and algebraic blocks.

    Index 0 of both returned lists is ``None``; it belongs to the boundary
    value, which is not an unknown.
    """
    nx = state_shape[0] * state_shape[1]
    nz = alg_shape[0] * alg_shape[1]
    offset = [0]
    for _ in range(degree):
        offset.append(offset[-1] + nx)
        offset.append(offset[-1] + nz)
    vv = iter(ca.vertsplit(v, offset))

    xs: list[ca.MX | None] = [None] * (degree + 1)
    zs: list[ca.MX | None] = [None] * (degree + 1)
    for d in range(1, degree + 1):
        xs[d] = ca.reshape(next(vv), *state_shape)
        zs[d] = ca.reshape(next(vv), *alg_shape)
    return xs, zs


def assemble_collocation_block(
    weights: BlockWeights,
    h: ca.MX,
    boundary: ca.MX,
    stages: Sequence[ca.MX | None],
    evaluate: StageEvaluator,
    quadrature_shapes: Sequence[tuple[int, int]],
) -> tuple[ca.MX, ca.MX, list[ca.MX]]:
    """
    Assemble residuals, end value and quadratures of one collocation interval.

    Args:
        weights: Forward or adjoint coefficient usage.
        h: Step size.
        boundary: Value at the interval start.
        stages: Stage values, index 0 unused.
        evaluate: Returns ``(rate, algebraic_residual, quadrature_rates)``
            for collocation point ``j``.
        quadrature_shapes: Shapes of the quadrature accumulators.

    Returns:
        End value, stacked residual vector, quadrature accumulators.
    """
    deg = weights.degree

    # Equations that implicitly define the stage unknowns
    eq = []

    quadratures = [ca.MX.zeros(*shape) for shape in quadrature_shapes]

    end = weights.end_boundary * boundary

    for j in range(1, deg + 1):
        rate, alg, quad_rates = evaluate(j)

        # Derivative at the collocation point as a combination of stage values
        combo = float(weights.boundary[j]) * boundary
        for r in range(1, deg + 1):
            combo += float(weights.coupling[r, j]) * stages[r]

        eq.append(ca.vec(float(weights.rate[j]) * h * rate - combo))
        eq.append(ca.vec(alg))

        end += float(weights.end_stage[j]) * stages[j]

        for k, q in enumerate(quad_rates):
            quadratures[k] += (float(weights.quadrature[j]) * h) * q

    return end, ca.vertcat(*eq), quadratures


def _collocation_times(t0: ca.MX, h: ca.MX, table: CoefficientTable) -> list[ca.MX]:
    return [t0 + h * float(tau) for tau in table.abscissae]


def build_forward_step(dae: DaeFunction, table: CoefficientTable, name: str = "fstep") -> ca.Function:
    """
    Build the forward discrete-time step ``(t0, h, x0, p, u, v) -> (xf, vf, qf)``.

    ``vf`` stacks, per collocation point, the collocation residual and the
    algebraic residual; a nonlinear solver drives it to zero over ``v``.
    """
    deg = table.degree
    x_shape, z_shape = dae.shape_in("x"), dae.shape_in("z")

    # Symbolic inputs
    t0 = ca.MX.sym("t0", dae.function.sparsity_in("t"))
    h = ca.MX.sym("h")
    x0 = ca.MX.sym("x0", dae.function.sparsity_in("x"))
    p = ca.MX.sym("p", dae.function.sparsity_in("p"))
    u = ca.MX.sym("u", dae.function.sparsity_in("u"))

    # Implicitly defined variables (x and z at the collocation points)
    v = ca.MX.sym("v", deg * (dae.numel_in("x") + dae.numel_in("z")))
    x, z = split_stage_unknowns(v, deg, x_shape, z_shape)

    tt = _collocation_times(t0, h, table)

    def evaluate(j: int):
        ode, alg, quad = dae(tt[j], x[j], z[j], p, u)
        return ode, alg, (quad,)

    xf, vf, (qf,) = assemble_collocation_block(
        forward_weights(table), h, x0, x, evaluate, [dae.shape_out("quad")],
    )

    F = ca.Function(name, [t0, h, x0, p, u, v], [xf, vf, qf], list(FSTEP_INPUTS), list(FSTEP_OUTPUTS))
    log.debug(f"Assembled forward step '{name}': {deg} stages, {vf.numel()} residuals")
    return F


def build_backward_step(
    dae: DaeFunction,
    rdae: DaeFunction,
    table: CoefficientTable,
    name: str = "bstep",
) -> ca.Function:
    """
    Build the backward discrete-time step
    ``(t0, h, x0, p, u, v, rx0, rp, rv) -> (rxf, rvf, rqf, uqf)``.

    ``x0`` and ``v`` are the boundary state and solved stage unknowns of the
    matching forward step; ``rv`` holds the backward stage unknowns.
    """
    deg = table.degree

    # Forward context
    t0 = ca.MX.sym("t0", dae.function.sparsity_in("t"))
    h = ca.MX.sym("h")
    x0 = ca.MX.sym("x0", dae.function.sparsity_in("x"))
    p = ca.MX.sym("p", dae.function.sparsity_in("p"))
    u = ca.MX.sym("u", dae.function.sparsity_in("u"))
    v = ca.MX.sym("v", deg * (dae.numel_in("x") + dae.numel_in("z")))
    x, z = split_stage_unknowns(v, deg, dae.shape_in("x"), dae.shape_in("z"))

    # Backward inputs
    rx0 = ca.MX.sym("rx0", rdae.function.sparsity_in("rx"))
    rp = ca.MX.sym("rp", rdae.function.sparsity_in("rp"))
    rv = ca.MX.sym("rv", deg * (rdae.numel_in("rx") + rdae.numel_in("rz")))
    rx, rz = split_stage_unknowns(rv, deg, rdae.shape_in("rx"), rdae.shape_in("rz"))

    tt = _collocation_times(t0, h, table)

    def evaluate(j: int):
        rode, ralg, rquad, uquad = rdae(tt[j], x[j], z[j], p, u, rx[j], rz[j], rp)
        return rode, ralg, (rquad, uquad)

    rxf, rvf, (rqf, uqf) = assemble_collocation_block(
        adjoint_weights(table),
        h,
        rx0,
        rx,
        evaluate,
        [rdae.shape_out("rquad"), rdae.shape_out("uquad")],
    )

    G = ca.Function(
        name,
        [t0, h, x0, p, u, v, rx0, rp, rv],
        [rxf, rvf, rqf, uqf],
        list(BSTEP_INPUTS),
        list(BSTEP_OUTPUTS),
    )
    log.debug(f"Assembled backward step '{name}': {deg} stages, {rvf.numel()} residuals")
    return G
