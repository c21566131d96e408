"""
Fixed-step driver loop.

Integrates a ``CollocationIntegrator`` over a uniform grid by solving the
implicit stage equations of every step with a CasADi rootfinder. The forward
sweep records what the backward sweep needs (boundary states and solved stage
unknowns per step), so adjoint sensitivities of the whole horizon are
obtained by running the backward steps in reverse order.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import casadi as ca
import numpy as np

from collint.config import DriverSettings
from collint.integrator import CollocationIntegrator, StepMemory, flatten
from collint.logging import get_logger

log = get_logger(__name__)


@dataclass
class ForwardResult:
    """Outcome of a forward sweep."""

    times: np.ndarray
    x: np.ndarray  # state on the grid, one row per grid point
    xf: np.ndarray
    zf: np.ndarray
    qf: np.ndarray
    p: np.ndarray
    u: np.ndarray
    # Solved stage unknowns of every step, consumed by the backward sweep
    v: list[np.ndarray] = field(default_factory=list)


@dataclass
class BackwardResult:
    """Outcome of a backward sweep."""

    rxf: np.ndarray
    rzf: np.ndarray
    rqf: np.ndarray
    uqf: np.ndarray


def _column(value: ca.DM) -> np.ndarray:
    return value.full().ravel(order="F")


class FixedStepDriver:
    """
    Drive a collocation integrator over ``[t0, tf]`` with a fixed step.

    The driver owns no per-run state: every sweep allocates its own
    ``StepMemory``, so independent trajectories may share one driver.
    """

    def __init__(
        self,
        integrator: CollocationIntegrator,
        t0: float = 0.0,
        tf: float = 1.0,
        settings: DriverSettings | None = None,
    ):
        self.integrator = integrator
        self.settings = settings or DriverSettings()
        self.t0 = float(t0)
        self.tf = float(tf)

        n = self.settings.number_of_finite_elements
        self.h = (self.tf - self.t0) / n
        self.grid = np.linspace(self.t0, self.tf, n + 1)

        self._forward_solver = self._make_forward_solver()
        self._backward_solver = self._make_backward_solver() if integrator.has_adjoint else None

        log.info(
            f"Configured fixed-step driver: {n} steps of {self.h:g} on [{self.t0:g}, {self.tf:g}], "
            f"rootfinder '{self.settings.rootfinder}'",
        )

    def _make_forward_solver(self) -> ca.Function:
        F = self.integrator.forward_step
        names = ["v", "t0", "h", "x0", "p", "u"]
        args = {n: ca.MX.sym(n, F.sparsity_in(n)) for n in names}
        res = F.call(args)
        residual = ca.Function(
            f"{F.name()}_residual",
            [args[n] for n in names],
            [res["vf"], res["xf"], res["qf"]],
            names,
            ["vf", "xf", "qf"],
        )
        return ca.rootfinder(
            f"{F.name()}_solver", self.settings.rootfinder, residual, self.settings.rootfinder_options,
        )

    def _make_backward_solver(self) -> ca.Function:
        G = self.integrator.backward_step
        names = ["rv", "t0", "h", "x0", "p", "u", "v", "rx0", "rp"]
        args = {n: ca.MX.sym(n, G.sparsity_in(n)) for n in names}
        res = G.call(args)
        residual = ca.Function(
            f"{G.name()}_residual",
            [args[n] for n in names],
            [res["rvf"], res["rxf"], res["rqf"], res["uqf"]],
            names,
            ["rvf", "rxf", "rqf", "uqf"],
        )
        return ca.rootfinder(
            f"{G.name()}_solver", self.settings.rootfinder, residual, self.settings.rootfinder_options,
        )

    def _shaped(self, fn: ca.Function, name: str, flat: np.ndarray) -> ca.DM:
        shape = fn.size_in(name)
        if flat.size == 0:
            return ca.DM(*shape)
        return ca.DM(np.reshape(flat, shape, order="F"))

    def integrate(
        self,
        x0: Any,
        z0: Any = None,
        p: Any = None,
        u: Any = None,
        memory: StepMemory | None = None,
    ) -> ForwardResult:
        """
        Run the forward sweep from ``x0``.

        Args:
            x0: Initial state.
            z0: Initial guess of the algebraic variables.
            p: Parameters.
            u: Controls, constant over the horizon.
            memory: Working memory; allocated when omitted.
        """
        integ = self.integrator
        F = integ.forward_step
        memory = memory or integ.allocate_memory()
        integ.reset(memory, x0, z0, p)
        u = flatten(u, integ.nu)

        start = time.time()
        x = flatten(x0, integ.nx)
        qf = np.zeros(integ.nq)
        states = [x]
        stage_history = []

        for k in range(self.settings.number_of_finite_elements):
            # Input 0 of a rootfinder is the initial guess and output 0 the
            # solution; their names differ between casadi releases
            vf, xf, step_qf = self._forward_solver.call(
                [
                    ca.DM(memory.v),
                    float(self.grid[k]),
                    self.h,
                    self._shaped(F, "x0", x),
                    self._shaped(F, "p", memory.p),
                    self._shaped(F, "u", u),
                ],
            )
            # Warm start the next step from this solution
            memory.v[:] = _column(vf)
            stage_history.append(memory.v.copy())

            x = _column(xf)
            qf = qf + _column(step_qf)
            states.append(x)

        log.debug(
            f"Forward sweep finished in {time.time() - start:.3f}s "
            f"({self.settings.number_of_finite_elements} steps)",
        )
        return ForwardResult(
            times=self.grid.copy(),
            x=np.array(states),
            xf=x,
            zf=integ.algebraic_state_output(memory.v).copy(),
            qf=qf,
            p=memory.p.copy(),
            u=u,
            v=stage_history,
        )

    def integrate_backward(
        self,
        forward: ForwardResult,
        rx0: Any,
        rz0: Any = None,
        rp: Any = None,
        memory: StepMemory | None = None,
    ) -> BackwardResult:
        """
        Run the backward sweep over a solved forward trajectory.

        Args:
            forward: Result of :meth:`integrate`.
            rx0: Backward state at the end of the horizon (seed of ``xf``).
            rz0: Initial guess of the backward algebraic variables.
            rp: Backward parameters (seed of ``qf``).
            memory: Working memory; allocated when omitted.
        """
        integ = self.integrator
        G = integ.backward_step
        memory = memory or integ.allocate_memory()
        integ.reset_backward(memory, rx0, rz0, rp)

        rx = flatten(rx0, integ.nrx)
        rqf = np.zeros(G.sparsity_out("rqf").numel())
        uqf = np.zeros(G.sparsity_out("uqf").numel())

        for k in reversed(range(self.settings.number_of_finite_elements)):
            rvf, rxf, step_rqf, step_uqf = self._backward_solver.call(
                [
                    ca.DM(memory.rv),
                    float(self.grid[k]),
                    self.h,
                    self._shaped(G, "x0", forward.x[k]),
                    self._shaped(G, "p", forward.p),
                    self._shaped(G, "u", forward.u),
                    ca.DM(forward.v[k]),
                    self._shaped(G, "rx0", rx),
                    self._shaped(G, "rp", memory.rp),
                ],
            )
            memory.rv[:] = _column(rvf)
            rx = _column(rxf)
            rqf = rqf + _column(step_rqf)
            uqf = uqf + _column(step_uqf)

        rzf = memory.rv[memory.rv.size - integ.nrz:].copy()
        return BackwardResult(rxf=rx, rzf=rzf, rqf=rqf, uqf=uqf)
