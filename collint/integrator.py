"""
Fixed-step collocation integrator.

This module ties the pieces together: it normalizes the user's DAE functions,
derives the coefficient table, assembles the forward and (optional) backward
step functions, seeds the stage unknowns of a solve, and persists the
integrator state.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Union

import casadi as ca
import numpy as np

from collint.assembly import build_backward_step, build_forward_step
from collint.config import CollocationConfig
from collint.constants import SERIALIZATION_CLASS_TAG, SERIALIZATION_FORMAT_VERSION
from collint.dae import DaeFunction, align_backward, normalize_dae
from collint.errors import CollocationError, ConfigurationError, DimensionMismatchError
from collint.logging import get_logger
from collint.numerical.coefficients import CoefficientTable, derive_coefficients
from collint.registry import register_integrator

log = get_logger(__name__)


@dataclass(frozen=True)
class AdjointStep:
    """Backward step function, present when a backward DAE was supplied."""

    function: ca.Function


@dataclass(frozen=True)
class NoAdjointStep:
    """Marker for an integrator built without a backward DAE."""


Adjoint = Union[AdjointStep, NoAdjointStep]


@dataclass(frozen=True)
class StepFunctions:
    """Compiled step functions returned by :func:`build`."""

    forward: ca.Function
    adjoint: Adjoint


@dataclass
class StepMemory:
    """
    Run-local working memory of one trajectory.

    ``v`` and ``rv`` are the forward and backward stage-unknown buffers fed to
    the nonlinear solver; ``p`` and ``rp`` are the parameters recorded at the
    last reset. Never share one instance between concurrent runs.
    """

    v: np.ndarray
    rv: np.ndarray
    p: np.ndarray = field(default_factory=lambda: np.zeros(0))
    rp: np.ndarray = field(default_factory=lambda: np.zeros(0))


def flatten(value: Any, size: int) -> np.ndarray:
    if value is None:
        return np.zeros(size)
    if isinstance(value, ca.DM):
        value = value.full()
    # Column-major, matching casadi's vec
    return np.asarray(value, dtype=float).ravel(order="F")


def _fill(buffer: np.ndarray, values: np.ndarray, name: str) -> None:
    # In place: callers may hold a reference to the buffer
    if buffer.shape != values.shape:
        raise DimensionMismatchError(
            f"Working memory '{name}' has shape {buffer.shape}, expected {values.shape}",
        )
    buffer[:] = values


class CollocationIntegrator:
    """
    Implicit fixed-step integrator using orthogonal collocation.

    Each step solves ``degree * (nx + nz)`` stage unknowns so that the DAE
    holds at the collocation points of the interval. The step functions are
    built once and never change; all per-run state lives in ``StepMemory``.
    """

    def __init__(
        self,
        name: str,
        dae: ca.Function | dict[str, Any] | DaeFunction,
        rdae: ca.Function | dict[str, Any] | DaeFunction | None = None,
        config: CollocationConfig | None = None,
    ):
        """
        Build the integrator.

        Args:
            name: Integrator name, used as a prefix of the step functions.
            dae: Forward DAE with inputs ``t, x, z, p, u`` and outputs
                ``ode, alg, quad``.
            rdae: Optional backward DAE with inputs ``t, x, z, p, u, rx, rz,
                rp`` and outputs ``rode, ralg, rquad, uquad``.
            config: Collocation degree and scheme.
        """
        self.name = name
        self.config = config or CollocationConfig()

        try:
            f = normalize_dae(dae, "forward")
            g = align_backward(f, normalize_dae(rdae, "backward")) if rdae is not None else None

            table = self.coefficients
            forward = build_forward_step(f, table, name=f"{name}_fstep")
            adjoint: Adjoint = (
                AdjointStep(build_backward_step(f, g, table, name=f"{name}_bstep"))
                if g is not None
                else NoAdjointStep()
            )
        except CollocationError as exc:
            log.error(f"Failed to build collocation integrator '{name}': {exc}")
            raise

        self._forward = forward
        self._adjoint = adjoint

        log.info(
            f"Built collocation integrator '{name}': {self.scheme}, degree {self.degree}, "
            f"nx={self.nx}, nz={self.nz}, adjoint={self.has_adjoint}",
        )

    @classmethod
    def creator(
        cls,
        name: str,
        dae: Any,
        rdae: Any = None,
        options: dict[str, Any] | None = None,
    ) -> CollocationIntegrator:
        """Plugin constructor used by the integrator registry."""
        return cls(name, dae, rdae, CollocationConfig.from_options(options))

    @property
    def degree(self) -> int:
        return self.config.degree

    @property
    def scheme(self) -> str:
        return self.config.scheme

    @cached_property
    def coefficients(self) -> CoefficientTable:
        """Coefficient table; derived on first access, never persisted."""
        return derive_coefficients(self.config)

    @property
    def forward_step(self) -> ca.Function:
        return self._forward

    @property
    def adjoint(self) -> Adjoint:
        return self._adjoint

    @property
    def has_adjoint(self) -> bool:
        return isinstance(self._adjoint, AdjointStep)

    @property
    def backward_step(self) -> ca.Function:
        if not isinstance(self._adjoint, AdjointStep):
            raise ConfigurationError(
                f"Integrator '{self.name}' was built without a backward DAE",
            )
        return self._adjoint.function

    def step_functions(self) -> StepFunctions:
        return StepFunctions(forward=self._forward, adjoint=self._adjoint)

    # Sizes, read off the step functions so they survive deserialization

    @property
    def nx(self) -> int:
        return self._forward.sparsity_in("x0").numel()

    @property
    def nz(self) -> int:
        return self._forward.sparsity_in("v").numel() // self.degree - self.nx

    @property
    def npar(self) -> int:
        return self._forward.sparsity_in("p").numel()

    @property
    def nu(self) -> int:
        return self._forward.sparsity_in("u").numel()

    @property
    def nq(self) -> int:
        return self._forward.sparsity_out("qf").numel()

    @property
    def nrx(self) -> int:
        return self.backward_step.sparsity_in("rx0").numel() if self.has_adjoint else 0

    @property
    def nrz(self) -> int:
        if not self.has_adjoint:
            return 0
        return self.backward_step.sparsity_in("rv").numel() // self.degree - self.nrx

    @property
    def nrp(self) -> int:
        return self.backward_step.sparsity_in("rp").numel() if self.has_adjoint else 0

    def allocate_memory(self) -> StepMemory:
        """Allocate zeroed working memory for one trajectory."""
        return StepMemory(
            v=np.zeros(self.degree * (self.nx + self.nz)),
            rv=np.zeros(self.degree * (self.nrx + self.nrz)),
            p=np.zeros(self.npar),
            rp=np.zeros(self.nrp),
        )

    def reset(self, memory: StepMemory, x: Any, z: Any = None, p: Any = None) -> None:
        """Seed ``memory.v`` with the boundary values repeated at every stage."""
        stage = np.concatenate([flatten(x, self.nx), flatten(z, self.nz)])
        _fill(memory.v, np.tile(stage, self.degree), "v")
        _fill(memory.p, flatten(p, self.npar), "p")

    def reset_backward(self, memory: StepMemory, rx: Any, rz: Any = None, rp: Any = None) -> None:
        """Seed ``memory.rv`` with the backward boundary values repeated at every stage."""
        stage = np.concatenate([flatten(rx, self.nrx), flatten(rz, self.nrz)])
        _fill(memory.rv, np.tile(stage, self.degree), "rv")
        _fill(memory.rp, flatten(rp, self.nrp), "rp")

    def algebraic_state_output(self, v: Any) -> np.ndarray:
        """Algebraic variables of the last stage of a solved ``v``."""
        v = flatten(v, 0)
        return v[v.size - self.nz:]

    def serialize(self) -> str:
        """Serialize degree, scheme and the compiled step functions."""
        record = {
            "class": SERIALIZATION_CLASS_TAG,
            "version": SERIALIZATION_FORMAT_VERSION,
            "name": self.name,
            "degree": self.degree,
            "scheme": self.scheme,
            "forward": self._forward.serialize(),
            "backward": self._adjoint.function.serialize() if isinstance(self._adjoint, AdjointStep) else None,
        }
        return json.dumps(record)

    @classmethod
    def deserialize(cls, data: str) -> CollocationIntegrator:
        """Restore an integrator from :meth:`serialize` output."""
        try:
            record = json.loads(data)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Malformed integrator state: {exc}") from exc

        if not isinstance(record, dict):
            raise ConfigurationError("Malformed integrator state: expected a JSON object")
        if record.get("class") != SERIALIZATION_CLASS_TAG:
            raise ConfigurationError(f"Not a collocation integrator state: {record.get('class')!r}")
        if record.get("version") != SERIALIZATION_FORMAT_VERSION:
            raise ConfigurationError(
                f"Unsupported integrator state version {record.get('version')!r}, "
                f"expected {SERIALIZATION_FORMAT_VERSION}",
            )

        try:
            name = record["name"]
            config = CollocationConfig(degree=record["degree"], scheme=record["scheme"])
            forward = ca.Function.deserialize(record["forward"])
            backward = record["backward"]
            adjoint: Adjoint = (
                AdjointStep(ca.Function.deserialize(backward)) if backward is not None else NoAdjointStep()
            )
        except KeyError as exc:
            raise ConfigurationError(f"Malformed integrator state: missing field {exc}") from exc
        except (RuntimeError, TypeError) as exc:
            raise ConfigurationError(f"Malformed integrator state: {exc}") from exc

        steps = [("forward", forward, "v")]
        if isinstance(adjoint, AdjointStep):
            steps.append(("backward", adjoint.function, "rv"))
        for label, fn, unknowns in steps:
            if unknowns not in fn.name_in() or fn.sparsity_in(unknowns).numel() % config.degree:
                raise ConfigurationError(
                    f"Malformed integrator state: {label} step does not match degree {config.degree}",
                )

        obj = cls.__new__(cls)
        obj.name = name
        obj.config = config
        obj._forward = forward
        obj._adjoint = adjoint
        log.debug(f"Deserialized collocation integrator '{obj.name}'")
        return obj


def build(
    config: CollocationConfig,
    f: ca.Function | dict[str, Any],
    g: ca.Function | dict[str, Any] | None = None,
    name: str = "collocation",
) -> StepFunctions:
    """
    Compile the step functions of a collocation integrator.

    Raises:
        ConfigurationError: Invalid degree or scheme.
        BasisDegenerateError: The scheme's abscissae are not distinct.
        DimensionMismatchError: ``f`` or ``g`` do not match the DAE signature.
    """
    return CollocationIntegrator(name, f, g, config).step_functions()


register_integrator("collocation", CollocationIntegrator.creator)
