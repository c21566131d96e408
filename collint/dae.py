"""
DAE signature handling.

A forward DAE maps ``(t, x, z, p, u)`` to ``(ode, alg, quad)``; a backward
(adjoint) DAE maps ``(t, x, z, p, u, rx, rz, rp)`` to
``(rode, ralg, rquad, uquad)``. Users may supply a CasADi Function that names
any subset of these inputs and outputs, or a dict of symbolic expressions
keyed by them. Everything is normalized to a Function with the full
signature so the step assemblers can call it positionally.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

import casadi as ca

from collint.constants import DAE_INPUTS, DAE_OUTPUTS, RDAE_INPUTS, RDAE_OUTPUTS
from collint.errors import DimensionMismatchError
from collint.logging import get_logger

log = get_logger(__name__)

DaeKind = Literal["forward", "backward"]

_SIGNATURES: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "forward": (DAE_INPUTS, DAE_OUTPUTS),
    "backward": (RDAE_INPUTS, RDAE_OUTPUTS),
}

# Outputs whose size is tied to an input
_STATE_OF: dict[str, str] = {
    "ode": "x",
    "alg": "z",
    "rode": "rx",
    "ralg": "rz",
}


@dataclass(frozen=True)
class DaeFunction:
    """A DAE (or backward DAE) Function with the full, ordered signature."""

    function: ca.Function
    kind: DaeKind

    def shape_in(self, name: str) -> tuple[int, int]:
        return self.function.size_in(name)

    def shape_out(self, name: str) -> tuple[int, int]:
        return self.function.size_out(name)

    def numel_in(self, name: str) -> int:
        rows, cols = self.shape_in(name)
        return rows * cols

    def numel_out(self, name: str) -> int:
        rows, cols = self.shape_out(name)
        return rows * cols

    def __call__(self, *args: Any) -> tuple[Any, ...]:
        res = self.function(*args)
        return tuple(res) if isinstance(res, (list, tuple)) else (res,)


def _function_from_dict(name: str, dae: dict[str, Any], inputs, outputs) -> ca.Function:
    unknown = set(dae) - set(inputs) - set(outputs)
    if unknown:
        raise DimensionMismatchError(f"Unknown DAE entries for '{name}': {sorted(unknown)}")
    names_in = [n for n in inputs if n in dae]
    names_out = [n for n in outputs if n in dae]
    return ca.Function(name, dae, names_in, names_out)


def normalize_dae(dae: ca.Function | dict[str, Any], kind: DaeKind = "forward", name: str | None = None) -> DaeFunction:
    """
    Normalize a DAE to the full signature of ``kind``.

    Args:
        dae: CasADi Function with named inputs/outputs, or a dict of symbolic
            expressions keyed by input and output names.
        kind: ``"forward"`` or ``"backward"``.
        name: Name of the normalized Function; defaults to ``f`` / ``g``.

    Raises:
        DimensionMismatchError: Unknown input or output names, or a rate
            output whose size differs from its state.
    """
    if isinstance(dae, DaeFunction):
        if dae.kind != kind:
            raise DimensionMismatchError(f"Expected a {kind} DAE, got a {dae.kind} DAE")
        return dae

    inputs, outputs = _SIGNATURES[kind]
    name = name or ("f" if kind == "forward" else "g")

    if isinstance(dae, dict):
        fn = _function_from_dict(f"{name}_user", dae, inputs, outputs)
    elif isinstance(dae, ca.Function):
        fn = dae
    else:
        raise DimensionMismatchError(
            f"A {kind} DAE must be a casadi.Function or a dict, got {type(dae).__name__}",
        )

    unknown_in = set(fn.name_in()) - set(inputs)
    unknown_out = set(fn.name_out()) - set(outputs)
    if unknown_in or unknown_out:
        raise DimensionMismatchError(
            f"{kind.capitalize()} DAE '{fn.name()}' has unexpected inputs {sorted(unknown_in)} "
            f"or outputs {sorted(unknown_out)}; expected inputs from {list(inputs)} "
            f"and outputs from {list(outputs)}",
        )

    # Absent inputs are empty; time is always a scalar
    args = {}
    for n in inputs:
        if n in fn.name_in():
            args[n] = ca.MX.sym(n, fn.sparsity_in(n))
        elif n == "t":
            args[n] = ca.MX.sym(n)
        else:
            args[n] = ca.MX.sym(n, 0, 1)

    res = fn.call({n: args[n] for n in fn.name_in()})

    results = []
    for n in outputs:
        expr = res[n] if n in res else ca.MX(0, 1)
        state = _STATE_OF.get(n)
        if state is not None:
            if expr.numel() != args[state].numel():
                raise DimensionMismatchError(
                    f"{kind.capitalize()} DAE output '{n}' has {expr.numel()} elements "
                    f"but '{state}' has {args[state].numel()}",
                )
            expr = ca.reshape(expr, args[state].size1(), args[state].size2())
        results.append(expr)

    normalized = ca.Function(name, [args[n] for n in inputs], results, list(inputs), list(outputs))
    return DaeFunction(function=normalized, kind=kind)


def align_backward(dae: DaeFunction, rdae: DaeFunction) -> DaeFunction:
    """
    Pose a backward DAE on the forward variables of ``dae``.

    Inputs the backward DAE does not name (empty after normalization) are
    widened to the forward shapes and ignored.

    Raises:
        DimensionMismatchError: Shapes of t, x, z, p or u differ, or ``rp``
            does not match the size of the forward quadratures.
    """
    if rdae.numel_in("rp") not in (0, dae.numel_out("quad")):
        raise DimensionMismatchError(
            f"Backward DAE input 'rp' has {rdae.numel_in('rp')} elements "
            f"but the forward quadrature has {dae.numel_out('quad')}",
        )

    args, call = [], []
    for n in DAE_INPUTS:
        sym = ca.MX.sym(n, dae.function.sparsity_in(n))
        args.append(sym)
        if rdae.shape_in(n) == dae.shape_in(n):
            call.append(sym)
        elif rdae.numel_in(n) == 0:
            call.append(ca.MX(*rdae.shape_in(n)))
        else:
            raise DimensionMismatchError(
                f"Backward DAE input '{n}' has shape {rdae.shape_in(n)}, "
                f"forward DAE has {dae.shape_in(n)}",
            )
    for n in RDAE_INPUTS[len(DAE_INPUTS):]:
        sym = ca.MX.sym(n, rdae.function.sparsity_in(n))
        args.append(sym)
        call.append(sym)

    fn = ca.Function(
        rdae.function.name(), args, list(rdae(*call)), list(RDAE_INPUTS), list(RDAE_OUTPUTS),
    )
    return DaeFunction(function=fn, kind="backward")


def reverse_dae(dae: DaeFunction, name: str = "g") -> DaeFunction:
    """
    Build the backward DAE as the reverse-mode derivative of ``dae``.

    With ``w = rx'ode + rz'alg + rp'quad``, the outputs are the gradients of
    ``w`` with respect to ``x`` (rode), ``z`` (ralg), ``p`` (rquad) and ``u``
    (uquad). Paired with this backward DAE, the backward step function gives
    exact adjoint sensitivities of the forward step.
    """
    args = {n: ca.MX.sym(n, dae.function.sparsity_in(n)) for n in DAE_INPUTS}
    ode, alg, quad = dae(*(args[n] for n in DAE_INPUTS))

    rx = ca.MX.sym("rx", *dae.shape_in("x"))
    rz = ca.MX.sym("rz", *dae.shape_in("z"))
    rp = ca.MX.sym("rp", *dae.shape_out("quad"))

    w = ca.dot(rx, ode) + ca.dot(rz, alg) + ca.dot(rp, quad)

    def grad(arg: ca.MX) -> ca.MX:
        if arg.numel() == 0:
            return ca.MX(arg.size1(), arg.size2())
        return ca.reshape(ca.gradient(w, arg), arg.size1(), arg.size2())

    fn = ca.Function(
        name,
        [args["t"], args["x"], args["z"], args["p"], args["u"], rx, rz, rp],
        [grad(args["x"]), grad(args["z"]), grad(args["p"]), grad(args["u"])],
        list(RDAE_INPUTS),
        list(RDAE_OUTPUTS),
    )
    log.debug(f"Derived backward DAE '{name}' from '{dae.function.name()}'")
    return DaeFunction(function=fn, kind="backward")
