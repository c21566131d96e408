"""
Collocation abscissae and Lagrange polynomial basis.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from collint.errors import BasisDegenerateError, ConfigurationError
from collint.logging import get_logger
from collint.registry import get_scheme

log = get_logger(__name__)


def collocation_abscissae(degree: int, scheme: str) -> np.ndarray:
    """
    Return the ``degree + 1`` abscissae of one collocation interval.

    Index 0 is the interval start (0.0) and is not a collocation point;
    indices 1..degree are the scheme's collocation points.

    Raises:
        ConfigurationError: The scheme is unknown or cannot produce ``degree``
            points.
        BasisDegenerateError: The generated points are not ``degree`` distinct,
            increasing values in (0, 1].
    """
    generator = get_scheme(scheme)
    try:
        tau_root = [float(tau) for tau in generator(degree)]
    except RuntimeError as exc:
        # CasADi only tabulates a finite range of degrees per scheme
        raise ConfigurationError(
            f"Scheme '{scheme}' cannot generate collocation points of degree {degree}: {exc}",
        ) from exc

    if len(tau_root) != degree:
        raise BasisDegenerateError(
            f"Scheme '{scheme}' produced {len(tau_root)} points for degree {degree}",
        )

    # Add 0 to the beginning
    tau = np.array([0.0, *tau_root])

    if np.any(tau[1:] <= 0.0) or np.any(tau[1:] > 1.0):
        raise BasisDegenerateError(
            f"Collocation points of scheme '{scheme}' must lie in (0, 1], got {tau_root}",
        )
    if np.any(np.diff(tau) <= 0.0):
        raise BasisDegenerateError(
            f"Collocation points of scheme '{scheme}' must be strictly increasing, got {tau_root}",
        )
    return tau


def lagrange_basis(abscissae: Sequence[float]) -> list[np.poly1d]:
    """
    Construct the Lagrange polynomials over ``abscissae``.

    Polynomial ``j`` is 1 at ``abscissae[j]`` and 0 at every other abscissa.

    Raises:
        BasisDegenerateError: Two abscissae coincide.
    """
    tau = np.asarray(abscissae, dtype=float)
    if len(np.unique(tau)) != len(tau):
        raise BasisDegenerateError(f"Abscissae must be distinct, got {tau.tolist()}")

    basis = []
    for j in range(len(tau)):
        p = np.poly1d([1.0])
        for r in range(len(tau)):
            if r != j:
                p *= np.poly1d([1.0, -tau[r]]) / (tau[j] - tau[r])
        basis.append(p)
    return basis
